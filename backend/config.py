import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./survey.db")

# LLM
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
SUMMARY_TEMPERATURE = float(os.getenv("SUMMARY_TEMPERATURE", "0.3"))
SUMMARY_MAX_TOKENS = int(os.getenv("SUMMARY_MAX_TOKENS", "2000"))

# Background jobs
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND") or None
TESTING = os.getenv("TESTING") == "1"
SUMMARY_QUEUE = os.getenv("SUMMARY_QUEUE", "survey-summaries")
SUMMARY_JOB_MAX_ATTEMPTS = int(os.getenv("SUMMARY_JOB_MAX_ATTEMPTS", "3"))
SUMMARY_JOB_TIMEOUT = int(os.getenv("SUMMARY_JOB_TIMEOUT", "120"))
SUMMARY_RETRY_BACKOFF = int(os.getenv("SUMMARY_RETRY_BACKOFF", "30"))
SUMMARY_BATCH_SIZE = int(os.getenv("SUMMARY_BATCH_SIZE", "10"))

# Notifications
SUMMARY_RECIPIENTS = os.getenv("SUMMARY_RECIPIENTS", "all")
SMTP_SERVER = os.getenv("SMTP_SERVER", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@example.com")
APP_URL = os.getenv("APP_URL", "http://localhost:8000").rstrip("/")

# HTTP
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "change-me")
ORIGINS = os.getenv("ORIGINS", "http://localhost:5173").split(",")
