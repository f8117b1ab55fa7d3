from celery import Celery
from celery.schedules import crontab

import config

celery_app = Celery(
    "survey_summaries",
    broker=config.CELERY_BROKER_URL,
    backend=config.CELERY_RESULT_BACKEND,
    include=["jobs", "notifications"],
)
celery_app.conf.task_always_eager = config.CELERY_BROKER_URL == "memory://" or config.TESTING
celery_app.conf.task_acks_late = True
celery_app.conf.worker_prefetch_multiplier = 1
celery_app.conf.task_routes = {
    "jobs.*": {"queue": config.SUMMARY_QUEUE},
    "notifications.*": {"queue": "notifications"},
}

celery_app.conf.beat_schedule = {
    "process-survey-summaries": {
        "task": "jobs.process_survey_summaries",
        "schedule": crontab(minute=0),
    },
}
