import os, json, tempfile

# must be set before the app modules read their configuration
_fd, _DB_PATH = tempfile.mkstemp(suffix=".db")
os.close(_fd)
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["TESTING"] = "1"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["OPENAI_API_KEY"] = ""
os.environ["ADMIN_API_KEY"] = "test-key"

import pytest
from fastapi.testclient import TestClient

import db
import notify
import recipients
from main import app
from models import Company, Survey, SurveyResponse, SurveyStatus, User
from security import verify_admin
from worker import celery_app
from events import summary_created


@pytest.fixture(scope="session", autouse=True)
def override_di():
    app.dependency_overrides[verify_admin] = lambda: None
    yield
    app.dependency_overrides.clear()

@pytest.fixture(autouse=True)
def clean_state():
    with db.engine.begin() as conn:
        for table in reversed(db.Base.metadata.sorted_tables):
            conn.execute(table.delete())
    notify.EMAIL_OUTBOX.clear()
    recipients.set_recipient_resolver(None)
    yield
    recipients.set_recipient_resolver(None)

@pytest.fixture
def session():
    s = db.SessionLocal()
    try:
        yield s
    finally:
        s.close()

def fake_analysis(prompt, survey_id=None):
    return json.dumps({
        "summary": f"Respondents of survey {survey_id} were broadly happy with the product.",
        "sentiment": "Positive ",
        "topics": ["pricing", "support", "onboarding"],
    })

@pytest.fixture
def fake_llm(monkeypatch):
    monkeypatch.setattr("summarizer.request_analysis", fake_analysis)
    return fake_analysis

@pytest.fixture
def client(fake_llm):
    return TestClient(app)

RECEIVED_SIGNALS = []

@celery_app.task(name="tests.record_summary_signal")
def record_summary_signal(payload):
    RECEIVED_SIGNALS.append(payload)

@pytest.fixture
def signals():
    """Collect every payload published on summary_created."""
    RECEIVED_SIGNALS.clear()
    summary_created.subscribe(record_summary_signal)
    yield RECEIVED_SIGNALS
    summary_created.unsubscribe(record_summary_signal)

@pytest.fixture
def make_survey(session):
    """Build a survey directly in the database with the given responses."""
    counter = {"n": 0}

    def _make(responses=(), status=SurveyStatus.COMPLETED, title=None, company=None):
        counter["n"] += 1
        if company is None:
            company = Company(name=f"Company {counter['n']}")
            session.add(company)
            session.flush()
        s = Survey(
            company_id=company.id,
            title=title or f"Survey {counter['n']}",
            description="How did we do?",
            status=status.value,
        )
        session.add(s)
        session.flush()
        for i, text in enumerate(responses):
            session.add(SurveyResponse(survey_id=s.id, participant_email=f"p{i}@example.com", response_text=text))
        session.commit()
        return s

    return _make

@pytest.fixture
def make_user(session):
    def _make(name, email, company=None):
        u = User(name=name, email=email, company_id=company.id if company else None)
        session.add(u)
        session.commit()
        return u
    return _make
