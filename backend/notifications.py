"""Fan-out of survey summary notifications.

Subscribes to the ``summary_created`` channel. Each signal resolves the
recipients once, then queues one delivery task per recipient so a failed
delivery never blocks the others.
"""

from __future__ import annotations

import smtplib

from celery import group
from celery.utils.log import get_task_logger

import config
import db as database
import notify
from events import SummaryCreatedSignal, summary_created
from models import Sentiment, SurveySummary, User
from recipients import get_recipient_resolver
from worker import celery_app

_logger = get_task_logger(__name__)

NO_TOPICS = "No topics identified"


def render_summary_notification(summary: SurveySummary, user: User) -> tuple[str, str]:
    """Return (subject, body) of the mail sent for ``summary`` to ``user``."""
    survey = summary.survey
    sentiment = Sentiment(summary.sentiment).label
    topics = ", ".join(summary.topics) if summary.topics else NO_TOPICS
    subject = f"New Survey Summary Available: {survey.title}"
    body = "\n".join([
        f"Hello {user.name}!",
        "",
        f"A new survey summary has been generated for {survey.title}.",
        "Here are the key insights:",
        "",
        f"Overall Sentiment: {sentiment}",
        f"Key Topics: {topics}",
        "",
        "Summary:",
        summary.summary_text,
        "",
        f"View Full Survey Details: {config.APP_URL}/surveys/{survey.id}",
        "",
        "This summary was automatically generated based on the survey responses received.",
    ])
    return subject, body


def summary_notification_payload(summary: SurveySummary) -> dict:
    survey = summary.survey
    return {
        "survey_id": summary.survey_id,
        "survey_title": survey.title if survey else "Unknown Survey",
        "sentiment": summary.sentiment,
        "topics": list(summary.topics or []),
        "summary_created_at": summary.created_at,
    }


@celery_app.task(name="notifications.fan_out_summary_created")
def fan_out_summary_created(payload: dict) -> int:
    """Queue a delivery for every recipient of a new summary. Returns the count queued."""
    signal = SummaryCreatedSignal.from_payload(payload)
    db = database.SessionLocal()
    try:
        summary = db.get(SurveySummary, signal.summary_id)
        if not summary:
            _logger.warning("Summary %s vanished before notification", signal.summary_id)
            return 0
        details = summary_notification_payload(summary)
        recipients = get_recipient_resolver().resolve(summary.survey)
        user_ids = [u.id for u in recipients if u.email]
    finally:
        db.close()

    if not user_ids:
        _logger.info("No recipients for summary %s of \"%s\"", signal.summary_id, details["survey_title"])
        return 0
    group(deliver_summary_notification.s(signal.summary_id, uid) for uid in user_ids).apply_async()
    _logger.info("Queued %d notification(s) for summary %s of \"%s\" (%s, topics: %s)",
                 len(user_ids), signal.summary_id, details["survey_title"], details["sentiment"],
                 ", ".join(details["topics"]) or NO_TOPICS)
    return len(user_ids)


@celery_app.task(bind=True, name="notifications.deliver_summary_notification",
                 max_retries=3, default_retry_delay=60)
def deliver_summary_notification(self, summary_id: int, user_id: int) -> bool:
    db = database.SessionLocal()
    try:
        summary = db.get(SurveySummary, summary_id)
        user = db.get(User, user_id)
        if not summary or not user:
            return False
        subject, body = render_summary_notification(summary, user)
        to_email = user.email
    finally:
        db.close()

    try:
        notify.send_email(to_email, subject, body)
    except (smtplib.SMTPException, OSError) as exc:
        _logger.warning("Delivery of summary %s to user %s failed: %s", summary_id, user_id, exc)
        raise self.retry(exc=exc)
    return True


summary_created.subscribe(fan_out_summary_created)
