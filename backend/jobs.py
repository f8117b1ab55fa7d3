"""Background summary jobs, batch dispatch and the triggering run."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence, TypeVar

from celery import Task, group
from celery.exceptions import SoftTimeLimitExceeded
from celery.utils.log import get_task_logger
from sqlalchemy import update
from sqlalchemy.orm import Session

import config
import db as database
from errors import SurveyNotFound
from models import Survey, SummaryJob, JobState
from selector import select_eligible_surveys
from summarizer import generate_summary
from worker import celery_app

_logger = get_task_logger(__name__)

T = TypeVar("T")

# past the hard time limit plus the longest retry back-off
STALE_RUNNING_SECONDS = (config.SUMMARY_JOB_TIMEOUT + 10
                         + config.SUMMARY_RETRY_BACKOFF * 2 ** max(config.SUMMARY_JOB_MAX_ATTEMPTS - 1, 0))


def _set_job_state(job_id: int, state: JobState, *, error: Optional[str] = None,
                   summary_id: Optional[int] = None) -> int:
    """Move a tracked job to ``state`` and return its attempt count."""
    # separate session so the state survives a rolled-back attempt
    db = database.SessionLocal()
    try:
        job = db.get(SummaryJob, job_id)
        if not job:
            return 0
        job.state = state.value
        if error is not None:
            job.last_error = error
        if summary_id is not None:
            job.summary_id = summary_id
        db.commit()
        return job.attempts
    finally:
        db.close()


class SummaryJobTask(Task):
    """Task base that records permanent failure on the tracked job row."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        job_id = args[0] if args else kwargs.get("job_id")
        survey_id = getattr(exc, "survey_id", None)
        attempts = _set_job_state(job_id, JobState.FAILED_PERMANENTLY, error=str(exc))
        _logger.error(
            "Survey summary job failed permanently for survey %s (job %s) after %d attempt(s): %s",
            survey_id, job_id, attempts, exc,
        )


@celery_app.task(
    bind=True,
    base=SummaryJobTask,
    name="jobs.process_survey_summary",
    max_retries=config.SUMMARY_JOB_MAX_ATTEMPTS - 1,
    soft_time_limit=config.SUMMARY_JOB_TIMEOUT,
    time_limit=config.SUMMARY_JOB_TIMEOUT + 10,
    acks_late=True,
)
def process_survey_summary(self, job_id: int) -> Optional[int]:
    """Generate the summary for the survey tracked by ``job_id``.

    Every attempt runs the whole generation again; the summary upsert makes
    that safe. Returns the summary id.
    """
    attempt = self.request.retries + 1
    db = database.SessionLocal()
    try:
        job = db.get(SummaryJob, job_id)
        if not job:
            _logger.warning("Summary job %s no longer exists; skipping", job_id)
            return None
        survey_id = job.survey_id
        job.state = JobState.RUNNING.value
        job.attempts = attempt
        job.task_id = self.request.id
        db.commit()

        survey = db.get(Survey, survey_id)
        if survey is None or survey.deleted_at is not None:
            raise SurveyNotFound(survey_id)

        _logger.info("Starting survey summary processing for survey %s (attempt %d/%d)",
                     survey_id, attempt, self.max_retries + 1)
        summary = generate_summary(db, survey)
        summary_id = summary.id
    except Exception as exc:
        db.rollback()
        retryable = isinstance(exc, SoftTimeLimitExceeded) or getattr(exc, "retryable", True)
        if retryable and self.request.retries < self.max_retries:
            _set_job_state(job_id, JobState.FAILED_RETRYING, error=str(exc))
            _logger.warning("Summary attempt %d for job %s failed, retrying: %s", attempt, job_id, exc)
            raise self.retry(exc=exc, countdown=config.SUMMARY_RETRY_BACKOFF * (2 ** self.request.retries))
        raise
    finally:
        db.close()

    _set_job_state(job_id, JobState.SUCCEEDED, summary_id=summary_id)
    _logger.info("Successfully created summary %s for survey %s", summary_id, survey_id)
    return summary_id


@dataclass
class BatchDispatch:
    number: int
    name: str
    survey_ids: list[int]
    job_ids: list[int]
    group_id: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.survey_ids)


@dataclass
class PipelineReport:
    surveys_found: int = 0
    batches_dispatched: int = 0
    outcome: str = "success"
    message: str = ""
    batches: list[BatchDispatch] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome == "success"

    def as_dict(self) -> dict:
        return asdict(self)


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive chunks of at most ``size``, keeping order."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def dispatch_batches(db: Session, surveys: Sequence[Survey], batch_size: int = config.SUMMARY_BATCH_SIZE,
                     dispatched: Optional[list[BatchDispatch]] = None) -> list[BatchDispatch]:
    """Submit one Celery group per chunk of surveys.

    Groups do not cancel siblings on failure, so one failed job never stops
    the rest of its batch or later batches. Each submitted batch is appended
    to ``dispatched`` right away, so a caller still sees earlier batches when
    a later submission raises. Job rows of a batch that could not be
    submitted are marked failed-permanently before the error propagates.
    """
    chunks = chunk([s.id for s in surveys], batch_size)
    total = len(chunks)
    if dispatched is None:
        dispatched = []
    for number, survey_ids in enumerate(chunks, start=1):
        name = f"Survey Summaries Batch {number}"
        jobs = [SummaryJob(survey_id=sid, batch_name=name, state=JobState.QUEUED.value) for sid in survey_ids]
        db.add_all(jobs)
        db.commit()
        job_ids = [j.id for j in jobs]

        _logger.info("Dispatching batch %d/%d (%d survey(s))...", number, total, len(survey_ids))
        try:
            result = group(
                process_survey_summary.s(job_id) for job_id in job_ids
            ).apply_async()
        except Exception as exc:
            db.rollback()
            db.execute(
                update(SummaryJob)
                .where(SummaryJob.id.in_(job_ids), SummaryJob.state == JobState.QUEUED.value)
                .values(state=JobState.FAILED_PERMANENTLY.value, last_error=f"Dispatch of {name} failed: {exc}")
            )
            db.commit()
            _logger.error("Dispatch of batch %d/%d failed: %s", number, total, exc)
            raise
        dispatched.append(BatchDispatch(number, name, survey_ids, job_ids, getattr(result, "id", None)))
    return dispatched


def expire_stale_jobs(db: Session, now: Optional[datetime] = None) -> int:
    """Fail jobs stuck in ``running`` past the hard time limit.

    A worker killed at the hard limit never runs ``on_failure``, so such rows
    are closed out here. Returns the number of rows changed.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=STALE_RUNNING_SECONDS)
    result = db.execute(
        update(SummaryJob)
        .where(SummaryJob.state == JobState.RUNNING.value, SummaryJob.updated_at < cutoff)
        .values(
            state=JobState.FAILED_PERMANENTLY.value,
            last_error=f"Job exceeded the {config.SUMMARY_JOB_TIMEOUT}s time limit and was terminated",
        )
    )
    db.commit()
    if result.rowcount:
        _logger.warning("Marked %d stale running summary job(s) as failed", result.rowcount)
    return result.rowcount


def run_summary_pipeline(db: Session, survey_id: Optional[int] = None, force: bool = False,
                         batch_size: int = config.SUMMARY_BATCH_SIZE) -> PipelineReport:
    """Select eligible surveys and dispatch them for summarization.

    Success means the work was scheduled; individual job failures are
    tracked on their SummaryJob rows and never fail the run.
    """
    _logger.info("Starting survey summary processing (survey_id=%s, force=%s, batch_size=%s)",
                 survey_id, force, batch_size)
    report = PipelineReport()
    try:
        if batch_size < 1:
            raise ValueError("batch size must be at least 1")
        expire_stale_jobs(db)
        surveys = select_eligible_surveys(db, survey_id=survey_id, force=force)
        report.surveys_found = len(surveys)
        if not surveys:
            report.message = "No surveys found that need summary processing."
            _logger.info(report.message)
            return report

        _logger.info("Found %d survey(s) to process.", report.surveys_found)
        dispatch_batches(db, surveys, batch_size, dispatched=report.batches)
    except Exception as exc:
        db.rollback()
        _logger.exception("Failed to process survey summaries")
        report.outcome = "failure"
        report.message = f"Failed to process survey summaries: {exc}"
        return report
    finally:
        report.batches_dispatched = len(report.batches)

    report.message = (
        f"Dispatched {report.surveys_found} survey(s) in {report.batches_dispatched} batch(es) of up to {batch_size}."
    )
    _logger.info(report.message)
    return report


@celery_app.task(name="jobs.process_survey_summaries")
def process_survey_summaries(survey_id: Optional[int] = None, force: bool = False,
                             batch_size: int = config.SUMMARY_BATCH_SIZE) -> dict:
    db = database.SessionLocal()
    try:
        return run_summary_pipeline(db, survey_id=survey_id, force=force, batch_size=batch_size).as_dict()
    finally:
        db.close()
