import logging
from typing import Optional
from fastapi import FastAPI, Depends, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timezone

import pandas as pd

import config
import notifications  # noqa: F401  subscribes the fan-out to summary_created
from db import Base, engine, get_db
from jobs import run_summary_pipeline
from models import Company, User, Survey, SurveyResponse, SurveySummary, SummaryJob, SurveyStatus
from schemas import *
from security import verify_admin

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Survey Summary API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)


def _now_utc() -> datetime:
    """Return the current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)

def _get_live_survey(survey_id: int, db: Session) -> Survey:
    """Load a survey that has not been soft-deleted.

    Raises:
        HTTPException: 404 if the survey is missing or deleted.
    """
    s = db.get(Survey, survey_id)
    if not s or s.deleted_at is not None:
        raise HTTPException(404, "Survey not found")
    return s

def _assert_title_available(db: Session, company_id: int, title: str, exclude_id: Optional[int] = None) -> None:
    """Reject a (company, title) pair already used by a non-deleted survey.

    Raises:
        HTTPException: 409 on clash.
    """
    q = select(Survey.id).where(
        Survey.company_id == company_id, Survey.title == title, Survey.deleted_at.is_(None)
    )
    if exclude_id is not None:
        q = q.where(Survey.id != exclude_id)
    if db.execute(q).first():
        raise HTTPException(409, "A survey with this title already exists for the company")


@app.get("/health")
def health():
    """Basic readiness probe.

    Returns:
        dict: {"ok": True}
    """
    return {"ok": True}

# ------------------------
# Admin: companies and recipients
# ------------------------
@app.post("/admin/companies", response_model=CompanyOut, status_code=201, dependencies=[Depends(verify_admin)])
def create_company(payload: CompanyCreate, db: Session = Depends(get_db)):
    row = Company(name=payload.name.strip())
    db.add(row)
    db.commit()
    return row

@app.post("/admin/users", response_model=UserOut, status_code=201, dependencies=[Depends(verify_admin)])
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    """Register a user who receives summary notifications.

    Raises:
        HTTPException: 404 unknown company; 409 duplicate email.
    """
    if payload.company_id is not None and not db.get(Company, payload.company_id):
        raise HTTPException(404, "Company not found")
    row = User(name=payload.name.strip(), email=str(payload.email).lower(), company_id=payload.company_id)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "Email already registered")
    return row

# ------------------------
# Surveys
# ------------------------
@app.get("/surveys", response_model=list[SurveyOut])
def list_surveys(db: Session = Depends(get_db)):
    """List all non-deleted surveys."""
    return db.execute(select(Survey).where(Survey.deleted_at.is_(None)).order_by(Survey.id)).scalars().all()

@app.post("/admin/surveys", response_model=SurveyOut, status_code=201, dependencies=[Depends(verify_admin)])
def create_survey(payload: SurveyCreate, db: Session = Depends(get_db)):
    """Create a new survey. New surveys always start as active.

    Args:
        payload (SurveyCreate): company_id, title, description.
        db (Session): DB session.

    Returns:
        SurveyOut: The created survey.

    Raises:
        HTTPException: 400 blank title; 404 unknown company; 409 title clash.
    """
    title = (payload.title or "").strip()
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")
    if not db.get(Company, payload.company_id):
        raise HTTPException(404, "Company not found")
    _assert_title_available(db, payload.company_id, title)

    survey = Survey(
        company_id=payload.company_id,
        title=title,
        description=(payload.description or "").strip() or None,
        status=SurveyStatus.ACTIVE.value,
    )
    db.add(survey)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "A survey with this title already exists for the company")
    return survey

@app.put("/admin/surveys/{survey_id}", response_model=SurveyOut, dependencies=[Depends(verify_admin)])
def update_survey(survey_id: int, payload: SurveyUpdate, db: Session = Depends(get_db)):
    """Update title, description, company or status of a survey.

    Raises:
        HTTPException: 404 missing survey/company; 409 title clash.
    """
    s = _get_live_survey(survey_id, db)
    data = payload.model_dump(exclude_unset=True)

    if data.get("company_id") is not None and not db.get(Company, data["company_id"]):
        raise HTTPException(404, "Company not found")
    if "title" in data:
        data["title"] = (data["title"] or "").strip()
        if not data["title"]:
            raise HTTPException(400, "Title is required")
    company_id = data.get("company_id") or s.company_id
    title = data.get("title") or s.title
    _assert_title_available(db, company_id, title, exclude_id=s.id)

    for key, value in data.items():
        if key == "status" and value is not None:
            value = SurveyStatus(value).value
        if key in ("company_id", "status") and value is None:
            continue
        setattr(s, key, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "A survey with this title already exists for the company")
    db.refresh(s)
    return s

@app.delete("/admin/surveys/{survey_id}", dependencies=[Depends(verify_admin)])
def delete_survey(survey_id: int, db: Session = Depends(get_db)):
    """Soft-delete a survey; responses and summary are kept.

    Returns:
        dict: {"ok": True}
    """
    s = _get_live_survey(survey_id, db)
    s.deleted_at = _now_utc()
    db.commit()
    return {"ok": True}

# ------------------------
# Public: responses
# ------------------------
@app.post("/surveys/{survey_id}/responses", response_model=SurveyResponseOut, status_code=201)
def create_survey_response(survey_id: int, payload: SurveyResponseCreate, db: Session = Depends(get_db)):
    """Record one participant's response while the survey is active.

    Raises:
        HTTPException: 404 unknown survey; 403 survey not active; 409 email already answered.
    """
    s = _get_live_survey(survey_id, db)
    if s.status != SurveyStatus.ACTIVE.value:
        raise HTTPException(403, "This survey is not accepting responses.")
    row = SurveyResponse(
        survey_id=s.id,
        participant_email=str(payload.participant_email).lower(),
        response_text=payload.response_text,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "You have already submitted a response for this survey.")
    return row

# ------------------------
# Admin: summaries
# ------------------------
@app.get("/admin/surveys/{survey_id}/summary", response_model=SurveySummaryOut, dependencies=[Depends(verify_admin)])
def get_survey_summary(survey_id: int, db: Session = Depends(get_db)):
    _get_live_survey(survey_id, db)
    row = db.execute(select(SurveySummary).where(SurveySummary.survey_id == survey_id)).scalar_one_or_none()
    if not row:
        raise HTTPException(404, "Summary not found")
    return row

@app.post("/admin/summaries/process", response_model=ProcessSummariesResult, dependencies=[Depends(verify_admin)])
def process_summaries(body: ProcessSummaries, db: Session = Depends(get_db)):
    """Select eligible surveys and dispatch summary jobs in batches.

    A "success" outcome means the work was scheduled, not that every job
    succeeded; see /admin/summary-jobs for per-survey results.

    Args:
        body (ProcessSummaries): {survey_id?, force, batch_size}
        db (Session): DB session.

    Returns:
        ProcessSummariesResult: counts, outcome and dispatched batches.
    """
    report = run_summary_pipeline(db, survey_id=body.survey_id, force=body.force, batch_size=body.batch_size)
    return report.as_dict()

@app.get("/admin/summary-jobs", response_model=list[SummaryJobOut], dependencies=[Depends(verify_admin)])
def list_summary_jobs(survey_id: Optional[int] = None, db: Session = Depends(get_db)):
    q = select(SummaryJob).order_by(SummaryJob.id)
    if survey_id is not None:
        q = q.where(SummaryJob.survey_id == survey_id)
    return db.execute(q).scalars().all()

@app.get("/admin/surveys/{survey_id}/export.csv", dependencies=[Depends(verify_admin)])
def export_csv(survey_id: int, db: Session = Depends(get_db)):
    """Export survey responses with the survey summary as CSV.

    Returns:
        Response: text/csv attachment `survey_<id>_responses.csv`.
    """
    _get_live_survey(survey_id, db)
    q = (
        select(
            SurveyResponse.id.label("response_id"), SurveyResponse.participant_email,
            SurveyResponse.response_text, SurveyResponse.created_at,
            SurveySummary.sentiment.label("summary_sentiment"), SurveySummary.summary_text,
        )
        .join(SurveySummary, SurveySummary.survey_id == SurveyResponse.survey_id, isouter=True)
        .where(SurveyResponse.survey_id == survey_id)
        .order_by(SurveyResponse.id)
    )
    df = pd.read_sql(q, db.bind)
    csv_bytes = df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv",
                    headers={"Content-Disposition": f"attachment; filename=survey_{survey_id}_responses.csv"})
