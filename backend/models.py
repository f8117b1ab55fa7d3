import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from db import Base


class SurveyStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class Sentiment(str, enum.Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class JobState(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED_RETRYING = "failed-retrying"
    FAILED_PERMANENTLY = "failed-permanently"


class Company(Base):
    __tablename__ = "companies"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    surveys = relationship("Survey", back_populates="company", cascade="all, delete-orphan")
    users = relationship("User", back_populates="company")

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="SET NULL"), index=True, nullable=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    company = relationship("Company", back_populates="users")

class Survey(Base):
    __tablename__ = "surveys"
    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=SurveyStatus.ACTIVE.value)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    company = relationship("Company", back_populates="surveys")
    responses = relationship(
        "SurveyResponse", back_populates="survey", cascade="all, delete-orphan",
        order_by="SurveyResponse.id",
    )
    summary = relationship("SurveySummary", uselist=False, back_populates="survey", cascade="all, delete-orphan")

    # (company, title) is unique among surveys that are not soft-deleted
    __table_args__ = (
        Index(
            "uq_surveys_company_title_live", "company_id", "title", unique=True,
            sqlite_where=deleted_at.is_(None), postgresql_where=deleted_at.is_(None),
        ),
    )

class SurveyResponse(Base):
    __tablename__ = "survey_responses"
    id = Column(Integer, primary_key=True, index=True)
    survey_id = Column(Integer, ForeignKey("surveys.id", ondelete="CASCADE"), index=True, nullable=False)
    participant_email = Column(String(255), nullable=False)
    response_text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    survey = relationship("Survey", back_populates="responses")

    __table_args__ = (UniqueConstraint("survey_id", "participant_email", name="uq_response_survey_email"),)

class SurveySummary(Base):
    __tablename__ = "survey_summaries"
    id = Column(Integer, primary_key=True, index=True)
    # the upsert in summarizer.py relies on this constraint
    survey_id = Column(Integer, ForeignKey("surveys.id", ondelete="CASCADE"), unique=True, nullable=False)
    summary_text = Column(Text, nullable=False)
    sentiment = Column(String(20), nullable=False, default=Sentiment.NEUTRAL.value)
    topics = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    survey = relationship("Survey", back_populates="summary")

class SummaryJob(Base):
    __tablename__ = "summary_jobs"
    id = Column(Integer, primary_key=True, index=True)
    survey_id = Column(Integer, ForeignKey("surveys.id", ondelete="CASCADE"), index=True, nullable=False)
    batch_name = Column(String(255), nullable=True)
    task_id = Column(String(64), nullable=True)
    state = Column(String(32), nullable=False, default=JobState.QUEUED.value)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    summary_id = Column(Integer, ForeignKey("survey_summaries.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
