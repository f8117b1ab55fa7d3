# schemas.py
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional, Literal

import config
from models import SurveyStatus, Sentiment, JobState

class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)

class CompanyOut(BaseModel):
    id: int
    name: str
    class Config:
        from_attributes = True

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    company_id: Optional[int] = None

class UserOut(BaseModel):
    id: int
    name: str
    email: str
    company_id: Optional[int]
    class Config:
        from_attributes = True

class SurveyCreate(BaseModel):
    company_id: int
    title: str = Field(..., max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)

class SurveyUpdate(BaseModel):
    company_id: Optional[int] = None
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[SurveyStatus] = None

class SurveyOut(BaseModel):
    id: int
    company_id: int
    title: str
    description: Optional[str]
    status: SurveyStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class SurveyResponseCreate(BaseModel):
    participant_email: EmailStr
    response_text: str = Field(..., min_length=1, max_length=10000)

class SurveyResponseOut(BaseModel):
    id: int
    survey_id: int
    participant_email: str
    response_text: str
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class SurveySummaryOut(BaseModel):
    id: int
    survey_id: int
    summary_text: str
    sentiment: Sentiment
    topics: List[str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class ProcessSummaries(BaseModel):
    survey_id: Optional[int] = None
    force: bool = False
    batch_size: int = Field(default=config.SUMMARY_BATCH_SIZE, ge=1)

class BatchOut(BaseModel):
    number: int
    name: str
    survey_ids: List[int]
    job_ids: List[int]
    group_id: Optional[str] = None

class ProcessSummariesResult(BaseModel):
    surveys_found: int
    batches_dispatched: int
    outcome: Literal["success", "failure"]
    message: str
    batches: List[BatchOut] = []

class SummaryJobOut(BaseModel):
    id: int
    survey_id: int
    batch_name: Optional[str]
    task_id: Optional[str]
    state: JobState
    attempts: int
    last_error: Optional[str]
    summary_id: Optional[int]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True
