from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from models import Survey, SurveyResponse, SurveySummary, SurveyStatus


def select_eligible_surveys(db: Session, survey_id: Optional[int] = None, force: bool = False) -> list[Survey]:
    """Return completed, non-deleted surveys with at least one response.

    Surveys that already have a summary are skipped unless ``force`` is set.
    Results are ordered by id; an empty list means nothing qualifies.
    """
    has_responses = select(SurveyResponse.id).where(SurveyResponse.survey_id == Survey.id).exists()
    q = (
        select(Survey)
        .where(Survey.status == SurveyStatus.COMPLETED.value, Survey.deleted_at.is_(None), has_responses)
        .options(selectinload(Survey.responses), selectinload(Survey.summary))
        .order_by(Survey.id)
    )
    if survey_id is not None:
        q = q.where(Survey.id == survey_id)
    if not force:
        q = q.where(~select(SurveySummary.id).where(SurveySummary.survey_id == Survey.id).exists())
    return list(db.execute(q).scalars().all())
