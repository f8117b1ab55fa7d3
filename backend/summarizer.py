# LLM-based survey summarization
from __future__ import annotations
from typing import Optional
import json
import logging
from openai import OpenAI, APIConnectionError, APIStatusError, RateLimitError
from sqlalchemy import select, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from errors import NoResponses, InvalidResponseShape, ExternalCallFailure, PersistenceFailure
from events import SummaryCreatedSignal, summary_created
from models import Survey, SurveyResponse, SurveySummary, Sentiment

logger = logging.getLogger(__name__)

_client = None
if config.OPENAI_API_KEY:
    # no SDK-level retries: attempts are counted by the job
    _client = OpenAI(api_key=config.OPENAI_API_KEY, timeout=config.SUMMARY_JOB_TIMEOUT, max_retries=0)

_SYSTEM_PROMPT = (
    "You are an expert survey analyst. Read the survey responses and report your "
    "findings strictly as the JSON object requested, with no extra text."
)

REQUIRED_FIELDS = ("summary", "sentiment", "topics")

_SENTIMENTS = {
    "positive": Sentiment.POSITIVE,
    "negative": Sentiment.NEGATIVE,
    "neutral": Sentiment.NEUTRAL,
}


def build_prompt(survey: Survey, responses: list[SurveyResponse]) -> str:
    """Render the analysis request for a survey and its responses (in insertion order)."""
    lines = [
        "Analyze the following survey responses and report your insights in JSON format.",
        "",
        f"Survey Title: {survey.title}",
        f"Survey Description: {survey.description or ''}",
        f"Number of Responses: {len(responses)}",
        "",
        "Responses:",
    ]
    lines += [f"{i}. {r.response_text}" for i, r in enumerate(responses, start=1)]
    lines += [
        "",
        "Return exactly one JSON object with these three fields:",
        "{",
        '  "summary": "A thorough summary of the responses covering key insights, trends and patterns (200-400 words)",',
        '  "sentiment": "positive|negative|neutral - the overall sentiment of the responses",',
        '  "topics": ["topic1", "topic2", "topic3"] - 3 to 8 short key topics or themes',
        "}",
        "",
        "Focus on:",
        "- Common themes and patterns",
        "- Areas of satisfaction or concern",
        "- Actionable insights",
        "- How often topics are mentioned",
        "- Overall tone and sentiment",
    ]
    return "\n".join(lines) + "\n"


def request_analysis(prompt: str, survey_id: Optional[int] = None) -> str:
    """Send the prompt to the chat completions API and return the raw message content.

    Raises ExternalCallFailure on any transport or service error, or when no
    API key is configured.
    """
    if not _client:
        raise ExternalCallFailure(survey_id, "OPENAI_API_KEY is not configured")
    try:
        resp = _client.chat.completions.create(
            model=config.LLM_MODEL,
            temperature=config.SUMMARY_TEMPERATURE,
            max_tokens=config.SUMMARY_MAX_TOKENS,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )
    except (RateLimitError, APIStatusError, APIConnectionError) as exc:
        raise ExternalCallFailure(survey_id, f"Analysis request failed: {exc}") from exc
    if not resp.choices:
        raise ExternalCallFailure(survey_id, "Analysis response contained no choices")
    return resp.choices[0].message.content or ""


def parse_analysis(content: str, survey_id: Optional[int] = None) -> dict:
    """Decode the analysis payload into {summary, sentiment, topics}."""
    try:
        data = json.loads(content)
    except (TypeError, ValueError) as exc:
        raise InvalidResponseShape(survey_id, f"Analysis output is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidResponseShape(survey_id, "Analysis output is not a JSON object")
    missing = [f for f in REQUIRED_FIELDS if data.get(f) is None]
    if missing:
        raise InvalidResponseShape(survey_id, f"Analysis output is missing field(s): {', '.join(missing)}")

    topics = data["topics"]
    if isinstance(topics, str):
        topics = [topics]
    if not isinstance(topics, list):
        raise InvalidResponseShape(survey_id, "Analysis field 'topics' is not a list")

    return {
        "summary": str(data["summary"]).strip(),
        "sentiment": normalize_sentiment(data["sentiment"]),
        "topics": [str(t).strip() for t in topics if str(t).strip()],
    }


def normalize_sentiment(value) -> Sentiment:
    # anything unrecognised is neutral, never an error
    return _SENTIMENTS.get(str(value or "").strip().lower(), Sentiment.NEUTRAL)


def upsert_summary(db: Session, survey_id: int, summary_text: str, sentiment: Sentiment, topics: list[str]) -> SurveySummary:
    """Insert or replace the summary row keyed by the unique survey_id.

    A single INSERT .. ON CONFLICT statement, so concurrent attempts for the
    same survey converge on one row (last write wins).
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise PersistenceFailure(survey_id, f"Summary upsert is not supported on {dialect}")

    stmt = insert(SurveySummary).values(
        survey_id=survey_id,
        summary_text=summary_text,
        sentiment=sentiment.value,
        topics=topics,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[SurveySummary.survey_id],
        set_={
            "summary_text": stmt.excluded.summary_text,
            "sentiment": stmt.excluded.sentiment,
            "topics": stmt.excluded.topics,
            "updated_at": func.now(),
        },
    )
    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(survey_id, f"Summary upsert failed: {exc}") from exc

    return db.execute(
        select(SurveySummary)
        .where(SurveySummary.survey_id == survey_id)
        .execution_options(populate_existing=True)
    ).scalar_one()


def generate_summary(db: Session, survey: Survey) -> SurveySummary:
    """Summarize one survey, persist the result and announce it.

    Nothing is written or published unless the analysis succeeds.
    """
    responses = list(survey.responses)
    if not responses:
        raise NoResponses(survey.id)

    prompt = build_prompt(survey, responses)
    content = request_analysis(prompt, survey_id=survey.id)
    analysis = parse_analysis(content, survey_id=survey.id)

    summary = upsert_summary(db, survey.id, analysis["summary"], analysis["sentiment"], analysis["topics"])
    summary_created.publish(SummaryCreatedSignal(summary_id=summary.id, survey_id=survey.id))
    logger.info(
        "Stored summary %s for survey %s (sentiment=%s, topics=%d)",
        summary.id, survey.id, summary.sentiment, len(summary.topics or []),
    )
    return summary
