# Failures raised while summarizing one survey
from __future__ import annotations
from typing import Optional


class SummaryError(Exception):
    """Base class for per-survey summary failures."""

    retryable = True

    def __init__(self, survey_id: Optional[int], message: str):
        super().__init__(message)
        self.survey_id = survey_id


class NoResponses(SummaryError):
    """The survey has nothing to summarize. Retrying cannot help."""

    retryable = False

    def __init__(self, survey_id: Optional[int]):
        super().__init__(survey_id, f"Survey {survey_id} has no responses to summarize.")


class InvalidResponseShape(SummaryError):
    """The analysis output was not JSON or lacked a required field."""


class ExternalCallFailure(SummaryError):
    """Transport or service error from the analysis API."""


class PersistenceFailure(SummaryError):
    """The summary upsert failed at the storage layer."""


class SurveyNotFound(SummaryError):
    """The survey was removed before its job ran."""

    retryable = False

    def __init__(self, survey_id: Optional[int]):
        super().__init__(survey_id, f"Survey {survey_id} does not exist or was deleted.")
