# Message channel between summary producers and their consumers
from __future__ import annotations
import logging
from dataclasses import dataclass, asdict
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SummaryCreatedSignal:
    summary_id: int
    survey_id: int

    def as_payload(self) -> dict:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict) -> "SummaryCreatedSignal":
        return cls(summary_id=int(payload["summary_id"]), survey_id=int(payload["survey_id"]))


class SignalChannel:
    """Named channel; every published signal is handed to each subscribed task.

    Subscribers are Celery tasks taking the signal payload dict. Publishing
    enqueues one task per subscriber, so consumers may run on another worker.
    """

    def __init__(self, name: str):
        self.name = name
        self._subscribers: list[Any] = []

    def subscribe(self, task) -> None:
        if task not in self._subscribers:
            self._subscribers.append(task)

    def unsubscribe(self, task) -> None:
        if task in self._subscribers:
            self._subscribers.remove(task)

    @property
    def subscribers(self) -> list:
        return list(self._subscribers)

    def publish(self, signal: SummaryCreatedSignal) -> None:
        payload = signal.as_payload()
        if not self._subscribers:
            logger.warning("No subscribers on %s; dropping %s", self.name, payload)
        for task in self._subscribers:
            task.apply_async(args=[payload])
        logger.info("Published %s on %s to %d subscriber(s)", payload, self.name, len(self._subscribers))


summary_created = SignalChannel("survey-summary.created")
