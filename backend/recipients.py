# Who gets told about a new survey summary
from __future__ import annotations
from typing import Protocol, Optional

from sqlalchemy import select
from sqlalchemy.orm import object_session

import config
from models import Survey, User


class RecipientResolver(Protocol):
    def resolve(self, survey: Survey) -> list[User]:
        ...


class AllUsersResolver:
    """Every registered user."""

    def resolve(self, survey: Survey) -> list[User]:
        db = object_session(survey)
        return list(db.execute(select(User).order_by(User.id)).scalars().all())


class CompanyUsersResolver:
    """Only users belonging to the survey's company."""

    def resolve(self, survey: Survey) -> list[User]:
        db = object_session(survey)
        q = select(User).where(User.company_id == survey.company_id).order_by(User.id)
        return list(db.execute(q).scalars().all())


RESOLVERS = {
    "all": AllUsersResolver,
    "company": CompanyUsersResolver,
}

_resolver: Optional[RecipientResolver] = None


def get_recipient_resolver() -> RecipientResolver:
    global _resolver
    if _resolver is None:
        try:
            _resolver = RESOLVERS[config.SUMMARY_RECIPIENTS]()
        except KeyError:
            raise ValueError(f"Unknown SUMMARY_RECIPIENTS policy: {config.SUMMARY_RECIPIENTS!r}") from None
    return _resolver


def set_recipient_resolver(resolver: Optional[RecipientResolver]) -> None:
    """Swap the policy; None restores the configured default."""
    global _resolver
    _resolver = resolver
