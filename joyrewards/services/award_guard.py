"""
joyrewards.services.award_guard — Idempotency Guard
====================================================

Award records mark a (user, period, scope) tuple as paid.  The unique
constraint ``uq_award_records_user_period_scope`` is the authoritative
guard: :func:`record_award` inserts under a SAVEPOINT and turns the
``IntegrityError`` into :class:`~joyrewards.errors.DuplicateAward`.
:func:`already_awarded` is only a cheap pre-check.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from joyrewards.database.models import AwardRecord
from joyrewards.errors import DuplicateAward

logger = logging.getLogger(__name__)


def already_awarded(
    session: Session, user_id: str, period_key: str, scope_key: str
) -> bool:
    """True if an award record exists for the tuple."""
    found = session.scalar(
        select(AwardRecord.id).where(
            AwardRecord.user_id == user_id,
            AwardRecord.period_key == period_key,
            AwardRecord.scope_key == scope_key,
        ).limit(1)
    )
    return found is not None


def record_award(
    session: Session,
    *,
    user_id: str,
    period_key: str,
    scope_key: str,
    rank: int | None = None,
    coins_awarded: int = 0,
) -> AwardRecord:
    """Insert the award record inside the caller's transaction.

    The caller's profile row must already exist.  Raises
    :class:`DuplicateAward` if another run already holds the tuple; the
    SAVEPOINT is rolled back and the outer transaction stays usable.
    """
    record = AwardRecord(
        user_id=user_id,
        period_key=period_key,
        scope_key=scope_key,
        rank=rank,
        coins_awarded=coins_awarded,
    )
    try:
        with session.begin_nested():
            session.add(record)
            session.flush()
    except IntegrityError:
        logger.debug(
            "Award record exists: user=%s period=%s scope=%s",
            user_id, period_key, scope_key,
        )
        raise DuplicateAward() from None
    return record


def list_awards(
    session: Session,
    *,
    period_key: str | None = None,
    scope_key: str | None = None,
    user_id: str | None = None,
) -> list[AwardRecord]:
    query = select(AwardRecord).order_by(AwardRecord.created_at, AwardRecord.id)
    if period_key is not None:
        query = query.where(AwardRecord.period_key == period_key)
    if scope_key is not None:
        query = query.where(AwardRecord.scope_key == scope_key)
    if user_id is not None:
        query = query.where(AwardRecord.user_id == user_id)
    return list(session.scalars(query).all())
