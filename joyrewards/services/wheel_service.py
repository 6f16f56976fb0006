"""
joyrewards.services.wheel_service — Chore Reward Wheel
=======================================================

One spin per member per local day.  The prize is picked server-side with
the weighted selector over the ``chore_wheel.segments`` setting, each
segment being ``{prize_type, amount, weight}``:

- ``coins`` → credited as an ``earned`` transaction
- ``sticker_pack`` → ``amount`` free bonus cards expiring at local midnight
"""

from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from joyrewards.config import DEFAULT_TIMEZONE
from joyrewards.database.models import ChoreWheelSpin
from joyrewards.engine.calendar import local_today, next_local_midnight, utcnow
from joyrewards.engine.drops import draw_one
from joyrewards.errors import LimitReached
from joyrewards.services.ledger_service import credit, get_or_create_profile
from joyrewards.services.scratch_service import issue_free_cards

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from joyrewards.engine.policy import RewardPolicy

logger = logging.getLogger(__name__)

PRIZE_COINS = "coins"
PRIZE_STICKER_PACK = "sticker_pack"

DEFAULT_SEGMENTS: list[dict[str, Any]] = [
    {"prize_type": PRIZE_COINS, "amount": 5, "weight": 1},
]


def wheel_segments(policy: RewardPolicy) -> list[dict[str, Any]]:
    """Valid segments from settings; malformed entries are dropped."""
    raw = policy.get_setting("chore_wheel.segments", DEFAULT_SEGMENTS)
    segments = []
    for seg in raw if isinstance(raw, list) else []:
        try:
            prize_type = str(seg["prize_type"])
            amount = int(seg["amount"])
            weight = float(seg.get("weight", 1))
        except (KeyError, TypeError, ValueError):
            logger.warning("Ignoring malformed wheel segment: %r", seg)
            continue
        if prize_type not in (PRIZE_COINS, PRIZE_STICKER_PACK) or amount <= 0:
            logger.warning("Ignoring unsupported wheel segment: %r", seg)
            continue
        segments.append({"prize_type": prize_type, "amount": amount, "weight": weight})
    return segments or list(DEFAULT_SEGMENTS)


def has_spun_today(
    engine: Engine, user_id: str, *, tz_name: str = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> bool:
    today = local_today(now or utcnow(), tz_name)
    with Session(engine) as session:
        return session.scalar(
            select(ChoreWheelSpin.id).where(
                ChoreWheelSpin.user_id == user_id, ChoreWheelSpin.spin_date == today
            )
        ) is not None


def spin_chore_wheel(
    engine: Engine,
    policy: RewardPolicy,
    user_id: str,
    *,
    tz_name: str = DEFAULT_TIMEZONE,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """Spin once and pay the prize.  Raises :class:`LimitReached` on a second spin."""
    now = now or utcnow()
    today = local_today(now, tz_name)

    segments = wheel_segments(policy)
    segment_index = draw_one(
        list(range(len(segments))), [s["weight"] for s in segments], rng
    )
    prize = segments[segment_index]

    with Session(engine) as session:
        get_or_create_profile(session, user_id)

        spin = ChoreWheelSpin(
            user_id=user_id,
            spin_date=today,
            prize_type=prize["prize_type"],
            prize_amount=prize["amount"],
        )
        try:
            with session.begin_nested():
                session.add(spin)
                session.flush()
        except IntegrityError:
            raise LimitReached("already spun today") from None

        card_ids: list[int] = []
        if prize["prize_type"] == PRIZE_COINS:
            credit(
                session, user_id, prize["amount"], "Chore wheel prize",
                related_item_id=f"chore_wheel:{spin.id}",
                metadata={"spin_date": today.isoformat()},
            )
        else:
            cards = issue_free_cards(
                session, user_id, prize["amount"],
                now=now, tz_name=tz_name,
                expires_at=next_local_midnight(now, tz_name),
                source="wheel",
            )
            card_ids = [c.id for c in cards]
            spin.card_ids = card_ids

        session.commit()

    logger.info(
        "User %s spun the chore wheel: %s x%d", user_id, prize["prize_type"], prize["amount"]
    )
    return {
        "success": True,
        "segment": segment_index,
        "prize_type": prize["prize_type"],
        "prize_amount": prize["amount"],
        "card_ids": card_ids,
    }
