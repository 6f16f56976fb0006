"""
joyrewards.services.streak_service — Daily Login Streaks
=========================================================

One claim per member per local day.  Claiming on the day after the last
login extends the streak; any gap resets it to 1.

Each claim may also pay:
- the ``daily_login`` policy reward, guarded by an award record
  (period = local date, scope = ``daily_login``)
- streak milestones whose ``days_required`` equals the new streak, once per
  member ever (period ``streak``, scope ``milestone:<id>``): bonus coins
  plus free sticker packs valid for ``streak.free_pack_expiry_days``
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from joyrewards.config import DEFAULT_TIMEZONE
from joyrewards.constants import STREAK_PERIOD
from joyrewards.database.models import StreakMilestone, UserStreak
from joyrewards.engine.calendar import as_utc, local_today, utcnow
from joyrewards.errors import DuplicateAward
from joyrewards.services.award_guard import record_award
from joyrewards.services.ledger_service import award_policy, credit, get_or_create_profile
from joyrewards.services.scratch_service import issue_free_cards

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from joyrewards.engine.policy import RewardPolicy

logger = logging.getLogger(__name__)

DAILY_LOGIN_KEY = "daily_login"
DEFAULT_PACK_EXPIRY_DAYS = 7


def _streak_to_dict(streak: UserStreak | None) -> dict[str, Any]:
    if streak is None:
        return {
            "current_streak": 0,
            "longest_streak": 0,
            "total_login_days": 0,
            "last_login_date": None,
        }
    return {
        "current_streak": streak.current_streak,
        "longest_streak": streak.longest_streak,
        "total_login_days": streak.total_login_days,
        "last_login_date": (
            streak.last_login_date.isoformat() if streak.last_login_date else None
        ),
    }


def get_streak(engine: Engine, user_id: str) -> dict[str, Any]:
    with Session(engine) as session:
        return _streak_to_dict(session.get(UserStreak, user_id))


def _get_or_create_streak(session: Session, user_id: str) -> UserStreak:
    streak = session.get(UserStreak, user_id)
    if streak is not None:
        return streak
    streak = UserStreak(
        user_id=user_id, current_streak=0, longest_streak=0, total_login_days=0
    )
    try:
        with session.begin_nested():
            session.add(streak)
            session.flush()
    except IntegrityError:
        streak = session.get(UserStreak, user_id, populate_existing=True)
    return streak


def _pay_milestone(
    session: Session,
    policy: RewardPolicy,
    user_id: str,
    milestone: StreakMilestone,
    *,
    now: datetime,
    tz_name: str,
) -> dict[str, Any] | None:
    try:
        record = record_award(
            session,
            user_id=user_id,
            period_key=STREAK_PERIOD,
            scope_key=f"milestone:{milestone.id}",
            rank=milestone.days_required,
        )
    except DuplicateAward:
        return None

    if milestone.bonus_coins > 0:
        credit(
            session, user_id, milestone.bonus_coins,
            f"Streak milestone: {milestone.badge_name}",
            related_item_id=f"milestone:{milestone.id}",
            metadata={"days_required": milestone.days_required},
        )
        record.coins_awarded = milestone.bonus_coins

    expiry_days = policy.get_int("streak.free_pack_expiry_days", DEFAULT_PACK_EXPIRY_DAYS)
    cards = issue_free_cards(
        session, user_id, milestone.free_sticker_packs,
        now=now, tz_name=tz_name,
        expires_at=as_utc(now) + timedelta(days=expiry_days),
        source="streak",
    )
    return {
        "days_required": milestone.days_required,
        "badge_name": milestone.badge_name,
        "badge_icon": milestone.badge_icon,
        "bonus_coins": milestone.bonus_coins,
        "free_sticker_packs": milestone.free_sticker_packs,
        "card_ids": [c.id for c in cards],
    }


def claim_daily_streak(
    engine: Engine,
    policy: RewardPolicy,
    user_id: str,
    *,
    tz_name: str = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Record today's login and pay whatever it unlocks."""
    now = now or utcnow()
    today = local_today(now, tz_name)

    with Session(engine) as session:
        get_or_create_profile(session, user_id)
        streak = _get_or_create_streak(session, user_id)

        last = streak.last_login_date
        if last == today:
            session.commit()
            return {
                "success": False,
                "reason": "already_logged_today",
                **_streak_to_dict(streak),
            }

        new_current = streak.current_streak + 1 if last == today - timedelta(days=1) else 1
        new_longest = max(streak.longest_streak, new_current)
        new_total = streak.total_login_days + 1

        # Optimistic: only the request that still sees the old date wins.
        guard = (
            UserStreak.last_login_date.is_(None)
            if last is None
            else UserStreak.last_login_date == last
        )
        updated = session.execute(
            update(UserStreak)
            .where(UserStreak.user_id == user_id, guard)
            .values(
                current_streak=new_current,
                longest_streak=new_longest,
                total_login_days=new_total,
                last_login_date=today,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        if updated != 1:
            session.rollback()
            return {
                "success": False,
                "reason": "already_logged_today",
                **_streak_to_dict(session.get(UserStreak, user_id, populate_existing=True)),
            }

        coins = 0
        try:
            login_record = record_award(
                session,
                user_id=user_id,
                period_key=today.isoformat(),
                scope_key=DAILY_LOGIN_KEY,
            )
        except DuplicateAward:
            login_record = None
        if login_record is not None:
            txn = award_policy(session, policy, user_id, DAILY_LOGIN_KEY, "Daily login")
            if txn is not None:
                login_record.coins_awarded = txn.amount
                coins += txn.amount

        milestones = session.scalars(
            select(StreakMilestone).where(
                StreakMilestone.is_active.is_(True),
                StreakMilestone.days_required == new_current,
            )
        ).all()
        unlocked = []
        for milestone in milestones:
            paid = _pay_milestone(
                session, policy, user_id, milestone, now=now, tz_name=tz_name
            )
            if paid is not None:
                unlocked.append(paid)
                coins += paid["bonus_coins"]

        session.commit()

    logger.info(
        "User %s streak %d (longest %d); %d coins, %d milestones",
        user_id, new_current, new_longest, coins, len(unlocked),
    )
    return {
        "success": True,
        "current_streak": new_current,
        "longest_streak": new_longest,
        "total_login_days": new_total,
        "last_login_date": today.isoformat(),
        "coins_awarded": coins,
        "milestones": unlocked,
    }
