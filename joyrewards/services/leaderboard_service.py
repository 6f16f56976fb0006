"""
joyrewards.services.leaderboard_service — Monthly Leaderboard Awards
=====================================================================

Scheduled job that pays the time-trial tier ladder once per reward month.

How it works:
    1. For each duration bucket, rank members with ``best_levels > 0`` by
       levels then score (user id breaks exact ties), top N only.
    2. Per participant, in its own transaction: reserve the award record
       for ``(user, YYYY-MM, time_trial:<duration>)``, then credit every
       tier reward the rank qualifies for.
    3. If the tiers paid nothing (all policies inactive or zero) the
       transaction is rolled back so no record is kept.
    4. A participant that fails is logged and counted; the batch goes on.

Re-running for the same month finds every record already present and pays
nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from joyrewards.config import DEFAULT_LEADERBOARD_DURATIONS, DEFAULT_LEADERBOARD_SIZE
from joyrewards.constants import time_trial_label, time_trial_scope
from joyrewards.database.models import TimeTrialBest
from joyrewards.engine.calendar import previous_month_key, utcnow
from joyrewards.engine.ladder import qualifying_tiers
from joyrewards.errors import DuplicateAward
from joyrewards.services.award_guard import already_awarded, record_award
from joyrewards.services.ledger_service import award_policy, get_or_create_profile

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from joyrewards.engine.policy import RewardPolicy

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RankedEntry:
    rank: int
    user_id: str
    best_levels: int
    best_score: int


@dataclass(slots=True)
class ScopeResult:
    """Per-duration tally."""

    duration: int
    players_awarded: int = 0
    coins_awarded: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass(slots=True)
class BatchSummary:
    reward_month: str
    results: list[ScopeResult] = field(default_factory=list)

    @property
    def total_awarded(self) -> int:
        """Participants paid across all scopes."""
        return sum(r.players_awarded for r in self.results)

    @property
    def total_coins(self) -> int:
        return sum(r.coins_awarded for r in self.results)

    @property
    def errors(self) -> int:
        return sum(r.errors for r in self.results)

    def as_response(self) -> dict[str, Any]:
        return {
            "rewardMonth": self.reward_month,
            "totalAwarded": self.total_awarded,
            "totalCoins": self.total_coins,
            "results": [
                {
                    "duration": r.duration,
                    "playersAwarded": r.players_awarded,
                    "coinsAwarded": r.coins_awarded,
                    "skipped": r.skipped,
                    "errors": r.errors,
                }
                for r in self.results
            ],
        }


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------
def rank_participants(
    session: Session, duration_seconds: int, top_n: int = DEFAULT_LEADERBOARD_SIZE
) -> list[RankedEntry]:
    """Top *top_n* time-trial entries for one duration, rank 1 first."""
    rows = session.scalars(
        select(TimeTrialBest)
        .where(
            TimeTrialBest.duration_seconds == duration_seconds,
            TimeTrialBest.best_levels > 0,
        )
        .order_by(
            TimeTrialBest.best_levels.desc(),
            TimeTrialBest.best_score.desc(),
            TimeTrialBest.user_id,
        )
        .limit(top_n)
    ).all()
    return [
        RankedEntry(
            rank=i,
            user_id=row.user_id,
            best_levels=row.best_levels,
            best_score=row.best_score,
        )
        for i, row in enumerate(rows, start=1)
    ]


# ---------------------------------------------------------------------------
# Per-participant payout
# ---------------------------------------------------------------------------
def _award_participant(
    engine: Engine,
    policy: RewardPolicy,
    entry: RankedEntry,
    *,
    duration: int,
    reward_month: str,
) -> int | None:
    """Pay one participant.  Returns coins paid, or ``None`` if skipped."""
    scope_key = time_trial_scope(duration)
    label = time_trial_label(duration)

    with Session(engine) as session:
        if already_awarded(session, entry.user_id, reward_month, scope_key):
            return None

        try:
            record = record_award(
                session,
                user_id=entry.user_id,
                period_key=reward_month,
                scope_key=scope_key,
                rank=entry.rank,
            )
        except DuplicateAward:
            return None

        total = 0
        for reward_key in qualifying_tiers(entry.rank):
            txn = award_policy(
                session, policy, entry.user_id, reward_key,
                f"Time Trial {label} #{entry.rank} ({reward_month})",
                related_item_id=f"{reward_month}:{scope_key}",
                metadata={
                    "reward_month": reward_month,
                    "duration": duration,
                    "rank": entry.rank,
                },
            )
            if txn is not None:
                total += txn.amount

        if total <= 0:
            session.rollback()
            return None

        record.coins_awarded = total
        session.commit()
        return total


def award_monthly_rewards(
    engine: Engine,
    policy: RewardPolicy,
    *,
    reward_month: str | None = None,
    durations: Sequence[int] = DEFAULT_LEADERBOARD_DURATIONS,
    top_n: int = DEFAULT_LEADERBOARD_SIZE,
    now: datetime | None = None,
) -> BatchSummary:
    """Pay the tier ladder for every duration bucket.

    *reward_month* defaults to the calendar month before *now*.
    """
    reward_month = reward_month or previous_month_key(now or utcnow())
    summary = BatchSummary(reward_month=reward_month)

    for duration in durations:
        scope = ScopeResult(duration=duration)
        summary.results.append(scope)

        with Session(engine) as session:
            ranked = rank_participants(session, duration, top_n)

        for entry in ranked:
            try:
                paid = _award_participant(
                    engine, policy, entry,
                    duration=duration, reward_month=reward_month,
                )
            except Exception:
                scope.errors += 1
                logger.exception(
                    "Leaderboard award failed: user=%s duration=%d rank=%d month=%s",
                    entry.user_id, duration, entry.rank, reward_month,
                )
                continue

            if paid is None:
                scope.skipped += 1
            else:
                scope.players_awarded += 1
                scope.coins_awarded += paid

        logger.info(
            "Time trial %ds (%s): %d ranked, %d paid, %d skipped, %d errors",
            duration, reward_month, len(ranked),
            scope.players_awarded, scope.skipped, scope.errors,
        )

    logger.info(
        "Monthly leaderboard rewards for %s: %d players, %d coins",
        reward_month, summary.total_awarded, summary.total_coins,
    )
    return summary


# ---------------------------------------------------------------------------
# Time-trial results
# ---------------------------------------------------------------------------
def _keep_better_run(best: TimeTrialBest, levels: int, score: int) -> bool:
    improved = (levels, score) > (best.best_levels, best.best_score)
    if improved:
        best.best_levels = levels
        best.best_score = score
    return improved


def record_time_trial(
    engine: Engine,
    user_id: str,
    *,
    duration_seconds: int,
    levels: int,
    score: int,
    durations: Sequence[int] = DEFAULT_LEADERBOARD_DURATIONS,
) -> dict[str, Any]:
    """Keep the member's best run for *duration_seconds*.

    A run is better when it clears more levels, or the same levels with a
    higher score.
    """
    if duration_seconds not in durations:
        raise ValueError(f"Unsupported time trial duration: {duration_seconds}")
    if levels < 0 or score < 0:
        raise ValueError("levels and score must be non-negative")

    key = (user_id, duration_seconds)
    with Session(engine) as session:
        get_or_create_profile(session, user_id)
        best = session.get(TimeTrialBest, key, with_for_update=True)
        if best is None:
            best = TimeTrialBest(
                user_id=user_id,
                duration_seconds=duration_seconds,
                best_levels=levels,
                best_score=score,
            )
            try:
                with session.begin_nested():
                    session.add(best)
                    session.flush()
                improved = True
            except IntegrityError:
                # A concurrent first run was stored between the get and the insert.
                best = session.get(
                    TimeTrialBest, key, with_for_update=True, populate_existing=True
                )
                if best is None:
                    raise
                improved = _keep_better_run(best, levels, score)
        else:
            improved = _keep_better_run(best, levels, score)
        session.commit()

        return {
            "duration": duration_seconds,
            "best_levels": best.best_levels,
            "best_score": best.best_score,
            "new_best": improved,
        }


def get_leaderboard(
    engine: Engine, duration_seconds: int, top_n: int = DEFAULT_LEADERBOARD_SIZE
) -> list[dict[str, Any]]:
    with Session(engine) as session:
        return [
            {
                "rank": e.rank,
                "user_id": e.user_id,
                "best_levels": e.best_levels,
                "best_score": e.best_score,
                "tiers": qualifying_tiers(e.rank),
            }
            for e in rank_participants(session, duration_seconds, top_n)
        ]
