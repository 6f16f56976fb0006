"""
joyrewards.api.routes.streaks — Daily streaks, chore wheel & time trials
=========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Path
from pydantic import BaseModel, Field

from joyrewards.api.deps import ConfigDep, EngineDep, PolicyDep, UserDep, user_id_of
from joyrewards.services import leaderboard_service, streak_service, wheel_service

router = APIRouter(tags=["streaks"])


class TimeTrialResult(BaseModel):
    duration_seconds: int
    levels: int = Field(ge=0)
    score: int = Field(ge=0)


@router.get("/streaks")
def get_streak(user: UserDep, engine: EngineDep):
    return streak_service.get_streak(engine, user_id_of(user))


@router.post("/streaks/claim")
def claim_streak(user: UserDep, engine: EngineDep, policy: PolicyDep, cfg: ConfigDep):
    """Record today's login.  A second claim the same day answers
    ``success: false, reason: already_logged_today``."""
    return streak_service.claim_daily_streak(
        engine, policy, user_id_of(user), tz_name=cfg.timezone
    )


@router.get("/chore-wheel")
def wheel_status(user: UserDep, engine: EngineDep, policy: PolicyDep, cfg: ConfigDep):
    """Whether today's spin is still available, and what the wheel can land on."""
    spun = wheel_service.has_spun_today(engine, user_id_of(user), tz_name=cfg.timezone)
    return {"can_spin": not spun, "segments": wheel_service.wheel_segments(policy)}


@router.post("/chore-wheel/spin")
def spin_wheel(user: UserDep, engine: EngineDep, policy: PolicyDep, cfg: ConfigDep):
    return wheel_service.spin_chore_wheel(
        engine, policy, user_id_of(user), tz_name=cfg.timezone
    )


@router.post("/time-trials")
def submit_time_trial(body: TimeTrialResult, user: UserDep, engine: EngineDep, cfg: ConfigDep):
    try:
        return leaderboard_service.record_time_trial(
            engine, user_id_of(user),
            duration_seconds=body.duration_seconds,
            levels=body.levels,
            score=body.score,
            durations=cfg.leaderboard_durations,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))


@router.get("/time-trials/{duration_seconds}/leaderboard")
def time_trial_leaderboard(
    user: UserDep,
    engine: EngineDep,
    cfg: ConfigDep,
    duration_seconds: int = Path(..., gt=0),
):
    if duration_seconds not in cfg.leaderboard_durations:
        raise HTTPException(404, "Unknown time trial duration")
    return {
        "duration": duration_seconds,
        "entries": leaderboard_service.get_leaderboard(
            engine, duration_seconds, cfg.leaderboard_size
        ),
    }
