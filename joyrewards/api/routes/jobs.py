"""
joyrewards.api.routes.jobs — Scheduled job triggers
====================================================

Called by the external scheduler with ``X-Cron-Secret`` (or by an admin).
Job work is synchronous DB code and runs on a worker thread via
:func:`~joyrewards.database.engine.run_db`.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from joyrewards.api.deps import ConfigDep, EngineDep, PolicyDep, verify_job_caller
from joyrewards.database.engine import run_db
from joyrewards.services import leaderboard_service, reconciliation_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])

CallerDep = Annotated[str, Depends(verify_job_caller)]


class LeaderboardRun(BaseModel):
    # Defaults to the previous calendar month.
    reward_month: str | None = Field(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")


@router.post("/leaderboard-rewards")
async def run_leaderboard_rewards(
    caller: CallerDep,
    engine: EngineDep,
    policy: PolicyDep,
    cfg: ConfigDep,
    body: LeaderboardRun | None = None,
):
    """Pay the monthly time-trial tier ladder; safe to re-run."""
    reward_month = body.reward_month if body else None
    logger.info(
        "Leaderboard rewards triggered by %s (month=%s)",
        caller, reward_month or "previous",
    )
    try:
        summary = await run_db(
            leaderboard_service.award_monthly_rewards,
            engine,
            policy,
            reward_month=reward_month,
            durations=cfg.leaderboard_durations,
            top_n=cfg.leaderboard_size,
        )
    except Exception:
        logger.exception("Leaderboard rewards job failed")
        return JSONResponse(status_code=500, content={"error": "Leaderboard rewards job failed"})
    return summary.as_response()


@router.post("/reconcile-balances")
async def run_reconciliation(
    caller: CallerDep,
    engine: EngineDep,
    repair: bool = Query(False),
):
    """Compare balances to ledger sums; ``repair`` appends adjustments."""
    logger.info("Ledger reconciliation triggered by %s (repair=%s)", caller, repair)
    try:
        return await run_db(reconciliation_service.reconcile_balances, engine, repair=repair)
    except Exception:
        logger.exception("Ledger reconciliation job failed")
        return JSONResponse(status_code=500, content={"error": "Ledger reconciliation job failed"})
