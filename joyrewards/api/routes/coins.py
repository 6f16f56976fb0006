"""
joyrewards.api.routes.coins — Member coin endpoints (JWT-protected)
====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from joyrewards.api.deps import EngineDep, PolicyDep, UserDep, user_id_of
from joyrewards.database.engine import get_session
from joyrewards.services import ledger_service

router = APIRouter(prefix="/coins", tags=["coins"])


class RewardClaim(BaseModel):
    source_id: str | None = Field(default=None, max_length=80)
    description: str | None = Field(default=None, max_length=200)


@router.get("/balance")
def get_balance(user: UserDep, engine: EngineDep):
    user_id = user_id_of(user)
    with get_session(engine, read_only=True) as session:
        return {"user_id": user_id, "balance": ledger_service.get_balance(session, user_id)}


@router.get("/transactions")
def list_transactions(
    user: UserDep,
    engine: EngineDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100),
):
    """Paginated coin history, newest first."""
    total, rows = ledger_service.list_transactions(
        engine, user_id_of(user), limit=page_size, offset=(page - 1) * page_size
    )
    return {
        "total": total,
        "page": page,
        "page_size": page_size,
        "transactions": [ledger_service.transaction_to_dict(t) for t in rows],
    }


@router.post("/rewards/{reward_key}")
def claim_reward(
    reward_key: str,
    body: RewardClaim,
    user: UserDep,
    engine: EngineDep,
    policy: PolicyDep,
):
    """Pay the policy amount for a game, chore or social action.

    Inactive or zero-amount policies answer ``coins_awarded: 0``.
    """
    result = ledger_service.award_reward(
        engine, policy, user_id_of(user), reward_key, body.description,
        source_id=body.source_id,
        display_name=user.get("name"),
    )
    return result.to_dict()
