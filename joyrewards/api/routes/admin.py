"""
joyrewards.api.routes.admin — Admin endpoints (JWT-protected)
==============================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from joyrewards.api.deps import AdminDep, EngineDep, PolicyDep
from joyrewards.services import admin_service, ledger_service
from joyrewards.services.admin_service import row_to_dict

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class RewardPolicyCreate(BaseModel):
    reward_key: str = Field(min_length=1, max_length=100)
    reward_name: str
    coin_amount: int = Field(ge=0)
    category: str = "general"
    description: str | None = None
    is_active: bool = True


class RewardPolicyUpdate(BaseModel):
    reward_name: str | None = None
    coin_amount: int | None = Field(default=None, ge=0)
    category: str | None = None
    description: str | None = None
    is_active: bool | None = None


class MilestoneCreate(BaseModel):
    days_required: int = Field(ge=1)
    badge_name: str
    badge_icon: str | None = None
    description: str | None = None
    bonus_coins: int = Field(default=0, ge=0)
    free_sticker_packs: int = Field(default=0, ge=0)
    is_active: bool = True


class MilestoneUpdate(BaseModel):
    days_required: int | None = Field(default=None, ge=1)
    badge_name: str | None = None
    badge_icon: str | None = None
    description: str | None = None
    bonus_coins: int | None = Field(default=None, ge=0)
    free_sticker_packs: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class ManualAdjust(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    amount: int
    reason: str = ""


class SettingUpdate(BaseModel):
    key: str
    value: Any
    category: str | None = None
    description: str | None = None


# ---------------------------------------------------------------------------
# Reward policies
# ---------------------------------------------------------------------------
@router.get("/rewards")
def list_rewards(admin: AdminDep, engine: EngineDep):
    return [row_to_dict(r) for r in admin_service.list_reward_policies(engine)]


@router.post("/rewards")
def create_reward(
    body: RewardPolicyCreate, admin: AdminDep, engine: EngineDep, policy: PolicyDep
):
    if policy.get_policy(body.reward_key) is not None:
        raise HTTPException(409, "Reward key already exists")
    row = admin_service.create_reward_policy(
        engine, policy, actor_id=str(admin["sub"]), **body.model_dump()
    )
    return row_to_dict(row)


@router.patch("/rewards/{reward_key}")
def update_reward(
    reward_key: str,
    body: RewardPolicyUpdate,
    admin: AdminDep,
    engine: EngineDep,
    policy: PolicyDep,
):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(400, "No fields to update")
    row = admin_service.update_reward_policy(
        engine, policy, reward_key=reward_key, actor_id=str(admin["sub"]), **changes
    )
    if row is None:
        raise HTTPException(404, "Reward not found")
    return row_to_dict(row)


# ---------------------------------------------------------------------------
# Streak milestones
# ---------------------------------------------------------------------------
@router.get("/milestones")
def list_milestones(admin: AdminDep, engine: EngineDep):
    return [row_to_dict(m) for m in admin_service.list_milestones(engine)]


@router.post("/milestones")
def create_milestone(body: MilestoneCreate, admin: AdminDep, engine: EngineDep):
    try:
        row = admin_service.create_milestone(
            engine, actor_id=str(admin["sub"]), **body.model_dump()
        )
    except IntegrityError:
        raise HTTPException(409, "A milestone for that many days already exists")
    return row_to_dict(row)


@router.patch("/milestones/{milestone_id}")
def update_milestone(
    milestone_id: int, body: MilestoneUpdate, admin: AdminDep, engine: EngineDep
):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(400, "No fields to update")
    try:
        row = admin_service.update_milestone(
            engine, milestone_id=milestone_id, actor_id=str(admin["sub"]), **changes
        )
    except IntegrityError:
        raise HTTPException(409, "A milestone for that many days already exists")
    if row is None:
        raise HTTPException(404, "Milestone not found")
    return row_to_dict(row)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@router.put("/settings")
def update_settings(
    body: list[SettingUpdate], admin: AdminDep, engine: EngineDep, policy: PolicyDep
):
    items = [
        {k: v for k, v in s.model_dump().items() if v is not None or k == "value"}
        for s in body
    ]
    count = admin_service.upsert_settings(engine, policy, items, actor_id=str(admin["sub"]))
    return {"updated": count}


# ---------------------------------------------------------------------------
# Coins
# ---------------------------------------------------------------------------
@router.post("/coins/adjust")
def adjust_coins(body: ManualAdjust, admin: AdminDep, engine: EngineDep):
    """Grant (positive) or deduct (negative) coins for a member."""
    if body.amount == 0:
        raise HTTPException(400, "amount must be non-zero")
    result = admin_service.manual_adjust(
        engine,
        user_id=body.user_id,
        amount=body.amount,
        reason=body.reason,
        actor_id=str(admin["sub"]),
    )
    if not result.success:
        raise HTTPException(400, result.reason)
    return result.to_dict()


@router.get("/users/{user_id}/transactions")
def user_transactions(
    user_id: str,
    admin: AdminDep,
    engine: EngineDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100),
):
    total, rows = ledger_service.list_transactions(
        engine, user_id, limit=page_size, offset=(page - 1) * page_size
    )
    return {
        "total": total,
        "page": page,
        "page_size": page_size,
        "transactions": [ledger_service.transaction_to_dict(t) for t in rows],
    }


# ---------------------------------------------------------------------------
# Audit Log
# ---------------------------------------------------------------------------
@router.get("/audit")
def get_audit_log(
    admin: AdminDep,
    engine: EngineDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100),
    target_table: str | None = None,
):
    """Paginated admin audit log."""
    total, entries = admin_service.get_audit_log(
        engine, limit=page_size, offset=(page - 1) * page_size, target_table=target_table
    )
    return {"total": total, "page": page, "page_size": page_size, "entries": entries}
