"""
joyrewards.services.admin_service — Admin Mutation Service Layer
=================================================================

Every admin write follows the pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSON
  5. Commit
  6. Reload the in-process RewardPolicy when policies or settings changed
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from joyrewards.database.models import (
    AdminActionType,
    AdminLog,
    CoinReward,
    Setting,
    StreakMilestone,
)
from joyrewards.errors import InsufficientFunds
from joyrewards.services.ledger_service import (
    LedgerResult,
    credit,
    debit,
    get_balance,
    get_or_create_profile,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from joyrewards.engine.policy import RewardPolicy

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------

def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for attr in inspect(obj).mapper.column_attrs:
        val = getattr(obj, attr.key, None)
        if isinstance(val, (datetime, date)):
            val = val.isoformat()
        result[attr.columns[0].name] = val
    return result


def _target_id(obj: Any) -> str:
    identity = inspect(obj).identity or ()
    return ":".join(str(part) for part in identity)


def _log_admin_action(
    session: Session,
    *,
    actor_id: str,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=str(action_type),
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _audited_create(engine: Engine, row: Any, *, table_name: str, actor_id: str) -> Any:
    """Generic audited CREATE: add -> flush -> log -> commit -> return."""
    with Session(engine, expire_on_commit=False) as session:
        session.add(row)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.CREATE,
            target_table=table_name,
            target_id=_target_id(row),
            before=None,
            after=row_to_dict(row),
        )
        session.commit()
        session.refresh(row)
        session.expunge(row)
        return row


def _audited_update(
    engine: Engine,
    model_cls: type,
    pk: Any,
    *,
    table_name: str,
    actor_id: str,
    frozen_keys: tuple[str, ...] = ("id",),
    **kwargs: Any,
) -> Any | None:
    """Generic audited UPDATE: get -> before -> apply kwargs -> log -> commit.

    Returns the updated (expunged) object, or ``None`` if not found.
    """
    with Session(engine, expire_on_commit=False) as session:
        obj = session.get(model_cls, pk)
        if obj is None:
            return None
        before = row_to_dict(obj)
        for key, value in kwargs.items():
            if hasattr(obj, key) and key not in frozen_keys:
                setattr(obj, key, value)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table=table_name,
            target_id=_target_id(obj),
            before=before,
            after=row_to_dict(obj),
        )
        session.commit()
        session.refresh(obj)
        session.expunge(obj)
        return obj


# ---------------------------------------------------------------------------
# Reward policy CRUD
# ---------------------------------------------------------------------------

def list_reward_policies(engine: Engine) -> list[CoinReward]:
    with Session(engine, expire_on_commit=False) as session:
        rows = session.scalars(
            select(CoinReward).order_by(CoinReward.category, CoinReward.reward_key)
        ).all()
        session.expunge_all()
        return list(rows)


def create_reward_policy(
    engine: Engine,
    policy: RewardPolicy,
    *,
    reward_key: str,
    reward_name: str,
    coin_amount: int,
    category: str = "general",
    description: str | None = None,
    is_active: bool = True,
    actor_id: str,
) -> CoinReward:
    """Create a new reward policy and make it live immediately."""
    row = _audited_create(
        engine,
        CoinReward(
            reward_key=reward_key,
            reward_name=reward_name,
            coin_amount=coin_amount,
            category=category,
            description=description,
            is_active=is_active,
        ),
        table_name="coin_rewards",
        actor_id=actor_id,
    )
    policy.reload()
    logger.info("Admin %s created reward %s (%d coins)", actor_id, reward_key, coin_amount)
    return row


def update_reward_policy(
    engine: Engine,
    policy: RewardPolicy,
    *,
    reward_key: str,
    actor_id: str,
    **kwargs: Any,
) -> CoinReward | None:
    """Update an existing reward policy."""
    row = _audited_update(
        engine, CoinReward, reward_key,
        table_name="coin_rewards",
        actor_id=actor_id,
        frozen_keys=("reward_key", "updated_at"),
        **kwargs,
    )
    if row is not None:
        policy.reload()
        logger.info("Admin %s updated reward %s: %s", actor_id, reward_key, kwargs)
    return row


# ---------------------------------------------------------------------------
# Streak milestone CRUD
# ---------------------------------------------------------------------------

def list_milestones(engine: Engine) -> list[StreakMilestone]:
    with Session(engine, expire_on_commit=False) as session:
        rows = session.scalars(
            select(StreakMilestone).order_by(StreakMilestone.days_required)
        ).all()
        session.expunge_all()
        return list(rows)


def create_milestone(
    engine: Engine,
    *,
    days_required: int,
    badge_name: str,
    badge_icon: str | None = None,
    description: str | None = None,
    bonus_coins: int = 0,
    free_sticker_packs: int = 0,
    is_active: bool = True,
    actor_id: str,
) -> StreakMilestone:
    return _audited_create(
        engine,
        StreakMilestone(
            days_required=days_required,
            badge_name=badge_name,
            badge_icon=badge_icon,
            description=description,
            bonus_coins=bonus_coins,
            free_sticker_packs=free_sticker_packs,
            is_active=is_active,
        ),
        table_name="streak_milestones",
        actor_id=actor_id,
    )


def update_milestone(
    engine: Engine, *, milestone_id: int, actor_id: str, **kwargs: Any
) -> StreakMilestone | None:
    return _audited_update(
        engine, StreakMilestone, milestone_id,
        table_name="streak_milestones",
        actor_id=actor_id,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def upsert_settings(
    engine: Engine,
    policy: RewardPolicy,
    settings: list[dict],
    *,
    actor_id: str,
) -> int:
    """Upsert gameplay settings, auditing each change.

    Each dict needs ``key`` and ``value``; ``category`` and ``description``
    are optional.  Returns the number of rows touched.
    """
    count = 0
    with Session(engine) as session:
        for item in settings:
            key = item["key"]
            existing = session.get(Setting, key)
            before = None
            if existing is not None:
                before = {
                    "key": existing.key,
                    "value": json.loads(existing.value_json),
                    "category": existing.category,
                }
                existing.value_json = json.dumps(item["value"])
                if "category" in item:
                    existing.category = item["category"]
                if "description" in item:
                    existing.description = item["description"]
            else:
                existing = Setting(
                    key=key,
                    value_json=json.dumps(item["value"]),
                    category=item.get("category", "general"),
                    description=item.get("description"),
                )
                session.add(existing)

            after = {"key": key, "value": item["value"], "category": existing.category}
            if before != after:
                _log_admin_action(
                    session,
                    actor_id=actor_id,
                    action_type=(
                        AdminActionType.UPDATE if before else AdminActionType.CREATE
                    ),
                    target_table="settings",
                    target_id=key,
                    before=before,
                    after=after,
                )
            count += 1
        session.commit()

    policy.reload()
    return count


# ---------------------------------------------------------------------------
# Manual coin adjustments
# ---------------------------------------------------------------------------

def manual_adjust(
    engine: Engine,
    *,
    user_id: str,
    amount: int,
    reason: str,
    actor_id: str,
) -> LedgerResult:
    """Grant (positive) or deduct (negative) coins on an admin's behalf.

    The ledger row and the audit entry commit together.  A deduction larger
    than the balance is refused with nothing written.
    """
    if amount == 0:
        raise ValueError("amount must be non-zero")

    with Session(engine) as session:
        get_or_create_profile(session, user_id)
        before = {"coins": get_balance(session, user_id)}
        metadata = {"admin_id": actor_id, "reason": reason}

        if amount > 0:
            txn = credit(
                session, user_id, amount, reason or "Admin grant", metadata=metadata
            )
            action = AdminActionType.MANUAL_AWARD
        else:
            try:
                txn = debit(
                    session, user_id, -amount, reason or "Admin deduction",
                    metadata=metadata,
                )
            except InsufficientFunds as exc:
                session.rollback()
                return LedgerResult(
                    success=False, user_id=user_id,
                    balance=exc.available, reason=exc.reason,
                )
            action = AdminActionType.MANUAL_DEDUCT

        # Read before commit expires the instance.
        transaction_id = txn.id
        balance = get_balance(session, user_id)
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=action,
            target_table="profiles",
            target_id=user_id,
            before=before,
            after={"coins": balance, "transaction_id": transaction_id},
            reason=reason,
        )
        session.commit()

    logger.info("Admin %s adjusted %s by %+d (%s)", actor_id, user_id, amount, reason)
    return LedgerResult(
        success=True, user_id=user_id, amount=amount,
        balance=balance, transaction_id=transaction_id,
    )


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

def get_audit_log(
    engine: Engine,
    *,
    limit: int = 50,
    offset: int = 0,
    target_table: str | None = None,
) -> tuple[int, list[dict]]:
    """Return (total, page) of admin_log entries, newest first."""
    with Session(engine) as session:
        count_q = select(func.count()).select_from(AdminLog)
        page_q = select(AdminLog).order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
        if target_table:
            count_q = count_q.where(AdminLog.target_table == target_table)
            page_q = page_q.where(AdminLog.target_table == target_table)

        total = session.scalar(count_q) or 0
        rows = session.scalars(page_q.limit(limit).offset(offset)).all()
        return total, [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "before": r.before_snapshot,
                "after": r.after_snapshot,
                "reason": r.reason,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ]
