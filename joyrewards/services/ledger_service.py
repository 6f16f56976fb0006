"""
joyrewards.services.ledger_service — Coin Ledger & Award Engine
================================================================

Every coin movement goes through here.

Session-level primitives (``credit``, ``debit``) run inside the caller's
transaction so other services can combine a balance change with their own
writes (bonus card insert, award record) and commit once.  The balance is
changed with a single conditional UPDATE and exactly one ledger row is
appended with the same signed amount.

Engine-level entry points (``earn_coins``, ``deduct_coins``,
``award_reward``) open their own session and return a
:class:`LedgerResult`; insufficient funds is an expected outcome, not an
exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from joyrewards.constants import EVENT_PERIOD, coins_toast
from joyrewards.database.models import CoinTransaction, Profile, TransactionType
from joyrewards.errors import DuplicateAward, InsufficientFunds
from joyrewards.services.award_guard import record_award

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from joyrewards.engine.policy import RewardPolicy

logger = logging.getLogger(__name__)


class BalanceWriteError(RuntimeError):
    """The profile row could not be updated (missing or concurrently deleted)."""


@dataclass(slots=True)
class LedgerResult:
    """Outcome of an engine-level ledger call."""

    success: bool
    user_id: str
    amount: int = 0  # signed delta actually applied
    balance: int | None = None
    transaction_id: int | None = None
    reason: str | None = None
    duplicate: bool = False

    @property
    def toast(self) -> str | None:
        if not self.success:
            return self.reason
        if self.amount == 0:
            return None
        return coins_toast(self.amount)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "user_id": self.user_id,
            "coins_awarded": self.amount,
            "balance": self.balance,
            "transaction_id": self.transaction_id,
            "message": self.toast,
            "duplicate": self.duplicate,
        }


# ---------------------------------------------------------------------------
# Profiles & balance
# ---------------------------------------------------------------------------
def get_or_create_profile(
    session: Session, user_id: str, display_name: str | None = None
) -> Profile:
    """Fetch or insert the Profile row for *user_id*."""
    profile = session.get(Profile, user_id)
    if profile is not None:
        if display_name and profile.display_name != display_name:
            profile.display_name = display_name
        return profile

    profile = Profile(id=user_id, display_name=display_name, coins=0)
    try:
        with session.begin_nested():
            session.add(profile)
            session.flush()
    except IntegrityError:
        # Another request created it between the get and the insert.
        profile = session.get(Profile, user_id, populate_existing=True)
        if profile is None:
            raise
    return profile


def get_balance(session: Session, user_id: str) -> int:
    """Current coin balance; 0 for an unknown user."""
    coins = session.scalar(select(Profile.coins).where(Profile.id == user_id))
    return int(coins or 0)


# ---------------------------------------------------------------------------
# Session-level primitives
# ---------------------------------------------------------------------------
def append_transaction(
    session: Session,
    *,
    user_id: str,
    amount: int,
    transaction_type: str,
    description: str,
    related_item_id: str | None,
    metadata: dict | None,
) -> CoinTransaction:
    txn = CoinTransaction(
        user_id=user_id,
        amount=amount,
        transaction_type=str(transaction_type),
        description=description,
        related_item_id=related_item_id,
        metadata_=metadata,
    )
    session.add(txn)
    session.flush()
    return txn


def credit(
    session: Session,
    user_id: str,
    amount: int,
    description: str,
    *,
    transaction_type: str = TransactionType.EARNED,
    related_item_id: str | None = None,
    metadata: dict | None = None,
) -> CoinTransaction:
    """Add *amount* coins and append the matching ledger row.

    Does not commit.  Raises ``ValueError`` for non-positive amounts and
    :class:`BalanceWriteError` if the profile row is missing.
    """
    if amount <= 0:
        raise ValueError(f"credit amount must be positive, got {amount}")

    result = session.execute(
        update(Profile)
        .where(Profile.id == user_id)
        .values(coins=Profile.coins + amount, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise BalanceWriteError(f"No profile row for user {user_id}")

    return append_transaction(
        session,
        user_id=user_id,
        amount=amount,
        transaction_type=transaction_type,
        description=description,
        related_item_id=related_item_id,
        metadata=metadata,
    )


def debit(
    session: Session,
    user_id: str,
    amount: int,
    description: str,
    *,
    transaction_type: str = TransactionType.SPENT,
    related_item_id: str | None = None,
    metadata: dict | None = None,
) -> CoinTransaction:
    """Remove *amount* coins only if the balance covers it.

    The ``coins >= amount`` guard lives in the UPDATE itself, so two
    concurrent debits can never take the balance below zero.  Raises
    :class:`InsufficientFunds` with nothing written.
    """
    if amount <= 0:
        raise ValueError(f"debit amount must be positive, got {amount}")

    result = session.execute(
        update(Profile)
        .where(Profile.id == user_id, Profile.coins >= amount)
        .values(coins=Profile.coins - amount, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientFunds(amount, get_balance(session, user_id))

    return append_transaction(
        session,
        user_id=user_id,
        amount=-amount,
        transaction_type=transaction_type,
        description=description,
        related_item_id=related_item_id,
        metadata=metadata,
    )


def award_policy(
    session: Session,
    policy: RewardPolicy,
    user_id: str,
    reward_key: str,
    description: str | None = None,
    *,
    related_item_id: str | None = None,
    metadata: dict | None = None,
) -> CoinTransaction | None:
    """Credit whatever *reward_key* pays right now.

    Missing, inactive or zero-amount policies are a no-op and return
    ``None``.
    """
    entry = policy.get_policy(reward_key)
    if entry is None or not entry.payable:
        logger.debug("Reward %s not payable; skipping for user %s", reward_key, user_id)
        return None

    meta = {"reward_key": reward_key}
    if metadata:
        meta.update(metadata)
    return credit(
        session,
        user_id,
        entry.amount,
        description or entry.name or reward_key,
        related_item_id=related_item_id,
        metadata=meta,
    )


# ---------------------------------------------------------------------------
# Engine-level entry points
# ---------------------------------------------------------------------------
def earn_coins(
    engine: Engine,
    user_id: str,
    amount: int,
    description: str,
    *,
    transaction_type: str = TransactionType.EARNED,
    related_item_id: str | None = None,
    metadata: dict | None = None,
) -> LedgerResult:
    """Credit a fixed amount and commit."""
    with Session(engine) as session:
        get_or_create_profile(session, user_id)
        txn = credit(
            session, user_id, amount, description,
            transaction_type=transaction_type,
            related_item_id=related_item_id,
            metadata=metadata,
        )
        balance = get_balance(session, user_id)
        session.commit()
        logger.info("Credited %d coins to %s (%s)", amount, user_id, description)
        return LedgerResult(
            success=True, user_id=user_id, amount=amount,
            balance=balance, transaction_id=txn.id,
        )


def deduct_coins(
    engine: Engine,
    user_id: str,
    amount: int,
    description: str,
    *,
    transaction_type: str = TransactionType.SPENT,
    related_item_id: str | None = None,
    metadata: dict | None = None,
) -> LedgerResult:
    """Debit a fixed amount and commit; insufficient funds mutates nothing."""
    with Session(engine) as session:
        get_or_create_profile(session, user_id)
        try:
            txn = debit(
                session, user_id, amount, description,
                transaction_type=transaction_type,
                related_item_id=related_item_id,
                metadata=metadata,
            )
        except InsufficientFunds as exc:
            session.rollback()
            logger.info(
                "Deduction of %d refused for %s: balance %d",
                amount, user_id, exc.available,
            )
            return LedgerResult(
                success=False, user_id=user_id,
                balance=exc.available, reason=exc.reason,
            )
        balance = get_balance(session, user_id)
        session.commit()
        logger.info("Debited %d coins from %s (%s)", amount, user_id, description)
        return LedgerResult(
            success=True, user_id=user_id, amount=-amount,
            balance=balance, transaction_id=txn.id,
        )


def adjust_coins(
    engine: Engine,
    user_id: str,
    amount: int,
    description: str,
    *,
    related_item_id: str | None = None,
    metadata: dict | None = None,
) -> LedgerResult:
    """Ad-hoc award with a caller-supplied signed amount."""
    if amount > 0:
        return earn_coins(
            engine, user_id, amount, description,
            related_item_id=related_item_id, metadata=metadata,
        )
    if amount < 0:
        return deduct_coins(
            engine, user_id, -amount, description,
            related_item_id=related_item_id, metadata=metadata,
        )
    with Session(engine) as session:
        return LedgerResult(
            success=True, user_id=user_id, balance=get_balance(session, user_id)
        )


def award_reward(
    engine: Engine,
    policy: RewardPolicy,
    user_id: str,
    reward_key: str,
    description: str | None = None,
    *,
    source_id: str | None = None,
    display_name: str | None = None,
) -> LedgerResult:
    """Pay the policy amount for *reward_key*.

    With *source_id* the award is idempotent: an award record with period
    ``event`` and scope ``<reward_key>:<source_id>`` is written in the same
    transaction, and a repeat returns ``duplicate=True`` with 0 coins.
    """
    with Session(engine) as session:
        get_or_create_profile(session, user_id, display_name)

        if policy.amount_for(reward_key) <= 0:
            return LedgerResult(
                success=True, user_id=user_id,
                balance=get_balance(session, user_id),
            )

        record = None
        if source_id is not None:
            try:
                record = record_award(
                    session,
                    user_id=user_id,
                    period_key=EVENT_PERIOD,
                    scope_key=f"{reward_key}:{source_id}",
                )
            except DuplicateAward as exc:
                session.rollback()
                return LedgerResult(
                    success=True, user_id=user_id,
                    balance=get_balance(session, user_id),
                    reason=exc.reason, duplicate=True,
                )

        txn = award_policy(
            session, policy, user_id, reward_key, description,
            related_item_id=source_id,
        )
        amount = txn.amount if txn is not None else 0
        if record is not None:
            record.coins_awarded = amount
        balance = get_balance(session, user_id)
        session.commit()

        logger.info("Awarded %s (%d coins) to %s", reward_key, amount, user_id)
        return LedgerResult(
            success=True, user_id=user_id, amount=amount, balance=balance,
            transaction_id=txn.id if txn is not None else None,
        )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------
def list_transactions(
    engine: Engine, user_id: str, *, limit: int = 50, offset: int = 0
) -> tuple[int, list[CoinTransaction]]:
    """Return (total_count, page) of *user_id*'s ledger, newest first."""
    with Session(engine, expire_on_commit=False) as session:
        total = session.scalar(
            select(func.count()).select_from(CoinTransaction)
            .where(CoinTransaction.user_id == user_id)
        ) or 0
        rows = session.scalars(
            select(CoinTransaction)
            .where(CoinTransaction.user_id == user_id)
            .order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()
        session.expunge_all()
        return total, list(rows)


def transaction_to_dict(txn: CoinTransaction) -> dict[str, Any]:
    return {
        "id": txn.id,
        "amount": txn.amount,
        "transaction_type": txn.transaction_type,
        "description": txn.description,
        "related_item_id": txn.related_item_id,
        "metadata": txn.metadata_,
        "created_at": txn.created_at.isoformat() if txn.created_at else None,
    }
