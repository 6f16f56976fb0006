"""
joyrewards.services.reconciliation_service — Ledger Reconciliation
===================================================================

Periodic job that validates ``profiles.coins`` against the sum of each
member's ``coin_transactions`` and reports drift.

How it works:
    1. ``SUM(amount)`` per user from the ledger (0 for members with none).
    2. Compare against the stored balance.
    3. With ``repair=True``, append an ``adjustment`` row for the
       difference.  The balance is authoritative and the ledger stays
       append-only, so the balance itself is never rewritten.
    4. Log all drift for audit.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select

from joyrewards.database.engine import get_session
from joyrewards.database.models import CoinTransaction, Profile, TransactionType
from joyrewards.services.ledger_service import append_transaction

logger = logging.getLogger(__name__)


def reconcile_balances(engine: Engine, *, repair: bool = False) -> dict:
    """Compare balances to ledger sums.

    Returns ``{"checked": N, "drifted": M, "repaired": bool,
    "corrections": [...], "timestamp": ...}``.
    """
    corrections: list[dict] = []

    with get_session(engine, read_only=not repair) as session:
        ledger_sum = (
            select(
                CoinTransaction.user_id,
                func.sum(CoinTransaction.amount).label("total"),
            )
            .group_by(CoinTransaction.user_id)
            .subquery()
        )
        rows = session.execute(
            select(
                Profile.id,
                Profile.coins,
                func.coalesce(ledger_sum.c.total, 0).label("ledger_sum"),
            )
            .outerjoin(ledger_sum, ledger_sum.c.user_id == Profile.id)
            .order_by(Profile.id)
        ).all()

        for row in rows:
            diff = int(row.coins) - int(row.ledger_sum)
            if diff == 0:
                continue
            corrections.append({
                "user_id": row.id,
                "balance": int(row.coins),
                "ledger_sum": int(row.ledger_sum),
                "diff": diff,
            })
            if repair:
                append_transaction(
                    session,
                    user_id=row.id,
                    amount=diff,
                    transaction_type=TransactionType.ADJUSTMENT,
                    description="Ledger reconciliation adjustment",
                    related_item_id=None,
                    metadata={
                        "balance": int(row.coins),
                        "ledger_sum": int(row.ledger_sum),
                    },
                )

    checked = len(rows)
    if corrections:
        logger.warning(
            "Ledger reconciliation: %d/%d balances drifted%s: %s",
            len(corrections), checked,
            " (adjusted)" if repair else "",
            corrections,
        )
    else:
        logger.info("Ledger reconciliation: all %d balances match", checked)

    return {
        "checked": checked,
        "drifted": len(corrections),
        "repaired": repair and bool(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }
