"""
tests/test_reconciliation.py — Ledger Reconciliation Tests
===========================================================
"""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from conftest import add_profile
from joyrewards.database.models import CoinTransaction, Profile
from joyrewards.services.reconciliation_service import reconcile_balances


def _force_balance(engine, user_id: str, coins: int) -> None:
    with Session(engine) as session:
        session.execute(update(Profile).where(Profile.id == user_id).values(coins=coins))
        session.commit()


class TestReconcileBalances:
    def test_clean_ledger(self, db_engine):
        add_profile(db_engine, "u1", coins=30)
        add_profile(db_engine, "u2")

        report = reconcile_balances(db_engine)

        assert report["checked"] == 2
        assert report["drifted"] == 0
        assert report["corrections"] == []
        assert not report["repaired"]

    def test_reports_drift_without_writing(self, db_engine):
        add_profile(db_engine, "u1", coins=30)
        _force_balance(db_engine, "u1", 45)

        report = reconcile_balances(db_engine)

        assert report["corrections"] == [
            {"user_id": "u1", "balance": 45, "ledger_sum": 30, "diff": 15}
        ]
        with Session(db_engine) as session:
            assert len(session.scalars(select(CoinTransaction)).all()) == 1

    def test_repair_appends_adjustment(self, db_engine):
        add_profile(db_engine, "u1", coins=30)
        _force_balance(db_engine, "u1", 20)

        report = reconcile_balances(db_engine, repair=True)

        assert report["repaired"]
        with Session(db_engine) as session:
            adjustment = session.scalar(
                select(CoinTransaction).where(CoinTransaction.transaction_type == "adjustment")
            )
            assert adjustment.amount == -10
            assert session.get(Profile, "u1").coins == 20
        assert reconcile_balances(db_engine)["drifted"] == 0

    def test_profile_without_ledger_rows(self, db_engine):
        add_profile(db_engine, "u1")
        _force_balance(db_engine, "u1", 7)
        report = reconcile_balances(db_engine)
        assert report["corrections"][0]["ledger_sum"] == 0
        assert report["corrections"][0]["diff"] == 7
