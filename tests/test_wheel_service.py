"""
tests/test_wheel_service.py — Chore Reward Wheel Tests
=======================================================
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import Mock

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import NOW, TZ, add_collection
from joyrewards.database.models import ChoreWheelSpin, CoinTransaction, DailyScratchCard
from joyrewards.errors import LimitReached
from joyrewards.services import wheel_service
from joyrewards.services.admin_service import upsert_settings
from joyrewards.services.ledger_service import get_balance


def _set_segments(engine, policy, segments):
    upsert_settings(
        engine, policy,
        [{"key": "chore_wheel.segments", "value": segments}],
        actor_id="admin-1",
    )


def _rng(value: float) -> Mock:
    rng = Mock()
    rng.uniform.return_value = value
    return rng


class TestWheelSegments:
    def test_seeded_segments(self, policy):
        segments = wheel_service.wheel_segments(policy)
        assert len(segments) == 6
        assert {s["prize_type"] for s in segments} == {"coins", "sticker_pack"}

    def test_malformed_entries_dropped(self, db_engine, policy):
        _set_segments(db_engine, policy, [
            {"prize_type": "coins", "amount": 5, "weight": 2},
            {"prize_type": "coins"},
            {"prize_type": "jackpot", "amount": 1},
            {"prize_type": "coins", "amount": -3},
        ])
        assert wheel_service.wheel_segments(policy) == [
            {"prize_type": "coins", "amount": 5, "weight": 2.0},
        ]

    def test_falls_back_when_nothing_valid(self, db_engine, policy):
        _set_segments(db_engine, policy, "not a list")
        assert wheel_service.wheel_segments(policy) == wheel_service.DEFAULT_SEGMENTS


class TestSpinChoreWheel:
    def test_coin_prize_is_credited(self, db_engine, policy):
        # r=1 lands in the first segment (5 coins, weight 30)
        result = wheel_service.spin_chore_wheel(
            db_engine, policy, "u1", tz_name=TZ, now=NOW, rng=_rng(1.0)
        )

        assert result == {
            "success": True,
            "segment": 0,
            "prize_type": "coins",
            "prize_amount": 5,
            "card_ids": [],
        }
        with Session(db_engine) as session:
            assert get_balance(session, "u1") == 5
            txn = session.scalar(select(CoinTransaction))
            assert txn.description == "Chore wheel prize"
            assert txn.transaction_type == "earned"

    def test_sticker_pack_issues_cards(self, db_engine, policy):
        add_collection(db_engine)
        _set_segments(db_engine, policy, [
            {"prize_type": "sticker_pack", "amount": 2, "weight": 1},
        ])

        result = wheel_service.spin_chore_wheel(
            db_engine, policy, "u1", tz_name=TZ, now=NOW
        )

        assert result["prize_type"] == "sticker_pack"
        assert len(result["card_ids"]) == 2
        with Session(db_engine) as session:
            cards = [session.get(DailyScratchCard, i) for i in result["card_ids"]]
            assert {c.source for c in cards} == {"wheel"}
            assert sorted(c.purchase_number for c in cards) == [1, 2]
            spin = session.scalar(select(ChoreWheelSpin))
            assert spin.card_ids == result["card_ids"]
            assert get_balance(session, "u1") == 0

    def test_one_spin_per_local_day(self, db_engine, policy):
        wheel_service.spin_chore_wheel(db_engine, policy, "u1", tz_name=TZ, now=NOW)
        assert wheel_service.has_spun_today(db_engine, "u1", tz_name=TZ, now=NOW)

        with pytest.raises(LimitReached):
            wheel_service.spin_chore_wheel(
                db_engine, policy, "u1", tz_name=TZ, now=NOW + timedelta(hours=2)
            )

        tomorrow = NOW + timedelta(days=1)
        assert not wheel_service.has_spun_today(db_engine, "u1", tz_name=TZ, now=tomorrow)
        wheel_service.spin_chore_wheel(db_engine, policy, "u1", tz_name=TZ, now=tomorrow)

    def test_refused_spin_pays_nothing(self, db_engine, policy):
        _set_segments(db_engine, policy, [{"prize_type": "coins", "amount": 10}])
        wheel_service.spin_chore_wheel(db_engine, policy, "u1", tz_name=TZ, now=NOW)
        with pytest.raises(LimitReached):
            wheel_service.spin_chore_wheel(db_engine, policy, "u1", tz_name=TZ, now=NOW)
        with Session(db_engine) as session:
            assert get_balance(session, "u1") == 10
