"""
tests/test_drops.py — Weighted Sticker Draw Tests
==================================================
Pure-function tests for the drop-rate selector.  Deterministic cases use a
seeded or mocked ``random.Random``; one statistical check covers the
[90, 9, 1] weighting.
"""

from __future__ import annotations

import random
from collections import Counter
from dataclasses import dataclass
from unittest.mock import MagicMock

import pytest

from joyrewards.engine.drops import draw_one, effective_weights, tier_drop_rate
from joyrewards.errors import EmptyCollection


@dataclass
class FakeSticker:
    name: str
    rarity: str = "common"
    drop_rate: float = 1.0


def _rng_returning(value: float) -> random.Random:
    rng = MagicMock(spec=random.Random)
    rng.uniform.return_value = value
    return rng


class TestDrawOne:
    def test_single_candidate_always_wins(self):
        rng = random.Random(7)
        assert all(draw_one(["only"], [3.0], rng) == "only" for _ in range(20))

    def test_walks_candidates_in_order(self):
        # r = 5 lands in the first bucket [0, 10]
        assert draw_one(["a", "b"], [10, 10], _rng_returning(5)) == "a"
        # r = 10 exactly exhausts the first bucket
        assert draw_one(["a", "b"], [10, 10], _rng_returning(10)) == "a"
        assert draw_one(["a", "b"], [10, 10], _rng_returning(15)) == "b"

    def test_rounding_falls_back_to_last_candidate(self):
        # r slightly above the total simulates float drift
        assert draw_one(["a", "b", "c"], [0.1, 0.2, 0.3], _rng_returning(0.6000001)) == "c"

    def test_zero_weight_is_never_drawn(self):
        rng = random.Random(1234)
        draws = {draw_one(["a", "never", "b"], [1, 0, 1], rng) for _ in range(500)}
        assert draws == {"a", "b"}

    def test_weights_need_not_sum_to_one(self):
        rng = _rng_returning(250)
        assert draw_one(["a", "b"], [200, 100], rng) == "b"
        rng.uniform.assert_called_once_with(0, 300.0)

    def test_empty_or_all_zero_raises(self):
        with pytest.raises(EmptyCollection):
            draw_one([], [])
        with pytest.raises(EmptyCollection):
            draw_one(["a", "b"], [0, 0])

    def test_invalid_input(self):
        with pytest.raises(ValueError):
            draw_one(["a"], [1, 2])
        with pytest.raises(ValueError):
            draw_one(["a", "b"], [1, -1])

    def test_seeded_draw_is_reproducible(self):
        first = [draw_one("abc", [1, 2, 3], random.Random(99)) for _ in range(10)]
        second = [draw_one("abc", [1, 2, 3], random.Random(99)) for _ in range(10)]
        assert first == second

    def test_distribution_follows_weights(self):
        rng = random.Random(20260315)
        counts = Counter(draw_one(["a", "b", "c"], [90, 9, 1], rng) for _ in range(20_000))

        assert counts["a"] / 20_000 == pytest.approx(0.90, abs=0.015)
        assert counts["b"] / 20_000 == pytest.approx(0.09, abs=0.01)
        assert counts["c"] / 20_000 == pytest.approx(0.01, abs=0.005)


class TestEffectiveWeights:
    def test_uses_drop_rate_without_percentages(self):
        stickers = [FakeSticker("a", drop_rate=0.5), FakeSticker("b", drop_rate=2)]
        assert effective_weights(stickers) == [0.5, 2.0]

    def test_tier_share_divides_by_count(self):
        stickers = [
            FakeSticker("c1", "common"),
            FakeSticker("c2", "common"),
            FakeSticker("r1", "rare"),
        ]
        weights = effective_weights(stickers, {"common": 50, "rare": 15, "legendary": 1})
        assert weights == [25.0, 25.0, 15.0]

    def test_tier_missing_from_mapping_weighs_nothing(self):
        stickers = [FakeSticker("e", "epic"), FakeSticker("c", "common")]
        assert effective_weights(stickers, {"common": 50}) == [0.0, 50.0]

    def test_tier_drop_rate(self):
        assert tier_drop_rate(30, 3) == 10
        assert tier_drop_rate(30, 0) == 0.0
