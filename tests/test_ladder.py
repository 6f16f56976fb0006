"""
tests/test_ladder.py — Leaderboard Tier Ladder Tests
=====================================================
"""

from __future__ import annotations

import pytest

from joyrewards.engine.ladder import qualifying_tiers

TOP_3 = "time_trial_top_3"
TOP_5 = "time_trial_top_5"
TOP_10 = "time_trial_top_10"


class TestQualifyingTiers:
    @pytest.mark.parametrize("rank", [1, 2, 3])
    def test_podium_collects_every_tier(self, rank):
        assert qualifying_tiers(rank) == [TOP_3, TOP_5, TOP_10]

    @pytest.mark.parametrize("rank", [4, 5])
    def test_fourth_and_fifth(self, rank):
        assert qualifying_tiers(rank) == [TOP_5, TOP_10]

    @pytest.mark.parametrize("rank", [6, 10])
    def test_sixth_to_tenth(self, rank):
        assert qualifying_tiers(rank) == [TOP_10]

    @pytest.mark.parametrize("rank", [0, -1, 11, 50])
    def test_outside_ladder(self, rank):
        assert qualifying_tiers(rank) == []

    def test_custom_ladder(self):
        ladder = ((1, "gold"), (2, "silver"))
        assert qualifying_tiers(1, ladder) == ["gold", "silver"]
        assert qualifying_tiers(2, ladder) == ["silver"]
