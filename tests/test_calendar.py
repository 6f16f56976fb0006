"""
tests/test_calendar.py — Local Day & Reward Period Helpers
===========================================================
"""

from __future__ import annotations

from datetime import UTC, date, datetime

from joyrewards.engine.calendar import (
    as_utc,
    local_today,
    month_key,
    next_local_midnight,
    previous_month_key,
)

TZ = "America/Denver"


class TestLocalDay:
    def test_evening_utc_is_still_today_in_denver(self):
        # 2026-03-16 03:00 UTC = 2026-03-15 21:00 MDT
        assert local_today(datetime(2026, 3, 16, 3, 0, tzinfo=UTC), TZ) == date(2026, 3, 15)

    def test_naive_datetimes_are_utc(self):
        naive = datetime(2026, 3, 15, 12, 0)
        assert as_utc(naive) == datetime(2026, 3, 15, 12, 0, tzinfo=UTC)

    def test_next_midnight_in_summer(self):
        # Midnight MDT (UTC-6) on 2026-07-02
        now = datetime(2026, 7, 1, 18, 0, tzinfo=UTC)
        assert next_local_midnight(now, TZ) == datetime(2026, 7, 2, 6, 0, tzinfo=UTC)

    def test_next_midnight_in_winter(self):
        # Midnight MST (UTC-7) on 2026-01-11
        now = datetime(2026, 1, 10, 18, 0, tzinfo=UTC)
        assert next_local_midnight(now, TZ) == datetime(2026, 1, 11, 7, 0, tzinfo=UTC)


class TestMonthKeys:
    def test_month_key(self):
        assert month_key(date(2026, 3, 9)) == "2026-03"

    def test_previous_month_wraps_year(self):
        assert previous_month_key(datetime(2026, 1, 1, tzinfo=UTC)) == "2025-12"
        assert previous_month_key(datetime(2026, 3, 31, 23, 59, tzinfo=UTC)) == "2026-02"
