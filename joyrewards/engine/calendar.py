"""
joyrewards.engine.calendar — Local Day & Reward Period Helpers
===============================================================

"Today" for daily cards, streaks and wheel spins is the community's local
calendar day (``config.timezone``), while every stored timestamp is UTC.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def local_today(now: datetime, tz_name: str) -> date:
    """Calendar date at *now* in the community timezone."""
    return as_utc(now).astimezone(ZoneInfo(tz_name)).date()


def next_local_midnight(now: datetime, tz_name: str) -> datetime:
    """Start of the next local calendar day, as an aware UTC datetime."""
    tz = ZoneInfo(tz_name)
    tomorrow = local_today(now, tz_name) + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=tz).astimezone(UTC)


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def previous_month_key(now: datetime) -> str:
    """``YYYY-MM`` of the calendar month before *now* (UTC)."""
    first_of_month = as_utc(now).date().replace(day=1)
    return month_key(first_of_month - timedelta(days=1))
