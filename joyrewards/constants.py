"""
joyrewards.constants — Shared Constants
========================================

Single source of truth for rarity tiers, the leaderboard tier ladder and
presentation strings.  Import from here instead of duplicating in services
and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Sticker rarity
# ---------------------------------------------------------------------------
DEFAULT_RARITY_PERCENTAGES: dict[str, float] = {
    "common": 50,
    "uncommon": 30,
    "rare": 15,
    "epic": 4,
    "legendary": 1,
}

RARITY_EMOJI: dict[str, str] = {
    "common": "\u26aa",        # ⚪
    "uncommon": "\U0001f7e2",  # 🟢
    "rare": "\U0001f535",      # 🔵
    "epic": "\U0001f7e3",      # 🟣
    "legendary": "\U0001f7e1", # 🟡
}


# ---------------------------------------------------------------------------
# Leaderboard tier ladder — (inclusive rank threshold, reward key)
# ---------------------------------------------------------------------------
TIME_TRIAL_TIERS: tuple[tuple[int, str], ...] = (
    (3, "time_trial_top_3"),
    (5, "time_trial_top_5"),
    (10, "time_trial_top_10"),
)

TIME_TRIAL_LABELS: dict[int, str] = {
    60: "1 Minute",
    120: "2 Minute",
    300: "5 Minute",
}


# ---------------------------------------------------------------------------
# Award record period / scope keys
# ---------------------------------------------------------------------------
STREAK_PERIOD = "streak"
EVENT_PERIOD = "event"


def time_trial_scope(duration_seconds: int) -> str:
    """Scope key for one leaderboard duration bucket."""
    return f"time_trial:{duration_seconds}"


def time_trial_label(duration_seconds: int) -> str:
    return TIME_TRIAL_LABELS.get(duration_seconds, f"{duration_seconds}s")


# ---------------------------------------------------------------------------
# Toast text
# ---------------------------------------------------------------------------
def coins_toast(amount: int) -> str:
    """User-facing notification for a balance change."""
    if amount >= 0:
        return f"+{amount} coins!"
    return f"{amount} coins"
