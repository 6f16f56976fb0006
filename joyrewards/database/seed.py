"""
joyrewards.database.seed — Default Data Seeder
===============================================

Baseline settings, reward policies and streak milestones seeded on first
startup so the economy works out of the box.

Idempotent — only inserts keys that don't already exist.  Rows edited by
admins later are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from joyrewards.constants import DEFAULT_RARITY_PERCENTAGES
from joyrewards.database.models import CoinReward, Setting, StreakMilestone

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "scratch.bonus_card_base_cost": (
        50, "scratch", "Coins for the first bonus card of the day (doubles each purchase)",
    ),
    "scratch.max_bonus_cards_per_day": (
        1, "scratch", "How many bonus cards a member may buy per day",
    ),
    "stickers.default_rarity_percentages": (
        DEFAULT_RARITY_PERCENTAGES, "scratch",
        "Tier percentages used by collections with use_default_rarity",
    ),
    "streak.free_pack_expiry_days": (
        7, "streak", "Days a milestone sticker pack stays valid",
    ),
    "chore_wheel.segments": (
        [
            {"prize_type": "coins", "amount": 5, "weight": 30},
            {"prize_type": "coins", "amount": 10, "weight": 25},
            {"prize_type": "coins", "amount": 25, "weight": 15},
            {"prize_type": "coins", "amount": 50, "weight": 5},
            {"prize_type": "sticker_pack", "amount": 1, "weight": 20},
            {"prize_type": "sticker_pack", "amount": 2, "weight": 5},
        ],
        "chores", "Chore reward wheel segments (prize_type, amount, weight)",
    ),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


DEFAULT_COIN_REWARDS: dict[str, tuple[int, str, str]] = {
    "daily_login": (5, "streaks", "Daily login"),
    "chore_completed": (5, "chores", "Chore completed"),
    "all_chores_completed": (20, "chores", "All chores completed for the day"),
    "memory_match_complete": (10, "games", "Memory Match game completed"),
    "match3_complete": (10, "games", "Match-3 level completed"),
    "cash_register_level_complete": (5, "games", "Cash register level completed"),
    "time_trial_top_3": (100, "leaderboard", "Monthly time trial — top 3"),
    "time_trial_top_5": (50, "leaderboard", "Monthly time trial — top 5"),
    "time_trial_top_10": (20, "leaderboard", "Monthly time trial — top 10"),
    "discussion_post": (2, "social", "Posted in a discussion"),
    "prayer_request_shared": (2, "social", "Shared a prayer request"),
}
"""``reward_key`` → ``(coin_amount, category, reward_name)``."""


DEFAULT_STREAK_MILESTONES: list[dict] = [
    {"days_required": 3, "badge_name": "Getting Started", "badge_icon": "🌱",
     "bonus_coins": 10, "free_sticker_packs": 0},
    {"days_required": 7, "badge_name": "Week Warrior", "badge_icon": "⭐",
     "bonus_coins": 25, "free_sticker_packs": 1},
    {"days_required": 14, "badge_name": "Two-Week Champ", "badge_icon": "🏅",
     "bonus_coins": 50, "free_sticker_packs": 1},
    {"days_required": 30, "badge_name": "Monthly Superstar", "badge_icon": "🏆",
     "bonus_coins": 100, "free_sticker_packs": 2},
]


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_defaults(engine: Engine) -> None:
    """Insert default settings, reward policies and milestones that don't
    yet exist.  Safe to call on every startup.
    """
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            if session.get(Setting, key) is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1

        for key, (amount, category, name) in DEFAULT_COIN_REWARDS.items():
            if session.get(CoinReward, key) is None:
                session.add(CoinReward(
                    reward_key=key,
                    reward_name=name,
                    category=category,
                    coin_amount=amount,
                    is_active=True,
                ))
                inserted += 1

        existing_days = set(session.scalars(select(StreakMilestone.days_required)).all())
        for milestone in DEFAULT_STREAK_MILESTONES:
            if milestone["days_required"] not in existing_days:
                session.add(StreakMilestone(**milestone))
                inserted += 1

        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default rows.", inserted)
