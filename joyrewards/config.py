"""
joyrewards.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for **infrastructure-only** settings (identity,
timezone, leaderboard shape, API port).  Gameplay tuning values (bonus card
cost, wheel segments) live in the ``settings`` table and reward amounts in
the ``coin_rewards`` table, both editable by admins.

Usage::

    from joyrewards.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Joy House"
    print(cfg.timezone)          # "America/Denver"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_TIMEZONE = "America/Denver"
DEFAULT_LEADERBOARD_DURATIONS: tuple[int, ...] = (60, 120, 300)
DEFAULT_LEADERBOARD_SIZE = 10


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class JoyRewardsConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Calendar — "today" for daily cards, streaks and wheel spins
    timezone: str = DEFAULT_TIMEZONE

    # Time-trial leaderboard shape for the monthly batch awarder
    leaderboard_durations: tuple[int, ...] = DEFAULT_LEADERBOARD_DURATIONS
    leaderboard_size: int = DEFAULT_LEADERBOARD_SIZE

    # API
    api_port: int = 8000


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> JoyRewardsConfig:
    """Read *path* and return a :class:`JoyRewardsConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    durations = raw.get("leaderboard_durations") or DEFAULT_LEADERBOARD_DURATIONS

    return JoyRewardsConfig(
        community_name=raw["community_name"],
        timezone=raw.get("timezone") or DEFAULT_TIMEZONE,
        leaderboard_durations=tuple(int(d) for d in durations),
        leaderboard_size=int(raw.get("leaderboard_size", DEFAULT_LEADERBOARD_SIZE)),
        api_port=int(raw.get("api_port", 8000)),
    )
