"""
joyrewards.engine.policy — Reward Policy & Settings Cache
==========================================================

In-memory view of the ``coin_rewards`` policy table and the ``settings``
table.  One :class:`RewardPolicy` is constructed at startup and passed into
every service call; tests build their own from a fixture engine.  Admin
mutations call :meth:`RewardPolicy.reload` after commit so changes apply
immediately in this process.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from joyrewards.database.models import CoinReward, Setting

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PolicyEntry:
    """One award policy row, detached from the session."""

    reward_key: str
    amount: int
    active: bool
    name: str = ""

    @property
    def payable(self) -> bool:
        """Inactive or zero-amount policies are skipped, not errors."""
        return self.active and self.amount > 0


class RewardPolicy:
    """Thread-safe cache of reward amounts and gameplay settings.

    Usage:
        policy = RewardPolicy(engine)
        policy.load_all()

        entry = policy.get_policy("time_trial_top_3")
        coins = policy.amount_for("daily_login")
        base_cost = policy.get_int("scratch.bonus_card_base_cost", 50)
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        # reward_key → PolicyEntry
        self._policies: dict[str, PolicyEntry] = {}
        # key → parsed JSON value
        self._settings: dict[str, Any] = {}
        self._loaded = False

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load policies and settings from the DB.  Call on startup."""
        self._load_policies()
        self._load_settings()
        with self._lock:
            self._loaded = True
        logger.info(
            "RewardPolicy loaded: %d reward policies, %d settings",
            len(self._policies), len(self._settings),
        )

    def reload(self) -> None:
        """Re-read everything after an admin change."""
        self.load_all()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load_all()

    def _load_policies(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(select(CoinReward)).all()
            policies = {
                row.reward_key: PolicyEntry(
                    reward_key=row.reward_key,
                    amount=row.coin_amount,
                    active=bool(row.is_active),
                    name=row.reward_name,
                )
                for row in rows
            }
        with self._lock:
            self._policies = policies

    def _load_settings(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json
        with self._lock:
            self._settings = parsed

    # -------------------------------------------------------------------
    # Policy reads
    # -------------------------------------------------------------------
    def get_policy(self, reward_key: str) -> PolicyEntry | None:
        """Return the policy for *reward_key*, or ``None`` if undefined."""
        self._ensure_loaded()
        with self._lock:
            return self._policies.get(reward_key)

    def amount_for(self, reward_key: str) -> int:
        """Coins a policy pays right now; 0 when missing, inactive or zero."""
        entry = self.get_policy(reward_key)
        if entry is None or not entry.payable:
            return 0
        return entry.amount

    def all_policies(self) -> list[PolicyEntry]:
        self._ensure_loaded()
        with self._lock:
            return sorted(self._policies.values(), key=lambda p: p.reward_key)

    # -------------------------------------------------------------------
    # Setting reads
    # -------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        self._ensure_loaded()
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get_setting(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Setting %s is not an int (%r); using %d", key, value, default)
            return default
