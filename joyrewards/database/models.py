"""
joyrewards.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- profiles             — One row per member; holds the coin balance
- coin_transactions    — Append-only coin ledger
- coin_rewards         — Award policy table (reward key → coin amount)
- award_records        — Idempotency markers, unique per (user, period, scope)
- time_trial_bests     — Personal bests feeding the monthly leaderboard
- sticker_collections  — Themed sticker sets
- stickers             — Collectible reward units with rarity + drop rate
- user_stickers        — Per-user sticker inventory
- daily_scratch_cards  — Daily / bonus scratch cards
- user_streaks         — Daily login streak state
- streak_milestones    — Admin-defined streak rewards
- chore_wheel_spins    — One chore wheel spin per user per day
- settings             — Admin-configurable key-value store
- admin_log            — Append-only audit trail
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all JoyRewards ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TransactionType(enum.StrEnum):
    """Kinds of rows in the coin ledger."""
    EARNED = "earned"
    SPENT = "spent"
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"


class StickerRarity(enum.StrEnum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    MANUAL_AWARD = "MANUAL_AWARD"
    MANUAL_DEDUCT = "MANUAL_DEDUCT"


# ---------------------------------------------------------------------------
# Profile — one row per member, owns the coin balance
# ---------------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    transactions: Mapped[list[CoinTransaction]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("coins >= 0", name="ck_profiles_coins_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id!r} coins={self.coins}>"


# ---------------------------------------------------------------------------
# CoinTransaction — append-only coin ledger
# ---------------------------------------------------------------------------
class CoinTransaction(Base):
    __tablename__ = "coin_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # signed
    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    related_item_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    profile: Mapped[Profile] = relationship(back_populates="transactions")

    __table_args__ = (
        Index("ix_coin_transactions_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<CoinTransaction id={self.id} user={self.user_id!r} "
            f"amount={self.amount} type={self.transaction_type}>"
        )


# ---------------------------------------------------------------------------
# CoinReward — award policy table
# ---------------------------------------------------------------------------
class CoinReward(Base):
    """Maps a reward key (``daily_login``, ``time_trial_top_3``) to coins.

    Edited by admins only.  Inactive or zero-amount entries are skipped
    silently by the award engine.
    """
    __tablename__ = "coin_rewards"

    reward_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    reward_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    coin_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("coin_amount >= 0", name="ck_coin_rewards_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<CoinReward key={self.reward_key!r} amount={self.coin_amount} "
            f"active={self.is_active}>"
        )


# ---------------------------------------------------------------------------
# AwardRecord — idempotency marker
# ---------------------------------------------------------------------------
class AwardRecord(Base):
    """Existence of a row blocks re-awarding the same (user, period, scope).

    The unique constraint is the authoritative guard; application-level
    existence checks only skip obvious duplicates early.
    """
    __tablename__ = "award_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    period_key: Mapped[str] = mapped_column(String(32), nullable=False)
    scope_key: Mapped[str] = mapped_column(String(100), nullable=False)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    coins_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "period_key", "scope_key",
            name="uq_award_records_user_period_scope",
        ),
        Index("ix_award_records_period_scope", "period_key", "scope_key"),
    )

    def __repr__(self) -> str:
        return (
            f"<AwardRecord user={self.user_id!r} period={self.period_key!r} "
            f"scope={self.scope_key!r} coins={self.coins_awarded}>"
        )


# ---------------------------------------------------------------------------
# TimeTrialBest — leaderboard source data
# ---------------------------------------------------------------------------
class TimeTrialBest(Base):
    __tablename__ = "time_trial_bests"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    duration_seconds: Mapped[int] = mapped_column(Integer, primary_key=True)
    best_levels: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index(
            "ix_time_trial_bests_ranking",
            "duration_seconds", "best_levels", "best_score",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<TimeTrialBest user={self.user_id!r} duration={self.duration_seconds} "
            f"levels={self.best_levels} score={self.best_score}>"
        )


# ---------------------------------------------------------------------------
# StickerCollection — themed sticker sets
# ---------------------------------------------------------------------------
class StickerCollection(Base):
    __tablename__ = "sticker_collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    theme: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    # When set, sticker weights come from rarity tier percentages instead
    # of each sticker's own drop_rate.
    use_default_rarity: Mapped[bool] = mapped_column(Boolean, default=False)
    rarity_percentages: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    stickers: Mapped[list[Sticker]] = relationship(
        back_populates="collection", order_by="Sticker.sticker_number"
    )

    def __repr__(self) -> str:
        return f"<StickerCollection id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Sticker — collectible reward unit
# ---------------------------------------------------------------------------
class Sticker(Base):
    __tablename__ = "stickers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sticker_collections.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    rarity: Mapped[str] = mapped_column(
        String(20), nullable=False, default=StickerRarity.COMMON.value
    )
    drop_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    sticker_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    collection: Mapped[StickerCollection] = relationship(back_populates="stickers")

    __table_args__ = (
        Index("ix_stickers_collection", "collection_id", "sticker_number"),
    )

    def __repr__(self) -> str:
        return f"<Sticker id={self.id} name={self.name!r} rarity={self.rarity}>"


# ---------------------------------------------------------------------------
# UserSticker — per-user inventory
# ---------------------------------------------------------------------------
class UserSticker(Base):
    __tablename__ = "user_stickers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    sticker_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stickers.id", ondelete="CASCADE"), nullable=False
    )
    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sticker_collections.id", ondelete="CASCADE"),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    obtained_from: Mapped[str] = mapped_column(
        String(30), nullable=False, default="daily_scratch"
    )
    first_obtained_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    last_obtained_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    sticker: Mapped[Sticker] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "sticker_id", name="uq_user_stickers_user_sticker"),
        Index("ix_user_stickers_user_collection", "user_id", "collection_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserSticker user={self.user_id!r} sticker={self.sticker_id} "
            f"qty={self.quantity}>"
        )


# ---------------------------------------------------------------------------
# DailyScratchCard — unscratched → scratched | expired
# ---------------------------------------------------------------------------
class DailyScratchCard(Base):
    __tablename__ = "daily_scratch_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sticker_collections.id", ondelete="CASCADE"),
        nullable=False,
    )
    card_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    is_bonus_card: Mapped[bool] = mapped_column(Boolean, default=False)
    purchase_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # daily | purchase | streak | wheel
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="daily")
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_scratched: Mapped[bool] = mapped_column(Boolean, default=False)
    revealed_sticker_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("stickers.id", ondelete="SET NULL"), nullable=True
    )
    scratched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        # One daily card per user per day; bonus cards numbered 1..n
        UniqueConstraint(
            "user_id", "date", "is_bonus_card", "purchase_number",
            name="uq_scratch_cards_user_date_bonus_number",
        ),
        Index("ix_scratch_cards_user_date", "user_id", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<DailyScratchCard id={self.id} user={self.user_id!r} "
            f"date={self.card_date} bonus={self.is_bonus_card} "
            f"scratched={self.is_scratched}>"
        )


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------
class UserStreak(Base):
    __tablename__ = "user_streaks"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_login_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_login_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<UserStreak user={self.user_id!r} current={self.current_streak}>"


class StreakMilestone(Base):
    __tablename__ = "streak_milestones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    days_required: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    badge_name: Mapped[str] = mapped_column(String(100), nullable=False)
    badge_icon: Mapped[str | None] = mapped_column(String(20), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    bonus_coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    free_sticker_packs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<StreakMilestone days={self.days_required} badge={self.badge_name!r}>"


# ---------------------------------------------------------------------------
# ChoreWheelSpin — one per user per local day
# ---------------------------------------------------------------------------
class ChoreWheelSpin(Base):
    __tablename__ = "chore_wheel_spins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    spin_date: Mapped[date] = mapped_column(Date, nullable=False)
    prize_type: Mapped[str] = mapped_column(String(30), nullable=False)
    prize_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    card_ids: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "spin_date", name="uq_chore_wheel_spins_user_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<ChoreWheelSpin user={self.user_id!r} date={self.spin_date} "
            f"prize={self.prize_type}:{self.prize_amount}>"
        )


# ---------------------------------------------------------------------------
# Setting — admin-configurable key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Gameplay tuning knobs (bonus card cost, wheel segments) live here so
    admins can adjust values without redeploying.  Values are stored as
    JSON strings; typed accessors live in
    :class:`~joyrewards.engine.policy.RewardPolicy`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id!r} action={self.action_type}>"
