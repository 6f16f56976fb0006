"""Initial rewards schema: ledger, award records, stickers, streaks, wheel

Revision ID: 4c2e9a1f7b3d
Revises:
Create Date: 2026-03-02 10:12:41.108233

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4c2e9a1f7b3d'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _profile_fk(**kw) -> sa.Column:
    return sa.Column(
        "user_id", sa.String(64),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False, **kw,
    )


def upgrade() -> None:
    # --- profiles & ledger ---
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("coins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("coins >= 0", name="ck_profiles_coins_non_negative"),
    )

    op.create_table(
        "coin_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _profile_fk(),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(30), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("related_item_id", sa.String(100), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_coin_transactions_user_time", "coin_transactions", ["user_id", "created_at"]
    )

    op.create_table(
        "coin_rewards",
        sa.Column("reward_key", sa.String(100), primary_key=True),
        sa.Column("reward_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("coin_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("coin_amount >= 0", name="ck_coin_rewards_amount_non_negative"),
    )

    op.create_table(
        "award_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _profile_fk(),
        sa.Column("period_key", sa.String(32), nullable=False),
        sa.Column("scope_key", sa.String(100), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("coins_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "user_id", "period_key", "scope_key",
            name="uq_award_records_user_period_scope",
        ),
    )
    op.create_index(
        "ix_award_records_period_scope", "award_records", ["period_key", "scope_key"]
    )

    op.create_table(
        "time_trial_bests",
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("duration_seconds", sa.Integer(), primary_key=True),
        sa.Column("best_levels", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("best_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_time_trial_bests_ranking", "time_trial_bests",
        ["duration_seconds", "best_levels", "best_score"],
    )

    # --- stickers ---
    op.create_table(
        "sticker_collections",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("theme", sa.String(100), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("display_order", sa.Integer(), server_default="0"),
        sa.Column("use_default_rarity", sa.Boolean(), server_default=sa.false()),
        sa.Column("rarity_percentages", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "stickers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "collection_id", sa.Integer(),
            sa.ForeignKey("sticker_collections.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("rarity", sa.String(20), nullable=False, server_default="common"),
        sa.Column("drop_rate", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("sticker_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )
    op.create_index("ix_stickers_collection", "stickers", ["collection_id", "sticker_number"])

    op.create_table(
        "user_stickers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _profile_fk(),
        sa.Column(
            "sticker_id", sa.Integer(),
            sa.ForeignKey("stickers.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "collection_id", sa.Integer(),
            sa.ForeignKey("sticker_collections.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "obtained_from", sa.String(30), nullable=False, server_default="daily_scratch"
        ),
        sa.Column(
            "first_obtained_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.Column(
            "last_obtained_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.UniqueConstraint("user_id", "sticker_id", name="uq_user_stickers_user_sticker"),
    )
    op.create_index(
        "ix_user_stickers_user_collection", "user_stickers", ["user_id", "collection_id"]
    )

    op.create_table(
        "daily_scratch_cards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _profile_fk(),
        sa.Column(
            "collection_id", sa.Integer(),
            sa.ForeignKey("sticker_collections.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("is_bonus_card", sa.Boolean(), server_default=sa.false()),
        sa.Column("purchase_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source", sa.String(20), nullable=False, server_default="daily"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_scratched", sa.Boolean(), server_default=sa.false()),
        sa.Column(
            "revealed_sticker_id", sa.Integer(),
            sa.ForeignKey("stickers.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("scratched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "user_id", "date", "is_bonus_card", "purchase_number",
            name="uq_scratch_cards_user_date_bonus_number",
        ),
    )
    op.create_index("ix_scratch_cards_user_date", "daily_scratch_cards", ["user_id", "date"])

    # --- streaks & chore wheel ---
    op.create_table(
        "user_streaks",
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_login_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_login_date", sa.Date(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "streak_milestones",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("days_required", sa.Integer(), nullable=False, unique=True),
        sa.Column("badge_name", sa.String(100), nullable=False),
        sa.Column("badge_icon", sa.String(20), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("bonus_coins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("free_sticker_packs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )

    op.create_table(
        "chore_wheel_spins",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _profile_fk(),
        sa.Column("spin_date", sa.Date(), nullable=False),
        sa.Column("prize_type", sa.String(30), nullable=False),
        sa.Column("prize_amount", sa.Integer(), nullable=False),
        sa.Column("card_ids", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "spin_date", name="uq_chore_wheel_spins_user_date"),
    )

    # --- admin ---
    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_settings_category", "settings", ["category"])

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"]
    )


def downgrade() -> None:
    for table in (
        "admin_log",
        "settings",
        "chore_wheel_spins",
        "streak_milestones",
        "user_streaks",
        "daily_scratch_cards",
        "user_stickers",
        "stickers",
        "sticker_collections",
        "time_trial_bests",
        "award_records",
        "coin_rewards",
        "coin_transactions",
        "profiles",
    ):
        op.drop_table(table)
