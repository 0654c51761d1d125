"""Create operators, promotion_history and event_log tables

Revision ID: 5c2e9a7d1f04
Revises:
Create Date: 2026-10-19 09:12:31.480211

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e9a7d1f04'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- operators ---
    op.create_table(
        "operators",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("discord_id", sa.BigInteger, nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("biweekly_points", sa.Integer, server_default="0"),
        sa.Column("all_time_points", sa.Integer, server_default="0"),
        sa.Column("rank_points", sa.Integer, server_default="0"),
        sa.Column("biweekly_events", sa.Integer, server_default="0"),
        sa.Column("total_events", sa.Integer, server_default="0"),
        sa.Column("daily_points_today", sa.Integer, server_default="0"),
        sa.Column("last_daily_reset", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_points_update", sa.DateTime(timezone=True), nullable=True),
        sa.Column("biweekly_quota", sa.Integer, server_default="20"),
        sa.Column("quota_completed", sa.Boolean, server_default=sa.text("false")),
        sa.Column("rank_level", sa.Integer, server_default="1"),
        sa.Column("rank_name", sa.String(50), server_default="Private"),
        sa.Column("promotion_eligible", sa.Boolean, server_default=sa.text("false")),
        sa.Column("last_promotion_check", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rank_lock_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rank_lock_notified", sa.Boolean, server_default=sa.text("false")),
        sa.Column("quota_streak", sa.Integer, server_default="0"),
        sa.Column("longest_streak", sa.Integer, server_default="0"),
        sa.Column("streak_bonus_active", sa.Boolean, server_default=sa.text("false")),
        sa.Column("current_streak_bonus", sa.Integer, server_default="0"),
        sa.Column("streak_at_risk", sa.Boolean, server_default=sa.text("false")),
        sa.Column("last_streak_warning", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_quota_completion", sa.DateTime(timezone=True), nullable=True),
        sa.Column("active", sa.Boolean, server_default=sa.text("true")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.BigInteger, nullable=True),
        sa.Column("deletion_reason", sa.Text, nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_operators_active_biweekly", "operators", ["active", "biweekly_points"])
    op.create_index("ix_operators_rank_level", "operators", ["rank_level"])

    # --- promotion_history ---
    op.create_table(
        "promotion_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "operator_id",
            sa.Integer,
            sa.ForeignKey("operators.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_level", sa.Integer, nullable=False),
        sa.Column("from_name", sa.String(50), nullable=False),
        sa.Column("to_level", sa.Integer, nullable=False),
        sa.Column("to_name", sa.String(50), nullable=False),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("promoted_by_id", sa.BigInteger, nullable=True),
        sa.Column("promoted_by_name", sa.String(100), nullable=True),
        sa.Column("promotion_type", sa.String(20), server_default="standard"),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("rank_points_at_promotion", sa.Integer, server_default="0"),
        sa.Column("all_time_points_at_promotion", sa.Integer, server_default="0"),
        sa.Column("lock_days", sa.Integer, server_default="0"),
        sa.Column("lock_until", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_promotion_history_operator", "promotion_history", ["operator_id"])

    # --- event_log ---
    op.create_table(
        "event_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "operator_id",
            sa.Integer,
            sa.ForeignKey("operators.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("quantity", sa.Integer, server_default="1"),
        sa.Column("base_points", sa.Integer, server_default="0"),
        sa.Column("streak_bonus", sa.Integer, server_default="0"),
        sa.Column("points_awarded", sa.Integer, server_default="0"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_event_log_operator_ts", "event_log", ["operator_id", "timestamp"])


def downgrade() -> None:
    op.drop_index("ix_event_log_operator_ts", table_name="event_log")
    op.drop_table("event_log")
    op.drop_index("ix_promotion_history_operator", table_name="promotion_history")
    op.drop_table("promotion_history")
    op.drop_index("ix_operators_rank_level", table_name="operators")
    op.drop_index("ix_operators_active_biweekly", table_name="operators")
    op.drop_table("operators")
