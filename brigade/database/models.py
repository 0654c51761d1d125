"""
brigade.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- operators          — One row per tracked member (Discord snowflake unique)
- promotion_history  — Append-only promotion audit trail
- event_log          — Append-only record of submitted events
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Brigade ORM models."""


# Python-side defaults so unsaved operators are usable by the engine.
# Column defaults only apply at INSERT time.
_OPERATOR_DEFAULTS: dict[str, object] = {
    "biweekly_points": 0,
    "all_time_points": 0,
    "rank_points": 0,
    "biweekly_events": 0,
    "total_events": 0,
    "daily_points_today": 0,
    "biweekly_quota": 20,
    "quota_completed": False,
    "rank_level": 1,
    "rank_name": "Private",
    "promotion_eligible": False,
    "rank_lock_notified": False,
    "quota_streak": 0,
    "longest_streak": 0,
    "streak_bonus_active": False,
    "current_streak_bonus": 0,
    "streak_at_risk": False,
    "active": True,
}


# ---------------------------------------------------------------------------
# Operators — one row per member
# ---------------------------------------------------------------------------
class Operator(Base):
    __tablename__ = "operators"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discord_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Points
    biweekly_points: Mapped[int] = mapped_column(Integer, default=0)
    all_time_points: Mapped[int] = mapped_column(Integer, default=0)
    rank_points: Mapped[int] = mapped_column(Integer, default=0)

    # Activity counters
    biweekly_events: Mapped[int] = mapped_column(Integer, default=0)
    total_events: Mapped[int] = mapped_column(Integer, default=0)
    daily_points_today: Mapped[int] = mapped_column(Integer, default=0)
    last_daily_reset: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_points_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Quota
    biweekly_quota: Mapped[int] = mapped_column(Integer, default=20)
    quota_completed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Rank
    rank_level: Mapped[int] = mapped_column(Integer, default=1)
    rank_name: Mapped[str] = mapped_column(String(50), default="Private")
    promotion_eligible: Mapped[bool] = mapped_column(Boolean, default=False)
    last_promotion_check: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rank_lock_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rank_lock_notified: Mapped[bool] = mapped_column(Boolean, default=False)

    # Streaks
    quota_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    streak_bonus_active: Mapped[bool] = mapped_column(Boolean, default=False)
    current_streak_bonus: Mapped[int] = mapped_column(Integer, default=0)
    streak_at_risk: Mapped[bool] = mapped_column(Boolean, default=False)
    last_streak_warning: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_quota_completion: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Lifecycle
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_by: Mapped[int | None] = mapped_column(BigInteger)
    deletion_reason: Mapped[str | None] = mapped_column(Text)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    promotion_history: Mapped[list[PromotionRecord]] = relationship(
        back_populates="operator",
        cascade="all, delete-orphan",
        order_by="PromotionRecord.id",
    )
    event_logs: Mapped[list[EventLog]] = relationship(
        back_populates="operator", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_operators_active_biweekly", "active", "biweekly_points"),
        Index("ix_operators_rank_level", "rank_level"),
    )

    def __init__(self, **kwargs) -> None:
        for key, value in _OPERATOR_DEFAULTS.items():
            kwargs.setdefault(key, value)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return (
            f"<Operator discord_id={self.discord_id} name={self.display_name!r} "
            f"rank={self.rank_level}>"
        )


# ---------------------------------------------------------------------------
# PromotionRecord — append-only promotion audit trail
# ---------------------------------------------------------------------------
class PromotionRecord(Base):
    """One promotion.  Written once, never updated or deleted by the bot."""
    __tablename__ = "promotion_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    operator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("operators.id", ondelete="CASCADE"), nullable=False
    )
    from_level: Mapped[int] = mapped_column(Integer, nullable=False)
    from_name: Mapped[str] = mapped_column(String(50), nullable=False)
    to_level: Mapped[int] = mapped_column(Integer, nullable=False)
    to_name: Mapped[str] = mapped_column(String(50), nullable=False)
    promoted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    promoted_by_id: Mapped[int | None] = mapped_column(BigInteger)
    promoted_by_name: Mapped[str | None] = mapped_column(String(100))
    promotion_type: Mapped[str] = mapped_column(String(20), default="standard")  # standard, force, bypass_lock
    reason: Mapped[str | None] = mapped_column(Text)
    rank_points_at_promotion: Mapped[int] = mapped_column(Integer, default=0)
    all_time_points_at_promotion: Mapped[int] = mapped_column(Integer, default=0)
    lock_days: Mapped[int] = mapped_column(Integer, default=0)
    lock_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    operator: Mapped[Operator] = relationship(back_populates="promotion_history")

    __table_args__ = (
        Index("ix_promotion_history_operator", "operator_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<PromotionRecord operator={self.operator_id} "
            f"{self.from_level}→{self.to_level} type={self.promotion_type}>"
        )


# ---------------------------------------------------------------------------
# EventLog — append-only submitted events
# ---------------------------------------------------------------------------
class EventLog(Base):
    __tablename__ = "event_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    operator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("operators.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    base_points: Mapped[int] = mapped_column(Integer, default=0)
    streak_bonus: Mapped[int] = mapped_column(Integer, default=0)
    points_awarded: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    operator: Mapped[Operator] = relationship(back_populates="event_logs")

    __table_args__ = (
        Index("ix_event_log_operator_ts", "operator_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<EventLog id={self.id} operator={self.operator_id} type={self.event_type}>"
