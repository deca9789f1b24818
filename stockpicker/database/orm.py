"""SQLAlchemy ORM models for Stock Picker Madness.

Uses SQLAlchemy 2.0 declarative style with async sessions.

Usage:
    from stockpicker.database.orm import Competition, Participant
    from stockpicker.database.connection import get_session

    async with get_session() as session:
        competition = await session.get(Competition, competition_id)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    TypeDecorator,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


# Naming convention for constraints and indexes (deterministic names)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC.

    SQLite drops tzinfo on the way back; values are re-tagged as UTC on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# =============================================================================
# COMPETITIONS
# =============================================================================


class Competition(Base):
    """A stock-picking competition over a pick window."""
    __tablename__ = "competitions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    slug: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    pick_window_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    pick_window_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    mode: Mapped[str] = mapped_column(String(16), nullable=False, default="live")
    finalized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    budget: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    # Relationships
    participants: Mapped[list[Participant]] = relationship(
        back_populates="competition",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    audit_events: Mapped[list[AuditEvent]] = relationship(
        back_populates="competition",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("pick_window_end > pick_window_start", name="window_order"),
        CheckConstraint("mode IN ('live', 'backfill')", name="valid_mode"),
        CheckConstraint("budget IS NULL OR budget > 0", name="positive_budget"),
        Index("idx_competitions_created", "created_at"),
    )


class Participant(Base):
    """A named entrant in one competition."""
    __tablename__ = "participants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    competition_id: Mapped[str] = mapped_column(
        ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    # Mirrors the first portfolio stock for older clients; not authoritative
    ticker: Mapped[str | None] = mapped_column(String(10))
    percent_change: Mapped[float | None] = mapped_column(Float)
    pick_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    competition: Mapped[Competition] = relationship(back_populates="participants")
    stocks: Mapped[list[PortfolioStock]] = relationship(
        back_populates="participant",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PortfolioStock.ticker",
    )

    __table_args__ = (
        Index("idx_participants_competition", "competition_id"),
    )


# Case-insensitive name uniqueness per competition
Index(
    "uq_participants_competition_name",
    Participant.competition_id,
    func.lower(Participant.name),
    unique=True,
)


class PortfolioStock(Base):
    """One ticker in a participant's portfolio."""
    __tablename__ = "portfolio_stocks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    participant_id: Mapped[str] = mapped_column(
        ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    ticker: Mapped[str] = mapped_column(String(10), nullable=False)
    shares: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    baseline_price: Mapped[float | None] = mapped_column(Float)
    current_price: Mapped[float | None] = mapped_column(Float)
    percent_change: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    participant: Mapped[Participant] = relationship(back_populates="stocks")

    __table_args__ = (
        UniqueConstraint("participant_id", "ticker", name="uq_portfolio_stocks_ticker"),
        CheckConstraint("shares > 0", name="positive_shares"),
        Index("idx_portfolio_stocks_participant", "participant_id"),
        Index("idx_portfolio_stocks_ticker", "ticker"),
    )


# =============================================================================
# APPEND-ONLY LOGS
# =============================================================================


class PriceHistory(Base):
    """Every successfully fetched price, kept for audit and future charts."""
    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticker: Mapped[str] = mapped_column(String(10), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_price_history_ticker", "ticker", "fetched_at"),
    )


class AuditEvent(Base):
    """Competition audit trail (joins, portfolio edits, lock/unlock)."""
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    competition_id: Mapped[str] = mapped_column(
        ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor: Mapped[str | None] = mapped_column(String(50))
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    competition: Mapped[Competition] = relationship(back_populates="audit_events")

    __table_args__ = (
        Index("idx_audit_log_competition", "competition_id", "created_at"),
    )
