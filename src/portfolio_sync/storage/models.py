"""SQLAlchemy models for persistent storage.

This module defines the database schema for sync job records and
daily portfolio snapshots.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SyncJobModel(Base):
    """Persisted sync job record (last known state of each job)."""

    __tablename__ = "wallet_sync_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    wallet_id: Mapped[str] = mapped_column(String(80), nullable=False)
    job_type: Mapped[str] = mapped_column(String(20), nullable=False)  # full|portfolio-only|...
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # queued|processing|...
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sync_options: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    queued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    sync_result: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_kind: Mapped[str | None] = mapped_column(String(20), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_wallet_sync_jobs_wallet", "wallet_id"),
        Index("idx_wallet_sync_jobs_status", "status"),
    )


class PortfolioSnapshotModel(Base):
    """One snapshot per wallet per calendar day."""

    __tablename__ = "portfolio_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[str] = mapped_column(String(80), nullable=False)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_value: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    day_change: Mapped[Decimal | None] = mapped_column(Numeric(30, 10), nullable=True)
    day_change_percent: Mapped[Decimal | None] = mapped_column(Numeric(20, 10), nullable=True)
    positions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    chains_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("wallet_id", "snapshot_date", name="uq_portfolio_snapshots_wallet_date"),
        Index("idx_portfolio_snapshots_wallet_date", "wallet_id", "snapshot_date"),
    )
