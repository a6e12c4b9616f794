"""Repository pattern implementations for data access.

This module provides data access abstractions for sync job records and
daily portfolio snapshots.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from portfolio_sync.storage.models import PortfolioSnapshotModel, SyncJobModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _insert_for(session: AsyncSession) -> Any:
    """Return the dialect-specific INSERT construct supporting ON CONFLICT."""
    bind = session.get_bind()
    if bind.dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


@dataclass
class SyncJobDTO:
    """Data transfer object for sync job records."""

    id: str
    wallet_id: str
    job_type: str
    status: str
    priority: int = 0
    sync_options: dict[str, Any] = field(default_factory=dict)
    queued_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    sync_result: dict[str, Any] | None = None
    error_message: str | None = None
    error_kind: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SyncJobModel) -> SyncJobDTO:
        """Create DTO from SQLAlchemy model."""
        return cls(
            id=model.id,
            wallet_id=model.wallet_id,
            job_type=model.job_type,
            status=model.status,
            priority=model.priority,
            sync_options=dict(model.sync_options or {}),
            queued_at=model.queued_at,
            started_at=model.started_at,
            completed_at=model.completed_at,
            duration_ms=model.duration_ms,
            sync_result=model.sync_result,
            error_message=model.error_message,
            error_kind=model.error_kind,
            updated_at=model.updated_at,
        )


class SyncJobRepository:
    """Repository for persisted sync job records."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, job_id: str) -> SyncJobDTO | None:
        result = await self.session.execute(select(SyncJobModel).where(SyncJobModel.id == job_id))
        model = result.scalar_one_or_none()
        return SyncJobDTO.from_model(model) if model else None

    async def upsert(self, dto: SyncJobDTO) -> SyncJobDTO:
        """Insert or overwrite the job record keyed by id."""
        now = datetime.now(UTC)
        values = {
            "id": dto.id,
            "wallet_id": dto.wallet_id,
            "job_type": dto.job_type,
            "status": dto.status,
            "priority": dto.priority,
            "sync_options": dto.sync_options,
            "queued_at": dto.queued_at,
            "started_at": dto.started_at,
            "completed_at": dto.completed_at,
            "duration_ms": dto.duration_ms,
            "sync_result": dto.sync_result,
            "error_message": dto.error_message,
            "error_kind": dto.error_kind,
        }
        insert = _insert_for(self.session)
        stmt = insert(SyncJobModel).values(**values, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "status": stmt.excluded.status,
                "priority": stmt.excluded.priority,
                "sync_options": stmt.excluded.sync_options,
                "queued_at": stmt.excluded.queued_at,
                "started_at": stmt.excluded.started_at,
                "completed_at": stmt.excluded.completed_at,
                "duration_ms": stmt.excluded.duration_ms,
                "sync_result": stmt.excluded.sync_result,
                "error_message": stmt.excluded.error_message,
                "error_kind": stmt.excluded.error_kind,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return dto

    async def list_for_wallet(self, wallet_id: str, *, limit: int = 50) -> list[SyncJobDTO]:
        """Return a wallet's most recent jobs, newest first."""
        result = await self.session.execute(
            select(SyncJobModel)
            .where(SyncJobModel.wallet_id == wallet_id)
            .order_by(SyncJobModel.queued_at.desc())
            .limit(limit)
        )
        return [SyncJobDTO.from_model(m) for m in result.scalars().all()]


@dataclass
class PortfolioSnapshotDTO:
    """Data transfer object for daily portfolio snapshots."""

    wallet_id: str
    snapshot_date: date
    total_value: Decimal
    day_change: Decimal | None = None
    day_change_percent: Decimal | None = None
    positions_count: int = 0
    chains_count: int = 0
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: PortfolioSnapshotModel) -> PortfolioSnapshotDTO:
        """Create DTO from SQLAlchemy model."""
        return cls(
            wallet_id=model.wallet_id,
            snapshot_date=model.snapshot_date,
            total_value=model.total_value,
            day_change=model.day_change,
            day_change_percent=model.day_change_percent,
            positions_count=model.positions_count,
            chains_count=model.chains_count,
            created_at=model.created_at,
        )


class PortfolioSnapshotRepository:
    """Repository for daily portfolio snapshots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, dto: PortfolioSnapshotDTO) -> PortfolioSnapshotDTO:
        """Insert or replace the snapshot for (wallet_id, snapshot_date)."""
        now = datetime.now(UTC)
        values = {
            "wallet_id": dto.wallet_id,
            "snapshot_date": dto.snapshot_date,
            "total_value": dto.total_value,
            "day_change": dto.day_change,
            "day_change_percent": dto.day_change_percent,
            "positions_count": dto.positions_count,
            "chains_count": dto.chains_count,
        }
        insert = _insert_for(self.session)
        stmt = insert(PortfolioSnapshotModel).values(**values, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["wallet_id", "snapshot_date"],
            set_={
                "total_value": stmt.excluded.total_value,
                "day_change": stmt.excluded.day_change,
                "day_change_percent": stmt.excluded.day_change_percent,
                "positions_count": stmt.excluded.positions_count,
                "chains_count": stmt.excluded.chains_count,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return dto

    async def list_since(self, wallet_id: str, *, since: date) -> list[PortfolioSnapshotDTO]:
        """Return snapshots with ``snapshot_date >= since``, oldest first."""
        result = await self.session.execute(
            select(PortfolioSnapshotModel)
            .where(
                PortfolioSnapshotModel.wallet_id == wallet_id,
                PortfolioSnapshotModel.snapshot_date >= since,
            )
            .order_by(PortfolioSnapshotModel.snapshot_date.asc())
        )
        return [PortfolioSnapshotDTO.from_model(m) for m in result.scalars().all()]

    async def get_latest_before(
        self,
        wallet_id: str,
        *,
        before: date,
        on_or_after: date | None = None,
    ) -> PortfolioSnapshotDTO | None:
        """Return the newest snapshot strictly before ``before``."""
        stmt = select(PortfolioSnapshotModel).where(
            PortfolioSnapshotModel.wallet_id == wallet_id,
            PortfolioSnapshotModel.snapshot_date < before,
        )
        if on_or_after is not None:
            stmt = stmt.where(PortfolioSnapshotModel.snapshot_date >= on_or_after)
        result = await self.session.execute(
            stmt.order_by(PortfolioSnapshotModel.snapshot_date.desc()).limit(1)
        )
        model = result.scalar_one_or_none()
        return PortfolioSnapshotDTO.from_model(model) if model else None
