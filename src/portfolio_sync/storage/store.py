"""Snapshot and job-record store used by the scheduler and analytics."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

from sqlalchemy.exc import SQLAlchemyError

from portfolio_sync.analytics.models import PortfolioSnapshot
from portfolio_sync.providers.base import ProviderErrorKind
from portfolio_sync.storage.repos import (
    PortfolioSnapshotDTO,
    PortfolioSnapshotRepository,
    SyncJobDTO,
    SyncJobRepository,
)
from portfolio_sync.sync.models import JobStatus, SyncJob, SyncKind

if TYPE_CHECKING:
    from portfolio_sync.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a store read or write fails."""


class SnapshotStore(Protocol):
    """Persistence consumed by the scheduler and the analytics service."""

    async def read_series(self, wallet_id: str, since: date) -> list[PortfolioSnapshot]: ...

    async def write_snapshot(self, wallet_id: str, snapshot: PortfolioSnapshot) -> None: ...

    async def write_job_status(self, job: SyncJob) -> None: ...

    async def read_job(self, job_id: str) -> SyncJob | None: ...

    async def read_job_history(self, wallet_id: str, *, limit: int = 20) -> list[SyncJob]: ...

    async def read_latest_value(self, wallet_id: str, start: date, end: date) -> Decimal | None: ...


def _snapshot_from_dto(dto: PortfolioSnapshotDTO) -> PortfolioSnapshot:
    return PortfolioSnapshot(
        wallet_id=dto.wallet_id,
        date=dto.snapshot_date,
        total_value=Decimal(dto.total_value),
        day_change=Decimal(dto.day_change) if dto.day_change is not None else None,
        day_change_percent=(
            Decimal(dto.day_change_percent) if dto.day_change_percent is not None else None
        ),
        positions_count=dto.positions_count,
        chains_count=dto.chains_count,
    )


def _job_to_dto(job: SyncJob) -> SyncJobDTO:
    return SyncJobDTO(
        id=job.id,
        wallet_id=job.wallet_id,
        job_type=job.kind.value,
        status=job.status.value,
        priority=job.priority,
        sync_options=dict(job.options),
        queued_at=job.queued_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        duration_ms=job.duration_ms,
        sync_result=job.result,
        error_message=job.error,
        error_kind=job.error_kind.value if job.error_kind else None,
    )


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on DateTime(timezone=True) columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _job_from_dto(dto: SyncJobDTO) -> SyncJob:
    return SyncJob(
        id=dto.id,
        wallet_id=dto.wallet_id,
        kind=SyncKind(dto.job_type),
        status=JobStatus(dto.status),
        priority=dto.priority,
        options=dict(dto.sync_options),
        queued_at=_as_utc(dto.queued_at),
        started_at=_as_utc(dto.started_at),
        completed_at=_as_utc(dto.completed_at),
        result=dto.sync_result,
        error=dto.error_message,
        error_kind=ProviderErrorKind(dto.error_kind) if dto.error_kind else None,
    )


def derive_day_change(
    total_value: Decimal, previous_value: Decimal | None
) -> tuple[Decimal, Decimal]:
    """Return (change, change percent) against the previous snapshot value.

    The first snapshot of a wallet, and any snapshot following a zero-valued
    one, reports a zero percent change.
    """
    if previous_value is None:
        return Decimal(0), Decimal(0)
    change = total_value - previous_value
    if previous_value == 0:
        return change, Decimal(0)
    return change, change / previous_value * 100


class DatabaseSnapshotStore:
    """SnapshotStore backed by the SQLAlchemy repositories.

    Each call runs in its own session, committed on success. Database errors
    are re-raised as StoreError.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def read_series(self, wallet_id: str, since: date) -> list[PortfolioSnapshot]:
        """Return the wallet's snapshots dated on or after ``since``, oldest first."""
        try:
            async with self._db.session() as session:
                rows = await PortfolioSnapshotRepository(session).list_since(wallet_id, since=since)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read snapshots for {wallet_id}: {e}") from e
        return [_snapshot_from_dto(row) for row in rows]

    async def write_snapshot(self, wallet_id: str, snapshot: PortfolioSnapshot) -> None:
        """Upsert the day's snapshot, deriving the change from the prior day on record."""
        try:
            async with self._db.session() as session:
                repo = PortfolioSnapshotRepository(session)
                previous = await repo.get_latest_before(wallet_id, before=snapshot.date)
                change, change_percent = derive_day_change(
                    snapshot.total_value,
                    Decimal(previous.total_value) if previous else None,
                )
                await repo.upsert(
                    PortfolioSnapshotDTO(
                        wallet_id=wallet_id,
                        snapshot_date=snapshot.date,
                        total_value=snapshot.total_value,
                        day_change=change,
                        day_change_percent=change_percent,
                        positions_count=snapshot.positions_count,
                        chains_count=snapshot.chains_count,
                    )
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to write snapshot for {wallet_id}: {e}") from e
        logger.debug(
            "Stored snapshot for %s on %s (value=%s change=%s)",
            wallet_id,
            snapshot.date,
            snapshot.total_value,
            change,
        )

    async def write_job_status(self, job: SyncJob) -> None:
        try:
            async with self._db.session() as session:
                await SyncJobRepository(session).upsert(_job_to_dto(job))
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to write job {job.id}: {e}") from e

    async def read_job(self, job_id: str) -> SyncJob | None:
        try:
            async with self._db.session() as session:
                dto = await SyncJobRepository(session).get_by_id(job_id)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read job {job_id}: {e}") from e
        return _job_from_dto(dto) if dto else None

    async def read_latest_value(self, wallet_id: str, start: date, end: date) -> Decimal | None:
        """Return the value of the newest snapshot with ``start <= date < end``."""
        try:
            async with self._db.session() as session:
                dto = await PortfolioSnapshotRepository(session).get_latest_before(
                    wallet_id, before=end, on_or_after=start
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read previous value for {wallet_id}: {e}") from e
        return Decimal(dto.total_value) if dto else None

    async def read_job_history(self, wallet_id: str, *, limit: int = 20) -> list[SyncJob]:
        """Return the wallet's job records, newest first."""
        try:
            async with self._db.session() as session:
                rows = await SyncJobRepository(session).list_for_wallet(wallet_id, limit=limit)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read job history for {wallet_id}: {e}") from e
        return [_job_from_dto(row) for row in rows]
