"""Data models for the sync module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from portfolio_sync.providers.base import ProviderErrorKind, user_message

PROGRESS_PROCESSING = 50
PROGRESS_COMPLETED = 100


class SyncKind(str, Enum):
    """What a sync job refreshes."""

    FULL = "full"
    PORTFOLIO_ONLY = "portfolio-only"
    TRANSACTIONS_ONLY = "transactions-only"
    NFTS_ONLY = "nfts-only"


class JobStatus(str, Enum):
    """Sync job lifecycle: queued -> processing -> completed | failed."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class SyncJob:
    """A unit of wallet refresh work owned by the scheduler.

    Attributes:
        id: Unique identifier assigned at enqueue time.
        wallet_id: Wallet the job refreshes.
        kind: What to refresh.
        status: Current lifecycle state.
        priority: Lower values are processed sooner.
        sequence: Enqueue order, used to keep equal priorities FIFO.
        options: Caller-supplied sync options forwarded to the provider.
        queued_at: Set when the job is enqueued.
        started_at: Set when the job starts processing.
        completed_at: Set when the job reaches a terminal state.
        result: Provider payload, only when completed.
        error: Failure message, only when failed.
        error_kind: Failure classification, only when failed.
    """

    id: str
    wallet_id: str
    kind: SyncKind
    status: JobStatus = JobStatus.QUEUED
    priority: int = 0
    sequence: int = 0
    options: dict[str, Any] = field(default_factory=dict)
    queued_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    error_kind: ProviderErrorKind | None = None

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.priority, self.sequence)

    @property
    def duration_ms(self) -> int | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)


@dataclass(frozen=True)
class QueueStatus:
    """Counts of jobs currently held in memory."""

    queued: int
    processing: int
    total: int

    def to_dict(self) -> dict[str, int]:
        return {"queued": self.queued, "processing": self.processing, "total": self.total}


@dataclass(frozen=True)
class JobStatusView:
    """Read model for a single job, live or persisted."""

    id: str
    wallet_id: str
    kind: SyncKind
    status: JobStatus
    priority: int
    progress: int
    queued_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    estimated_completion: datetime | None
    duration_ms: int | None
    result: dict[str, Any] | None
    error: str | None
    error_kind: ProviderErrorKind | None

    @property
    def user_message(self) -> str | None:
        if self.status != JobStatus.FAILED:
            return None
        return user_message(self.error_kind)

    @classmethod
    def from_job(cls, job: SyncJob, *, estimated_job_seconds: int = 30) -> JobStatusView:
        if job.status == JobStatus.COMPLETED:
            progress = PROGRESS_COMPLETED
        elif job.status == JobStatus.PROCESSING:
            progress = PROGRESS_PROCESSING
        else:
            progress = 0

        estimated_completion = None
        if job.status == JobStatus.PROCESSING and job.started_at is not None:
            estimated_completion = job.started_at + timedelta(seconds=estimated_job_seconds)

        return cls(
            id=job.id,
            wallet_id=job.wallet_id,
            kind=job.kind,
            status=job.status,
            priority=job.priority,
            progress=progress,
            queued_at=job.queued_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            estimated_completion=estimated_completion,
            duration_ms=job.duration_ms,
            result=job.result,
            error=job.error,
            error_kind=job.error_kind,
        )


class SchedulerState(str, Enum):
    """Scheduler lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    CLOSED = "closed"


@dataclass
class SchedulerStats:
    """Statistics for the scheduler."""

    jobs_enqueued: int = 0
    jobs_completed: int = 0
    jobs_failed: int = 0
    persistence_errors: int = 0
    last_job_at: datetime | None = None
    last_error: str | None = None
