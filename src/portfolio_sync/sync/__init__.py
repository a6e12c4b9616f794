"""Sync layer - Serialized wallet refresh jobs."""

from portfolio_sync.sync.models import (
    JobStatus,
    JobStatusView,
    QueueStatus,
    SchedulerState,
    SchedulerStats,
    SyncJob,
    SyncKind,
)
from portfolio_sync.sync.scheduler import (
    SchedulerClosedError,
    SchedulerError,
    SyncScheduler,
)

__all__ = [
    "JobStatus",
    "JobStatusView",
    "QueueStatus",
    "SchedulerClosedError",
    "SchedulerError",
    "SchedulerState",
    "SchedulerStats",
    "SyncJob",
    "SyncKind",
    "SyncScheduler",
]
