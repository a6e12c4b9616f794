"""Wallet sync scheduler.

This module provides the SyncScheduler class that serializes wallet refresh
jobs through a single worker task and reports job lifecycle state.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from portfolio_sync.providers.base import ProviderErrorKind, classify_error
from portfolio_sync.sync.models import (
    JobStatus,
    JobStatusView,
    QueueStatus,
    SchedulerState,
    SchedulerStats,
    SyncJob,
    SyncKind,
)

if TYPE_CHECKING:
    from portfolio_sync.errors import ErrorSink
    from portfolio_sync.providers.base import DataProvider
    from portfolio_sync.storage.store import SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_ESTIMATED_JOB_SECONDS = 30


class SchedulerError(Exception):
    """Base exception for scheduler errors."""


class SchedulerClosedError(SchedulerError):
    """Raised when a job is enqueued after shutdown."""


class SyncScheduler:
    """Serializes wallet sync jobs through one worker task.

    Jobs run one at a time in ascending priority order, FIFO among equal
    priorities. ``enqueue`` never blocks: it records the job and starts the
    worker only when none is active. The worker exits once no queued job
    remains; terminal jobs are evicted from memory and survive only in the
    store.

    Example:
        ```python
        scheduler = SyncScheduler(provider, store, error_sink)
        job_id = scheduler.enqueue("0xabc...", SyncKind.FULL, priority=1)
        scheduler.get_queue_status()  # QueueStatus(queued=0, processing=1, total=1)
        await scheduler.shutdown()
        ```
    """

    def __init__(
        self,
        provider: DataProvider,
        store: SnapshotStore,
        error_sink: ErrorSink,
        *,
        estimated_job_seconds: int = DEFAULT_ESTIMATED_JOB_SECONDS,
        dry_run: bool = False,
        default_kind: SyncKind | str = SyncKind.FULL,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            provider: Source of fresh wallet data.
            store: Persistence for job records and snapshots.
            error_sink: Receives job and persistence failures.
            estimated_job_seconds: Expected job duration for status estimates.
            dry_run: If True, fetched snapshots are not written.
            default_kind: Kind used when enqueue is called without one.
            now: Clock returning timezone-aware datetimes.
        """
        self._provider = provider
        self._store = store
        self._error_sink = error_sink
        self._estimated_job_seconds = estimated_job_seconds
        self._dry_run = dry_run
        self._default_kind = SyncKind(default_kind)
        self._now = now or (lambda: datetime.now(UTC))

        self._state = SchedulerState.IDLE
        self._stats = SchedulerStats()

        # Live jobs, insertion ordered; only touched from the event loop thread.
        self._jobs: dict[str, SyncJob] = {}
        self._sequence = itertools.count(1)

        self._worker_active = False
        self._worker_task: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> SchedulerState:
        """Current scheduler state."""
        return self._state

    @property
    def stats(self) -> SchedulerStats:
        """Current scheduler statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if the worker is draining the queue."""
        return self._worker_active

    def enqueue(
        self,
        wallet_id: str,
        kind: SyncKind | str | None = None,
        priority: int = 0,
        options: dict[str, Any] | None = None,
        *,
        dedupe: bool = False,
    ) -> str:
        """Queue a sync job and return its id.

        Must be called from a running event loop. Starts the worker if none
        is active; otherwise the job is picked up by the running worker.

        Args:
            wallet_id: Wallet to refresh.
            kind: What to refresh. Defaults to the scheduler's default kind.
            priority: Lower values run sooner.
            options: Sync options forwarded to the provider.
            dedupe: If True and a job for the same wallet and kind is still
                queued, return that job's id instead of adding a new one.

        Raises:
            SchedulerClosedError: If the scheduler has been shut down.
            ValueError: If wallet_id is empty or kind is unknown.
            RuntimeError: If no event loop is running.
        """
        if self._state == SchedulerState.CLOSED:
            raise SchedulerClosedError("Cannot enqueue jobs after shutdown")
        if not wallet_id:
            raise ValueError("wallet_id is required")
        sync_kind = self._default_kind if kind is None else SyncKind(kind)
        loop = asyncio.get_running_loop()

        if dedupe:
            for existing in self._jobs.values():
                if (
                    existing.status == JobStatus.QUEUED
                    and existing.wallet_id == wallet_id
                    and existing.kind == sync_kind
                ):
                    logger.debug("Reusing queued job %s for wallet %s", existing.id, wallet_id)
                    return existing.id

        job = SyncJob(
            id=str(uuid.uuid4()),
            wallet_id=wallet_id,
            kind=sync_kind,
            priority=int(priority),
            sequence=next(self._sequence),
            options=dict(options or {}),
            queued_at=self._now(),
        )
        self._jobs[job.id] = job
        self._stats.jobs_enqueued += 1
        logger.debug(
            "Queued job %s (wallet=%s kind=%s priority=%d)",
            job.id,
            wallet_id,
            sync_kind.value,
            job.priority,
        )

        if not self._worker_active:
            self._start_worker(loop)
        return job.id

    def enqueue_many(
        self,
        wallet_ids: Sequence[str],
        kind: SyncKind | str | None = None,
        options: dict[str, Any] | None = None,
    ) -> list[str]:
        """Queue one job per wallet, earlier wallets at higher priority."""
        return [
            self.enqueue(wallet_id, kind, priority=index, options=options)
            for index, wallet_id in enumerate(wallet_ids)
        ]

    def get_queue_status(self) -> QueueStatus:
        """Count jobs currently held in memory by status."""
        jobs = list(self._jobs.values())
        return QueueStatus(
            queued=sum(1 for j in jobs if j.status == JobStatus.QUEUED),
            processing=sum(1 for j in jobs if j.status == JobStatus.PROCESSING),
            total=len(jobs),
        )

    async def get_job(self, job_id: str) -> JobStatusView | None:
        """Return a job's status, from memory if live, else from the store."""
        job = self._jobs.get(job_id)
        if job is None:
            job = await self._store.read_job(job_id)
        if job is None:
            return None
        return JobStatusView.from_job(job, estimated_job_seconds=self._estimated_job_seconds)

    async def wait_idle(self) -> None:
        """Wait until the worker has drained the queue."""
        await self._idle.wait()

    async def job_history(self, wallet_id: str, *, limit: int = 20) -> list[JobStatusView]:
        """Return the wallet's recorded jobs, newest first."""
        jobs = await self._store.read_job_history(wallet_id, limit=limit)
        return [
            JobStatusView.from_job(job, estimated_job_seconds=self._estimated_job_seconds)
            for job in jobs
        ]

    def start(self) -> None:
        """Accept jobs again after a shutdown. A new scheduler accepts jobs already.

        Jobs left queued by ``shutdown(wait=False)`` are picked up by a new
        worker, so this must be called from a running event loop when any
        remain.
        """
        if self._state != SchedulerState.CLOSED:
            return
        self._state = SchedulerState.RUNNING if self._worker_active else SchedulerState.IDLE
        if not self._worker_active and self._next_job() is not None:
            self._start_worker(asyncio.get_running_loop())
        logger.info("Sync scheduler started")

    async def shutdown(self, *, wait: bool = True) -> None:
        """Stop accepting jobs.

        Args:
            wait: If True, let the worker drain the queue first. Otherwise
                cancel the worker. The job in flight is marked failed and
                jobs still queued stay queued until ``start()``.
        """
        if self._state == SchedulerState.CLOSED:
            return
        self._state = SchedulerState.CLOSED
        task = self._worker_task
        if task is not None:
            if wait:
                await self._idle.wait()
            else:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        logger.info(
            "Sync scheduler stopped (completed=%d failed=%d)",
            self._stats.jobs_completed,
            self._stats.jobs_failed,
        )

    async def __aenter__(self) -> SyncScheduler:
        self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.shutdown()

    def _next_job(self) -> SyncJob | None:
        queued = [j for j in self._jobs.values() if j.status == JobStatus.QUEUED]
        if not queued:
            return None
        return min(queued, key=lambda j: j.sort_key)

    def _start_worker(self, loop: asyncio.AbstractEventLoop) -> None:
        self._worker_active = True
        self._state = SchedulerState.RUNNING
        self._idle.clear()
        self._worker_task = loop.create_task(self._process_queue())

    async def _process_queue(self) -> None:
        try:
            while (job := self._next_job()) is not None:
                await self._process_job(job)
        finally:
            self._worker_active = False
            self._worker_task = None
            if self._state != SchedulerState.CLOSED:
                self._state = SchedulerState.IDLE
            self._idle.set()

    async def _process_job(self, job: SyncJob) -> None:
        job.status = JobStatus.PROCESSING
        job.started_at = self._now()

        try:
            await self._persist(job)
            result = await self._execute(job)
        except asyncio.CancelledError:
            await self._abandon(job)
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = str(e) or type(e).__name__
            job.error_kind = classify_error(e)
            self._stats.jobs_failed += 1
            self._stats.last_error = job.error
            self._error_sink.report(e, f"SyncScheduler.process_job.{job.wallet_id}")
        else:
            job.status = JobStatus.COMPLETED
            job.result = result
            self._stats.jobs_completed += 1
        job.completed_at = self._now()
        self._stats.last_job_at = job.completed_at

        try:
            await self._persist(job)
        finally:
            self._jobs.pop(job.id, None)
        logger.debug("Job %s finished with status %s", job.id, job.status.value)

    async def _abandon(self, job: SyncJob) -> None:
        """Fail a job interrupted by worker cancellation."""
        job.status = JobStatus.FAILED
        job.error = "cancelled"
        job.error_kind = ProviderErrorKind.UNKNOWN
        job.completed_at = self._now()
        self._stats.jobs_failed += 1
        self._stats.last_error = job.error
        self._stats.last_job_at = job.completed_at
        self._jobs.pop(job.id, None)
        logger.warning("Job %s for wallet %s cancelled mid-flight", job.id, job.wallet_id)
        await asyncio.shield(self._persist(job))

    async def _execute(self, job: SyncJob) -> dict[str, Any]:
        fetched = await self._provider.fetch(job.wallet_id, job.kind.value, dict(job.options))
        if fetched.snapshot is not None and not self._dry_run:
            await self._store.write_snapshot(job.wallet_id, fetched.snapshot)
        return dict(fetched.payload)

    async def _persist(self, job: SyncJob) -> None:
        try:
            await self._store.write_job_status(job)
        except Exception as e:
            self._stats.persistence_errors += 1
            logger.warning(
                "Failed to persist status %s for job %s: %s", job.status.value, job.id, e
            )
            self._error_sink.report(e, f"SyncScheduler.update_job_status.{job.wallet_id}")
