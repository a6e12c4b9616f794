"""Tests for the wallet sync scheduler."""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import date
from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock

import pytest

from portfolio_sync.analytics.models import PortfolioSnapshot
from portfolio_sync.providers.base import FetchResult, ProviderError, ProviderErrorKind
from portfolio_sync.storage.store import StoreError
from portfolio_sync.sync.models import JobStatus, SchedulerState, SyncJob, SyncKind
from portfolio_sync.sync.scheduler import SchedulerClosedError, SyncScheduler


class FakeProvider:
    """Records fetch order and concurrency; fails for selected wallets."""

    def __init__(self, *, failing: dict[str, Exception] | None = None) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.failing = failing or {}
        self.active = 0
        self.max_active = 0
        self.gate: asyncio.Event | None = None

    async def fetch(
        self, wallet_id: str, kind: str, options: dict[str, Any] | None = None
    ) -> FetchResult:
        self.calls.append((wallet_id, kind, dict(options or {})))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
            if wallet_id in self.failing:
                raise self.failing[wallet_id]
            return FetchResult(
                snapshot=PortfolioSnapshot(
                    wallet_id=wallet_id, date=date(2026, 1, 1), total_value=Decimal("10")
                ),
                payload={"wallet": wallet_id, "kind": kind},
            )
        finally:
            self.active -= 1

    @property
    def wallets(self) -> list[str]:
        return [c[0] for c in self.calls]


class FakeStore:
    """In-memory store that records every job status write."""

    def __init__(self) -> None:
        self.status_writes: list[tuple[str, JobStatus]] = []
        self.jobs: dict[str, SyncJob] = {}
        self.snapshots: list[tuple[str, PortfolioSnapshot]] = []
        self.fail_status_writes = False
        self.fail_snapshot_writes = False

    async def write_job_status(self, job: SyncJob) -> None:
        if self.fail_status_writes:
            raise StoreError("status write failed")
        self.status_writes.append((job.id, job.status))
        self.jobs[job.id] = dataclasses.replace(job)

    async def write_snapshot(self, wallet_id: str, snapshot: PortfolioSnapshot) -> None:
        if self.fail_snapshot_writes:
            raise StoreError("snapshot write failed")
        self.snapshots.append((wallet_id, snapshot))

    async def read_job(self, job_id: str) -> SyncJob | None:
        return self.jobs.get(job_id)

    async def read_job_history(self, wallet_id: str, *, limit: int = 20) -> list[SyncJob]:
        jobs = [j for j in self.jobs.values() if j.wallet_id == wallet_id]
        return sorted(jobs, key=lambda j: j.queued_at, reverse=True)[:limit]

    async def read_series(self, wallet_id, since):
        return []

    async def read_latest_value(self, wallet_id, start, end):
        return None


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sink() -> MagicMock:
    return MagicMock()


@pytest.fixture
def scheduler(provider, store, sink) -> SyncScheduler:
    return SyncScheduler(provider, store, sink)


class TestOrdering:
    """Tests for queue ordering."""

    @pytest.mark.asyncio
    async def test_drains_by_priority_then_fifo(self, scheduler, provider) -> None:
        for wallet, priority in [("a", 5), ("b", 1), ("c", 5), ("d", 0)]:
            scheduler.enqueue(wallet, priority=priority)

        await scheduler.wait_idle()

        assert provider.wallets == ["d", "b", "a", "c"]

    @pytest.mark.asyncio
    async def test_enqueue_many_assigns_index_priorities(self, scheduler, provider) -> None:
        scheduler.enqueue("late", priority=10)
        ids = scheduler.enqueue_many(["w1", "w2", "w3"], SyncKind.PORTFOLIO_ONLY)

        assert len(ids) == 3
        assert len(set(ids)) == 3
        await scheduler.wait_idle()
        assert provider.wallets == ["w1", "w2", "w3", "late"]
        assert {c[1] for c in provider.calls[:3]} == {"portfolio-only"}

    @pytest.mark.asyncio
    async def test_jobs_enqueued_while_running_are_picked_up(self, scheduler, provider) -> None:
        provider.gate = asyncio.Event()
        scheduler.enqueue("first")
        await asyncio.sleep(0)
        scheduler.enqueue("second", priority=-1)
        scheduler.enqueue("third")
        provider.gate.set()

        await scheduler.wait_idle()

        assert provider.wallets == ["first", "second", "third"]


class TestWorker:
    """Tests for the single-worker guarantee and job lifecycle."""

    @pytest.mark.asyncio
    async def test_single_active_worker(self, scheduler, provider) -> None:
        provider.gate = asyncio.Event()
        for i in range(5):
            scheduler.enqueue(f"w{i}")
        await asyncio.sleep(0)

        status = scheduler.get_queue_status()
        assert status.processing == 1
        assert status.queued == 4
        assert scheduler.is_running
        assert scheduler.state == SchedulerState.RUNNING

        provider.gate.set()
        await scheduler.wait_idle()
        assert provider.max_active == 1
        assert not scheduler.is_running
        assert scheduler.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_terminal_jobs_are_evicted(self, scheduler, store) -> None:
        job_id = scheduler.enqueue("w1")
        await scheduler.wait_idle()

        assert scheduler.get_queue_status().to_dict() == {"queued": 0, "processing": 0, "total": 0}
        assert store.jobs[job_id].status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_completed_job_records_result_and_snapshot(
        self, scheduler, store, provider
    ) -> None:
        job_id = scheduler.enqueue("w1", SyncKind.FULL, options={"include_nfts": False})
        await scheduler.wait_idle()

        job = store.jobs[job_id]
        assert job.result == {"wallet": "w1", "kind": "full"}
        assert job.error is None
        assert job.started_at is not None
        assert job.completed_at is not None
        assert job.queued_at <= job.started_at <= job.completed_at
        assert provider.calls[0][2] == {"include_nfts": False}
        assert [w for w, _ in store.snapshots] == ["w1"]
        assert scheduler.stats.jobs_completed == 1

    @pytest.mark.asyncio
    async def test_status_persisted_at_each_transition(self, scheduler, store) -> None:
        job_id = scheduler.enqueue("w1")
        await scheduler.wait_idle()

        assert store.status_writes == [
            (job_id, JobStatus.PROCESSING),
            (job_id, JobStatus.COMPLETED),
        ]

    @pytest.mark.asyncio
    async def test_dry_run_skips_snapshot_writes(self, provider, store, sink) -> None:
        scheduler = SyncScheduler(provider, store, sink, dry_run=True)
        job_id = scheduler.enqueue("w1")
        await scheduler.wait_idle()

        assert store.snapshots == []
        assert store.jobs[job_id].status == JobStatus.COMPLETED


class TestFailures:
    """Tests for failure isolation."""

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_the_queue(self, store, sink) -> None:
        error = ProviderError(ProviderErrorKind.RATE_LIMITED, "429 Too Many Requests")
        provider = FakeProvider(failing={"b": error})
        scheduler = SyncScheduler(provider, store, sink)
        ids = [scheduler.enqueue(w) for w in ("a", "b", "c")]

        await scheduler.wait_idle()

        assert provider.wallets == ["a", "b", "c"]
        assert [store.jobs[i].status for i in ids] == [
            JobStatus.COMPLETED,
            JobStatus.FAILED,
            JobStatus.COMPLETED,
        ]
        failed = store.jobs[ids[1]]
        assert failed.error == "429 Too Many Requests"
        assert failed.error_kind == ProviderErrorKind.RATE_LIMITED
        assert failed.result is None
        assert (ids[1], JobStatus.FAILED) in store.status_writes
        sink.report.assert_called_once_with(error, "SyncScheduler.process_job.b")
        assert scheduler.stats.jobs_failed == 1
        assert scheduler.stats.jobs_completed == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_is_unknown_kind(self, store, sink) -> None:
        provider = FakeProvider(failing={"a": RuntimeError("boom")})
        scheduler = SyncScheduler(provider, store, sink)
        job_id = scheduler.enqueue("a")
        await scheduler.wait_idle()

        assert store.jobs[job_id].error_kind == ProviderErrorKind.UNKNOWN

    @pytest.mark.asyncio
    async def test_snapshot_write_failure_fails_the_job(self, scheduler, store, sink) -> None:
        store.fail_snapshot_writes = True
        job_id = scheduler.enqueue("a")
        await scheduler.wait_idle()

        assert store.jobs[job_id].status == JobStatus.FAILED
        assert store.jobs[job_id].error == "snapshot write failed"
        sink.report.assert_called_once()

    @pytest.mark.asyncio
    async def test_status_write_failure_is_reported_not_raised(
        self, scheduler, store, sink, provider
    ) -> None:
        store.fail_status_writes = True
        scheduler.enqueue("a")
        scheduler.enqueue("b")
        await scheduler.wait_idle()

        assert provider.wallets == ["a", "b"]
        assert scheduler.stats.jobs_completed == 2
        assert scheduler.stats.persistence_errors == 4
        contexts = [c.args[1] for c in sink.report.call_args_list]
        assert contexts[0] == "SyncScheduler.update_job_status.a"
        assert scheduler.get_queue_status().total == 0


class TestEnqueue:
    """Tests for enqueue validation and deduplication."""

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, scheduler) -> None:
        ids = {scheduler.enqueue("same") for _ in range(20)}
        assert len(ids) == 20
        await scheduler.wait_idle()

    @pytest.mark.asyncio
    async def test_dedupe_returns_queued_job(self, scheduler, provider) -> None:
        provider.gate = asyncio.Event()
        scheduler.enqueue("busy")
        first = scheduler.enqueue("w1", dedupe=True)
        second = scheduler.enqueue("w1", dedupe=True)
        other_kind = scheduler.enqueue("w1", SyncKind.NFTS_ONLY, dedupe=True)
        not_deduped = scheduler.enqueue("w1")

        assert first == second
        assert other_kind != first
        assert not_deduped != first
        assert scheduler.get_queue_status().total == 4

        provider.gate.set()
        await scheduler.wait_idle()

    @pytest.mark.asyncio
    async def test_string_kind_is_accepted(self, scheduler, provider) -> None:
        scheduler.enqueue("w1", "transactions-only")
        await scheduler.wait_idle()
        assert provider.calls[0][1] == "transactions-only"

    @pytest.mark.asyncio
    async def test_default_kind_is_configurable(self, provider, store, sink) -> None:
        scheduler = SyncScheduler(provider, store, sink, default_kind="portfolio-only")
        scheduler.enqueue("w1")
        scheduler.enqueue("w2", SyncKind.FULL)
        await scheduler.wait_idle()
        assert [c[1] for c in provider.calls] == ["portfolio-only", "full"]

    @pytest.mark.asyncio
    async def test_invalid_input_is_rejected(self, scheduler) -> None:
        with pytest.raises(ValueError):
            scheduler.enqueue("")
        with pytest.raises(ValueError):
            scheduler.enqueue("w1", "everything")
        assert scheduler.get_queue_status().total == 0

    def test_enqueue_requires_running_loop(self, scheduler) -> None:
        with pytest.raises(RuntimeError):
            scheduler.enqueue("w1")


class TestGetJob:
    """Tests for job status lookup."""

    @pytest.mark.asyncio
    async def test_live_job_is_returned_from_memory(self, scheduler) -> None:
        job_id = scheduler.enqueue("w1", priority=3)

        view = await scheduler.get_job(job_id)

        assert view is not None
        assert view.status == JobStatus.QUEUED
        assert view.progress == 0
        assert view.priority == 3
        await scheduler.wait_idle()

    @pytest.mark.asyncio
    async def test_finished_job_is_read_from_store(self, scheduler) -> None:
        job_id = scheduler.enqueue("w1")
        await scheduler.wait_idle()

        view = await scheduler.get_job(job_id)

        assert view is not None
        assert view.status == JobStatus.COMPLETED
        assert view.progress == 100
        assert view.estimated_completion is None

    @pytest.mark.asyncio
    async def test_unknown_job(self, scheduler) -> None:
        assert await scheduler.get_job("missing") is None


class TestLifecycle:
    """Tests for shutdown and restart."""

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_queue(self, scheduler, provider) -> None:
        scheduler.enqueue("a")
        scheduler.enqueue("b")

        await scheduler.shutdown()

        assert provider.wallets == ["a", "b"]
        assert scheduler.state == SchedulerState.CLOSED
        with pytest.raises(SchedulerClosedError):
            scheduler.enqueue("c")

    @pytest.mark.asyncio
    async def test_shutdown_without_wait_cancels_worker(
        self, scheduler, provider, store
    ) -> None:
        provider.gate = asyncio.Event()
        job_a = scheduler.enqueue("a")
        scheduler.enqueue("b")
        await asyncio.sleep(0)

        await scheduler.shutdown(wait=False)

        assert provider.wallets == ["a"]
        assert not scheduler.is_running
        status = scheduler.get_queue_status()
        assert status.queued == 1
        assert status.processing == 0
        assert store.jobs[job_a].status == JobStatus.FAILED
        assert store.jobs[job_a].error == "cancelled"
        assert store.jobs[job_a].completed_at is not None
        assert scheduler.stats.jobs_failed == 1

        view = await scheduler.get_job(job_a)
        assert view is not None
        assert view.status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_start_resumes_jobs_left_queued(self, scheduler, provider, store) -> None:
        provider.gate = asyncio.Event()
        scheduler.enqueue("a")
        job_b = scheduler.enqueue("b")
        await asyncio.sleep(0)
        await scheduler.shutdown(wait=False)
        provider.gate.set()

        scheduler.start()
        assert scheduler.is_running
        await scheduler.wait_idle()

        assert provider.wallets == ["a", "b"]
        assert store.jobs[job_b].status == JobStatus.COMPLETED
        assert scheduler.get_queue_status().total == 0

    @pytest.mark.asyncio
    async def test_at_most_one_processing_after_restart(self, scheduler, provider) -> None:
        provider.gate = asyncio.Event()
        scheduler.enqueue("a")
        await asyncio.sleep(0)
        await scheduler.shutdown(wait=False)

        scheduler.start()
        scheduler.enqueue("b")
        await asyncio.sleep(0)

        status = scheduler.get_queue_status()
        assert status.processing == 1
        assert status.total == 1

        provider.gate.set()
        await scheduler.wait_idle()
        assert scheduler.get_queue_status().total == 0

    @pytest.mark.asyncio
    async def test_job_history(self, scheduler) -> None:
        scheduler.enqueue("w1")
        scheduler.enqueue("w1", SyncKind.NFTS_ONLY)
        scheduler.enqueue("w2")
        await scheduler.wait_idle()

        history = await scheduler.job_history("w1")

        assert len(history) == 2
        assert all(view.status == JobStatus.COMPLETED for view in history)

    @pytest.mark.asyncio
    async def test_start_reopens_after_shutdown(self, scheduler, provider) -> None:
        await scheduler.shutdown()
        scheduler.start()

        scheduler.enqueue("a")
        await scheduler.wait_idle()

        assert provider.wallets == ["a"]
        assert scheduler.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_async_context_manager(self, provider, store, sink) -> None:
        async with SyncScheduler(provider, store, sink) as scheduler:
            scheduler.enqueue("a")
        assert provider.wallets == ["a"]
        assert scheduler.state == SchedulerState.CLOSED
