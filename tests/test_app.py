"""Tests for the application composition root."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from portfolio_sync.analytics.models import PortfolioSnapshot
from portfolio_sync.app import AppState, PortfolioSyncApp
from portfolio_sync.config import Settings, clear_settings_cache
from portfolio_sync.errors import LoggingErrorSink
from portfolio_sync.providers.base import FetchResult
from portfolio_sync.providers.zerion import ZerionProvider
from portfolio_sync.sync.models import JobStatus

WALLET = "0x1234567890abcdef1234567890abcdef12345678"


@pytest.fixture
def settings(monkeypatch, tmp_path) -> Settings:
    """Settings pointing at a temporary SQLite database."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    monkeypatch.setenv("SCHEDULER_ERROR_LOG_SIZE", "7")
    monkeypatch.delenv("ZERION_API_KEY", raising=False)
    monkeypatch.delenv("DRY_RUN", raising=False)
    clear_settings_cache()
    return Settings()


@pytest.fixture
def provider() -> MagicMock:
    """Provider returning a snapshot dated today."""
    mock = MagicMock()
    mock.fetch = AsyncMock(
        return_value=FetchResult(
            snapshot=PortfolioSnapshot(
                wallet_id=WALLET,
                date=datetime.now(UTC).date(),
                total_value=Decimal("2500"),
                positions_count=3,
                chains_count=2,
            ),
            payload={"positions": 3},
        )
    )
    return mock


class TestAppState:
    """Tests for application state management."""

    def test_initial_state_is_stopped(self, settings) -> None:
        app = PortfolioSyncApp(settings)
        assert app.state == AppState.STOPPED
        assert not app.is_running

    def test_components_unavailable_before_start(self, settings) -> None:
        app = PortfolioSyncApp(settings)
        with pytest.raises(RuntimeError):
            _ = app.scheduler
        with pytest.raises(RuntimeError):
            _ = app.analytics

    def test_default_error_sink_uses_configured_size(self, settings) -> None:
        app = PortfolioSyncApp(settings)
        assert isinstance(app.error_sink, LoggingErrorSink)
        for i in range(10):
            app.error_sink.report(RuntimeError(str(i)), "ctx")
        assert len(app.error_sink.recent()) == 7

    @pytest.mark.asyncio
    async def test_start_without_api_key_fails(self, settings) -> None:
        app = PortfolioSyncApp(settings)
        with pytest.raises(ValueError, match="ZERION_API_KEY"):
            await app.start()
        assert app.state == AppState.STOPPED

    @pytest.mark.asyncio
    async def test_double_start_fails(self, settings, provider) -> None:
        async with PortfolioSyncApp(settings, provider=provider) as app:
            with pytest.raises(RuntimeError):
                await app.start()

    @pytest.mark.asyncio
    async def test_builds_zerion_provider_from_settings(self, monkeypatch, settings) -> None:
        monkeypatch.setenv("ZERION_API_KEY", "zk_test")
        app = PortfolioSyncApp(Settings())
        await app.start()
        try:
            assert isinstance(app._owned_provider, ZerionProvider)
        finally:
            await app.stop()
        assert app._owned_provider is None


class TestAppWiring:
    """Tests for the scheduler and analytics wiring."""

    @pytest.mark.asyncio
    async def test_sync_then_query_metrics(self, settings, provider) -> None:
        async with PortfolioSyncApp(settings, provider=provider) as app:
            assert app.is_running
            job_id = app.scheduler.enqueue(WALLET, "full", options={"include_nfts": False})
            await app.scheduler.wait_idle()

            view = await app.scheduler.get_job(job_id)
            metrics = await app.analytics.compute_metrics(WALLET, "7d")

        assert view is not None
        assert view.status == JobStatus.COMPLETED
        assert view.result == {"positions": 3}
        provider.fetch.assert_awaited_once_with(WALLET, "full", {"include_nfts": False})
        assert metrics.data_points == 1
        assert metrics.current_value == 2500
        assert app.state == AppState.STOPPED

    @pytest.mark.asyncio
    async def test_injected_store_is_used(self, settings, provider) -> None:
        store = MagicMock()
        store.write_job_status = AsyncMock()
        store.write_snapshot = AsyncMock()
        store.read_series = AsyncMock(return_value=[])

        async with PortfolioSyncApp(settings, provider=provider, store=store) as app:
            app.scheduler.enqueue(WALLET)
            await app.scheduler.wait_idle()
            await app.analytics.compute_metrics(WALLET)

        assert store.write_job_status.await_count == 2
        store.write_snapshot.assert_awaited_once()
        store.read_series.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dry_run_is_passed_to_scheduler(self, monkeypatch, settings, provider) -> None:
        monkeypatch.setenv("DRY_RUN", "true")
        store = MagicMock()
        store.write_job_status = AsyncMock()
        store.write_snapshot = AsyncMock()

        async with PortfolioSyncApp(Settings(), provider=provider, store=store) as app:
            app.scheduler.enqueue(WALLET)

        store.write_snapshot.assert_not_awaited()


def test_configure_logging(settings) -> None:
    settings.log_level = "WARNING"
    PortfolioSyncApp(settings).configure_logging()
    assert logging.getLogger("portfolio_sync").level == logging.WARNING
