"""Application composition root for Portfolio Sync.

This module provides the PortfolioSyncApp class that builds the scheduler
and analytics service from settings and owns the lifecycle of the shared
collaborators (database, provider, error sink).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from portfolio_sync.analytics.service import PortfolioAnalytics
from portfolio_sync.config import Settings, get_settings
from portfolio_sync.errors import ErrorSink, LoggingErrorSink
from portfolio_sync.providers.zerion import ZerionProvider
from portfolio_sync.storage.database import DatabaseManager
from portfolio_sync.storage.store import DatabaseSnapshotStore
from portfolio_sync.sync.scheduler import SyncScheduler

if TYPE_CHECKING:
    from portfolio_sync.providers.base import DataProvider
    from portfolio_sync.storage.store import SnapshotStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class AppState(str, Enum):
    """Application lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class AppStats:
    """Statistics for the application."""

    started_at: datetime | None = None
    last_error: str | None = None


class PortfolioSyncApp:
    """Wires one SyncScheduler and one PortfolioAnalytics per process.

    Collaborators passed in are used as-is and left open on stop; the ones
    built from settings are owned and released by the app.

    Example:
        ```python
        from portfolio_sync.app import PortfolioSyncApp

        async with PortfolioSyncApp() as app:
            job_id = app.scheduler.enqueue("0xabc...", "full")
            metrics = await app.analytics.compute_metrics("0xabc...", "7d")
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        provider: DataProvider | None = None,
        store: SnapshotStore | None = None,
        error_sink: ErrorSink | None = None,
    ) -> None:
        """Initialize the application.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            provider: Data provider. Defaults to a ZerionProvider built from settings.
            store: Snapshot store. Defaults to a DatabaseSnapshotStore on DATABASE_URL.
            error_sink: Error sink. Defaults to a LoggingErrorSink.
        """
        self._settings = settings or get_settings()
        self._state = AppState.STOPPED
        self._stats = AppStats()

        self._provider = provider
        self._store = store
        self._error_sink: ErrorSink = error_sink or LoggingErrorSink(
            max_records=self._settings.scheduler.error_log_size
        )

        # Owned resources (created in start())
        self._db_manager: DatabaseManager | None = None
        self._owned_provider: ZerionProvider | None = None

        self._scheduler: SyncScheduler | None = None
        self._analytics: PortfolioAnalytics | None = None

    @property
    def state(self) -> AppState:
        """Current application state."""
        return self._state

    @property
    def stats(self) -> AppStats:
        """Current application statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._state == AppState.RUNNING

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def error_sink(self) -> ErrorSink:
        return self._error_sink

    @property
    def scheduler(self) -> SyncScheduler:
        """The process-wide scheduler.

        Raises:
            RuntimeError: If the app has not been started.
        """
        if self._scheduler is None:
            raise RuntimeError("Application is not started")
        return self._scheduler

    @property
    def analytics(self) -> PortfolioAnalytics:
        """The analytics query service.

        Raises:
            RuntimeError: If the app has not been started.
        """
        if self._analytics is None:
            raise RuntimeError("Application is not started")
        return self._analytics

    def configure_logging(self) -> None:
        """Configure root logging at the configured LOG_LEVEL."""
        logging.basicConfig(level=self._settings.get_logging_level(), format=LOG_FORMAT)
        logging.getLogger("portfolio_sync").setLevel(self._settings.get_logging_level())

    async def start(self) -> None:
        """Build collaborators and the scheduler.

        Raises:
            RuntimeError: If the app is already started.
            ValueError: If a provider must be built and ZERION_API_KEY is unset.
        """
        if self._state != AppState.STOPPED:
            raise RuntimeError(f"Cannot start application in state {self._state}")

        self._state = AppState.STARTING
        logger.info("Starting portfolio sync (%s)", self._settings.redacted_summary())

        try:
            provider = self._provider or self._build_provider()
            store = self._store or await self._build_store()
            self._scheduler = SyncScheduler(
                provider,
                store,
                self._error_sink,
                estimated_job_seconds=self._settings.scheduler.estimated_job_seconds,
                dry_run=self._settings.dry_run,
                default_kind=self._settings.scheduler.default_kind,
            )
            self._analytics = PortfolioAnalytics(
                store,
                self._error_sink,
                risk_free_rate=self._settings.metrics.risk_free_rate,
            )
            self._stats.started_at = datetime.now(UTC)
            self._state = AppState.RUNNING
            logger.info("Portfolio sync started")
        except Exception as e:
            self._state = AppState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start portfolio sync: %s", e)
            await self._cleanup()
            self._state = AppState.STOPPED
            raise

    async def stop(self, *, wait: bool = True) -> None:
        """Stop the scheduler and release owned resources.

        Args:
            wait: If True, let queued jobs finish before stopping.
        """
        if self._state == AppState.STOPPED:
            return

        self._state = AppState.STOPPING
        logger.info("Stopping portfolio sync...")

        if self._scheduler is not None:
            await self._scheduler.shutdown(wait=wait)
        await self._cleanup()

        self._state = AppState.STOPPED
        logger.info("Portfolio sync stopped")

    def _build_provider(self) -> ZerionProvider:
        api_key = self._settings.validate_requirements()
        zerion = self._settings.zerion
        self._owned_provider = ZerionProvider(
            api_key=api_key,
            base_url=zerion.base_url,
            currency=zerion.currency,
            timeout_seconds=zerion.timeout_seconds,
        )
        return self._owned_provider

    async def _build_store(self) -> DatabaseSnapshotStore:
        database = self._settings.database
        self._db_manager = DatabaseManager(
            database.url,
            pool_size=database.pool_size,
            echo=database.echo,
        )
        if self._db_manager.is_sqlite:
            # PostgreSQL schemas are managed by alembic migrations.
            await self._db_manager.init_schema()
        return DatabaseSnapshotStore(self._db_manager)

    async def _cleanup(self) -> None:
        """Release owned resources."""
        if self._owned_provider is not None:
            await self._owned_provider.close()
            self._owned_provider = None
        if self._db_manager is not None:
            await self._db_manager.dispose()
            self._db_manager = None
        self._scheduler = None
        self._analytics = None

    async def __aenter__(self) -> PortfolioSyncApp:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
