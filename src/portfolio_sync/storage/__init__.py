"""Storage layer - Database schemas, repositories and the snapshot store."""

from portfolio_sync.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from portfolio_sync.storage.models import Base, PortfolioSnapshotModel, SyncJobModel
from portfolio_sync.storage.repos import (
    PortfolioSnapshotDTO,
    PortfolioSnapshotRepository,
    SyncJobDTO,
    SyncJobRepository,
)
from portfolio_sync.storage.store import DatabaseSnapshotStore, SnapshotStore, StoreError

__all__ = [
    "Base",
    "DatabaseManager",
    "DatabaseSnapshotStore",
    "PortfolioSnapshotDTO",
    "PortfolioSnapshotModel",
    "PortfolioSnapshotRepository",
    "SnapshotStore",
    "StoreError",
    "SyncJobDTO",
    "SyncJobModel",
    "SyncJobRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
