from __future__ import annotations

import logging
import sqlite3
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from bizsync.application.change_tracker import ChangeTracker
from bizsync.application.conflict_resolver import ConflictResolver
from bizsync.application.conflict_store import ConflictStore
from bizsync.application.device_registry import DeviceRegistry
from bizsync.application.sync_log import SyncLog
from bizsync.application.sync_orchestrator import SyncOrchestrator
from bizsync.application.use_cases import SyncApi
from bizsync.core.metrics import metrics_registry
from bizsync.domain.sync_models import Device
from bizsync.infrastructure.db import open_memory_connection
from bizsync.infrastructure.migrations import run_migrations
from bizsync.infrastructure.repos_conflicts_sqlite import SQLiteConflictsRepository
from bizsync.infrastructure.repos_records_sqlite import RecordStoreSQLite
from bizsync.infrastructure.repos_sqlite import DeviceRepositorySQLite, SyncLogRepositorySQLite
from bizsync.infrastructure.sqlite_uow import SQLiteUnitOfWork


@pytest.fixture
def connection() -> sqlite3.Connection:
    conn = open_memory_connection()
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def uow(connection: sqlite3.Connection) -> SQLiteUnitOfWork:
    return SQLiteUnitOfWork(connection)


@pytest.fixture
def record_store(uow: SQLiteUnitOfWork) -> RecordStoreSQLite:
    return RecordStoreSQLite(uow)


@pytest.fixture
def conflicts_repo(uow: SQLiteUnitOfWork) -> SQLiteConflictsRepository:
    return SQLiteConflictsRepository(uow)


@pytest.fixture
def devices_repo(uow: SQLiteUnitOfWork) -> DeviceRepositorySQLite:
    return DeviceRepositorySQLite(uow)


@pytest.fixture
def sync_log_repo(uow: SQLiteUnitOfWork) -> SyncLogRepositorySQLite:
    return SyncLogRepositorySQLite(uow)


@pytest.fixture
def change_tracker(record_store: RecordStoreSQLite) -> ChangeTracker:
    return ChangeTracker(record_store)


@pytest.fixture
def conflict_store(
    uow: SQLiteUnitOfWork,
    conflicts_repo: SQLiteConflictsRepository,
    record_store: RecordStoreSQLite,
) -> ConflictStore:
    return ConflictStore(uow, conflicts_repo, record_store)


@pytest.fixture
def resolver(record_store: RecordStoreSQLite, conflict_store: ConflictStore) -> ConflictResolver:
    return ConflictResolver(record_store, conflict_store)


@pytest.fixture
def registry(devices_repo: DeviceRepositorySQLite, change_tracker: ChangeTracker) -> DeviceRegistry:
    return DeviceRegistry(devices_repo, change_tracker)


@pytest.fixture
def sync_log(sync_log_repo: SyncLogRepositorySQLite) -> SyncLog:
    return SyncLog(sync_log_repo)


@pytest.fixture
def orchestrator(
    uow: SQLiteUnitOfWork,
    record_store: RecordStoreSQLite,
    change_tracker: ChangeTracker,
    resolver: ConflictResolver,
    registry: DeviceRegistry,
    sync_log: SyncLog,
) -> SyncOrchestrator:
    return SyncOrchestrator(uow, record_store, change_tracker, resolver, registry, sync_log)


@pytest.fixture
def sync_api(
    orchestrator: SyncOrchestrator,
    registry: DeviceRegistry,
    conflict_store: ConflictStore,
    sync_log: SyncLog,
) -> SyncApi:
    return SyncApi(orchestrator, registry, conflict_store, sync_log)


@pytest.fixture
def device(registry: DeviceRegistry) -> Device:
    return registry.register("Portátil taller", "desktop", "user-1")


@pytest.fixture
def other_device(registry: DeviceRegistry) -> Device:
    return registry.register("Tablet almacén", "mobile", "user-2")


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    metrics_registry.reset()
    yield
    metrics_registry.reset()


@pytest.fixture
def restore_root_logging() -> None:
    root_logger = logging.getLogger()
    previous_level = root_logger.level
    yield
    for handler in list(root_logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(previous_level)
