from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Callable

from bizsync.application.change_tracker import ChangeTracker
from bizsync.application.conflict_resolver import ConflictResolver
from bizsync.application.conflict_store import ConflictStore
from bizsync.application.device_registry import DeviceRegistry
from bizsync.application.sync_log import SyncLog
from bizsync.application.sync_orchestrator import SyncOrchestrator
from bizsync.application.use_cases import SyncApi
from bizsync.bootstrap.settings import SyncSettings, load_settings
from bizsync.infrastructure.db import get_connection
from bizsync.infrastructure.migrations import run_migrations
from bizsync.infrastructure.repos_conflicts_sqlite import SQLiteConflictsRepository
from bizsync.infrastructure.repos_records_sqlite import RecordStoreSQLite
from bizsync.infrastructure.repos_sqlite import DeviceRepositorySQLite, SyncLogRepositorySQLite
from bizsync.infrastructure.sqlite_uow import SQLiteUnitOfWork


@dataclass
class SyncContainer:
    connection: sqlite3.Connection
    uow: SQLiteUnitOfWork
    record_store: RecordStoreSQLite
    change_tracker: ChangeTracker
    conflict_store: ConflictStore
    conflict_resolver: ConflictResolver
    device_registry: DeviceRegistry
    sync_log: SyncLog
    orchestrator: SyncOrchestrator
    api: SyncApi

    def close(self) -> None:
        self.connection.close()


ConnectionFactory = Callable[[], sqlite3.Connection]


def build_container(
    connection_factory: ConnectionFactory | None = None,
    settings: SyncSettings | None = None,
) -> SyncContainer:
    resolved_settings = settings or load_settings()
    if connection_factory is None:
        connection = get_connection(resolved_settings.db_path, busy_timeout_ms=resolved_settings.busy_timeout_ms)
    else:
        connection = connection_factory()
    run_migrations(connection)

    uow = SQLiteUnitOfWork(connection)
    record_store = RecordStoreSQLite(uow)
    change_tracker = ChangeTracker(record_store)
    conflict_store = ConflictStore(uow, SQLiteConflictsRepository(uow), record_store)
    conflict_resolver = ConflictResolver(record_store, conflict_store)
    device_registry = DeviceRegistry(DeviceRepositorySQLite(uow), change_tracker)
    sync_log = SyncLog(SyncLogRepositorySQLite(uow), default_limit=resolved_settings.history_limit)
    orchestrator = SyncOrchestrator(
        uow,
        record_store,
        change_tracker,
        conflict_resolver,
        device_registry,
        sync_log,
        default_strategy=resolved_settings.default_strategy,
    )
    api = SyncApi(orchestrator, device_registry, conflict_store, sync_log)

    return SyncContainer(
        connection=connection,
        uow=uow,
        record_store=record_store,
        change_tracker=change_tracker,
        conflict_store=conflict_store,
        conflict_resolver=conflict_resolver,
        device_registry=device_registry,
        sync_log=sync_log,
        orchestrator=orchestrator,
        api=api,
    )
