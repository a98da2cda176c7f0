from __future__ import annotations

import json
import logging
import sqlite3
import time
from typing import Any, Callable, TypeVar

from bizsync.core.errors import PersistenceError
from bizsync.domain.sync_models import Device, ResolutionStrategy, SyncLogEntry
from bizsync.infrastructure.sqlite_uow import SQLiteUnitOfWork

logger = logging.getLogger(__name__)

_LOCKED_RETRY_BACKOFF_SECONDS = (0.05, 0.15, 0.3)
_T = TypeVar("_T")


def _is_locked_operational_error(error: sqlite3.OperationalError) -> bool:
    return "locked" in str(error).lower()


def _run_with_locked_retry(operation: Callable[[], _T], *, context: str) -> _T:
    """Reintenta escrituras de bookkeeping ante ``database is locked``; otros fallos no se reintentan."""
    for attempt, delay_seconds in enumerate(_LOCKED_RETRY_BACKOFF_SECONDS, start=1):
        try:
            return operation()
        except sqlite3.OperationalError as error:
            if not _is_locked_operational_error(error):
                raise PersistenceError(f"{context} failed: {error}") from error
            logger.warning(
                "SQLite locked in %s (attempt=%s/%s); retrying in %.0fms",
                context,
                attempt,
                len(_LOCKED_RETRY_BACKOFF_SECONDS),
                delay_seconds * 1000,
            )
            time.sleep(delay_seconds)

    try:
        return operation()
    except sqlite3.OperationalError as error:
        raise PersistenceError(
            f"{context} still locked after {len(_LOCKED_RETRY_BACKOFF_SECONDS)} retries: {error}"
        ) from error


def _row_to_device(row: sqlite3.Row) -> Device:
    strategy = row["conflict_strategy"]
    return Device(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        owner_user_id=row["user_id"],
        registered_at=row["registered_at"],
        last_sync_at=row["last_sync"],
        conflict_strategy=ResolutionStrategy(strategy) if strategy else None,
    )


class DeviceRepositorySQLite:
    def __init__(self, uow: SQLiteUnitOfWork) -> None:
        self._uow = uow

    def add(self, device: Device) -> Device:
        with self._uow.transaction():
            self._uow.connection.execute(
                """
                INSERT INTO sync_devices (id, name, type, user_id, conflict_strategy, last_sync, registered_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    device.id,
                    device.name,
                    device.type,
                    device.owner_user_id,
                    device.conflict_strategy.value if device.conflict_strategy else None,
                    device.last_sync_at,
                    device.registered_at,
                ),
            )
        return device

    def get(self, device_id: str) -> Device | None:
        with self._uow.reading() as connection:
            row = connection.execute("SELECT * FROM sync_devices WHERE id = ?", (device_id,)).fetchone()
        return _row_to_device(row) if row else None

    def list(self, owner_user_id: str | None = None) -> list[Device]:
        sql = "SELECT * FROM sync_devices"
        params: tuple[object, ...] = ()
        if owner_user_id is not None:
            sql += " WHERE user_id = ?"
            params = (owner_user_id,)
        sql += " ORDER BY last_sync DESC, registered_at DESC, id ASC"
        with self._uow.reading() as connection:
            rows = connection.execute(sql, params).fetchall()
        return [_row_to_device(row) for row in rows]

    def delete(self, device_id: str) -> bool:
        with self._uow.transaction():
            cursor = self._uow.connection.execute("DELETE FROM sync_devices WHERE id = ?", (device_id,))
        return cursor.rowcount > 0

    def set_last_sync(self, device_id: str, synced_at: str) -> bool:
        def _update() -> int:
            with self._uow.transaction():
                cursor = self._uow.connection.execute(
                    "UPDATE sync_devices SET last_sync = ? WHERE id = ?",
                    (synced_at, device_id),
                )
            return cursor.rowcount

        return _run_with_locked_retry(_update, context="sync_devices.set_last_sync") > 0

    def set_strategy(self, device_id: str, strategy: ResolutionStrategy | None) -> bool:
        with self._uow.transaction():
            cursor = self._uow.connection.execute(
                "UPDATE sync_devices SET conflict_strategy = ? WHERE id = ?",
                (strategy.value if strategy else None, device_id),
            )
        return cursor.rowcount > 0


def _row_to_log_entry(row: sqlite3.Row) -> SyncLogEntry:
    return SyncLogEntry(
        id=row["id"],
        device_id=row["device_id"],
        applied_count=int(row["applied_count"]),
        conflict_count=int(row["conflict_count"]),
        error_count=int(row["error_count"]),
        details=json.loads(row["details"] or "[]"),
        cancelled=bool(row["cancelled"]),
        synced_at=row["synced_at"],
    )


class SyncLogRepositorySQLite:
    def __init__(self, uow: SQLiteUnitOfWork) -> None:
        self._uow = uow

    def append(
        self,
        device_id: str | None,
        applied: int,
        conflicts: int,
        errors: int,
        details: list[dict[str, Any]],
        cancelled: bool,
        synced_at: str,
    ) -> SyncLogEntry:
        payload = json.dumps(details, ensure_ascii=False, default=str)

        def _insert() -> int:
            with self._uow.transaction():
                cursor = self._uow.connection.execute(
                    """
                    INSERT INTO sync_logs (
                        device_id, applied_count, conflict_count, error_count, cancelled, details, synced_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (device_id, applied, conflicts, errors, int(cancelled), payload, synced_at),
                )
            return int(cursor.lastrowid)

        entry_id = _run_with_locked_retry(_insert, context="sync_logs.append")
        return SyncLogEntry(
            id=entry_id,
            device_id=device_id,
            applied_count=applied,
            conflict_count=conflicts,
            error_count=errors,
            details=json.loads(payload),
            cancelled=cancelled,
            synced_at=synced_at,
        )

    def list(self, device_id: str | None = None, limit: int = 50) -> list[SyncLogEntry]:
        sql = "SELECT * FROM sync_logs"
        params: list[object] = []
        if device_id is not None:
            sql += " WHERE device_id = ?"
            params.append(device_id)
        sql += " ORDER BY synced_at DESC, id DESC LIMIT ?"
        params.append(limit)
        with self._uow.reading() as connection:
            rows = connection.execute(sql, tuple(params)).fetchall()
        return [_row_to_log_entry(row) for row in rows]
