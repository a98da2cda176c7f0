from __future__ import annotations

import logging
import sqlite3
from typing import Any, Mapping

from bizsync.application.ports.record_store import ANY_VERSION
from bizsync.core.errors import RecordApplyError
from bizsync.domain.sync_models import Record
from bizsync.domain.syncable_tables import SyncableTable, require_syncable_table
from bizsync.domain.time_utils import now_watermark, to_watermark
from bizsync.infrastructure.sqlite_uow import SQLiteUnitOfWork

logger = logging.getLogger(__name__)

_BINDABLE_TYPES = (str, int, float, bytes, type(None))


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _row_to_record(row: sqlite3.Row | None) -> Record | None:
    if row is None:
        return None
    return {key: row[key] for key in row.keys()}


class RecordStoreSQLite:
    """Acceso genérico a las tablas sincronizables.

    Los identificadores SQL salen sólo de ``SyncableTable`` y del esquema real de
    cada tabla; los nombres de campo que llegan del cliente se validan contra ese
    esquema antes de construir cualquier sentencia.
    """

    def __init__(self, uow: SQLiteUnitOfWork) -> None:
        self._uow = uow
        self._columns: dict[SyncableTable, frozenset[str]] = {}

    def columns(self, table: SyncableTable | str) -> frozenset[str]:
        syncable = require_syncable_table(table)
        cached = self._columns.get(syncable)
        if cached is not None:
            return cached
        with self._uow.reading() as connection:
            rows = connection.execute(f"PRAGMA table_info({_quote(syncable.value)})").fetchall()
        columns = frozenset(row["name"] for row in rows)
        if "id" not in columns or "updated_at" not in columns:
            raise RecordApplyError(f"Table '{syncable.value}' lacks the id/updated_at columns required for sync")
        self._columns[syncable] = columns
        return columns

    def get(self, table: SyncableTable | str, record_id: object) -> Record | None:
        syncable = require_syncable_table(table)
        with self._uow.reading() as connection:
            row = connection.execute(
                f"SELECT * FROM {_quote(syncable.value)} WHERE id = ?",
                (record_id,),
            ).fetchone()
        return _row_to_record(row)

    def changes_since(self, table: SyncableTable | str, watermark: str) -> list[Record]:
        syncable = require_syncable_table(table)
        with self._uow.reading() as connection:
            rows = connection.execute(
                f"""
                SELECT * FROM {_quote(syncable.value)}
                WHERE updated_at > ?
                ORDER BY updated_at ASC, id ASC
                """,
                (watermark,),
            ).fetchall()
        return [{key: row[key] for key in row.keys()} for row in rows]

    def count(self, table: SyncableTable | str) -> int:
        syncable = require_syncable_table(table)
        with self._uow.reading() as connection:
            row = connection.execute(f"SELECT COUNT(*) AS total FROM {_quote(syncable.value)}").fetchone()
        return int(row["total"] if row else 0)

    def insert(self, table: SyncableTable | str, record: Mapping[str, Any]) -> int:
        syncable = require_syncable_table(table)
        data = self._prepare(syncable, record)
        names = list(data)
        sql = (
            f"INSERT INTO {_quote(syncable.value)} ({', '.join(_quote(name) for name in names)}) "
            f"VALUES ({', '.join('?' for _ in names)})"
        )
        try:
            with self._uow.transaction():
                cursor = self._uow.connection.execute(sql, tuple(data[name] for name in names))
        except sqlite3.IntegrityError as exc:
            raise RecordApplyError(f"Cannot insert {syncable.value}/{data['id']}: {exc}") from exc
        return cursor.rowcount

    def update(
        self,
        table: SyncableTable | str,
        record: Mapping[str, Any],
        *,
        expected_updated_at: object = ANY_VERSION,
    ) -> int:
        """Actualiza por ``id``; con ``expected_updated_at`` actúa como compare-and-swap."""
        syncable = require_syncable_table(table)
        data = self._prepare(syncable, record)
        names = [name for name in data if name != "id"]
        params: list[object] = [data[name] for name in names]
        sql = f"UPDATE {_quote(syncable.value)} SET {', '.join(f'{_quote(name)} = ?' for name in names)} WHERE id = ?"
        params.append(data["id"])
        if expected_updated_at is not ANY_VERSION:
            sql += " AND updated_at IS ?"
            params.append(expected_updated_at)
        try:
            with self._uow.transaction():
                cursor = self._uow.connection.execute(sql, tuple(params))
        except sqlite3.IntegrityError as exc:
            raise RecordApplyError(f"Cannot update {syncable.value}/{data['id']}: {exc}") from exc
        return cursor.rowcount

    def _prepare(self, table: SyncableTable, record: Mapping[str, Any]) -> Record:
        if not isinstance(record, Mapping):
            raise RecordApplyError(f"Record for {table.value} must be an object, got {type(record).__name__}")
        record_id = record.get("id")
        if record_id is None or record_id == "":
            raise RecordApplyError(f"Record for {table.value} is missing its id")
        unknown = sorted(name for name in record if name not in self.columns(table))
        if unknown:
            raise RecordApplyError(f"Unknown column(s) for {table.value}: {', '.join(map(str, unknown))}")
        data: Record = {}
        for name, value in record.items():
            if isinstance(value, bool):
                value = int(value)
            if not isinstance(value, _BINDABLE_TYPES):
                raise RecordApplyError(f"Field {table.value}.{name} has unsupported type {type(value).__name__}")
            data[name] = value
        if data.get("updated_at") is None:
            data["updated_at"] = now_watermark()
        else:
            watermark = to_watermark(data["updated_at"])
            if watermark is None:
                raise RecordApplyError(f"Invalid updated_at for {table.value}/{record_id}: {data['updated_at']!r}")
            data["updated_at"] = watermark
        return data
