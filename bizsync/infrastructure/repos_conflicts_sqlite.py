from __future__ import annotations

import json
import sqlite3

from bizsync.domain.sync_models import ChosenVersion, ConflictRecord, ConflictStatus, Record
from bizsync.domain.time_utils import now_watermark
from bizsync.infrastructure.sqlite_uow import SQLiteUnitOfWork

_SELECT_CONFLICT = """
    SELECT id, table_name, record_id, device_id, existing_data, incoming_data,
           status, chosen_version, resolved_at, created_at
    FROM sync_conflicts
"""


def _execute_with_validation(cursor: sqlite3.Cursor, sql: str, params: tuple[object, ...], context: str) -> None:
    expected = sql.count("?")
    actual = len(params)
    if expected != actual:
        raise ValueError(
            f"SQL param mismatch for {context}: expected {expected} placeholders, got {actual} parameters."
        )
    cursor.execute(sql, params)


def _row_to_conflict(row: sqlite3.Row) -> ConflictRecord:
    return ConflictRecord(
        id=row["id"],
        table=row["table_name"],
        record_id=row["record_id"],
        device_id=row["device_id"],
        existing_data=json.loads(row["existing_data"] or "{}"),
        incoming_data=json.loads(row["incoming_data"] or "{}"),
        status=ConflictStatus(row["status"]),
        chosen_version=ChosenVersion(row["chosen_version"]) if row["chosen_version"] else None,
        resolved_at=row["resolved_at"],
        created_at=row["created_at"],
    )


class SQLiteConflictsRepository:
    def __init__(self, uow: SQLiteUnitOfWork) -> None:
        self._uow = uow

    def add(
        self,
        table: str,
        record_id: str,
        existing: Record,
        incoming: Record,
        device_id: str | None = None,
    ) -> ConflictRecord:
        created_at = now_watermark()
        with self._uow.transaction():
            cursor = self._uow.connection.cursor()
            _execute_with_validation(
                cursor,
                """
                INSERT INTO sync_conflicts (
                    table_name, record_id, device_id, existing_data, incoming_data, status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    table,
                    str(record_id),
                    device_id,
                    json.dumps(existing, ensure_ascii=False, default=str),
                    json.dumps(incoming, ensure_ascii=False, default=str),
                    ConflictStatus.PENDING.value,
                    created_at,
                ),
                "sync_conflicts.insert",
            )
            conflict_id = int(cursor.lastrowid)
        stored = self.get(conflict_id)
        if stored is None:
            raise RuntimeError(f"Conflict {conflict_id} vanished right after insert")
        return stored

    def get(self, conflict_id: int) -> ConflictRecord | None:
        with self._uow.reading() as connection:
            row = connection.execute(f"{_SELECT_CONFLICT} WHERE id = ?", (conflict_id,)).fetchone()
        return _row_to_conflict(row) if row else None

    def list_pending(self) -> list[ConflictRecord]:
        with self._uow.reading() as connection:
            rows = connection.execute(
                f"{_SELECT_CONFLICT} WHERE status = ? ORDER BY created_at DESC, id DESC",
                (ConflictStatus.PENDING.value,),
            ).fetchall()
        return [_row_to_conflict(row) for row in rows]

    def mark_resolved(self, conflict_id: int, chosen_version: ChosenVersion) -> bool:
        """Cierra el conflicto sólo si seguía pendiente; devuelve False en otro caso."""
        with self._uow.transaction():
            cursor = self._uow.connection.cursor()
            _execute_with_validation(
                cursor,
                """
                UPDATE sync_conflicts
                SET status = ?, chosen_version = ?, resolved_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    ConflictStatus.RESOLVED.value,
                    chosen_version.value,
                    now_watermark(),
                    conflict_id,
                    ConflictStatus.PENDING.value,
                ),
                "sync_conflicts.resolve",
            )
            return cursor.rowcount == 1
