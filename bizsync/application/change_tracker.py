from __future__ import annotations

from bizsync.application.ports.record_store import RecordStore
from bizsync.core.errors import ValidationError
from bizsync.domain.sync_models import Record
from bizsync.domain.syncable_tables import SyncableTable, require_syncable_table
from bizsync.domain.time_utils import to_watermark


class ChangeTracker:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def changes_since(self, table: SyncableTable | str, timestamp: object) -> list[Record]:
        """Registros con ``updated_at`` estrictamente posterior a ``timestamp``, en orden ascendente."""
        syncable = require_syncable_table(table)
        watermark = to_watermark(timestamp)
        if watermark is None:
            raise ValidationError(f"Invalid sync timestamp: {timestamp!r}")
        return self._store.changes_since(syncable, watermark)

    def count_since(self, tables: list[SyncableTable], timestamp: object) -> int:
        return sum(len(self.changes_since(table, timestamp)) for table in tables)
