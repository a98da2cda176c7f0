from __future__ import annotations

from typing import Protocol

from bizsync.domain.sync_models import Record
from bizsync.domain.syncable_tables import SyncableTable

ANY_VERSION = object()


class RecordStore(Protocol):
    """Almacén relacional compartido, con ``updated_at`` mantenido por registro."""

    def get(self, table: SyncableTable, record_id: object) -> Record | None:
        ...

    def changes_since(self, table: SyncableTable, watermark: str) -> list[Record]:
        ...

    def insert(self, table: SyncableTable, record: Record) -> int:
        ...

    def update(self, table: SyncableTable, record: Record, *, expected_updated_at: object = ANY_VERSION) -> int:
        ...

    def count(self, table: SyncableTable) -> int:
        ...
