from __future__ import annotations

from typing import Protocol

from bizsync.domain.sync_models import ChosenVersion, ConflictRecord, Record


class ConflictsRepository(Protocol):
    def add(self, table: str, record_id: str, existing: Record, incoming: Record, device_id: str | None) -> ConflictRecord:
        ...

    def get(self, conflict_id: int) -> ConflictRecord | None:
        ...

    def list_pending(self) -> list[ConflictRecord]:
        ...

    def mark_resolved(self, conflict_id: int, chosen_version: ChosenVersion) -> bool:
        ...
