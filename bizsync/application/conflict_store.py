from __future__ import annotations

import logging

from bizsync.application.ports.conflicts_repository import ConflictsRepository
from bizsync.application.ports.record_store import RecordStore
from bizsync.application.ports.unit_of_work import UnitOfWork
from bizsync.core.errors import AlreadyResolvedError, ConflictNotFoundError, RecordApplyError
from bizsync.core.observability import log_event
from bizsync.domain.sync_models import ChosenVersion, ConflictRecord, ConflictStatus, Record, parse_chosen_version
from bizsync.domain.syncable_tables import require_syncable_table

logger = logging.getLogger(__name__)


class ConflictStore:
    def __init__(self, uow: UnitOfWork, repository: ConflictsRepository, store: RecordStore) -> None:
        self._uow = uow
        self._repository = repository
        self._store = store

    def store(
        self,
        table: str,
        existing: Record,
        incoming: Record,
        device_id: str | None = None,
    ) -> ConflictRecord:
        syncable = require_syncable_table(table)
        record_id = incoming.get("id", existing.get("id"))
        conflict = self._repository.add(syncable.value, str(record_id), dict(existing), dict(incoming), device_id)
        log_event(
            logger,
            "sync_conflict_deferred",
            {"conflict_id": conflict.id, "table": syncable.value, "record_id": conflict.record_id, "device_id": device_id},
        )
        return conflict

    def list_pending(self) -> list[ConflictRecord]:
        return self._repository.list_pending()

    def get(self, conflict_id: int) -> ConflictRecord:
        conflict = self._repository.get(conflict_id)
        if conflict is None:
            raise ConflictNotFoundError(conflict_id)
        return conflict

    def resolve_manually(self, conflict_id: int, chosen_version: ChosenVersion | str) -> ConflictRecord:
        """Escribe la versión elegida y cierra el conflicto en una sola transacción."""
        chosen = parse_chosen_version(chosen_version)
        with self._uow.transaction():
            conflict = self.get(conflict_id)
            if conflict.status is not ConflictStatus.PENDING:
                raise AlreadyResolvedError(conflict_id)
            syncable = require_syncable_table(conflict.table)
            snapshot = conflict.existing_data if chosen is ChosenVersion.EXISTING else conflict.incoming_data
            if self._store.get(syncable, conflict.record_id) is None:
                self._store.insert(syncable, snapshot)
            elif self._store.update(syncable, snapshot) == 0:
                raise RecordApplyError(f"Record {syncable.value}/{conflict.record_id} could not be written")
            if not self._repository.mark_resolved(conflict_id, chosen):
                raise AlreadyResolvedError(conflict_id)
        resolved = self.get(conflict_id)
        log_event(
            logger,
            "sync_conflict_resolved",
            {"conflict_id": conflict_id, "table": resolved.table, "chosen_version": chosen.value},
        )
        return resolved
