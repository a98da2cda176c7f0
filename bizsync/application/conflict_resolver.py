from __future__ import annotations

import logging

from bizsync.application.ports.record_store import RecordStore
from bizsync.application.conflict_store import ConflictStore
from bizsync.core.errors import ConcurrentModificationError
from bizsync.domain.conflict_rules import is_incoming_newer
from bizsync.domain.sync_models import Record, Resolution, ResolutionStrategy, Winner, parse_strategy
from bizsync.domain.syncable_tables import require_syncable_table

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Aplica una estrategia a un conflicto ya detectado.

    La escritura se hace con compare-and-swap sobre el ``updated_at`` que se leyó
    como versión existente: si otro push lo cambió entretanto, el registro falla
    con ``ConcurrentModificationError`` en lugar de pisar esa escritura.
    """

    def __init__(self, store: RecordStore, conflict_store: ConflictStore) -> None:
        self._store = store
        self._conflict_store = conflict_store

    def resolve(
        self,
        table: str,
        existing: Record,
        incoming: Record,
        strategy: ResolutionStrategy | str,
        device_id: str | None = None,
    ) -> Resolution:
        syncable = require_syncable_table(table)
        chosen = parse_strategy(strategy)

        if chosen is ResolutionStrategy.SERVER_WINS:
            return Resolution(applied=False, winner=Winner.EXISTING)
        if chosen is ResolutionStrategy.MANUAL:
            self._conflict_store.store(syncable.value, existing, incoming, device_id=device_id)
            return Resolution(applied=False, winner=Winner.PENDING)
        if chosen is ResolutionStrategy.LATEST_WINS and not is_incoming_newer(existing, incoming):
            return Resolution(applied=False, winner=Winner.EXISTING)

        updated = self._store.update(syncable, incoming, expected_updated_at=existing.get("updated_at"))
        if updated == 0:
            raise ConcurrentModificationError(syncable.value, incoming.get("id"))
        logger.debug("conflict_overwritten", extra={"extra": {"table": syncable.value, "strategy": chosen.value}})
        return Resolution(applied=True, winner=Winner.INCOMING)
