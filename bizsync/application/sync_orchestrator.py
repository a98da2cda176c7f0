from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from bizsync.application.change_tracker import ChangeTracker
from bizsync.application.conflict_resolver import ConflictResolver
from bizsync.application.device_registry import DeviceRegistry
from bizsync.application.ports.record_store import RecordStore
from bizsync.application.ports.unit_of_work import UnitOfWork
from bizsync.application.sync_log import SyncLog
from bizsync.core.errors import ConcurrentModificationError, RecordApplyError, ValidationError
from bizsync.core.metrics import metrics_registry, timed
from bizsync.core.observability import OperationContext, log_event
from bizsync.core.operational_logging import log_operational_error
from bizsync.domain.conflict_rules import ConflictCheck, classify_conflict
from bizsync.domain.sync_models import (
    DEFAULT_STRATEGY,
    ChangeSet,
    Device,
    DetailAction,
    FullSyncResult,
    PullResult,
    PushDetail,
    PushResult,
    Record,
    ResolutionStrategy,
    parse_strategy,
)
from bizsync.domain.syncable_tables import SyncableTable, require_syncable_table, resolve_tables
from bizsync.domain.time_utils import EPOCH_WATERMARK, now_watermark, to_watermark

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Pull, push y sincronización completa entre dispositivos y el almacén central."""

    def __init__(
        self,
        uow: UnitOfWork,
        store: RecordStore,
        change_tracker: ChangeTracker,
        resolver: ConflictResolver,
        registry: DeviceRegistry,
        sync_log: SyncLog,
        default_strategy: ResolutionStrategy = DEFAULT_STRATEGY,
    ) -> None:
        self._uow = uow
        self._store = store
        self._change_tracker = change_tracker
        self._resolver = resolver
        self._registry = registry
        self._sync_log = sync_log
        self._default_strategy = default_strategy

    @timed("sync_pull")
    def pull(self, since: object, tables: Iterable[object] | None = None) -> PullResult:
        selected = resolve_tables(tables)
        watermark = to_watermark(since)
        if watermark is None:
            raise ValidationError(f"Invalid sync timestamp: {since!r}")
        timestamp = now_watermark()
        changes: ChangeSet = {}
        for table in selected:
            records = self._change_tracker.changes_since(table, watermark)
            if records:
                changes[table.value] = records
        result = PullResult(timestamp=timestamp, changes=changes)
        metrics_registry.record_pull(result.record_count)
        log_event(
            logger,
            "sync_pull_completed",
            {"since": watermark, "tables": [table.value for table in selected], "record_count": result.record_count},
        )
        return result

    @timed("sync_push")
    def push(
        self,
        changes: Mapping[str, Any],
        device_id: str,
        strategy: ResolutionStrategy | str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> PushResult:
        device = self._registry.get(device_id)
        chosen = self._resolve_strategy(device, strategy)
        batches = self._validate_changes(changes)

        result = PushResult()
        with OperationContext("sync_push", device_id=device_id, strategy=chosen.value) as session:
            for table, records in batches:
                for record in records:
                    if cancel_event is not None and cancel_event.is_set():
                        result.cancelled = True
                        break
                    self._apply_record(table, record, chosen, device_id, result)
                if result.cancelled:
                    break

            entry = self._sync_log.record(device_id, result)
            session.bind(sync_log_id=entry.id)
            metrics_registry.record_push(
                strategy=chosen.value,
                applied=result.applied,
                conflicts=result.conflicts,
                errors=result.errors,
                cancelled=result.cancelled,
            )
            log_event(
                logger,
                "sync_push_cancelled" if result.cancelled else "sync_push_completed",
                {
                    "device_id": device_id,
                    "strategy": chosen.value,
                    "applied": result.applied,
                    "conflicts": result.conflicts,
                    "errors": result.errors,
                    "sync_log_id": entry.id,
                },
            )
        return result

    def full_sync(
        self,
        device_id: str,
        last_sync_timestamp: object = None,
        changes: Mapping[str, Any] | None = None,
        tables: Iterable[object] | None = None,
        strategy: ResolutionStrategy | str | None = None,
    ) -> FullSyncResult:
        self._registry.get(device_id)
        selected = resolve_tables(tables)
        since = to_watermark(last_sync_timestamp or EPOCH_WATERMARK)
        if since is None:
            raise ValidationError(f"Invalid sync timestamp: {last_sync_timestamp!r}")
        with OperationContext("sync_full", device_id=device_id):
            push_result: PushResult | None = None
            if changes:
                push_result = self.push(changes, device_id, strategy)
            pulled = self.pull(since, selected)
            if push_result is not None:
                pulled = PullResult(
                    timestamp=pulled.timestamp,
                    changes=_without_echoes(pulled.changes, changes or {}, push_result),
                )
            synced_at = self._registry.touch_last_sync(device_id, pulled.timestamp)
        return FullSyncResult(push=push_result, pull=pulled, synced_at=synced_at)

    def _resolve_strategy(self, device: Device, strategy: ResolutionStrategy | str | None) -> ResolutionStrategy:
        if strategy is not None:
            return parse_strategy(strategy)
        if device.conflict_strategy is not None:
            return device.conflict_strategy
        return self._default_strategy

    def _validate_changes(self, changes: Mapping[str, Any]) -> list[tuple[SyncableTable, list[Any]]]:
        if not isinstance(changes, Mapping):
            raise ValidationError("Changes must be an object keyed by table name")
        batches: list[tuple[SyncableTable, list[Any]]] = []
        for table, records in changes.items():
            syncable = require_syncable_table(table)
            if not isinstance(records, list):
                raise ValidationError(f"Changes for table '{syncable.value}' must be a list of records")
            batches.append((syncable, records))
        return batches

    def _apply_record(
        self,
        table: SyncableTable,
        record: Any,
        strategy: ResolutionStrategy,
        device_id: str,
        result: PushResult,
    ) -> None:
        record_id = record.get("id") if isinstance(record, Mapping) else None
        try:
            with self._uow.transaction():
                detail = self._apply_in_transaction(table, record, strategy, device_id, result)
        except Exception as exc:
            result.errors += 1
            result.details.append(PushDetail(table=table.value, record_id=record_id, action=DetailAction.ERROR, error=str(exc)))
            log_operational_error(
                "Failed to apply pushed record",
                exc=exc,
                extra={"table": table.value, "record_id": record_id, "device_id": device_id},
            )
            return
        if detail.applied is not False:
            result.applied += 1
        result.details.append(detail)

    def _apply_in_transaction(
        self,
        table: SyncableTable,
        record: Any,
        strategy: ResolutionStrategy,
        device_id: str,
        result: PushResult,
    ) -> PushDetail:
        if not isinstance(record, Mapping):
            raise RecordApplyError(f"Record for {table.value} must be an object, got {type(record).__name__}")
        incoming: Record = dict(record)
        record_id = incoming.get("id")
        if record_id is None or record_id == "":
            raise RecordApplyError(f"Record for {table.value} is missing its id")

        existing = self._store.get(table, record_id)
        if existing is None:
            self._store.insert(table, incoming)
            return PushDetail(table=table.value, record_id=record_id, action=DetailAction.INSERTED)

        check = classify_conflict(existing, incoming)
        if check is ConflictCheck.DIVERGENT:
            result.conflicts += 1
            resolution = self._resolver.resolve(table.value, existing, incoming, strategy, device_id=device_id)
            return PushDetail(
                table=table.value,
                record_id=record_id,
                action=DetailAction.CONFLICT_RESOLVED,
                strategy=strategy,
                winner=resolution.winner,
                applied=resolution.applied,
            )

        if self._store.update(table, incoming, expected_updated_at=existing.get("updated_at")) == 0:
            raise ConcurrentModificationError(table.value, record_id)
        soft_conflict = check is ConflictCheck.IDENTICAL_CONTENT
        if soft_conflict:
            metrics_registry.increment("sync.soft_conflicts")
            log_event(
                logger,
                "sync_soft_conflict",
                {
                    "table": table.value,
                    "record_id": record_id,
                    "existing_updated_at": existing.get("updated_at"),
                    "incoming_updated_at": incoming.get("updated_at"),
                },
            )
        return PushDetail(table=table.value, record_id=record_id, action=DetailAction.UPDATED, soft_conflict=soft_conflict)


def _without_echoes(changes: ChangeSet, pushed: Mapping[str, Any], push_result: PushResult) -> ChangeSet:
    """Quita del pull los registros que el propio dispositivo acaba de escribir tal cual."""
    written = {
        (detail.table, str(detail.record_id))
        for detail in push_result.details
        if detail.action is not DetailAction.ERROR and detail.applied is not False
    }
    sent: dict[tuple[str, str], Mapping[str, Any]] = {}
    for table, records in pushed.items():
        for record in records:
            if isinstance(record, Mapping) and (table, str(record.get("id"))) in written:
                sent[(table, str(record.get("id")))] = record

    filtered: ChangeSet = {}
    for table, records in changes.items():
        kept = [
            record
            for record in records
            if not _stored_as_sent(record, sent.get((table, str(record.get("id")))))
        ]
        if kept:
            filtered[table] = kept
    return filtered


def _stored_as_sent(stored: Mapping[str, Any], sent: Mapping[str, Any] | None) -> bool:
    if sent is None:
        return False
    for name, value in sent.items():
        if name == "updated_at":
            if value is not None and to_watermark(value) != stored.get("updated_at"):
                return False
        elif stored.get(name) != value:
            return False
    return True
