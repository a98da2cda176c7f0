from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any

from bizsync.application.conflict_store import ConflictStore
from bizsync.application.device_registry import DeviceRegistry
from bizsync.application.sync_log import SyncLog
from bizsync.application.sync_orchestrator import SyncOrchestrator
from bizsync.core.errors import AppError, ValidationError
from bizsync.domain.sync_models import parse_chosen_version, parse_strategy


def error_payload(error: AppError) -> dict[str, str]:
    return {"error": str(error), "code": error.code}


def _require_mapping(payload: object) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be an object")
    return payload


def _require_text(payload: Mapping[str, Any], key: str, message: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message)
    return value


def _optional_tables(payload: Mapping[str, Any]) -> list[object] | None:
    tables = payload.get("tables")
    if tables is None:
        return None
    if not isinstance(tables, list):
        raise ValidationError("tables must be a list of table names")
    return tables


class SyncApi:
    """Fachada para la capa de rutas: valida el cuerpo y devuelve dicts de transporte."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        registry: DeviceRegistry,
        conflict_store: ConflictStore,
        sync_log: SyncLog,
    ) -> None:
        self._orchestrator = orchestrator
        self._registry = registry
        self._conflict_store = conflict_store
        self._sync_log = sync_log

    def register_device(self, payload: object, owner_user_id: str | None = None) -> dict[str, Any]:
        body = _require_mapping(payload)
        name = _require_text(body, "name", "Device name and type are required")
        device_type = _require_text(body, "type", "Device name and type are required")
        device = self._registry.register(name, device_type, owner_user_id)
        return {"deviceId": device.id}

    def list_devices(self, owner_user_id: str | None = None) -> list[dict[str, Any]]:
        return [device.to_payload() for device in self._registry.list(owner_user_id)]

    def remove_device(self, device_id: str) -> dict[str, Any]:
        self._registry.remove(device_id)
        return {"ok": True}

    def device_status(self, device_id: str) -> dict[str, Any]:
        return self._registry.status(device_id).to_payload()

    def pull(self, payload: object) -> dict[str, Any]:
        body = _require_mapping(payload)
        device_id = _require_text(body, "deviceId", "Device ID and last sync timestamp are required")
        since = body.get("lastSyncTimestamp")
        if since is None or since == "":
            raise ValidationError("Device ID and last sync timestamp are required")
        self._registry.get(device_id)
        result = self._orchestrator.pull(since, _optional_tables(body))
        self._registry.touch_last_sync(device_id, result.timestamp)
        return result.to_payload()

    def push(self, payload: object, cancel_event: threading.Event | None = None) -> dict[str, Any]:
        body = _require_mapping(payload)
        device_id = _require_text(body, "deviceId", "Device ID and changes are required")
        changes = body.get("changes")
        if not isinstance(changes, Mapping):
            raise ValidationError("Device ID and changes are required")
        result = self._orchestrator.push(changes, device_id, body.get("strategy"), cancel_event=cancel_event)
        self._registry.touch_last_sync(device_id)
        return result.to_payload()

    def full_sync(self, payload: object) -> dict[str, Any]:
        body = _require_mapping(payload)
        device_id = _require_text(body, "deviceId", "Device ID is required")
        changes = body.get("changes")
        if changes is not None and not isinstance(changes, Mapping):
            raise ValidationError("changes must be an object keyed by table name")
        result = self._orchestrator.full_sync(
            device_id,
            last_sync_timestamp=body.get("lastSyncTimestamp"),
            changes=changes,
            tables=_optional_tables(body),
            strategy=body.get("strategy"),
        )
        return result.to_payload()

    def history(self, device_id: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        return [entry.to_payload() for entry in self._sync_log.history(device_id, limit)]

    def pending_conflicts(self) -> list[dict[str, Any]]:
        return [conflict.to_payload() for conflict in self._conflict_store.list_pending()]

    def resolve_conflict(self, conflict_id: int, payload: object) -> dict[str, Any]:
        body = _require_mapping(payload)
        chosen = parse_chosen_version(body.get("chosenVersion"))
        self._conflict_store.resolve_manually(conflict_id, chosen)
        return {"ok": True, "chosenVersion": chosen.value}

    def set_strategy(self, payload: object) -> dict[str, Any]:
        body = _require_mapping(payload)
        device_id = _require_text(body, "deviceId", "Device ID and strategy are required")
        if body.get("strategy") is None:
            raise ValidationError("Device ID and strategy are required")
        strategy = parse_strategy(body["strategy"])
        self._registry.set_strategy(device_id, strategy)
        return {"ok": True, "strategy": strategy.value}
