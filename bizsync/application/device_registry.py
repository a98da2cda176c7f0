from __future__ import annotations

import logging
import uuid

from bizsync.application.change_tracker import ChangeTracker
from bizsync.application.ports.devices_repository import DevicesRepository
from bizsync.core.errors import DeviceNotFoundError, ValidationError
from bizsync.core.observability import log_event
from bizsync.domain.sync_models import Device, DeviceStatus, ResolutionStrategy, parse_strategy
from bizsync.domain.syncable_tables import SyncableTable
from bizsync.domain.time_utils import EPOCH_WATERMARK, now_watermark

logger = logging.getLogger(__name__)


def generate_device_id() -> str:
    return f"dev_{uuid.uuid4().hex}"


class DeviceRegistry:
    def __init__(self, repository: DevicesRepository, change_tracker: ChangeTracker) -> None:
        self._repository = repository
        self._change_tracker = change_tracker

    def register(self, name: str, type: str, owner_user_id: str | None = None) -> Device:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Device name is required")
        if not isinstance(type, str) or not type.strip():
            raise ValidationError("Device type is required")
        device = Device(
            id=generate_device_id(),
            name=name.strip(),
            type=type.strip(),
            owner_user_id=owner_user_id,
            registered_at=now_watermark(),
        )
        self._repository.add(device)
        log_event(logger, "device_registered", {"device_id": device.id, "type": device.type})
        return device

    def get(self, device_id: str) -> Device:
        device = self._repository.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    def list(self, owner_user_id: str | None = None) -> list[Device]:
        return self._repository.list(owner_user_id)

    def remove(self, device_id: str) -> None:
        if not self._repository.delete(device_id):
            raise DeviceNotFoundError(device_id)
        log_event(logger, "device_removed", {"device_id": device_id})

    def touch_last_sync(self, device_id: str, synced_at: str | None = None) -> str:
        moment = synced_at or now_watermark()
        if not self._repository.set_last_sync(device_id, moment):
            raise DeviceNotFoundError(device_id)
        return moment

    def set_strategy(self, device_id: str, strategy: ResolutionStrategy | str | None) -> ResolutionStrategy | None:
        """Preferencia de estrategia del dispositivo; ``None`` vuelve al valor por defecto."""
        chosen = parse_strategy(strategy) if strategy is not None else None
        if not self._repository.set_strategy(device_id, chosen):
            raise DeviceNotFoundError(device_id)
        log_event(
            logger,
            "device_strategy_changed",
            {"device_id": device_id, "strategy": chosen.value if chosen else None},
        )
        return chosen

    def status(self, device_id: str) -> DeviceStatus:
        device = self.get(device_id)
        baseline = device.last_sync_at or EPOCH_WATERMARK
        pending = self._change_tracker.count_since(list(SyncableTable), baseline)
        return DeviceStatus(
            device=device,
            last_sync=device.last_sync_at or device.registered_at,
            pending_changes=pending,
        )
