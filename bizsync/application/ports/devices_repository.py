from __future__ import annotations

from typing import Protocol

from bizsync.domain.sync_models import Device, ResolutionStrategy


class DevicesRepository(Protocol):
    def add(self, device: Device) -> Device:
        ...

    def get(self, device_id: str) -> Device | None:
        ...

    def list(self, owner_user_id: str | None = None) -> list[Device]:
        ...

    def delete(self, device_id: str) -> bool:
        ...

    def set_last_sync(self, device_id: str, synced_at: str) -> bool:
        ...

    def set_strategy(self, device_id: str, strategy: ResolutionStrategy | None) -> bool:
        ...
