from __future__ import annotations

from typing import Any, Protocol

from bizsync.domain.sync_models import SyncLogEntry


class SyncLogRepository(Protocol):
    def append(
        self,
        device_id: str | None,
        applied: int,
        conflicts: int,
        errors: int,
        details: list[dict[str, Any]],
        cancelled: bool,
        synced_at: str,
    ) -> SyncLogEntry:
        ...

    def list(self, device_id: str | None = None, limit: int = 50) -> list[SyncLogEntry]:
        ...
