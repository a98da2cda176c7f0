from __future__ import annotations

from bizsync.application.ports.sync_log_repository import SyncLogRepository
from bizsync.core.errors import ValidationError
from bizsync.domain.sync_models import PushResult, SyncLogEntry
from bizsync.domain.time_utils import now_watermark

MAX_HISTORY_LIMIT = 500


class SyncLog:
    def __init__(self, repository: SyncLogRepository, default_limit: int = 50) -> None:
        self._repository = repository
        self._default_limit = default_limit

    def record(self, device_id: str | None, result: PushResult, synced_at: str | None = None) -> SyncLogEntry:
        return self._repository.append(
            device_id,
            result.applied,
            result.conflicts,
            result.errors,
            [detail.to_payload() for detail in result.details],
            result.cancelled,
            synced_at or now_watermark(),
        )

    def history(self, device_id: str | None = None, limit: int | None = None) -> list[SyncLogEntry]:
        effective = self._default_limit if limit is None else limit
        if isinstance(effective, bool) or not isinstance(effective, int) or not 1 <= effective <= MAX_HISTORY_LIMIT:
            raise ValidationError(f"History limit must be an integer between 1 and {MAX_HISTORY_LIMIT}")
        return self._repository.list(device_id, effective)
