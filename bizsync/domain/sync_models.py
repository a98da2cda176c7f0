from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from bizsync.core.errors import InvalidStrategyError, ValidationError

Record = Dict[str, Any]
ChangeSet = Dict[str, list]


class ResolutionStrategy(str, Enum):
    LATEST_WINS = "latest_wins"
    SERVER_WINS = "server_wins"
    CLIENT_WINS = "client_wins"
    MANUAL = "manual"


DEFAULT_STRATEGY = ResolutionStrategy.LATEST_WINS


def parse_strategy(value: object) -> ResolutionStrategy:
    if isinstance(value, ResolutionStrategy):
        return value
    try:
        return ResolutionStrategy(value)
    except ValueError:
        raise InvalidStrategyError(value) from None


class ConflictStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class ChosenVersion(str, Enum):
    EXISTING = "existing"
    INCOMING = "incoming"


def parse_chosen_version(value: object) -> ChosenVersion:
    if isinstance(value, ChosenVersion):
        return value
    try:
        return ChosenVersion(value)
    except ValueError:
        raise ValidationError('Invalid chosen version. Must be "existing" or "incoming"') from None


class Winner(str, Enum):
    EXISTING = "existing"
    INCOMING = "incoming"
    PENDING = "pending"


class DetailAction(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    CONFLICT_RESOLVED = "conflict_resolved"
    ERROR = "error"


class SyncStatus(str, Enum):
    SYNCED = "synced"
    OUT_OF_SYNC = "out_of_sync"


@dataclass(frozen=True)
class Device:
    id: str
    name: str
    type: str
    owner_user_id: str | None
    registered_at: str
    last_sync_at: str | None = None
    conflict_strategy: ResolutionStrategy | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "ownerUserId": self.owner_user_id,
            "registeredAt": self.registered_at,
            "lastSyncAt": self.last_sync_at,
            "conflictStrategy": self.conflict_strategy.value if self.conflict_strategy else None,
        }


@dataclass(frozen=True)
class ConflictRecord:
    id: int
    table: str
    record_id: str
    existing_data: Record
    incoming_data: Record
    status: ConflictStatus
    created_at: str
    device_id: str | None = None
    chosen_version: ChosenVersion | None = None
    resolved_at: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "table": self.table,
            "recordId": self.record_id,
            "existingData": self.existing_data,
            "incomingData": self.incoming_data,
            "status": self.status.value,
            "deviceId": self.device_id,
            "chosenVersion": self.chosen_version.value if self.chosen_version else None,
            "createdAt": self.created_at,
            "resolvedAt": self.resolved_at,
        }


@dataclass(frozen=True)
class Resolution:
    applied: bool
    winner: Winner


@dataclass(frozen=True)
class PushDetail:
    table: str
    record_id: object
    action: DetailAction
    strategy: ResolutionStrategy | None = None
    winner: Winner | None = None
    applied: bool | None = None
    soft_conflict: bool = False
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"table": self.table, "id": self.record_id, "action": self.action.value}
        if self.strategy is not None:
            payload["strategy"] = self.strategy.value
        if self.winner is not None:
            payload["winner"] = self.winner.value
        if self.applied is not None:
            payload["applied"] = self.applied
        if self.soft_conflict:
            payload["softConflict"] = True
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class PushResult:
    applied: int = 0
    conflicts: int = 0
    errors: int = 0
    details: list[PushDetail] = field(default_factory=list)
    cancelled: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "conflicts": self.conflicts,
            "errors": self.errors,
            "details": [detail.to_payload() for detail in self.details],
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True)
class PullResult:
    timestamp: str
    changes: ChangeSet

    @property
    def record_count(self) -> int:
        return sum(len(records) for records in self.changes.values())

    def to_payload(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "changes": self.changes, "recordCount": self.record_count}


@dataclass(frozen=True)
class FullSyncResult:
    push: PushResult | None
    pull: PullResult
    synced_at: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "push": self.push.to_payload() if self.push is not None else None,
            "pull": self.pull.to_payload(),
            "syncedAt": self.synced_at,
        }


@dataclass(frozen=True)
class SyncLogEntry:
    id: int
    device_id: str | None
    applied_count: int
    conflict_count: int
    error_count: int
    details: list[dict[str, Any]]
    synced_at: str
    cancelled: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "appliedCount": self.applied_count,
            "conflictCount": self.conflict_count,
            "errorCount": self.error_count,
            "details": self.details,
            "cancelled": self.cancelled,
            "syncedAt": self.synced_at,
        }


@dataclass(frozen=True)
class DeviceStatus:
    device: Device
    last_sync: str | None
    pending_changes: int

    @property
    def status(self) -> SyncStatus:
        return SyncStatus.OUT_OF_SYNC if self.pending_changes > 0 else SyncStatus.SYNCED

    def to_payload(self) -> dict[str, Any]:
        return {
            "device": self.device.to_payload(),
            "lastSync": self.last_sync,
            "pendingChanges": self.pending_changes,
            "status": self.status.value,
        }
