from __future__ import annotations


class AppError(Exception):
    code = "app_error"


class BusinessError(AppError):
    code = "business_error"


class ValidationError(BusinessError):
    code = "validation_error"


class DisallowedTableError(BusinessError):
    """Tabla fuera de la lista de sincronizables: la operación entera se aborta."""

    code = "disallowed_table"

    def __init__(self, table: object) -> None:
        super().__init__(f"Table '{table}' is not allowed for sync operations")
        self.table = table


class InvalidStrategyError(BusinessError):
    code = "invalid_strategy"

    def __init__(self, strategy: object) -> None:
        super().__init__(f"Invalid conflict resolution strategy: {strategy!r}")
        self.strategy = strategy


class NotFoundError(BusinessError):
    code = "not_found"


class DeviceNotFoundError(NotFoundError):
    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device not found: {device_id}")
        self.device_id = device_id


class ConflictNotFoundError(NotFoundError):
    def __init__(self, conflict_id: int) -> None:
        super().__init__(f"Conflict not found: {conflict_id}")
        self.conflict_id = conflict_id


class AlreadyResolvedError(BusinessError):
    code = "already_resolved"

    def __init__(self, conflict_id: int) -> None:
        super().__init__(f"Conflict {conflict_id} is already resolved")
        self.conflict_id = conflict_id


class RecordApplyError(BusinessError):
    """Fallo al aplicar un registro concreto; nunca aborta el lote completo."""

    code = "record_apply_error"


class ConcurrentModificationError(RecordApplyError):
    code = "concurrent_modification"

    def __init__(self, table: str, record_id: object) -> None:
        super().__init__(f"Record {table}/{record_id} changed while it was being applied")
        self.table = table
        self.record_id = record_id


class InfraError(AppError):
    code = "infra_error"


class PersistenceError(InfraError):
    code = "persistence_error"
