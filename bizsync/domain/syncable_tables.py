from __future__ import annotations

from enum import Enum
from typing import Iterable

from bizsync.core.errors import DisallowedTableError


class SyncableTable(str, Enum):
    """Tablas de negocio que los dispositivos pueden leer y escribir."""

    CUSTOMERS = "customers"
    ORDERS = "orders"
    INVOICES = "invoices"
    INVENTORY_MATERIALS = "inventory_materials"
    PRODUCTION_TASKS = "production_tasks"
    QUALITY_CHECKS = "quality_checks"
    FILES = "files"
    COMMUNICATION_LOGS = "communication_logs"


SYNCABLE_TABLES: frozenset[str] = frozenset(table.value for table in SyncableTable)


def is_allowed(table: object) -> bool:
    return isinstance(table, str) and table in SYNCABLE_TABLES


def require_syncable_table(table: object) -> SyncableTable:
    if isinstance(table, SyncableTable):
        return table
    if not is_allowed(table):
        raise DisallowedTableError(table)
    return SyncableTable(table)


def resolve_tables(tables: Iterable[object] | None) -> list[SyncableTable]:
    """Valida todas las tablas antes de tocar el almacén (fail closed)."""
    if tables is None:
        return list(SyncableTable)
    resolved: list[SyncableTable] = []
    for table in tables:
        syncable = require_syncable_table(table)
        if syncable not in resolved:
            resolved.append(syncable)
    return resolved
