from __future__ import annotations

import pytest

from bizsync.core.errors import DisallowedTableError
from bizsync.domain.syncable_tables import (
    SYNCABLE_TABLES,
    SyncableTable,
    is_allowed,
    require_syncable_table,
    resolve_tables,
)


def test_whitelist_contiene_las_tablas_de_negocio() -> None:
    assert SYNCABLE_TABLES == {
        "customers",
        "orders",
        "invoices",
        "inventory_materials",
        "production_tasks",
        "quality_checks",
        "files",
        "communication_logs",
    }


@pytest.mark.parametrize("table", ["users", "sync_devices", "customers; DROP TABLE orders", "", None, 42])
def test_is_allowed_rechaza_tablas_fuera_de_la_lista(table: object) -> None:
    assert is_allowed(table) is False


def test_require_syncable_table_devuelve_el_enum() -> None:
    assert require_syncable_table("orders") is SyncableTable.ORDERS
    assert require_syncable_table(SyncableTable.FILES) is SyncableTable.FILES


def test_require_syncable_table_lanza_error_con_la_tabla() -> None:
    with pytest.raises(DisallowedTableError) as excinfo:
        require_syncable_table("users")

    assert excinfo.value.table == "users"
    assert excinfo.value.code == "disallowed_table"


def test_resolve_tables_sin_filtro_devuelve_todas() -> None:
    assert resolve_tables(None) == list(SyncableTable)


def test_resolve_tables_valida_todo_antes_de_devolver() -> None:
    with pytest.raises(DisallowedTableError):
        resolve_tables(["customers", "users", "orders"])


def test_resolve_tables_elimina_duplicados_conservando_orden() -> None:
    assert resolve_tables(["orders", "customers", "orders"]) == [SyncableTable.ORDERS, SyncableTable.CUSTOMERS]
