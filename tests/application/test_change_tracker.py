from __future__ import annotations

import pytest

from bizsync.application.change_tracker import ChangeTracker
from bizsync.core.errors import DisallowedTableError, ValidationError
from bizsync.infrastructure.repos_records_sqlite import RecordStoreSQLite


@pytest.fixture
def seeded_store(record_store: RecordStoreSQLite) -> RecordStoreSQLite:
    record_store.insert("customers", {"id": "c1", "name": "A", "updated_at": "2024-01-01T10:00:00.000Z"})
    record_store.insert("customers", {"id": "c2", "name": "B", "updated_at": "2024-01-01T12:00:00.000Z"})
    record_store.insert("customers", {"id": "c0", "name": "Z", "updated_at": "2024-01-01T12:00:00.000Z"})
    record_store.insert("customers", {"id": "c3", "name": "C", "updated_at": "2024-01-02T08:00:00.000Z"})
    return record_store


def test_changes_since_excluye_el_limite_exacto(seeded_store: RecordStoreSQLite, change_tracker: ChangeTracker) -> None:
    changes = change_tracker.changes_since("customers", "2024-01-01T12:00:00.000Z")

    assert [record["id"] for record in changes] == ["c3"]


def test_changes_since_ordena_por_updated_at_y_desempata_por_id(
    seeded_store: RecordStoreSQLite, change_tracker: ChangeTracker
) -> None:
    changes = change_tracker.changes_since("customers", "2024-01-01T00:00:00Z")

    assert [record["id"] for record in changes] == ["c1", "c0", "c2", "c3"]
    marks = [record["updated_at"] for record in changes]
    assert marks == sorted(marks)


def test_changes_since_acepta_otros_formatos_de_timestamp(
    seeded_store: RecordStoreSQLite, change_tracker: ChangeTracker
) -> None:
    changes = change_tracker.changes_since("customers", "2024-01-01 11:00:00")

    assert {record["id"] for record in changes} == {"c0", "c2", "c3"}


def test_changes_since_tabla_no_permitida(change_tracker: ChangeTracker) -> None:
    with pytest.raises(DisallowedTableError):
        change_tracker.changes_since("users", "2024-01-01T00:00:00Z")


def test_changes_since_timestamp_invalido(change_tracker: ChangeTracker) -> None:
    with pytest.raises(ValidationError):
        change_tracker.changes_since("customers", "no-es-una-fecha")


def test_changes_since_tabla_vacia(change_tracker: ChangeTracker) -> None:
    assert change_tracker.changes_since("invoices", "1970-01-01T00:00:00Z") == []
