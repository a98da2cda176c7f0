from __future__ import annotations

from bizsync.domain.sync_models import ChosenVersion, ConflictStatus
from bizsync.infrastructure.repos_conflicts_sqlite import SQLiteConflictsRepository


def test_add_persiste_snapshots_json(conflicts_repo: SQLiteConflictsRepository) -> None:
    conflict = conflicts_repo.add(
        "customers",
        "c1",
        {"id": "c1", "name": "Ana"},
        {"id": "c1", "name": "Ana María"},
        "dev_1",
    )

    assert conflict.id > 0
    assert conflict.status is ConflictStatus.PENDING
    assert conflict.existing_data == {"id": "c1", "name": "Ana"}
    assert conflict.incoming_data["name"] == "Ana María"
    assert conflict.device_id == "dev_1"
    assert conflict.chosen_version is None


def test_list_pending_ordena_de_mas_reciente_a_mas_antiguo(conflicts_repo: SQLiteConflictsRepository) -> None:
    first = conflicts_repo.add("customers", "c1", {}, {}, None)
    second = conflicts_repo.add("orders", "o1", {}, {}, None)

    pending = conflicts_repo.list_pending()

    assert [conflict.id for conflict in pending] == [second.id, first.id]


def test_mark_resolved_solo_una_vez(conflicts_repo: SQLiteConflictsRepository) -> None:
    conflict = conflicts_repo.add("customers", "c1", {}, {}, None)

    assert conflicts_repo.mark_resolved(conflict.id, ChosenVersion.INCOMING) is True
    assert conflicts_repo.mark_resolved(conflict.id, ChosenVersion.EXISTING) is False

    stored = conflicts_repo.get(conflict.id)
    assert stored is not None
    assert stored.status is ConflictStatus.RESOLVED
    assert stored.chosen_version is ChosenVersion.INCOMING
    assert stored.resolved_at is not None
    assert conflicts_repo.list_pending() == []


def test_get_inexistente_devuelve_none(conflicts_repo: SQLiteConflictsRepository) -> None:
    assert conflicts_repo.get(999) is None
