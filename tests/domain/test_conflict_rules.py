from __future__ import annotations

from bizsync.domain.conflict_rules import (
    ConflictCheck,
    classify_conflict,
    differing_fields,
    has_conflict,
    is_incoming_newer,
)


def _customer(name: str, updated_at: object, **extra: object) -> dict[str, object]:
    return {"id": "c1", "name": name, "updated_at": updated_at, **extra}


def test_sin_updated_at_no_hay_conflicto() -> None:
    assert classify_conflict(_customer("A", None), _customer("B", "2024-01-01T00:00:00Z")) is ConflictCheck.UNTRACKED
    assert classify_conflict(_customer("A", "2024-01-01T00:00:00Z"), {"id": "c1", "name": "B"}) is ConflictCheck.UNTRACKED
    assert has_conflict({"id": "c1", "name": "A"}, {"id": "c1", "name": "B"}) is False


def test_misma_marca_de_agua_es_la_misma_escritura() -> None:
    existing = _customer("A", "2024-01-01T10:00:00.000Z")
    incoming = _customer("B", "2024-01-01T10:00:00Z")

    assert classify_conflict(existing, incoming) is ConflictCheck.SAME_WRITE
    assert has_conflict(existing, incoming) is False


def test_contenido_identico_con_marcas_distintas_no_es_conflicto() -> None:
    existing = _customer("Ana", "2024-01-01T10:00:00.000Z", created_at="2023-12-01T00:00:00.000Z")
    incoming = _customer("Ana", "2024-01-02T10:00:00.000Z", created_at="2024-01-02T00:00:00.000Z")

    assert classify_conflict(existing, incoming) is ConflictCheck.IDENTICAL_CONTENT
    assert has_conflict(existing, incoming) is False


def test_contenido_distinto_con_marcas_distintas_es_conflicto() -> None:
    existing = _customer("Ana", "2024-01-01T10:00:00.000Z")
    incoming = _customer("Ana María", "2024-01-01T09:00:00.000Z")

    assert classify_conflict(existing, incoming) is ConflictCheck.DIVERGENT
    assert has_conflict(existing, incoming) is True
    assert differing_fields(existing, incoming) == ["name"]


def test_is_incoming_newer_compara_marcas_normalizadas() -> None:
    older = _customer("A", "2024-01-01 10:00:00")
    newer = _customer("B", "2024-01-01T10:00:00.001Z")

    assert is_incoming_newer(older, newer) is True
    assert is_incoming_newer(newer, older) is False
    assert is_incoming_newer(newer, newer) is False
    assert is_incoming_newer({"id": "c1"}, newer) is True
    assert is_incoming_newer(newer, {"id": "c1"}) is False
