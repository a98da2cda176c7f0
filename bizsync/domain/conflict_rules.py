from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from bizsync.domain.time_utils import to_watermark

BOOKKEEPING_FIELDS = frozenset({"id", "created_at", "updated_at"})


class ConflictCheck(str, Enum):
    UNTRACKED = "untracked"
    SAME_WRITE = "same_write"
    IDENTICAL_CONTENT = "identical_content"
    DIVERGENT = "divergent"


def classify_conflict(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> ConflictCheck:
    """Clasifica la relación entre la versión guardada y la entrante.

    El orden importa: la igualdad de marcas de agua se comprueba antes del
    recorrido campo a campo, que es el caso habitual en pulls repetidos.
    """
    existing_mark = to_watermark(existing.get("updated_at"))
    incoming_mark = to_watermark(incoming.get("updated_at"))
    if existing_mark is None or incoming_mark is None:
        return ConflictCheck.UNTRACKED
    if existing_mark == incoming_mark:
        return ConflictCheck.SAME_WRITE
    if not differing_fields(existing, incoming):
        return ConflictCheck.IDENTICAL_CONTENT
    return ConflictCheck.DIVERGENT


def has_conflict(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> bool:
    return classify_conflict(existing, incoming) is ConflictCheck.DIVERGENT


def differing_fields(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> list[str]:
    return [
        name
        for name, value in incoming.items()
        if name not in BOOKKEEPING_FIELDS and existing.get(name) != value
    ]


def is_incoming_newer(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> bool:
    existing_mark = to_watermark(existing.get("updated_at"))
    incoming_mark = to_watermark(incoming.get("updated_at"))
    if incoming_mark is None:
        return False
    if existing_mark is None:
        return True
    return incoming_mark > existing_mark
