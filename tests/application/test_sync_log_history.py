from __future__ import annotations

import pytest

from bizsync.application.sync_log import SyncLog
from bizsync.core.errors import ValidationError
from bizsync.domain.sync_models import DetailAction, PushDetail, PushResult


def test_record_guarda_el_agregado_y_los_detalles(sync_log: SyncLog) -> None:
    result = PushResult(
        applied=1,
        conflicts=0,
        errors=1,
        details=[
            PushDetail(table="customers", record_id="c1", action=DetailAction.INSERTED),
            PushDetail(table="customers", record_id="c2", action=DetailAction.ERROR, error="boom"),
        ],
    )

    entry = sync_log.record("dev_1", result)

    assert entry.applied_count == 1
    assert entry.error_count == 1
    assert entry.details[1] == {"table": "customers", "id": "c2", "action": "error", "error": "boom"}
    assert sync_log.history("dev_1") == [entry]


def test_history_respeta_el_limite(sync_log: SyncLog) -> None:
    for index in range(5):
        sync_log.record("dev_1", PushResult(applied=index), synced_at=f"2024-01-0{index + 1}T00:00:00.000Z")

    entries = sync_log.history("dev_1", limit=2)

    assert [entry.applied_count for entry in entries] == [4, 3]


@pytest.mark.parametrize("limit", [0, -1, 501, "10", True])
def test_history_limite_fuera_de_rango(sync_log: SyncLog, limit: object) -> None:
    with pytest.raises(ValidationError):
        sync_log.history(limit=limit)  # type: ignore[arg-type]
