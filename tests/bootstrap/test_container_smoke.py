from __future__ import annotations

from pathlib import Path

from bizsync.bootstrap.container import build_container
from bizsync.bootstrap.settings import SyncSettings
from bizsync.domain.sync_models import ResolutionStrategy
from bizsync.infrastructure.db import open_memory_connection


def test_build_container_con_conexion_en_memoria(tmp_path: Path) -> None:
    settings = SyncSettings(db_path=tmp_path / "unused.db", default_strategy=ResolutionStrategy.SERVER_WINS)
    container = build_container(open_memory_connection, settings=settings)
    try:
        device_id = container.api.register_device({"name": "Caja", "type": "kiosk"})["deviceId"]
        container.record_store.insert("customers", {"id": "c1", "name": "Old", "updated_at": 100})

        result = container.api.push(
            {"deviceId": device_id, "changes": {"customers": [{"id": "c1", "name": "New", "updated_at": 200}]}}
        )

        assert result["details"][0]["strategy"] == "server_wins"
        assert container.record_store.get("customers", "c1")["name"] == "Old"
    finally:
        container.close()
    assert not (tmp_path / "unused.db").exists()


def test_build_container_con_fichero(tmp_path: Path) -> None:
    container = build_container(settings=SyncSettings(db_path=tmp_path / "data" / "bizsync.db"))
    try:
        assert container.api.list_devices() == []
    finally:
        container.close()

    assert (tmp_path / "data" / "bizsync.db").exists()
