from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from bizsync.infrastructure.db import open_memory_connection
from bizsync.infrastructure.migrations import MigrationRunner, split_sql_script


def _tables(connection: sqlite3.Connection) -> set[str]:
    rows = connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row["name"] for row in rows}


def test_apply_all_crea_tablas_y_es_idempotente() -> None:
    connection = open_memory_connection()
    runner = MigrationRunner(connection)

    first = runner.apply_all()
    second = runner.apply_all()

    assert first == [1, 2]
    assert second == []
    assert {"customers", "orders", "sync_devices", "sync_logs", "sync_conflicts"} <= _tables(connection)
    assert connection.execute("PRAGMA user_version").fetchone()[0] == 2
    connection.close()


def test_rollback_revierte_la_ultima_migracion() -> None:
    connection = open_memory_connection()
    runner = MigrationRunner(connection)
    runner.apply_all()

    rolled_back = runner.rollback(1)

    assert rolled_back == [2]
    assert "sync_devices" not in _tables(connection)
    assert "customers" in _tables(connection)
    assert [item["applied"] for item in runner.status()] == [True, False]
    assert connection.execute("PRAGMA user_version").fetchone()[0] == 1
    connection.close()


def test_migracion_fallida_no_deja_cambios_parciales(tmp_path: Path) -> None:
    (tmp_path / "001_broken.up.sql").write_text(
        "CREATE TABLE uno (id TEXT PRIMARY KEY);\nCREATE TABLE uno (id TEXT PRIMARY KEY);\n",
        encoding="utf-8",
    )
    (tmp_path / "001_broken.down.sql").write_text("DROP TABLE IF EXISTS uno;\n", encoding="utf-8")
    connection = open_memory_connection()

    with pytest.raises(sqlite3.OperationalError):
        MigrationRunner(connection, tmp_path).apply_all()

    assert "uno" not in _tables(connection)
    assert connection.execute("SELECT COUNT(*) FROM schema_migrations").fetchone()[0] == 0
    connection.close()


def test_split_sql_script_respeta_punto_y_coma_en_literales() -> None:
    statements = split_sql_script("INSERT INTO t VALUES ('a;b');\n-- comentario\nSELECT 1;\n")

    assert statements == ["INSERT INTO t VALUES ('a;b');", "-- comentario\nSELECT 1;"]


def test_split_sql_script_detecta_sentencia_incompleta() -> None:
    with pytest.raises(ValueError, match="Incomplete SQL statement"):
        split_sql_script("SELECT 1;\nCREATE TABLE x (id TEXT\n")
