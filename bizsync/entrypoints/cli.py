from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

from bizsync.application.use_cases import SyncApi, error_payload
from bizsync.bootstrap.container import build_container
from bizsync.bootstrap.exception_handler import install_exception_hook
from bizsync.bootstrap.logging import configure_logging
from bizsync.bootstrap.settings import SyncSettings, load_settings, resolve_log_dir
from bizsync.core.errors import AppError, ValidationError
from bizsync.core.metrics import metrics_registry
from bizsync.domain.sync_models import ChosenVersion, ResolutionStrategy
from bizsync.infrastructure.db import get_connection
from bizsync.infrastructure.migrations import MigrationRunner

logger = logging.getLogger("bizsync.cli")

EXIT_OK = 0
EXIT_BUSINESS_ERROR = 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bizsync", description="Motor de sincronización multi-dispositivo")
    parser.add_argument("--db", help="Ruta al archivo SQLite (por defecto BIZSYNC_DB_PATH)")
    parser.add_argument("--log-dir", help="Directorio de logs (por defecto BIZSYNC_LOG_DIR)")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("migrate", help="Aplica las migraciones pendientes")

    register = commands.add_parser("register-device", help="Registra un dispositivo")
    register.add_argument("--name", required=True)
    register.add_argument("--type", required=True)
    register.add_argument("--owner", help="Usuario propietario")

    devices = commands.add_parser("devices", help="Lista dispositivos")
    devices.add_argument("--owner", help="Filtra por usuario propietario")

    remove = commands.add_parser("remove-device", help="Elimina un dispositivo")
    remove.add_argument("device_id")

    status = commands.add_parser("status", help="Estado de sincronización de un dispositivo")
    status.add_argument("device_id")

    pull = commands.add_parser("pull", help="Cambios desde una marca de agua")
    pull.add_argument("device_id")
    pull.add_argument("--since", required=True, help="Marca de agua ISO-8601")
    pull.add_argument("--tables", help="Tablas separadas por comas")

    push = commands.add_parser("push", help="Envía cambios desde un fichero JSON ({tabla: [registros]})")
    push.add_argument("device_id")
    push.add_argument("--file", required=True, help="Fichero JSON, o '-' para stdin")
    push.add_argument("--strategy", choices=[strategy.value for strategy in ResolutionStrategy])

    sync = commands.add_parser("sync", help="Push opcional seguido de pull")
    sync.add_argument("device_id")
    sync.add_argument("--since", help="Marca de agua del último sync")
    sync.add_argument("--file", help="Fichero JSON con cambios, o '-' para stdin")
    sync.add_argument("--tables", help="Tablas separadas por comas")
    sync.add_argument("--strategy", choices=[strategy.value for strategy in ResolutionStrategy])

    history = commands.add_parser("history", help="Historial de pushes")
    history.add_argument("--device", dest="device_id")
    history.add_argument("--limit", type=int)

    commands.add_parser("conflicts", help="Conflictos pendientes")

    resolve = commands.add_parser("resolve-conflict", help="Resuelve un conflicto pendiente")
    resolve.add_argument("conflict_id", type=int)
    resolve.add_argument("--chosen", required=True, choices=[version.value for version in ChosenVersion])

    strategy = commands.add_parser("set-strategy", help="Estrategia de conflictos de un dispositivo")
    strategy.add_argument("device_id")
    strategy.add_argument("strategy", choices=[strategy.value for strategy in ResolutionStrategy])
    return parser


def _split_tables(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    return [table.strip() for table in raw.split(",") if table.strip()]


def _read_changes(source: str) -> Any:
    try:
        text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    except OSError as exc:
        raise ValidationError(f"Cannot read changes file {source}: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Changes file {source} is not valid JSON: {exc}") from exc


def _pull(api: SyncApi, args: argparse.Namespace) -> Any:
    payload: dict[str, Any] = {"deviceId": args.device_id, "lastSyncTimestamp": args.since}
    tables = _split_tables(args.tables)
    if tables is not None:
        payload["tables"] = tables
    return api.pull(payload)


def _push(api: SyncApi, args: argparse.Namespace) -> Any:
    payload: dict[str, Any] = {"deviceId": args.device_id, "changes": _read_changes(args.file)}
    if args.strategy:
        payload["strategy"] = args.strategy
    return api.push(payload)


def _sync(api: SyncApi, args: argparse.Namespace) -> Any:
    payload: dict[str, Any] = {"deviceId": args.device_id}
    if args.since:
        payload["lastSyncTimestamp"] = args.since
    if args.file:
        payload["changes"] = _read_changes(args.file)
    tables = _split_tables(args.tables)
    if tables is not None:
        payload["tables"] = tables
    if args.strategy:
        payload["strategy"] = args.strategy
    return api.full_sync(payload)


_HANDLERS: dict[str, Callable[[SyncApi, argparse.Namespace], Any]] = {
    "register-device": lambda api, args: api.register_device({"name": args.name, "type": args.type}, args.owner),
    "devices": lambda api, args: api.list_devices(args.owner),
    "remove-device": lambda api, args: api.remove_device(args.device_id),
    "status": lambda api, args: api.device_status(args.device_id),
    "pull": _pull,
    "push": _push,
    "sync": _sync,
    "history": lambda api, args: api.history(args.device_id, args.limit),
    "conflicts": lambda api, args: api.pending_conflicts(),
    "resolve-conflict": lambda api, args: api.resolve_conflict(args.conflict_id, {"chosenVersion": args.chosen}),
    "set-strategy": lambda api, args: api.set_strategy({"deviceId": args.device_id, "strategy": args.strategy}),
}


def _settings_from_args(args: argparse.Namespace) -> SyncSettings:
    settings = load_settings()
    if args.db:
        settings = replace(settings, db_path=Path(args.db))
    if args.log_dir:
        settings = replace(settings, log_dir=Path(args.log_dir))
    return settings


def _migrate(settings: SyncSettings) -> dict[str, Any]:
    connection = get_connection(settings.db_path, busy_timeout_ms=settings.busy_timeout_ms)
    try:
        runner = MigrationRunner(connection)
        applied = runner.apply_all()
        return {"applied": applied, "migrations": runner.status()}
    finally:
        connection.close()


def _write(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = _settings_from_args(args)
    log_dir = resolve_log_dir(settings)
    configure_logging(log_dir)
    install_exception_hook(log_dir)

    try:
        if args.command == "migrate":
            result = _migrate(settings)
        else:
            container = build_container(settings=settings)
            try:
                result = _HANDLERS[args.command](container.api, args)
            finally:
                container.close()
    except AppError as exc:
        logger.warning("Comando %s rechazado: %s", args.command, exc, extra={"extra": {"code": exc.code}})
        _write(error_payload(exc))
        return EXIT_BUSINESS_ERROR

    _write(result)
    logger.info("Comando %s completado", args.command, extra={"extra": {"metrics": metrics_registry.sync_report()}})
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
