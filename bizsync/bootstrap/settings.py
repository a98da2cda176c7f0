from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from bizsync.domain.sync_models import DEFAULT_STRATEGY, ResolutionStrategy

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_BUSY_TIMEOUT_MS = 30000


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class SyncSettings:
    db_path: Path
    log_dir: Path | None = None
    default_strategy: ResolutionStrategy = DEFAULT_STRATEGY
    history_limit: int = DEFAULT_HISTORY_LIMIT
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS


def default_settings() -> SyncSettings:
    return SyncSettings(db_path=project_root() / "data" / "bizsync.db")


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("No se pudo leer el fichero de configuración %s: %s", path, exc)
        return {}
    if not isinstance(payload, dict):
        logger.warning("El fichero de configuración %s no contiene un objeto JSON", path)
        return {}
    return payload


def _positive_int(name: str, raw: object, default: int, *, maximum: int | None = None) -> int:
    try:
        value = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Valor inválido para %s=%r; se usa %s", name, raw, default)
        return default
    if value < 1 or (maximum is not None and value > maximum):
        logger.warning("Valor fuera de rango para %s=%r; se usa %s", name, raw, default)
        return default
    return value


def _strategy(raw: object, default: ResolutionStrategy) -> ResolutionStrategy:
    try:
        return ResolutionStrategy(raw)
    except ValueError:
        logger.warning("Estrategia por defecto inválida %r; se usa %s", raw, default.value)
        return default


def load_settings(environ: Mapping[str, str] | None = None) -> SyncSettings:
    """Lee la configuración: defaults < fichero JSON (``BIZSYNC_CONFIG_FILE``) < entorno."""
    env = os.environ if environ is None else environ
    settings = default_settings()

    values: dict[str, Any] = {}
    config_file = env.get("BIZSYNC_CONFIG_FILE")
    if config_file:
        values.update(_read_config_file(Path(config_file)))
    env_keys = {
        "db_path": "BIZSYNC_DB_PATH",
        "log_dir": "BIZSYNC_LOG_DIR",
        "default_strategy": "BIZSYNC_DEFAULT_STRATEGY",
        "history_limit": "BIZSYNC_HISTORY_LIMIT",
        "busy_timeout_ms": "BIZSYNC_BUSY_TIMEOUT_MS",
    }
    for field_name, env_name in env_keys.items():
        raw = env.get(env_name)
        if raw:
            values[field_name] = raw

    if values.get("db_path"):
        settings = replace(settings, db_path=Path(values["db_path"]))
    if values.get("log_dir"):
        settings = replace(settings, log_dir=Path(values["log_dir"]))
    if "default_strategy" in values:
        settings = replace(settings, default_strategy=_strategy(values["default_strategy"], settings.default_strategy))
    if "history_limit" in values:
        settings = replace(
            settings,
            history_limit=_positive_int("history_limit", values["history_limit"], DEFAULT_HISTORY_LIMIT, maximum=500),
        )
    if "busy_timeout_ms" in values:
        settings = replace(
            settings,
            busy_timeout_ms=_positive_int("busy_timeout_ms", values["busy_timeout_ms"], DEFAULT_BUSY_TIMEOUT_MS),
        )
    return settings


def resolve_log_dir(settings: SyncSettings | None = None) -> Path:
    candidates: list[Path] = []
    configured = settings.log_dir if settings is not None else None
    env_dir = os.environ.get("BIZSYNC_LOG_DIR")
    if configured:
        candidates.append(configured)
    elif env_dir:
        candidates.append(Path(env_dir))
    candidates.append(project_root() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / "bizsync" / "logs")

    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            test_file = candidate / "_write_test.tmp"
            test_file.write_text("ok", encoding="utf-8")
            test_file.unlink(missing_ok=True)
            return candidate
        except OSError:
            logger.debug("Directorio de logs no escribible: %s", candidate)
            continue

    fallback = project_root()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback
