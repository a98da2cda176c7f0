"""Logs JSONL rotativos del motor de sincronización.

Tres ficheros: ``sync.log`` (todo), ``sync_errors.log`` (fallos recuperados de
registros sueltos, solo ERROR) y ``crash.log`` (incidentes CRITICAL). Cada
línea lleva el ámbito de la sesión de sync activa: operación, dispositivo,
estrategia e id de la entrada del sync log.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from bizsync.core.observability import current_scope, get_correlation_id

DEFAULT_LOG_MAX_BYTES = 1_048_576
DEFAULT_LOG_BACKUP_COUNT = 10
LOG_MAX_BYTES_ENV = "BIZSYNC_LOG_MAX_BYTES"
MAIN_LOG_NAME = "sync.log"
SYNC_ERRORS_LOG_NAME = "sync_errors.log"
CRASH_LOG_NAME = "crash.log"


class JsonLinesFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }
        scope = current_scope()
        if scope is not None:
            event.update(scope.as_fields())
        for name in ("incident_id", "extra"):
            value = getattr(record, name, None)
            if value:
                event[name] = value
        if record.exc_info:
            event["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(event, ensure_ascii=False, default=str)


class LevelOnlyFilter(logging.Filter):
    def __init__(self, level: int) -> None:
        super().__init__()
        self._level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno == self._level


class SyncLogFileHandler(RotatingFileHandler):
    """Handler propio; ``configure_logging`` solo sustituye los de esta clase."""


def _max_bytes_from_env() -> int:
    raw_value = os.getenv(LOG_MAX_BYTES_ENV, "").strip()
    return int(raw_value) if raw_value.isdigit() and int(raw_value) > 0 else DEFAULT_LOG_MAX_BYTES


def configure_logging(
    log_dir: Path,
    *,
    max_bytes: int | None = None,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
    level: int = logging.INFO,
) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    root_logger = logging.getLogger()
    for handler in [h for h in root_logger.handlers if isinstance(h, SyncLogFileHandler)]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)

    files = (
        (MAIN_LOG_NAME, level, None),
        (SYNC_ERRORS_LOG_NAME, logging.ERROR, LevelOnlyFilter(logging.ERROR)),
        (CRASH_LOG_NAME, logging.CRITICAL, None),
    )
    formatter = JsonLinesFormatter()
    for file_name, handler_level, level_filter in files:
        handler = SyncLogFileHandler(
            log_dir / file_name,
            maxBytes=max_bytes or _max_bytes_from_env(),
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        if level_filter is not None:
            handler.addFilter(level_filter)
        root_logger.addHandler(handler)
