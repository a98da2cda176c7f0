"""Errores no controlados: id de incidente, ámbito de sync y crash.log."""

from __future__ import annotations

import json
import logging
import sys
import traceback
import uuid
from pathlib import Path
from types import TracebackType
from typing import Any

from bizsync.bootstrap.logging import CRASH_LOG_NAME
from bizsync.bootstrap.settings import resolve_log_dir
from bizsync.core.observability import generate_correlation_id, get_correlation_id, scope_of, set_correlation_id


def new_incident_id() -> str:
    return f"INC-{uuid.uuid4().hex[:12].upper()}"


def _ensure_correlation_id() -> str:
    correlation_id = get_correlation_id()
    if not correlation_id:
        correlation_id = generate_correlation_id()
        set_correlation_id(correlation_id)
    return correlation_id


def _crash_entry(
    incident_id: str,
    correlation_id: str,
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "incident_id": incident_id,
        "correlation_id": correlation_id,
        "error_type": exc_type.__name__,
        "error_message": str(exc_value),
        "stacktrace": "".join(traceback.format_exception(exc_type, exc_value, exc_traceback)),
    }
    scope = scope_of(exc_value)
    if scope is not None:
        entry["sync"] = scope.as_fields()
    return entry


def _append_crash_entry(log_dir: Path, entry: dict[str, Any]) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    with (log_dir / CRASH_LOG_NAME).open("a", encoding="utf-8") as crash_file:
        crash_file.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")


def handle_uncaught_exception(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
    log_dir: Path | None = None,
) -> str:
    """Registra la excepción como CRITICAL y devuelve el id de incidente para el usuario.

    Si el propio logging falla, la entrada se escribe directamente en ``crash.log``.
    """
    incident_id = new_incident_id()
    correlation_id = _ensure_correlation_id()
    entry = _crash_entry(incident_id, correlation_id, exc_type, exc_value, exc_traceback)
    extra: dict[str, Any] = {"incident_id": incident_id, "correlation_id": correlation_id}
    if "sync" in entry:
        extra["extra"] = {"sync": entry["sync"]}

    try:
        logging.getLogger("bizsync.crash").critical(
            "Unhandled exception, incident %s",
            incident_id,
            exc_info=(exc_type, exc_value, exc_traceback),
            extra=extra,
        )
    except Exception:  # noqa: BLE001
        _append_crash_entry(log_dir or resolve_log_dir(), entry)
    return incident_id


def install_exception_hook(log_dir: Path) -> None:
    def _hook(
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_traceback: TracebackType | None,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        incident_id = handle_uncaught_exception(exc_type, exc_value, exc_traceback, log_dir=log_dir)
        sys.stderr.write(f"Error inesperado. ID de incidente: {incident_id}\n")

    sys.excepthook = _hook
