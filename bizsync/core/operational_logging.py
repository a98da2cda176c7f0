from __future__ import annotations

import logging
from typing import Any

from bizsync.core.observability import current_scope, get_correlation_id

operational_logger = logging.getLogger("bizsync.operational_error")


def log_operational_error(
    message: str,
    *,
    exc: BaseException,
    extra: dict[str, Any] | None = None,
) -> None:
    """Registra un fallo recuperado (un registro de un push) sin interrumpir el lote."""
    metadata = dict(extra or {})
    scope = current_scope()
    if scope is not None:
        for name, value in scope.as_fields().items():
            metadata.setdefault(name, value)
    metadata.setdefault("error_type", type(exc).__name__)
    correlation_id = metadata.get("correlation_id") or get_correlation_id()
    operational_logger.error(
        message,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"correlation_id": correlation_id, "extra": metadata},
    )
