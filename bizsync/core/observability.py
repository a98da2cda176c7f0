from __future__ import annotations

import uuid
from contextlib import AbstractContextManager
from contextvars import ContextVar, Token
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any

_CORRELATION_ID: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_SYNC_SCOPE: ContextVar["SyncScope | None"] = ContextVar("sync_scope", default=None)


@dataclass(frozen=True)
class SyncScope:
    """Ámbito de la sincronización en curso; viaja en cada línea de log y en los incidentes."""

    operation: str
    device_id: str | None = None
    strategy: str | None = None
    sync_log_id: int | None = None

    def as_fields(self) -> dict[str, Any]:
        return {name: value for name, value in asdict(self).items() if value is not None}


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return _CORRELATION_ID.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    return _CORRELATION_ID.set(correlation_id)


def reset_correlation_id(token: Token[str | None]) -> None:
    _CORRELATION_ID.reset(token)


def current_scope() -> SyncScope | None:
    return _SYNC_SCOPE.get()


def scope_of(exc: BaseException) -> SyncScope | None:
    """Ámbito en el que se lanzó ``exc`` (el más interno), si salió de un ``OperationContext``."""
    scope = getattr(exc, "sync_scope", None)
    return scope if isinstance(scope, SyncScope) else None


class OperationContext(AbstractContextManager["OperationContext"]):
    """Sesión de sincronización.

    Las sesiones anidadas (push dentro de un full sync) comparten correlation_id y
    heredan el dispositivo de la sesión exterior. ``bind`` completa el ámbito a
    medida que se conoce (estrategia elegida, id de la entrada del sync log).
    """

    def __init__(self, operation_name: str, device_id: str | None = None, strategy: str | None = None) -> None:
        parent = _SYNC_SCOPE.get()
        self.operation_name = operation_name
        self.correlation_id = get_correlation_id() or generate_correlation_id()
        self.scope = SyncScope(
            operation=operation_name,
            device_id=device_id or (parent.device_id if parent else None),
            strategy=strategy,
        )
        self._tokens: tuple[Token[str | None], Token[SyncScope | None]] | None = None

    def __enter__(self) -> "OperationContext":
        self._tokens = (set_correlation_id(self.correlation_id), _SYNC_SCOPE.set(self.scope))
        return self

    def bind(self, **fields: Any) -> SyncScope:
        self.scope = replace(self.scope, **fields)
        _SYNC_SCOPE.set(self.scope)
        return self.scope

    def __exit__(self, exc_type: object, exc: object, exc_tb: object) -> None:
        if isinstance(exc, BaseException) and scope_of(exc) is None:
            exc.sync_scope = self.scope  # type: ignore[attr-defined]
        if self._tokens is not None:
            correlation_token, scope_token = self._tokens
            _SYNC_SCOPE.reset(scope_token)
            reset_correlation_id(correlation_token)
            self._tokens = None
        return None


def log_event(logger: Any, event_name: str, payload: dict[str, Any]) -> dict[str, Any]:
    scope = current_scope()
    correlation_id = get_correlation_id()
    event: dict[str, Any] = {
        "event": event_name,
        "correlation_id": correlation_id,
        "device_id": payload.get("device_id") or (scope.device_id if scope else None),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }
    if scope is not None:
        event["operation"] = scope.operation
    logger.info(event_name, extra={"correlation_id": correlation_id, "extra": event})
    return event
