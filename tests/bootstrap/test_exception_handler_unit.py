from __future__ import annotations

import json
import re
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from bizsync.bootstrap import exception_handler
from bizsync.bootstrap.logging import CRASH_LOG_NAME
from bizsync.core.observability import OperationContext


class _LoggerFake:
    def __init__(self, fail: bool = False) -> None:
        self.calls: list[dict[str, object]] = []
        self._fail = fail

    def critical(self, message: str, incident_id: str, *, exc_info, extra) -> None:  # noqa: ANN001
        if self._fail:
            raise RuntimeError("handler roto")
        self.calls.append({"message": message, "incident_id": incident_id, "exc_info": exc_info, "extra": extra})


@pytest.fixture
def fixed_ids(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(exception_handler, "new_incident_id", lambda: "INC-TEST-123")
    monkeypatch.setattr(exception_handler, "_ensure_correlation_id", lambda: "corr-001")


def _use_logger(monkeypatch: pytest.MonkeyPatch, logger: _LoggerFake) -> None:
    monkeypatch.setattr(exception_handler, "logging", SimpleNamespace(getLogger=lambda _name: logger))


def _crash_entries(log_dir: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in (log_dir / CRASH_LOG_NAME).read_text(encoding="utf-8").splitlines()]


def test_new_incident_id_formato() -> None:
    assert re.fullmatch(r"INC-[0-9A-F]{12}", exception_handler.new_incident_id())


@pytest.mark.usefixtures("fixed_ids")
def test_handle_uncaught_exception_loguea_con_incidente(monkeypatch: pytest.MonkeyPatch) -> None:
    logger = _LoggerFake()
    _use_logger(monkeypatch, logger)

    try:
        raise ValueError("fallo esperado")
    except ValueError as exc:
        incident_id = exception_handler.handle_uncaught_exception(ValueError, exc, exc.__traceback__)

    assert incident_id == "INC-TEST-123"
    assert logger.calls[0]["extra"] == {"incident_id": "INC-TEST-123", "correlation_id": "corr-001"}
    assert logger.calls[0]["exc_info"][0] is ValueError


@pytest.mark.usefixtures("fixed_ids")
def test_handle_uncaught_exception_adjunta_el_ambito_de_sync(monkeypatch: pytest.MonkeyPatch) -> None:
    logger = _LoggerFake()
    _use_logger(monkeypatch, logger)

    try:
        with OperationContext("sync_push", device_id="dev_9", strategy="manual"):
            raise KeyError("customers")
    except KeyError as exc:
        exception_handler.handle_uncaught_exception(KeyError, exc, exc.__traceback__)

    assert logger.calls[0]["extra"]["extra"] == {
        "sync": {"operation": "sync_push", "device_id": "dev_9", "strategy": "manual"}
    }


@pytest.mark.usefixtures("fixed_ids")
def test_handle_uncaught_exception_usa_fallback_si_el_log_falla(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    _use_logger(monkeypatch, _LoggerFake(fail=True))

    try:
        with OperationContext("sync_full", device_id="dev_3"):
            raise RuntimeError("explota")
    except RuntimeError as exc:
        incident_id = exception_handler.handle_uncaught_exception(
            RuntimeError, exc, exc.__traceback__, log_dir=tmp_path
        )

    entry = _crash_entries(tmp_path)[-1]
    assert incident_id == "INC-TEST-123"
    assert entry["incident_id"] == "INC-TEST-123"
    assert entry["correlation_id"] == "corr-001"
    assert entry["error_type"] == "RuntimeError"
    assert entry["sync"] == {"operation": "sync_full", "device_id": "dev_3"}
    assert "explota" in entry["stacktrace"]


@pytest.mark.usefixtures("fixed_ids")
def test_install_exception_hook_registra_el_incidente(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    _use_logger(monkeypatch, _LoggerFake(fail=True))

    exception_handler.install_exception_hook(tmp_path)
    try:
        raise RuntimeError("sin capturar")
    except RuntimeError as exc:
        sys.excepthook(RuntimeError, exc, exc.__traceback__)

    assert _crash_entries(tmp_path)[-1]["error_message"] == "sin capturar"
    assert "INC-TEST-123" in capsys.readouterr().err


def test_install_exception_hook_deja_pasar_keyboard_interrupt(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    delegated: list[type[BaseException]] = []
    monkeypatch.setattr(sys, "__excepthook__", lambda exc_type, _exc, _tb: delegated.append(exc_type))

    exception_handler.install_exception_hook(tmp_path)
    sys.excepthook(KeyboardInterrupt, KeyboardInterrupt(), None)

    assert delegated == [KeyboardInterrupt]
    assert not (tmp_path / CRASH_LOG_NAME).exists()
