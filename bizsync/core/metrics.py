"""Métricas en proceso del motor de sincronización.

Los contadores de push se agregan por lote (``record_push``) y los conflictos se
desglosan por estrategia para poder ver qué política resuelve más choques.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from functools import wraps
from threading import Lock
from time import perf_counter
from typing import Any, Callable


@dataclass
class _TimingStats:
    count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_ms: float = 0.0

    def add(self, milliseconds: float) -> None:
        self.count += 1
        self.total_ms += milliseconds
        self.max_ms = max(self.max_ms, milliseconds)
        self.last_ms = milliseconds

    def summary(self) -> dict[str, float | int]:
        return {
            "count": self.count,
            "avg": self.total_ms / self.count if self.count else 0.0,
            "max": self.max_ms,
            "last": self.last_ms,
        }


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: Counter[str] = Counter()
        self._timings: dict[str, _TimingStats] = {}

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def increment(self, name: str, value: int = 1) -> None:
        if value:
            with self._lock:
                self._counters[name] += value

    def record_timing(self, name: str, milliseconds: float) -> None:
        with self._lock:
            self._timings.setdefault(name, _TimingStats()).add(milliseconds)

    def record_pull(self, record_count: int) -> None:
        with self._lock:
            self._counters["sync.pulls"] += 1
            self._counters["sync.records_pulled"] += record_count

    def record_push(self, *, strategy: str, applied: int, conflicts: int, errors: int, cancelled: bool) -> None:
        with self._lock:
            self._counters["sync.pushes"] += 1
            self._counters["sync.records_applied"] += applied
            self._counters["sync.conflicts"] += conflicts
            self._counters[f"sync.conflicts.{strategy}"] += conflicts
            self._counters["sync.record_errors"] += errors
            self._counters["sync.pushes_cancelled"] += int(cancelled)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {
                "counters": {name: value for name, value in self._counters.items() if value},
                "timings_ms": {name: stats.summary() for name, stats in self._timings.items()},
            }

    def sync_report(self) -> dict[str, Any]:
        """Resumen legible de la actividad de sincronización del proceso."""
        snapshot = self.snapshot()
        counters = snapshot["counters"]
        prefix = "sync.conflicts."
        return {
            "pulls": counters.get("sync.pulls", 0),
            "pushes": counters.get("sync.pushes", 0),
            "records_pulled": counters.get("sync.records_pulled", 0),
            "records_applied": counters.get("sync.records_applied", 0),
            "conflicts": counters.get("sync.conflicts", 0),
            "conflicts_by_strategy": {
                name[len(prefix):]: value for name, value in counters.items() if name.startswith(prefix)
            },
            "soft_conflicts": counters.get("sync.soft_conflicts", 0),
            "record_errors": counters.get("sync.record_errors", 0),
            "pushes_cancelled": counters.get("sync.pushes_cancelled", 0),
            "timings_ms": snapshot["timings_ms"],
        }


metrics_registry = MetricsRegistry()


def timed(metric_name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                metrics_registry.record_timing(metric_name, (perf_counter() - started) * 1000)

        return wrapper

    return decorator
