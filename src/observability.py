"""Observability: sync pass metrics and run summary logging."""

import threading
import time
from collections.abc import Iterable
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger().bind(source="observability")


class Metrics:
    """Counters and timers shared by the sync pass and its worker threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}

    def counter(self, name: str, value: int = 1):
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def count_by(self, prefix: str, keys: Iterable[str]):
        """Bump ``prefix.<key>`` once per key, e.g. suggestions per kind."""
        for key in keys:
            self.counter(f"{prefix}.{key}")

    def get_counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    @contextmanager
    def timer(self, name: str):
        """Time the enclosed block; the duration is kept even if it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            with self._lock:
                self._timers.setdefault(name, []).append(elapsed)

    def summary(self) -> dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
            timers = {name: list(durations) for name, durations in self._timers.items()}
        return {
            "counters": counters,
            "timers": {
                name: {
                    "count": len(durations),
                    "total": round(sum(durations), 4),
                    "avg": round(sum(durations) / len(durations), 4),
                    "max": round(max(durations), 4),
                }
                for name, durations in timers.items()
                if durations
            },
        }

    def reset(self):
        with self._lock:
            self._counters.clear()
            self._timers.clear()


metrics = Metrics()


def log_run_summary(**context):
    """Log the accumulated metrics, plus any run context, via structlog."""
    summary = metrics.summary()
    logger.info("run_summary", **context, **summary)
    return summary
