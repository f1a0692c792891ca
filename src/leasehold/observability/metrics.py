"""In-process metrics registry for lease operations."""

from dataclasses import dataclass
from threading import Lock
from typing import Any


@dataclass
class Histogram:
    count: int = 0
    total: float = 0.0
    minimum: float | None = None
    maximum: float | None = None

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        if self.minimum is None or value < self.minimum:
            self.minimum = value
        if self.maximum is None or value > self.maximum:
            self.maximum = value

    def snapshot(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total": self.total,
            "min": self.minimum,
            "max": self.maximum,
            "avg": self.total / self.count if self.count else 0.0,
        }


class MetricsRegistry:
    """Thread-safe counters and histograms.

    Counters: lease.created, lease.refreshed, lease.expired, lease.closed,
    lease.swept, lease.validation.expired, lease.provider.failed,
    lease.transaction.commit, lease.transaction.rollback, db.query.count.
    Histograms: db.query.duration_ms.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self.counters: dict[str, float] = {}
        self.histograms: dict[str, Histogram] = {}

    def inc_counter(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0.0) + amount

    def counter(self, name: str) -> float:
        with self._lock:
            return self.counters.get(name, 0.0)

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self.histograms.setdefault(name, Histogram()).observe(value)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self.counters),
                "histograms": {name: hist.snapshot() for name, hist in self.histograms.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self.counters.clear()
            self.histograms.clear()


metrics = MetricsRegistry()
