"""Thread-safe in-memory metrics registry."""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from statistics import mean
from typing import Deque, Dict, MutableMapping


class MetricsRegistry:
    """Counters, gauges and bounded histograms shared by every component."""

    def __init__(self, *, max_hist_samples: int = 512) -> None:
        self._lock = threading.RLock()
        self._counters: MutableMapping[str, float] = defaultdict(float)
        self._gauges: MutableMapping[str, float] = {}
        self._histograms: MutableMapping[str, Deque[float]] = defaultdict(
            lambda: deque(maxlen=max_hist_samples)
        )

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] += amount

    def get(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self._histograms[name].append(float(value))

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            counters = dict(self._counters)
            gauges = dict(self._gauges)
            histograms = {
                key: {
                    "count": len(values),
                    "mean": mean(values) if values else 0.0,
                    "max": max(values) if values else 0.0,
                }
                for key, values in self._histograms.items()
            }
        return {"counters": counters, "gauges": gauges, "histograms": histograms}

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()


METRICS = MetricsRegistry()


__all__ = ["METRICS", "MetricsRegistry"]
