"""Time-bounded de-duplication sets for signatures and mints."""

from __future__ import annotations

import time
from typing import Callable, Hashable, Optional

from cachetools import TTLCache

MIN_SWEEP_INTERVAL = 5.0
MAX_SWEEP_INTERVAL = 60.0


def sweep_interval_for(ttl: float) -> float:
    return min(max(ttl / 3.0, MIN_SWEEP_INTERVAL), MAX_SWEEP_INTERVAL)


class DedupWindow:
    """Remember keys for ``ttl`` seconds after they are marked.

    A key marked at ``T`` is seen while ``now < T + ttl`` and unseen from
    ``T + ttl`` onwards.

    There is no background timer. Expired keys are swept when :meth:`seen` or
    :meth:`mark` runs and at least ``sweep_interval`` seconds have passed since
    the previous sweep. Lookups are exact in between because the cache itself
    ignores expired entries.
    """

    def __init__(
        self,
        ttl: float,
        *,
        maxsize: int = 100_000,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._ttl = ttl
        self._clock = clock or time.monotonic
        self._entries: TTLCache[Hashable, bool] = TTLCache(maxsize=maxsize, ttl=ttl, timer=self._clock)
        self._last_sweep = self._clock()
        self.sweep_interval = sweep_interval_for(ttl)

    @property
    def ttl(self) -> float:
        return self._ttl

    def seen(self, key: Hashable) -> bool:
        self._maybe_sweep()
        return key in self._entries

    def mark(self, key: Hashable) -> None:
        self._entries[key] = True
        self._maybe_sweep()

    def sweep(self) -> int:
        """Drop expired keys and return how many were removed."""

        before = self._entries.currsize
        self._entries.expire()
        self._last_sweep = self._clock()
        return int(before - self._entries.currsize)

    def _maybe_sweep(self) -> None:
        if self._clock() - self._last_sweep >= self.sweep_interval:
            self.sweep()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["DedupWindow", "sweep_interval_for"]
