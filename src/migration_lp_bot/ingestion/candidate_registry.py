"""Pending migration candidates with per-registration expiry timers."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Set

from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..domain.schemas import MigrationCandidate

DEFAULT_TTL_SECONDS = 420.0


class CandidateRegistry:
    """Time-bounded set of graduated tokens awaiting a matching pool.

    Every ``add`` installs a new generation for the token and cancels the
    previous expiry handle, so a timer left over from an earlier registration
    can never evict a newer one.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._default_ttl = default_ttl
        self._loop = loop
        self._candidates: Dict[str, MigrationCandidate] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._generation = 0
        self._logger = get_logger(__name__)

    def _event_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def add(self, token_id: str, ttl: Optional[float] = None) -> MigrationCandidate:
        loop = self._event_loop()
        ttl = self._default_ttl if ttl is None else ttl
        now = loop.time()
        previous = self._candidates.get(token_id)
        self._cancel_timer(token_id)
        self._generation += 1
        candidate = MigrationCandidate(
            token_id=token_id,
            first_seen_at=previous.first_seen_at if previous else now,
            expires_at=now + ttl,
            generation=self._generation,
        )
        self._candidates[token_id] = candidate
        self._timers[token_id] = loop.call_later(ttl, self._expire, token_id, candidate.generation)
        METRICS.gauge("registry.pending", len(self._candidates))
        self._logger.info(
            "Tracking token %s for %.0fs (%d pending)",
            token_id,
            ttl,
            len(self._candidates),
            extra={"token": token_id, "refreshed": previous is not None},
        )
        return candidate

    def remove(self, token_id: str) -> bool:
        self._cancel_timer(token_id)
        removed = self._candidates.pop(token_id, None) is not None
        if removed:
            METRICS.gauge("registry.pending", len(self._candidates))
            self._logger.debug("Stopped tracking token %s", token_id)
        return removed

    def has(self, token_id: str) -> bool:
        candidate = self._candidates.get(token_id)
        if candidate is None:
            return False
        return self._event_loop().time() < candidate.expires_at

    def get(self, token_id: str) -> Optional[MigrationCandidate]:
        return self._candidates.get(token_id) if self.has(token_id) else None

    def list(self) -> Set[str]:
        now = self._event_loop().time()
        return {token for token, candidate in self._candidates.items() if now < candidate.expires_at}

    def clear(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._candidates.clear()
        METRICS.gauge("registry.pending", 0)

    def close(self) -> None:
        """Cancel outstanding expiry timers on shutdown."""

        pending = len(self._candidates)
        self.clear()
        if pending:
            self._logger.info("Discarded %d pending candidates on shutdown", pending)

    def _cancel_timer(self, token_id: str) -> None:
        handle = self._timers.pop(token_id, None)
        if handle is not None:
            handle.cancel()

    def _expire(self, token_id: str, generation: int) -> None:
        candidate = self._candidates.get(token_id)
        if candidate is None or candidate.generation != generation:
            return
        del self._candidates[token_id]
        self._timers.pop(token_id, None)
        METRICS.increment("registry.expired")
        METRICS.gauge("registry.pending", len(self._candidates))
        self._logger.info("Token %s expired without a qualifying pool", token_id, extra={"token": token_id})

    def __len__(self) -> int:
        return len(self._candidates)

    def __contains__(self, token_id: object) -> bool:
        return isinstance(token_id, str) and self.has(token_id)


__all__ = ["CandidateRegistry", "DEFAULT_TTL_SECONDS"]
