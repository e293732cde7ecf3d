"""Dataclasses shared by the ingestion, pool and execution layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..utils.constants import NATIVE_MINTS, utc_now


@dataclass(slots=True)
class LogNotification:
    """A single ``logsNotification`` pushed by the websocket transport."""

    signature: str
    logs: List[str]
    slot: int = 0
    err: Optional[object] = None


@dataclass(slots=True, frozen=True)
class MigrationEvent:
    token_id: str
    signature: str
    slot: int
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class MigrationCandidate:
    """A graduated token waiting for a qualifying pool.

    ``first_seen_at`` and ``expires_at`` are event-loop clock readings (seconds).
    """

    token_id: str
    first_seen_at: float
    expires_at: float
    generation: int


@dataclass(slots=True, frozen=True)
class BaseFee:
    """Base fee record of a DAMM v2 pool.

    ``fee_scheduler_mode`` is ``None`` when the source that produced the state
    could not supply the discriminant.
    """

    cliff_fee_numerator: int
    number_of_period: int
    period_frequency: int
    reduction_factor: int
    fee_scheduler_mode: Optional[int] = None


@dataclass(slots=True, frozen=True)
class PoolState:
    token_a_mint: str
    token_b_mint: str
    sqrt_price: int = 0
    sqrt_min_price: int = 0
    sqrt_max_price: int = 0
    liquidity: int = 0
    collect_fee_mode: Optional[int] = None
    base_fee: Optional[BaseFee] = None

    def native_side(self) -> Optional[str]:
        """Return ``"a"`` or ``"b"`` for the side holding SOL/WSOL."""

        if self.token_b_mint in NATIVE_MINTS:
            return "b"
        if self.token_a_mint in NATIVE_MINTS:
            return "a"
        return None

    def contains(self, mint: str) -> bool:
        return mint in (self.token_a_mint, self.token_b_mint)


@dataclass(slots=True)
class PoolObservation:
    pool_id: str
    state: PoolState
    first_seen_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class ActionKey:
    token_id: str
    pool_id: str

    def __str__(self) -> str:
        return f"{self.token_id}-{self.pool_id}"


__all__ = [
    "ActionKey",
    "BaseFee",
    "LogNotification",
    "MigrationCandidate",
    "MigrationEvent",
    "PoolObservation",
    "PoolState",
]
