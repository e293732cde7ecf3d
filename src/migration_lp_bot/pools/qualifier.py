"""Eligibility rules for DAMM v2 pools holding a migrated token.

Decision table
--------------

==========================  ==========================================  =========
Field                       Value                                       Result
==========================  ==========================================  =========
``collect_fee_mode``        ``1`` (fees in token B) and token B native  accept
``collect_fee_mode``        ``1`` and token A native                    reject
``collect_fee_mode``        ``0`` (fees in both tokens) or other        reject
``collect_fee_mode``        absent                                      reject
``fee_scheduler_mode``      ``0`` (linear)                              accept
``fee_scheduler_mode``      ``1`` (exponential) or other                reject
``fee_scheduler_mode``      absent                                      heuristic
``base_fee``                absent                                      reject
==========================  ==========================================  =========

The heuristic only accepts a schedule whose per-period reduction is small
next to the cliff fee and whose total reduction cannot exceed it, which is
what an arithmetic decay looks like. Anything else is treated as exponential.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from ..domain.schemas import BaseFee, PoolState
from ..monitoring.logger import get_logger
from ..utils.constants import NATIVE_MINTS

COLLECT_FEE_BOTH = 0
COLLECT_FEE_ONLY_B = 1

SCHEDULER_LINEAR = 0
SCHEDULER_EXPONENTIAL = 1

# Per-period reduction must stay below cliff / HEURISTIC_REDUCTION_DIVISOR.
HEURISTIC_REDUCTION_DIVISOR = 10

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class ScheduleVerdict:
    linear: bool
    heuristic: bool
    reason: str


@dataclass(slots=True, frozen=True)
class QualifierVerdict:
    has_native: bool
    has_target: bool
    quote_only_fees: bool
    linear_schedule: bool
    heuristic: bool
    reason: str

    @property
    def eligible(self) -> bool:
        return self.has_native and self.has_target and self.quote_only_fees and self.linear_schedule

    def as_fields(self) -> Dict[str, str]:
        return {
            "Has SOL/WSOL": _mark(self.has_native),
            "Has migrated token": _mark(self.has_target),
            "Quote-only fees": _mark(self.quote_only_fees),
            "Linear schedule": _mark(self.linear_schedule) + (" (heuristic)" if self.heuristic else ""),
        }


def _mark(value: bool) -> str:
    return "yes" if value else "no"


def quote_only_fees(state: PoolState) -> bool:
    """True when trading fees accrue exclusively on the native side."""

    if state.collect_fee_mode != COLLECT_FEE_ONLY_B:
        return False
    return state.token_b_mint in NATIVE_MINTS


def heuristic_is_linear(base_fee: BaseFee) -> bool:
    cliff = base_fee.cliff_fee_numerator
    periods = base_fee.number_of_period
    reduction = base_fee.reduction_factor
    if cliff <= 0 or periods <= 0 or reduction <= 0:
        return False
    if reduction * HEURISTIC_REDUCTION_DIVISOR >= cliff:
        return False
    return reduction * periods <= cliff


def classify_schedule(base_fee: Optional[BaseFee]) -> ScheduleVerdict:
    if base_fee is None:
        return ScheduleVerdict(linear=False, heuristic=False, reason="base fee missing")
    mode = base_fee.fee_scheduler_mode
    if mode is not None:
        if mode == SCHEDULER_LINEAR:
            return ScheduleVerdict(linear=True, heuristic=False, reason="scheduler mode linear")
        if mode == SCHEDULER_EXPONENTIAL:
            return ScheduleVerdict(linear=False, heuristic=False, reason="scheduler mode exponential")
        return ScheduleVerdict(linear=False, heuristic=False, reason=f"unknown scheduler mode {mode}")
    linear = heuristic_is_linear(base_fee)
    return ScheduleVerdict(
        linear=linear,
        heuristic=True,
        reason="heuristic linear" if linear else "heuristic ambiguous or exponential",
    )


def assess(state: PoolState, token_id: str) -> QualifierVerdict:
    schedule = classify_schedule(state.base_fee)
    verdict = QualifierVerdict(
        has_native=state.token_a_mint in NATIVE_MINTS or state.token_b_mint in NATIVE_MINTS,
        has_target=state.contains(token_id),
        quote_only_fees=quote_only_fees(state),
        linear_schedule=schedule.linear,
        heuristic=schedule.heuristic,
        reason=schedule.reason,
    )
    if schedule.heuristic:
        logger.warning(
            "Fee scheduler mode missing; schedule classified by heuristic as %s",
            "linear" if schedule.linear else "not linear",
            extra={"token": token_id, "base_fee": state.base_fee},
        )
    return verdict


def evaluate(state: PoolState, token_id: str) -> bool:
    """Return True only when every eligibility criterion holds."""

    return assess(state, token_id).eligible


__all__ = [
    "COLLECT_FEE_BOTH",
    "COLLECT_FEE_ONLY_B",
    "QualifierVerdict",
    "SCHEDULER_EXPONENTIAL",
    "SCHEDULER_LINEAR",
    "ScheduleVerdict",
    "assess",
    "classify_schedule",
    "evaluate",
    "heuristic_is_linear",
    "quote_only_fees",
]
