"""Tagged transaction outcomes and on-chain error classification."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from ..monitoring.logger import get_logger

DEFAULT_NON_CRITICAL_INDEX = 4

_INSTRUCTION_ERROR_RE = re.compile(r"InstructionError\W*(\d+)\W*(?:InstructionError)?Custom\W*(\d+)", re.IGNORECASE)
_PROCESSING_ERROR_RE = re.compile(
    r"Error processing Instruction (\d+): custom program error: (0x[0-9a-fA-F]+|\d+)"
)

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class Success:
    signature: str


@dataclass(slots=True, frozen=True)
class SuccessWithWarning:
    signature: Optional[str]
    code: int
    instruction_index: int


@dataclass(slots=True, frozen=True)
class Failure:
    reason: str
    signature: Optional[str] = None


TxOutcome = Union[Success, SuccessWithWarning, Failure]


def is_success(outcome: Optional[TxOutcome]) -> bool:
    return isinstance(outcome, (Success, SuccessWithWarning))


def parse_instruction_error(error: Any) -> Optional[Tuple[int, int]]:
    """Extract ``(instruction_index, custom_code)`` from an RPC error.

    Accepts the JSON form (``{"InstructionError": [5, {"Custom": 1}]}``),
    the solders/str forms and raw program log lines.
    """

    if error is None:
        return None
    if isinstance(error, dict):
        entry = error.get("InstructionError")
        if isinstance(entry, (list, tuple)) and len(entry) == 2:
            index, detail = entry
            if isinstance(detail, dict) and "Custom" in detail:
                return int(index), int(detail["Custom"])
            return None
    text = str(error)
    match = _INSTRUCTION_ERROR_RE.search(text)
    if match:
        return int(match.group(1)), int(match.group(2))
    match = _PROCESSING_ERROR_RE.search(text)
    if match:
        return int(match.group(1)), int(match.group(2), 0)
    return None


def classify_error(
    error: Any,
    *,
    signature: Optional[str] = None,
    non_critical_index: int = DEFAULT_NON_CRITICAL_INDEX,
) -> TxOutcome:
    """Classify an on-chain error as a probable success or a hard failure.

    A custom program error raised by instruction ``non_critical_index`` or
    later means the core instructions already executed.
    """

    parsed = parse_instruction_error(error)
    if parsed is not None:
        index, code = parsed
        if index >= non_critical_index:
            logger.warning(
                "Instruction %d failed with custom error %d after core instructions; treating as success",
                index,
                code,
                extra={"signature": signature, "instruction_index": index, "code": code},
            )
            return SuccessWithWarning(signature=signature, code=code, instruction_index=index)
        return Failure(reason=f"Instruction {index} failed with custom error {code}", signature=signature)
    return Failure(reason=str(error), signature=signature)


def describe(outcome: Optional[TxOutcome]) -> str:
    if outcome is None:
        return "not attempted"
    if isinstance(outcome, Success):
        return f"success ({outcome.signature})"
    if isinstance(outcome, SuccessWithWarning):
        return (
            f"success with warning: custom error {outcome.code} "
            f"on instruction {outcome.instruction_index}"
        )
    return f"failed: {outcome.reason}"


__all__ = [
    "DEFAULT_NON_CRITICAL_INDEX",
    "Failure",
    "Success",
    "SuccessWithWarning",
    "TxOutcome",
    "classify_error",
    "describe",
    "is_success",
    "parse_instruction_error",
]
