"""Exception hierarchy shared across the bot."""

from __future__ import annotations

import re
from typing import Optional

_RATE_LIMIT_RE = re.compile(r"\b(?:HTTP|status|code)\W{0,3}429\b|rate.?limit", re.IGNORECASE)


class BotError(RuntimeError):
    """Base class for failures raised by bot components."""


class RpcError(BotError):
    """Raised when a Solana RPC call fails."""

    def __init__(self, method: str, message: str) -> None:
        super().__init__(f"RPC {method} failed: {message}")
        self.method = method


class RpcRateLimitedError(RpcError):
    """Raised when the RPC node answers with HTTP 429."""


class SwapError(BotError):
    """Raised when the swap aggregator cannot produce or land a swap."""


class NoRouteError(SwapError):
    """Raised when the aggregator returns no usable route for the pair."""


class InsufficientBalanceError(BotError):
    """Raised when the operator wallet cannot fund an action."""

    def __init__(self, required_lamports: int, available_lamports: int) -> None:
        super().__init__(
            f"Insufficient SOL balance: required {required_lamports} lamports, "
            f"available {available_lamports}"
        )
        self.required_lamports = required_lamports
        self.available_lamports = available_lamports


class LiquidityError(BotError):
    """Raised when a DAMM position cannot be planned or built."""


class PoolDecodeError(BotError):
    """Raised when a pool account cannot be decoded."""


def is_rate_limited(exc: BaseException) -> bool:
    """Walk the exception chain looking for an HTTP 429 response."""

    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, RpcRateLimitedError):
            return True
        response = getattr(current, "response", None)
        if getattr(response, "status_code", None) == 429:
            return True
        text = str(current)
        if "Too Many Requests" in text or _RATE_LIMIT_RE.search(text):
            return True
        current = current.__cause__ or current.__context__
    return False


__all__ = [
    "BotError",
    "InsufficientBalanceError",
    "LiquidityError",
    "NoRouteError",
    "PoolDecodeError",
    "RpcError",
    "RpcRateLimitedError",
    "SwapError",
    "is_rate_limited",
]
