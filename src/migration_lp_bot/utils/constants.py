"""Shared Solana constants."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


LAMPORTS_PER_SOL = 1_000_000_000

SOL_MINT = "So11111111111111111111111111111111111111112"
# System program id; some pools reference native SOL by this address instead of WSOL.
NATIVE_SOL = "11111111111111111111111111111111"
NATIVE_MINTS = frozenset({SOL_MINT, NATIVE_SOL})

METADATA_PROGRAM_ID = "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"


def sol_to_lamports(amount: float) -> int:
    return int(round(amount * LAMPORTS_PER_SOL))


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


__all__ = [
    "utc_now",
    "LAMPORTS_PER_SOL",
    "METADATA_PROGRAM_ID",
    "NATIVE_MINTS",
    "NATIVE_SOL",
    "SOL_MINT",
    "lamports_to_sol",
    "sol_to_lamports",
]
