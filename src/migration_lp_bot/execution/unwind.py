"""Close the operator's DAMM v2 positions and optionally sell the withdrawn tokens."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..errors import BotError
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.constants import SOL_MINT
from .damm import DammPositionBuilder
from .outcomes import describe, is_success
from .submitter import TransactionSubmitter
from .swap import SwapService


class PositionUnwinder:
    """Withdraws all liquidity from each position, closes it and sells the proceeds.

    Every position is handled independently; the return value of
    :meth:`unwind` is the number of closes or sales that failed.
    """

    def __init__(
        self,
        builder: DammPositionBuilder,
        submitter: TransactionSubmitter,
        owner: str,
        *,
        swaps: Optional[SwapService] = None,
    ) -> None:
        self._builder = builder
        self._submitter = submitter
        self._owner = owner
        self._swaps = swaps
        self._logger = get_logger(__name__)

    async def positions(self, pool: Optional[str] = None) -> List[Dict[str, Any]]:
        positions = await self._builder.list_positions(self._owner)
        if pool:
            positions = [entry for entry in positions if entry["pool"] == pool]
        self._logger.info("Found %d DAMM v2 positions for %s", len(positions), self._owner)
        return positions

    async def unwind(self, *, dry_run: bool = False, pool: Optional[str] = None) -> int:
        failures = 0
        for position in await self.positions(pool):
            label = f"{position['position']} (pool {position['pool']})"
            if dry_run:
                self._logger.info("Dry run: would close %s", label)
                continue
            if not await self._close(position, label):
                failures += 1
                continue
            if self._swaps is not None:
                failures += await self._sell_withdrawn(self._swaps, position)
        return failures

    async def _close(self, position: Dict[str, Any], label: str) -> bool:
        try:
            instructions = await self._builder.build_close_position(owner=self._owner, position=position)
            transaction = await self._submitter.compile(instructions)
            outcome = await self._submitter.submit(transaction, label="close_position")
        except BotError as exc:
            METRICS.increment("unwind.close_failed")
            self._logger.error("Could not close %s: %s", label, exc)
            return False
        if not is_success(outcome):
            METRICS.increment("unwind.close_failed")
            self._logger.error("Closing %s failed: %s", label, describe(outcome))
            return False
        METRICS.increment("unwind.closed")
        self._logger.info("Closed %s: %s", label, describe(outcome))
        return True

    async def _sell_withdrawn(self, swaps: SwapService, position: Dict[str, Any]) -> int:
        failures = 0
        for key in ("tokenAMint", "tokenBMint"):
            mint = position.get(key)
            if not mint or mint == SOL_MINT:
                continue
            balance = await swaps.wait_for_settlement(mint)
            if balance <= 0:
                self._logger.info("No %s balance to sell after closing %s", mint, position["position"])
                continue
            outcome = await swaps.sell(mint, balance)
            if is_success(outcome):
                self._logger.info("Sold %d of %s: %s", balance, mint, describe(outcome))
            else:
                failures += 1
                self._logger.error("Selling %s failed: %s", mint, describe(outcome))
        return failures


__all__ = ["PositionUnwinder"]
