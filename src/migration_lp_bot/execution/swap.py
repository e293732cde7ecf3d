"""Token purchases and sales through Jupiter with whole-operation retries."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..config.settings import TradingConfig, get_app_config
from ..errors import BotError, InsufficientBalanceError, NoRouteError
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.constants import SOL_MINT, sol_to_lamports
from .jupiter import JupiterClient
from .outcomes import Failure, Success, TxOutcome, is_success
from .solana_client import SolanaRpc
from .submitter import TransactionSubmitter
from .wallet import Wallet


@dataclass(slots=True)
class PurchaseResult:
    outcome: TxOutcome
    skipped: bool = False
    held_amount: int = 0


class SwapService:
    """Buys a token with SOL unless the wallet already holds it, and sells it back."""

    def __init__(
        self,
        rpc: SolanaRpc,
        jupiter: JupiterClient,
        submitter: TransactionSubmitter,
        wallet: Wallet,
        config: Optional[TradingConfig] = None,
        *,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._rpc = rpc
        self._jupiter = jupiter
        self._submitter = submitter
        self._wallet = wallet
        self._config = config or get_app_config().trading
        self._sleep = sleep or asyncio.sleep
        self._logger = get_logger(__name__)

    async def token_balance(self, token_id: str) -> int:
        return await self._rpc.get_token_balance(self._wallet.address, token_id)

    async def ensure_sol(self, required_lamports: int) -> None:
        available = await self._rpc.get_balance(self._wallet.address)
        if available < required_lamports:
            raise InsufficientBalanceError(required_lamports, available)

    async def buy(self, token_id: str) -> PurchaseResult:
        held = await self.token_balance(token_id)
        if held > 0:
            METRICS.increment("swap.skipped_already_held")
            self._logger.info("Wallet already holds %d of %s; skipping purchase", held, token_id)
            return PurchaseResult(outcome=Success(signature="already-held"), skipped=True, held_amount=held)

        lamports = sol_to_lamports(self._config.swap_amount_sol)
        try:
            await self.ensure_sol(lamports + sol_to_lamports(self._config.fee_reserve_sol))
        except InsufficientBalanceError as exc:
            return PurchaseResult(outcome=Failure(reason=str(exc)))

        last: TxOutcome = Failure(reason="no swap attempt made")
        attempts = self._config.swap_attempts
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                await self._sleep(self._config.swap_retry_delay)
                held = await self.token_balance(token_id)
                if held > 0:
                    self._logger.info("Balance of %s appeared after attempt %d", token_id, attempt - 1)
                    return PurchaseResult(
                        outcome=Success(signature=getattr(last, "signature", None) or "balance-observed"),
                        held_amount=held,
                    )
            try:
                outcome = await self._attempt(SOL_MINT, token_id, lamports, label="swap")
            except NoRouteError as exc:
                METRICS.increment("swap.no_route")
                return PurchaseResult(outcome=Failure(reason=str(exc)))
            except BotError as exc:
                outcome = Failure(reason=str(exc))
            if is_success(outcome):
                METRICS.increment("swap.succeeded")
                return PurchaseResult(outcome=outcome)
            last = outcome
            self._logger.warning(
                "Swap attempt %d/%d for %s failed: %s",
                attempt,
                attempts,
                token_id,
                getattr(outcome, "reason", outcome),
            )
        METRICS.increment("swap.failed")
        return PurchaseResult(outcome=last)

    async def sell(self, token_id: str, amount: int) -> TxOutcome:
        """Swap ``amount`` base units of ``token_id`` back to SOL.

        Retries follow :meth:`buy`; a balance that dropped by ``amount`` after a
        failed attempt counts as sold.
        """

        if amount <= 0:
            return Failure(reason=f"Nothing to sell for {token_id}")
        before = await self.token_balance(token_id)
        last: TxOutcome = Failure(reason="no swap attempt made")
        attempts = self._config.swap_attempts
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                await self._sleep(self._config.swap_retry_delay)
                if await self.token_balance(token_id) <= before - amount:
                    self._logger.info("Sale of %s landed after attempt %d", token_id, attempt - 1)
                    return Success(signature=getattr(last, "signature", None) or "balance-observed")
            try:
                outcome = await self._attempt(token_id, SOL_MINT, amount, label="sell")
            except NoRouteError as exc:
                METRICS.increment("swap.sell_no_route")
                return Failure(reason=str(exc))
            except BotError as exc:
                outcome = Failure(reason=str(exc))
            if is_success(outcome):
                METRICS.increment("swap.sold")
                return outcome
            last = outcome
            self._logger.warning(
                "Sell attempt %d/%d for %s failed: %s",
                attempt,
                attempts,
                token_id,
                getattr(outcome, "reason", outcome),
            )
        METRICS.increment("swap.sell_failed")
        return last

    async def _attempt(self, input_mint: str, output_mint: str, amount: int, *, label: str) -> TxOutcome:
        quote = await asyncio.to_thread(
            self._jupiter.quote,
            input_mint,
            output_mint,
            amount,
            self._config.slippage_bps,
        )
        self._logger.info(
            "Quote: %d units of %s -> %s units of %s",
            amount,
            input_mint,
            quote.get("outAmount"),
            output_mint,
            extra={"price_impact_pct": quote.get("priceImpactPct")},
        )
        transaction = await asyncio.to_thread(
            self._jupiter.swap_transaction,
            quote,
            self._wallet.address,
            priority_fee_lamports=self._config.priority_fee_lamports,
        )
        return await self._submitter.submit(self._submitter.sign(transaction), label=label)

    async def wait_for_settlement(self, token_id: str) -> int:
        """Poll the token balance until it is positive; returns 0 on timeout."""

        for delay in self._config.settlement_delays:
            balance = await self.token_balance(token_id)
            if balance > 0:
                return balance
            self._logger.debug("Balance of %s not visible yet; waiting %.1fs", token_id, delay)
            await self._sleep(delay)
        return await self.token_balance(token_id)


__all__ = ["PurchaseResult", "SwapService"]
