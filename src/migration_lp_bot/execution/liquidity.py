"""Liquidity provisioning into a matched DAMM v2 pool."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..config.settings import TradingConfig, get_app_config
from ..domain.schemas import PoolState
from ..errors import InsufficientBalanceError, LiquidityError
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..pools.amm_math import DepositPlan, plan_deposit, price_b_per_a
from ..pools.state import decode_pool_state
from ..utils.constants import sol_to_lamports
from .damm import DammPositionBuilder
from .outcomes import Failure, TxOutcome, is_success
from .solana_client import SolanaRpc
from .submitter import TransactionSubmitter
from .swap import SwapService


@dataclass(slots=True)
class LiquidityResult:
    outcome: TxOutcome
    position: Optional[str] = None
    plan: Optional[DepositPlan] = None


def plan_for_pool(
    state: PoolState,
    token_id: str,
    token_amount: int,
    sol_budget_lamports: int,
    slippage_bps: int,
) -> DepositPlan:
    """Size the deposit from the held token amount and the SOL budget.

    The SOL counter-amount follows the pool's current price; when the budget
    cannot cover the full token amount, the token side is scaled down.
    """

    native_side = state.native_side()
    if native_side is None or not state.contains(token_id):
        raise LiquidityError("Pool does not pair the token with SOL/WSOL")
    if native_side == "b":
        max_a, max_b = token_amount, sol_budget_lamports
    else:
        max_a, max_b = sol_budget_lamports, token_amount
    try:
        return plan_deposit(
            max_a,
            max_b,
            sqrt_price=state.sqrt_price,
            sqrt_min_price=state.sqrt_min_price,
            sqrt_max_price=state.sqrt_max_price,
            slippage_bps=slippage_bps,
        )
    except ValueError as exc:
        raise LiquidityError(str(exc)) from exc


class LiquidityService:
    """Opens a DAMM v2 position with the purchased tokens and a SOL budget."""

    def __init__(
        self,
        rpc: SolanaRpc,
        builder: DammPositionBuilder,
        submitter: TransactionSubmitter,
        swaps: SwapService,
        config: Optional[TradingConfig] = None,
    ) -> None:
        self._rpc = rpc
        self._builder = builder
        self._submitter = submitter
        self._swaps = swaps
        self._config = config or get_app_config().trading
        self._logger = get_logger(__name__)

    async def fetch_state(self, pool_id: str) -> PoolState:
        data = await self._rpc.get_account_data(pool_id)
        if data is None:
            raise LiquidityError(f"Pool account {pool_id} not found")
        return decode_pool_state(data)

    async def provide(self, token_id: str, pool_id: str, token_amount: int, *, owner: str) -> LiquidityResult:
        state = await self.fetch_state(pool_id)
        plan = plan_for_pool(
            state,
            token_id,
            token_amount,
            sol_to_lamports(self._config.liquidity_budget_sol),
            self._config.slippage_bps,
        )
        if plan.liquidity_delta <= 0:
            return LiquidityResult(outcome=Failure(reason="Computed liquidity delta is zero"), plan=plan)
        sol_needed = plan.threshold_b if state.native_side() == "b" else plan.threshold_a
        try:
            await self._swaps.ensure_sol(sol_needed + sol_to_lamports(self._config.fee_reserve_sol))
        except InsufficientBalanceError as exc:
            return LiquidityResult(outcome=Failure(reason=str(exc)), plan=plan)

        self._logger.info(
            "Adding liquidity to %s: delta=%d amount_a=%d amount_b=%d",
            pool_id,
            plan.liquidity_delta,
            plan.amount_a,
            plan.amount_b,
            extra={"price_b_per_a": price_b_per_a(state.sqrt_price)},
        )
        instructions, position_keypair = await self._builder.build_create_position(
            owner=owner,
            pool_id=pool_id,
            plan=plan,
        )
        transaction = await self._submitter.compile(instructions, [position_keypair])
        outcome = await self._submitter.submit(transaction, label="liquidity")
        METRICS.increment("liquidity.succeeded" if is_success(outcome) else "liquidity.failed")
        return LiquidityResult(outcome=outcome, position=str(position_keypair.pubkey()), plan=plan)


__all__ = ["LiquidityResult", "LiquidityService", "plan_for_pool"]
