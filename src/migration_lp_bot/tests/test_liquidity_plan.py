from __future__ import annotations

import pytest

from migration_lp_bot.domain.ledger import ActionLedger, SeenPools
from migration_lp_bot.domain.schemas import ActionKey, PoolState
from migration_lp_bot.errors import LiquidityError
from migration_lp_bot.execution.liquidity import plan_for_pool
from migration_lp_bot.pools.amm_math import Q64
from migration_lp_bot.utils.constants import SOL_MINT


def _state(token_a: str, token_b: str) -> PoolState:
    return PoolState(
        token_a_mint=token_a,
        token_b_mint=token_b,
        sqrt_price=Q64,
        sqrt_min_price=Q64 // 2,
        sqrt_max_price=Q64 * 2,
        collect_fee_mode=1,
    )


def test_token_side_is_mapped_to_pool_side() -> None:
    plan = plan_for_pool(_state("T1", SOL_MINT), "T1", 1_000_000, 2_000_000, 2000)
    assert plan.threshold_a == 1_000_000
    assert plan.threshold_b == 1_200_000

    flipped = plan_for_pool(_state(SOL_MINT, "T1"), "T1", 1_000_000, 2_000_000, 2000)
    assert flipped.amount_a <= 2_000_000
    assert flipped.amount_b <= 1_000_000


def test_pool_without_native_side_cannot_be_planned() -> None:
    with pytest.raises(LiquidityError):
        plan_for_pool(_state("T1", "Usdc"), "T1", 1, 1, 100)


def test_price_outside_range_is_a_liquidity_error() -> None:
    state = PoolState(token_a_mint="T1", token_b_mint=SOL_MINT, sqrt_price=Q64 * 4, sqrt_min_price=1, sqrt_max_price=Q64)
    with pytest.raises(LiquidityError):
        plan_for_pool(state, "T1", 1, 1, 100)


def test_ledgers_are_write_once() -> None:
    ledger = ActionLedger()
    key = ActionKey(token_id="T1", pool_id="P1")

    assert ledger.claim(key)
    assert not ledger.claim(ActionKey(token_id="T1", pool_id="P1"))
    assert key in ledger
    assert str(key) == "T1-P1"

    seen = SeenPools()
    assert seen.claim("P1")
    assert not seen.claim("P1")
    assert list(seen) == ["P1"]
