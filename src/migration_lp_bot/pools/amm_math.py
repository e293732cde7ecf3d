"""Integer math for DAMM v2 concentrated-range deposits.

Square-root prices are Q64.64 fixed point; liquidity follows the cp-amm SDK
convention (``getLiquidityDelta``).
"""

from __future__ import annotations

from dataclasses import dataclass

Q64 = 1 << 64
BPS = 10_000


def price_b_per_a(sqrt_price: int) -> float:
    """Raw-unit price of token A denominated in token B."""

    return (sqrt_price / Q64) ** 2


def liquidity_from_amount_a(amount_a: int, sqrt_price: int, sqrt_max_price: int) -> int:
    if sqrt_max_price <= sqrt_price:
        return 0
    return amount_a * sqrt_price * sqrt_max_price // (sqrt_max_price - sqrt_price)


def liquidity_from_amount_b(amount_b: int, sqrt_min_price: int, sqrt_price: int) -> int:
    if sqrt_price <= sqrt_min_price:
        return 0
    return (amount_b << 128) // (sqrt_price - sqrt_min_price)


def liquidity_delta(
    max_amount_a: int,
    max_amount_b: int,
    sqrt_price: int,
    sqrt_min_price: int,
    sqrt_max_price: int,
) -> int:
    return min(
        liquidity_from_amount_a(max_amount_a, sqrt_price, sqrt_max_price),
        liquidity_from_amount_b(max_amount_b, sqrt_min_price, sqrt_price),
    )


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def amount_a_for_liquidity(liquidity: int, sqrt_price: int, sqrt_max_price: int) -> int:
    if liquidity <= 0 or sqrt_price <= 0:
        return 0
    return _ceil_div(liquidity * (sqrt_max_price - sqrt_price), sqrt_price * sqrt_max_price)


def amount_b_for_liquidity(liquidity: int, sqrt_min_price: int, sqrt_price: int) -> int:
    if liquidity <= 0:
        return 0
    return _ceil_div(liquidity * (sqrt_price - sqrt_min_price), 1 << 128)


def with_slippage(amount: int, slippage_bps: int, cap: int) -> int:
    """Upper bound for a deposit amount, never above what is available."""

    return min(cap, amount * (BPS + slippage_bps) // BPS)


@dataclass(slots=True, frozen=True)
class DepositPlan:
    liquidity_delta: int
    amount_a: int
    amount_b: int
    threshold_a: int
    threshold_b: int


def plan_deposit(
    max_amount_a: int,
    max_amount_b: int,
    *,
    sqrt_price: int,
    sqrt_min_price: int,
    sqrt_max_price: int,
    slippage_bps: int,
) -> DepositPlan:
    """Size a two-sided deposit bounded by both available amounts."""

    if not sqrt_min_price < sqrt_price < sqrt_max_price:
        raise ValueError("Pool price lies outside its configured range")
    liquidity = liquidity_delta(max_amount_a, max_amount_b, sqrt_price, sqrt_min_price, sqrt_max_price)
    amount_a = min(amount_a_for_liquidity(liquidity, sqrt_price, sqrt_max_price), max_amount_a)
    amount_b = min(amount_b_for_liquidity(liquidity, sqrt_min_price, sqrt_price), max_amount_b)
    return DepositPlan(
        liquidity_delta=liquidity,
        amount_a=amount_a,
        amount_b=amount_b,
        threshold_a=with_slippage(amount_a, slippage_bps, max_amount_a),
        threshold_b=with_slippage(amount_b, slippage_bps, max_amount_b),
    )


__all__ = [
    "DepositPlan",
    "Q64",
    "amount_a_for_liquidity",
    "amount_b_for_liquidity",
    "liquidity_delta",
    "plan_deposit",
    "price_b_per_a",
    "with_slippage",
]
