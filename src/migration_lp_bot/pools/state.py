"""Decoder for Meteora DAMM v2 (cp-amm) pool accounts."""

from __future__ import annotations

from construct import BytesInteger, Bytes, ConstructError, Int8ul, Int16ul, Int64ul, Padding, Struct
from solders.pubkey import Pubkey

from ..domain.schemas import BaseFee, PoolState
from ..errors import PoolDecodeError

POOL_ACCOUNT_SIZE = 1112
TOKEN_A_MINT_OFFSET = 168
TOKEN_B_MINT_OFFSET = 200

U128 = BytesInteger(16, swapped=True)

BASE_FEE_LAYOUT = Struct(
    "cliff_fee_numerator" / Int64ul,
    "fee_scheduler_mode" / Int8ul,
    Padding(5),
    "number_of_period" / Int16ul,
    "period_frequency" / Int64ul,
    "reduction_factor" / Int64ul,
    Padding(8),
)

POOL_FEES_LAYOUT = Struct(
    "base_fee" / BASE_FEE_LAYOUT,
    "protocol_fee_percent" / Int8ul,
    "partner_fee_percent" / Int8ul,
    "referral_fee_percent" / Int8ul,
    Padding(5),
    # dynamic fee struct
    Padding(96),
    Padding(16),
)

# Only the prefix the bot reads; reward and metrics sections follow.
POOL_LAYOUT = Struct(
    "discriminator" / Bytes(8),
    "pool_fees" / POOL_FEES_LAYOUT,
    "token_a_mint" / Bytes(32),
    "token_b_mint" / Bytes(32),
    "token_a_vault" / Bytes(32),
    "token_b_vault" / Bytes(32),
    "whitelisted_vault" / Bytes(32),
    "partner" / Bytes(32),
    "liquidity" / U128,
    Padding(16),
    "protocol_a_fee" / Int64ul,
    "protocol_b_fee" / Int64ul,
    "partner_a_fee" / Int64ul,
    "partner_b_fee" / Int64ul,
    "sqrt_min_price" / U128,
    "sqrt_max_price" / U128,
    "sqrt_price" / U128,
    "activation_point" / Int64ul,
    "activation_type" / Int8ul,
    "pool_status" / Int8ul,
    "token_a_flag" / Int8ul,
    "token_b_flag" / Int8ul,
    "collect_fee_mode" / Int8ul,
    "pool_type" / Int8ul,
)


def decode_pool_state(data: bytes) -> PoolState:
    """Decode the raw account data of a DAMM v2 pool."""

    if len(data) < POOL_LAYOUT.sizeof():
        raise PoolDecodeError(f"Pool account too short: {len(data)} bytes")
    try:
        parsed = POOL_LAYOUT.parse(data)
    except ConstructError as exc:
        raise PoolDecodeError(f"Unable to decode pool account: {exc}") from exc
    base_fee = parsed.pool_fees.base_fee
    return PoolState(
        token_a_mint=str(Pubkey.from_bytes(parsed.token_a_mint)),
        token_b_mint=str(Pubkey.from_bytes(parsed.token_b_mint)),
        sqrt_price=parsed.sqrt_price,
        sqrt_min_price=parsed.sqrt_min_price,
        sqrt_max_price=parsed.sqrt_max_price,
        liquidity=parsed.liquidity,
        collect_fee_mode=parsed.collect_fee_mode,
        base_fee=BaseFee(
            cliff_fee_numerator=base_fee.cliff_fee_numerator,
            number_of_period=base_fee.number_of_period,
            period_frequency=base_fee.period_frequency,
            reduction_factor=base_fee.reduction_factor,
            fee_scheduler_mode=base_fee.fee_scheduler_mode,
        ),
    )


__all__ = [
    "BASE_FEE_LAYOUT",
    "POOL_ACCOUNT_SIZE",
    "POOL_LAYOUT",
    "TOKEN_A_MINT_OFFSET",
    "TOKEN_B_MINT_OFFSET",
    "decode_pool_state",
]
