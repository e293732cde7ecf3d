"""Withdraw all liquidity from the operator's DAMM v2 positions and close them."""

from __future__ import annotations

import argparse
import asyncio

from migration_lp_bot.config.settings import get_app_config
from migration_lp_bot.execution.damm import DammPositionBuilder
from migration_lp_bot.execution.jupiter import JupiterClient
from migration_lp_bot.execution.solana_client import SolanaRpc
from migration_lp_bot.execution.submitter import TransactionSubmitter
from migration_lp_bot.execution.swap import SwapService
from migration_lp_bot.execution.unwind import PositionUnwinder
from migration_lp_bot.execution.wallet import load_wallet
from migration_lp_bot.monitoring.logger import configure_logging


async def close_positions(*, dry_run: bool, pool: str | None = None, swap_to_sol: bool = False) -> int:
    config = get_app_config()
    configure_logging(config.monitoring)
    wallet = load_wallet(config.wallet)
    rpc = SolanaRpc(config.rpc)
    submitter = TransactionSubmitter(rpc, wallet, config.trading)
    swaps = None
    if swap_to_sol:
        swaps = SwapService(rpc, JupiterClient(config.jupiter), submitter, wallet, config.trading)
    unwinder = PositionUnwinder(DammPositionBuilder(config.rpc), submitter, wallet.address, swaps=swaps)
    return await unwinder.unwind(dry_run=dry_run, pool=pool)


def main() -> None:
    parser = argparse.ArgumentParser(description="Close every DAMM v2 position owned by the bot wallet")
    parser.add_argument("--dry-run", action="store_true", help="List positions without submitting anything")
    parser.add_argument("--pool", default=None, help="Only close positions in this pool")
    parser.add_argument(
        "--swap-to-sol",
        action="store_true",
        help="Sell the tokens withdrawn from each closed position back to SOL through Jupiter",
    )
    args = parser.parse_args()
    failures = asyncio.run(close_positions(dry_run=args.dry_run, pool=args.pool, swap_to_sol=args.swap_to_sol))
    raise SystemExit(1 if failures else 0)


if __name__ == "__main__":
    main()
