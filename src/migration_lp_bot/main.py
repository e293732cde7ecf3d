"""Entrypoint for the pump.fun migration liquidity bot."""

from __future__ import annotations

import argparse
import asyncio
import signal
from typing import Optional

from .bot import MigrationLiquidityBot
from .config.settings import get_app_config
from .monitoring.logger import configure_logging, get_logger

logger = get_logger(__name__)


async def run_async(dry_run: Optional[bool] = None) -> None:
    config = get_app_config()
    configure_logging(config.monitoring)
    bot = MigrationLiquidityBot(config, dry_run=dry_run)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:  # pragma: no cover - Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))
    await bot.start()
    try:
        await stop_event.wait()
    finally:
        await bot.stop()


def run(dry_run: Optional[bool] = None) -> None:
    asyncio.run(run_async(dry_run=dry_run))


def main() -> None:
    parser = argparse.ArgumentParser(description="Buy migrated pump.fun tokens and seed their DAMM v2 pools")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Detect and match pools but never submit transactions (overrides mode.active).",
    )
    parser.add_argument(
        "--live",
        dest="dry_run",
        action="store_false",
        help="Submit transactions regardless of mode.active.",
    )
    args = parser.parse_args()
    run(dry_run=args.dry_run)


if __name__ == "__main__":
    main()
