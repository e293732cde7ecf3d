"""Wiring of the listener, registry, reconciliation loop and orchestrator."""

from __future__ import annotations

import asyncio
from typing import List, Optional

from .config.settings import AppConfig, AppMode, get_app_config
from .domain.ledger import ActionLedger, SeenPools
from .domain.schemas import LogNotification, MigrationEvent
from .execution.damm import DammPositionBuilder
from .execution.jupiter import JupiterClient
from .execution.liquidity import LiquidityService
from .execution.orchestrator import ActionOrchestrator
from .execution.solana_client import SolanaRpc
from .execution.submitter import TransactionSubmitter
from .execution.swap import SwapService
from .execution.wallet import Wallet, load_wallet
from .ingestion.candidate_registry import CandidateRegistry
from .ingestion.log_stream import LogStream
from .ingestion.migration_listener import MigrationListener
from .ingestion.token_metadata import TokenMetadataResolver
from .monitoring import bootstrap_observability
from .monitoring.logger import get_logger
from .monitoring.notifier import DiscordNotifier, Notification, NotificationKind
from .strategy.reconciler import ReconciliationLoop
from .utils.constants import lamports_to_sol

logger = get_logger(__name__)


class MigrationLiquidityBot:
    """Owns every long-lived component and their shutdown order."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        wallet: Optional[Wallet] = None,
        rpc: Optional[SolanaRpc] = None,
        notifier: Optional[DiscordNotifier] = None,
        dry_run: Optional[bool] = None,
    ) -> None:
        self.config = config or get_app_config()
        self.dry_run = self.config.mode.active == AppMode.DRY_RUN if dry_run is None else dry_run
        self.wallet = wallet or load_wallet(self.config.wallet)
        self.rpc = rpc or SolanaRpc(self.config.rpc)
        self.metadata = TokenMetadataResolver(self.rpc)
        self.notifier = notifier or bootstrap_observability(self.config, metadata_lookup=self.metadata.resolve)

        self.registry = CandidateRegistry(self.config.registry.candidate_ttl_seconds)
        self.ledger = ActionLedger()
        self.seen_pools = SeenPools()
        self.queue: "asyncio.Queue[LogNotification]" = asyncio.Queue(maxsize=self.config.listener.queue_size)

        submitter = TransactionSubmitter(self.rpc, self.wallet, self.config.trading)
        self.swaps = SwapService(self.rpc, JupiterClient(self.config.jupiter), submitter, self.wallet, self.config.trading)
        self.liquidity = LiquidityService(
            self.rpc,
            DammPositionBuilder(self.config.rpc),
            submitter,
            self.swaps,
            self.config.trading,
        )
        self.orchestrator = ActionOrchestrator(
            self.swaps,
            self.liquidity,
            self.notifier,
            self.wallet,
            self.ledger,
            self.config.trading,
            dry_run=self.dry_run,
        )
        self.reconciler = ReconciliationLoop(
            self.rpc,
            self.registry,
            self.orchestrator,
            self.config.reconciliation,
            self.config.programs,
            seen_pools=self.seen_pools,
        )
        self.stream = LogStream(
            self.queue,
            program_id=self.config.programs.migration_program_id,
            rpc_config=self.config.rpc,
            listener_config=self.config.listener,
        )
        self.listener = MigrationListener(self.rpc, self.queue, self.on_migration, self.config.listener)
        self._tasks: List[asyncio.Task] = []

    async def on_migration(self, event: MigrationEvent) -> None:
        self.registry.add(event.token_id)
        self.notifier.notify(
            Notification(
                kind=NotificationKind.MIGRATION,
                title="Migration detected",
                description=f"Token {event.token_id} graduated; watching for DAMM v2 pools",
                fields={"Token": event.token_id, "Signature": event.signature, "Slot": str(event.slot)},
                token_id=event.token_id,
            )
        )

    async def start(self) -> None:
        balance = await self.rpc.get_balance(self.wallet.address)
        logger.info(
            "Starting bot for wallet %s (%.4f SOL, %s)",
            self.wallet.address,
            lamports_to_sol(balance),
            "dry run" if self.dry_run else "live",
        )
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self.stream.run(), name="log-stream"),
            loop.create_task(self.listener.run(), name="migration-listener"),
            loop.create_task(self.reconciler.run(), name="reconciliation"),
        ]
        self.notifier.notify(
            Notification(
                kind=NotificationKind.STATUS,
                title="Bot started",
                description=f"Watching {self.config.programs.migration_program_id}",
                fields={
                    "Wallet": self.wallet.address,
                    "Balance": f"{lamports_to_sol(balance):.4f} SOL",
                    "Swap amount": f"{self.config.trading.swap_amount_sol} SOL",
                    "Add liquidity": str(self.config.trading.add_liquidity),
                },
            )
        )

    async def stop(self) -> None:
        logger.info("Shutting down")
        await self.stream.stop()
        self.listener.stop()
        await self.reconciler.stop()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self.registry.close()
        await self.orchestrator.drain()
        await self.notifier.aclose()


__all__ = ["MigrationLiquidityBot"]
