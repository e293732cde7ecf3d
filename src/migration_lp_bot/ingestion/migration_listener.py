"""Turn migration-program log notifications into de-duplicated migration events."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from ..config.settings import ListenerConfig, get_app_config
from ..domain.schemas import LogNotification, MigrationEvent
from ..errors import RpcError
from ..execution.solana_client import SolanaRpc
from ..monitoring.logger import get_logger, migration_scope
from ..monitoring.metrics import METRICS
from ..utils.constants import SOL_MINT
from .dedup import DedupWindow

MigrationHandler = Callable[[MigrationEvent], Awaitable[None]]


def _raw_amount(balance: Dict[str, Any]) -> int:
    token_amount = balance.get("uiTokenAmount") or {}
    amount = token_amount.get("amount")
    if amount is not None:
        return int(amount)
    ui_amount = token_amount.get("uiAmount")
    return 1 if ui_amount and float(ui_amount) > 0 else 0


def extract_migrated_mint(transaction: Optional[Dict[str, Any]]) -> Optional[str]:
    """First post-transaction token balance that is not WSOL and is positive."""

    if not transaction:
        return None
    balances: Iterable[Dict[str, Any]] = (transaction.get("meta") or {}).get("postTokenBalances") or []
    for balance in balances:
        mint = balance.get("mint")
        if not mint or mint == SOL_MINT:
            continue
        if _raw_amount(balance) > 0:
            return mint
    return None


class MigrationListener:
    """Consumes :class:`LogNotification` items and emits :class:`MigrationEvent`.

    Failures while fetching or parsing a transaction only drop that event; the
    consumer loop keeps running until :meth:`stop` is called.
    """

    def __init__(
        self,
        rpc: SolanaRpc,
        queue: "asyncio.Queue[LogNotification]",
        on_migration: MigrationHandler,
        config: Optional[ListenerConfig] = None,
        *,
        signatures: Optional[DedupWindow] = None,
        mints: Optional[DedupWindow] = None,
    ) -> None:
        self._rpc = rpc
        self._queue = queue
        self._on_migration = on_migration
        self._config = config or get_app_config().listener
        self._signatures = signatures or DedupWindow(self._config.dedup_ttl_seconds)
        self._mints = mints or DedupWindow(self._config.dedup_ttl_seconds)
        self._running = False
        self._logger = get_logger(__name__)

    def matches_hint(self, joined_logs: str) -> bool:
        return any(hint in joined_logs for hint in self._config.keyword_hints)

    async def handle(self, notification: LogNotification) -> Optional[MigrationEvent]:
        METRICS.increment("listener.notifications")
        joined = "\n".join(notification.logs)
        if not self.matches_hint(joined):
            METRICS.increment("listener.hint_rejected")
            return None
        if notification.err is not None:
            METRICS.increment("listener.failed_transactions")
            return None
        if self._signatures.seen(notification.signature):
            METRICS.increment("listener.duplicate_signatures")
            return None
        if self._config.instruction_marker not in joined:
            METRICS.increment("listener.marker_missing")
            return None

        with migration_scope(notification.signature):
            try:
                transaction = await self._rpc.get_transaction(notification.signature)
                token_id = extract_migrated_mint(transaction)
            except (RpcError, ValueError, TypeError, AttributeError) as exc:
                METRICS.increment("listener.extraction_failed")
                self._logger.warning("Could not extract migration from %s: %s", notification.signature, exc)
                return None
            if token_id is None:
                METRICS.increment("listener.extraction_failed")
                self._logger.info("No migrated token found in %s", notification.signature)
                return None
            if self._mints.seen(token_id):
                METRICS.increment("listener.duplicate_mints")
                self._signatures.mark(notification.signature)
                return None

            event = MigrationEvent(token_id=token_id, signature=notification.signature, slot=notification.slot)
            self._signatures.mark(notification.signature)
            self._mints.mark(token_id)
            METRICS.increment("listener.migrations")
            self._logger.info(
                "Migration detected for %s",
                token_id,
                extra={"signature": notification.signature, "slot": notification.slot},
            )
            await self._on_migration(event)
            return event

    async def run(self) -> None:
        self._running = True
        self._logger.info("Migration listener started")
        while self._running:
            notification = await self._queue.get()
            try:
                await self.handle(notification)
            except Exception:  # noqa: BLE001 - keep consuming whatever a single event does
                self._logger.exception("Unhandled error processing %s", notification.signature)
            finally:
                self._queue.task_done()

    def stop(self) -> None:
        self._running = False


__all__ = ["MigrationHandler", "MigrationListener", "extract_migrated_mint"]
