"""At-most-once purchase and liquidity sequence per (token, pool) pair."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Set

from ..config.settings import TradingConfig, get_app_config
from ..domain.ledger import ActionLedger
from ..domain.schemas import ActionKey
from ..errors import BotError
from ..monitoring.logger import action_scope, get_logger
from ..monitoring.metrics import METRICS
from ..monitoring.notifier import DiscordNotifier, Notification, NotificationKind
from ..pools.qualifier import QualifierVerdict
from .liquidity import LiquidityService
from .outcomes import Failure, Success, SuccessWithWarning, TxOutcome, describe, is_success
from .swap import SwapService
from .wallet import Wallet

DRY_RUN_SIGNATURE = "dry-run"


@dataclass(slots=True)
class ActionResult:
    key: ActionKey
    purchase: Optional[TxOutcome] = None
    liquidity: Optional[TxOutcome] = None
    purchase_skipped: bool = False
    position: Optional[str] = None
    warnings: List[SuccessWithWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        if not is_success(self.purchase):
            return False
        return self.liquidity is None or is_success(self.liquidity)

    def record(self, outcome: TxOutcome) -> TxOutcome:
        if isinstance(outcome, SuccessWithWarning):
            self.warnings.append(outcome)
        return outcome


class ActionOrchestrator:
    """Runs buy, settlement wait, liquidity and notifications for matched pairs.

    The ActionKey is claimed synchronously before the first await, so two
    concurrent invocations for the same key start at most one sequence. A
    failed sequence keeps its key claimed and is never retried.
    """

    def __init__(
        self,
        swaps: SwapService,
        liquidity: LiquidityService,
        notifier: DiscordNotifier,
        wallet: Wallet,
        ledger: Optional[ActionLedger] = None,
        config: Optional[TradingConfig] = None,
        *,
        dry_run: bool = False,
    ) -> None:
        self._swaps = swaps
        self._liquidity = liquidity
        self._notifier = notifier
        self._wallet = wallet
        self._ledger = ledger if ledger is not None else ActionLedger()
        self._config = config or get_app_config().trading
        self._dry_run = dry_run
        self._inflight: Set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    @property
    def ledger(self) -> ActionLedger:
        return self._ledger

    def submit(self, key: ActionKey, verdict: Optional[QualifierVerdict] = None) -> Optional["asyncio.Task[ActionResult]"]:
        """Claim ``key`` and run the sequence in the background."""

        if not self._ledger.claim(key):
            self._logger.info("Action %s already claimed; ignoring", key)
            return None
        task = asyncio.get_running_loop().create_task(self._run(key, verdict), name=f"action:{key}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def execute(self, key: ActionKey, verdict: Optional[QualifierVerdict] = None) -> Optional[ActionResult]:
        if not self._ledger.claim(key):
            self._logger.info("Action %s already claimed; ignoring", key)
            return None
        return await self._run(key, verdict)

    async def drain(self) -> None:
        """Let in-flight sequences finish; on-chain submissions are never aborted."""

        if self._inflight:
            self._logger.info("Waiting for %d in-flight actions", len(self._inflight))
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _run(self, key: ActionKey, verdict: Optional[QualifierVerdict]) -> ActionResult:
        result = ActionResult(key=key)
        with action_scope(key):
            METRICS.increment("orchestrator.started")
            try:
                await self._sequence(result, verdict)
            except Exception as exc:  # noqa: BLE001 - the result carries the failure
                self._logger.exception("Action %s aborted", key)
                failure = Failure(reason=f"unexpected error: {exc}")
                if result.purchase is None:
                    result.purchase = failure
                else:
                    result.liquidity = failure
                self._notify_failure(key, "action", failure.reason)
            METRICS.increment("orchestrator.succeeded" if result.ok else "orchestrator.failed")
            self._logger.info(
                "Action %s finished: purchase %s, liquidity %s",
                key,
                describe(result.purchase),
                describe(result.liquidity),
            )
        return result

    async def _sequence(self, result: ActionResult, verdict: Optional[QualifierVerdict]) -> None:
        key = result.key
        self._notifier.notify(
            Notification(
                kind=NotificationKind.POOL_MATCHED,
                title="Qualifying pool found",
                description=f"Pool {key.pool_id} matches migrated token {key.token_id}",
                fields={"Token": key.token_id, "Pool": key.pool_id, **(verdict.as_fields() if verdict else {})},
                token_id=key.token_id,
            )
        )
        if self._dry_run:
            self._logger.info("Dry run: skipping purchase and liquidity for %s", key)
            result.purchase = Success(signature=DRY_RUN_SIGNATURE)
            if self._config.add_liquidity:
                result.liquidity = Success(signature=DRY_RUN_SIGNATURE)
            return

        try:
            purchase = await self._swaps.buy(key.token_id)
        except BotError as exc:
            result.purchase = Failure(reason=str(exc))
        else:
            result.purchase = result.record(purchase.outcome)
            result.purchase_skipped = purchase.skipped
        if not is_success(result.purchase):
            self._notify_failure(key, "purchase", describe(result.purchase))
            return
        self._notify_purchase(result)

        if not self._config.add_liquidity:
            return
        try:
            if result.purchase_skipped:
                balance = purchase.held_amount
            else:
                balance = await self._swaps.wait_for_settlement(key.token_id)
            if balance <= 0:
                result.liquidity = Failure(reason="token balance not visible after settlement wait")
            else:
                provided = await self._liquidity.provide(
                    key.token_id,
                    key.pool_id,
                    balance,
                    owner=self._wallet.address,
                )
                result.liquidity = result.record(provided.outcome)
                result.position = provided.position
        except BotError as exc:
            result.liquidity = Failure(reason=str(exc))
        if is_success(result.liquidity):
            self._notify_position(result)
        else:
            self._notify_failure(key, "liquidity", describe(result.liquidity))

    def _notify_purchase(self, result: ActionResult) -> None:
        key = result.key
        if result.purchase_skipped:
            description = f"Wallet already holds {key.token_id}; purchase skipped"
        else:
            description = f"Bought {key.token_id} for {self._config.swap_amount_sol} SOL"
        outcome = result.purchase
        self._notifier.notify(
            Notification(
                kind=NotificationKind.WARNING if isinstance(outcome, SuccessWithWarning) else NotificationKind.PURCHASE,
                title="Purchase complete",
                description=description,
                fields={"Token": key.token_id, "Result": describe(outcome)},
                token_id=key.token_id,
            )
        )

    def _notify_position(self, result: ActionResult) -> None:
        key = result.key
        outcome = result.liquidity
        warning = isinstance(outcome, SuccessWithWarning)
        fields = {"Pool": key.pool_id, "Position": result.position or "-", "Result": describe(outcome)}
        if isinstance(outcome, (Success, SuccessWithWarning)) and outcome.signature:
            fields["Signature"] = outcome.signature
        self._notifier.notify(
            Notification(
                kind=NotificationKind.WARNING if warning else NotificationKind.POSITION,
                title="Position created" + (" (with warning)" if warning else ""),
                description=f"Liquidity added for {key.token_id}",
                fields=fields,
                token_id=key.token_id,
            )
        )

    def _notify_failure(self, key: ActionKey, stage: str, reason: str) -> None:
        self._notifier.notify(
            Notification(
                kind=NotificationKind.FAILURE,
                title=f"{stage.capitalize()} failed",
                description=reason,
                fields={"Token": key.token_id, "Pool": key.pool_id},
                token_id=key.token_id,
            )
        )


__all__ = ["ActionOrchestrator", "ActionResult", "DRY_RUN_SIGNATURE"]
