"""Simulate, submit and confirm signed transactions."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from ..config.settings import TradingConfig, get_app_config
from ..errors import RpcError
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .outcomes import Failure, Success, TxOutcome, classify_error
from .solana_client import SolanaRpc
from .wallet import Wallet

FINAL_STATUSES = frozenset({"confirmed", "finalized"})


class TransactionSubmitter:
    """Signs with the operator wallet and drives a transaction to a terminal outcome."""

    def __init__(
        self,
        rpc: SolanaRpc,
        wallet: Wallet,
        config: Optional[TradingConfig] = None,
        *,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._rpc = rpc
        self._wallet = wallet
        self._config = config or get_app_config().trading
        self._sleep = sleep or asyncio.sleep
        self._logger = get_logger(__name__)

    def sign(self, transaction: VersionedTransaction) -> VersionedTransaction:
        """Re-sign an externally built transaction (e.g. from the swap API)."""

        return VersionedTransaction(transaction.message, [self._wallet.keypair])

    async def compile(
        self,
        instructions: Sequence[Instruction],
        extra_signers: Sequence[Keypair] = (),
    ) -> VersionedTransaction:
        blockhash = await self._rpc.get_latest_blockhash()
        message = MessageV0.try_compile(self._wallet.public_key, list(instructions), [], blockhash)
        return VersionedTransaction(message, [self._wallet.keypair, *extra_signers])

    def _classify(self, error: object, signature: Optional[str] = None) -> TxOutcome:
        return classify_error(
            error,
            signature=signature,
            non_critical_index=self._config.non_critical_instruction_index,
        )

    async def submit(self, transaction: VersionedTransaction, *, label: str) -> TxOutcome:
        simulation = await self._rpc.simulate(transaction)
        if simulation.get("err"):
            self._logger.warning(
                "%s simulation failed: %s",
                label,
                simulation["err"],
                extra={"logs": (simulation.get("logs") or [])[-10:]},
            )
            return self._classify(simulation["err"])
        try:
            signature = await self._rpc.send_raw_transaction(bytes(transaction))
        except RpcError as exc:
            self._logger.warning("%s submission rejected: %s", label, exc)
            return self._classify(exc)
        METRICS.increment(f"tx.{label}.sent")
        self._logger.info("%s transaction sent: %s", label, signature, extra={"signature": signature})
        return await self.confirm(signature, label=label)

    async def confirm(self, signature: str, *, label: str = "transaction") -> TxOutcome:
        """Poll the signature status with linearly increasing waits.

        When polling ends without a final status the transaction itself is
        fetched before giving up.
        """

        step = self._config.confirmation_step_seconds
        for check in range(1, self._config.confirmation_checks + 1):
            await self._sleep(step * check)
            try:
                status = await self._rpc.get_signature_status(signature)
            except RpcError as exc:
                self._logger.warning("Status check %d for %s failed: %s", check, signature, exc)
                continue
            if not status:
                continue
            if status.get("err"):
                return self._classify(status["err"], signature)
            if status.get("confirmationStatus") in FINAL_STATUSES:
                METRICS.increment(f"tx.{label}.confirmed")
                return Success(signature=signature)
            self._logger.debug(
                "%s %s still %s after check %d",
                label,
                signature,
                status.get("confirmationStatus"),
                check,
            )
        return await self._resolve_inconclusive(signature, label)

    async def _resolve_inconclusive(self, signature: str, label: str) -> TxOutcome:
        self._logger.info("%s %s not confirmed by polling; querying transaction", label, signature)
        try:
            transaction = await self._rpc.get_transaction(signature)
        except RpcError as exc:
            return Failure(reason=f"confirmation inconclusive: {exc}", signature=signature)
        if not transaction:
            METRICS.increment(f"tx.{label}.inconclusive")
            return Failure(reason="confirmation inconclusive", signature=signature)
        error = (transaction.get("meta") or {}).get("err")
        if error:
            return self._classify(error, signature)
        METRICS.increment(f"tx.{label}.confirmed")
        return Success(signature=signature)


__all__ = ["TransactionSubmitter", "FINAL_STATUSES"]
