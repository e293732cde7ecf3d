"""Periodic scan that matches pending tokens with qualifying DAMM v2 pools."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import List, Optional, Set

from ..config.settings import ProgramConfig, ReconciliationConfig, get_app_config
from ..domain.ledger import SeenPools
from ..domain.schemas import ActionKey, PoolObservation
from ..execution.orchestrator import ActionOrchestrator
from ..execution.solana_client import SolanaRpc
from ..ingestion.candidate_registry import CandidateRegistry
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..pools import qualifier
from ..pools.state import decode_pool_state


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    QUERYING = "querying"
    EVALUATING = "evaluating"


class ReconciliationLoop:
    """Scan pools for every pending token on a fixed interval.

    Ticks never overlap: a timer firing while a tick is still running is
    skipped. Fetch failures for one pool are skipped; failures of a whole
    tick are logged and the next tick runs as usual.
    """

    def __init__(
        self,
        rpc: SolanaRpc,
        registry: CandidateRegistry,
        orchestrator: ActionOrchestrator,
        config: Optional[ReconciliationConfig] = None,
        programs: Optional[ProgramConfig] = None,
        *,
        seen_pools: Optional[SeenPools] = None,
    ) -> None:
        app_config = get_app_config() if config is None or programs is None else None
        self._rpc = rpc
        self._registry = registry
        self._orchestrator = orchestrator
        self._config = config or app_config.reconciliation
        self._programs = programs or app_config.programs
        self._seen_pools = seen_pools if seen_pools is not None else SeenPools()
        self._tick_in_progress = False
        self._state = ScanState.IDLE
        self._ticks: Set[asyncio.Task] = set()
        self._stopping = asyncio.Event()
        self._logger = get_logger(__name__)

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def seen_pools(self) -> SeenPools:
        return self._seen_pools

    @property
    def tick_in_progress(self) -> bool:
        return self._tick_in_progress

    async def run(self) -> None:
        """Fire a tick every interval until :meth:`stop` is called."""

        interval = self._config.interval_seconds
        self._logger.info("Reconciliation loop started (interval %.0fs)", interval)
        loop = asyncio.get_running_loop()
        while not self._stopping.is_set():
            task = loop.create_task(self.run_once())
            self._ticks.add(task)
            task.add_done_callback(self._ticks.discard)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def stop(self) -> None:
        self._stopping.set()
        if self._ticks:
            await asyncio.gather(*list(self._ticks), return_exceptions=True)

    async def run_once(self) -> bool:
        """Run one guarded tick; returns False when skipped because one is running."""

        if self._tick_in_progress:
            METRICS.increment("reconciler.ticks_skipped")
            self._logger.debug("Previous reconciliation tick still running; skipping")
            return False
        self._tick_in_progress = True
        try:
            await self._tick()
        except Exception:  # noqa: BLE001 - the loop must survive any single tick
            METRICS.increment("reconciler.tick_failed")
            self._logger.exception("Reconciliation tick failed")
        finally:
            self._tick_in_progress = False
            self._state = ScanState.IDLE
        return True

    async def _tick(self) -> None:
        tokens = sorted(self._registry.list())
        if not tokens:
            return
        METRICS.increment("reconciler.ticks")
        self._state = ScanState.SCANNING
        self._logger.debug("Scanning pools for %d pending tokens", len(tokens))
        for token_id in tokens:
            if not self._registry.has(token_id):
                continue
            await self._scan_token(token_id)

    async def _candidate_pools(self, token_id: str) -> List[str]:
        offsets = [self._programs.token_a_offset]
        if self._config.scan_token_b:
            offsets.append(self._programs.token_b_offset)
        pools: List[str] = []
        for offset in offsets:
            for pool_id in await self._rpc.get_program_account_keys(
                self._programs.damm_program_id,
                data_size=self._programs.pool_account_size,
                offset=offset,
                value=token_id,
            ):
                if pool_id not in pools:
                    pools.append(pool_id)
        return pools

    async def _fetch_observation(self, pool_id: str) -> Optional[PoolObservation]:
        try:
            data = await self._rpc.get_account_data(pool_id)
            if data is None:
                self._logger.info("Pool %s disappeared before it could be fetched", pool_id)
                return None
            return PoolObservation(pool_id=pool_id, state=decode_pool_state(data))
        except Exception as exc:  # noqa: BLE001 - one bad pool must not end the scan
            METRICS.increment("reconciler.pool_fetch_failed")
            self._logger.warning("Skipping pool %s: %s", pool_id, exc)
            return None

    async def _scan_token(self, token_id: str) -> None:
        self._state = ScanState.QUERYING
        try:
            pool_ids = await self._candidate_pools(token_id)
        except Exception as exc:  # noqa: BLE001 - move on to the next token
            METRICS.increment("reconciler.scan_failed")
            self._logger.warning("Pool scan for %s failed: %s", token_id, exc)
            return
        METRICS.observe("reconciler.candidate_pools", len(pool_ids))
        for pool_id in pool_ids:
            key = ActionKey(token_id=token_id, pool_id=pool_id)
            if pool_id in self._seen_pools or key in self._orchestrator.ledger:
                continue
            observation = await self._fetch_observation(pool_id)
            if observation is None:
                continue
            self._state = ScanState.EVALUATING
            verdict = qualifier.assess(observation.state, token_id)
            self._seen_pools.claim(pool_id)
            if not verdict.eligible:
                METRICS.increment("reconciler.pools_rejected")
                self._logger.info(
                    "Pool %s rejected for %s",
                    pool_id,
                    token_id,
                    extra={"criteria": verdict.as_fields(), "reason": verdict.reason},
                )
                self._state = ScanState.QUERYING
                continue
            # Claim and hand off before the next await so no other tick can act on this pair.
            if self._orchestrator.submit(key, verdict) is not None:
                METRICS.increment("reconciler.matches")
                self._logger.info("Pool %s qualifies for %s; handing off", pool_id, token_id)
            self._registry.remove(token_id)
            return


__all__ = ["ReconciliationLoop", "ScanState"]
