from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from migration_lp_bot.config.settings import ProgramConfig, ReconciliationConfig
from migration_lp_bot.domain.ledger import ActionLedger
from migration_lp_bot.domain.schemas import ActionKey, BaseFee, PoolState
from migration_lp_bot.errors import RpcError
from migration_lp_bot.ingestion.candidate_registry import CandidateRegistry
from migration_lp_bot.strategy import reconciler as reconciler_module
from migration_lp_bot.strategy.reconciler import ReconciliationLoop
from migration_lp_bot.utils.constants import SOL_MINT

LINEAR_FEE = BaseFee(
    cliff_fee_numerator=500_000_000,
    number_of_period=100,
    period_frequency=60,
    reduction_factor=4_000_000,
    fee_scheduler_mode=0,
)


def _state(token: str, *, collect_fee_mode: int = 1) -> PoolState:
    return PoolState(token_a_mint=token, token_b_mint=SOL_MINT, collect_fee_mode=collect_fee_mode, base_fee=LINEAR_FEE)


class FakeHandle:
    def cancel(self) -> None:
        pass


class FakeLoop:
    def __init__(self) -> None:
        self.now = 0.0

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> FakeHandle:
        return FakeHandle()


class StubRpc:
    def __init__(self, pools: Dict[str, List[str]], accounts: Dict[str, Optional[bytes]]) -> None:
        self.pools = pools
        self.accounts = accounts
        self.scans: List[tuple[str, int]] = []
        self.fetches: List[str] = []
        self.scan_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def get_program_account_keys(self, program_id: str, *, data_size: int, offset: int, value: str) -> List[str]:
        self.scans.append((value, offset))
        if self.gate is not None:
            await self.gate.wait()
        if self.scan_error is not None:
            raise self.scan_error
        pools = self.pools.get(value, [])
        if isinstance(pools, Exception):
            raise pools
        return list(pools)

    async def get_account_data(self, address: str) -> Optional[bytes]:
        self.fetches.append(address)
        data = self.accounts.get(address)
        if isinstance(data, Exception):
            raise data
        return data


class StubOrchestrator:
    def __init__(self) -> None:
        self.ledger = ActionLedger()
        self.submitted: List[ActionKey] = []

    def submit(self, key: ActionKey, verdict: Any = None) -> Optional[object]:
        if not self.ledger.claim(key):
            return None
        self.submitted.append(key)
        return object()


@pytest.fixture
def states(monkeypatch: pytest.MonkeyPatch) -> Dict[bytes, PoolState]:
    table: Dict[bytes, PoolState] = {}
    monkeypatch.setattr(reconciler_module, "decode_pool_state", lambda data: table[data])
    return table


def _loop(rpc: StubRpc, registry: CandidateRegistry, orchestrator: StubOrchestrator) -> ReconciliationLoop:
    return ReconciliationLoop(
        rpc,  # type: ignore[arg-type]
        registry,
        orchestrator,  # type: ignore[arg-type]
        ReconciliationConfig(interval_seconds=20),
        ProgramConfig(),
    )


def _registry(*tokens: str) -> CandidateRegistry:
    registry = CandidateRegistry(420.0, loop=FakeLoop())  # type: ignore[arg-type]
    for token in tokens:
        registry.add(token)
    return registry


def test_empty_registry_makes_no_rpc_calls(states: Dict[bytes, PoolState]) -> None:
    rpc = StubRpc({}, {})
    orchestrator = StubOrchestrator()

    assert asyncio.run(_loop(rpc, _registry(), orchestrator).run_once())
    assert rpc.scans == []
    assert orchestrator.submitted == []


def test_matching_pool_is_handed_off_once(states: Dict[bytes, PoolState]) -> None:
    states[b"p1"] = _state("T1")
    rpc = StubRpc({"T1": ["P1"]}, {"P1": b"p1"})
    registry = _registry("T1")
    orchestrator = StubOrchestrator()
    loop = _loop(rpc, registry, orchestrator)

    async def scenario() -> None:
        await loop.run_once()
        registry.add("T1")
        await loop.run_once()

    asyncio.run(scenario())

    assert orchestrator.submitted == [ActionKey(token_id="T1", pool_id="P1")]
    assert rpc.scans[0] == ("T1", ProgramConfig().token_a_offset)
    assert rpc.fetches == ["P1"]
    assert "P1" in loop.seen_pools


def test_matched_token_leaves_registry(states: Dict[bytes, PoolState]) -> None:
    states[b"p1"] = _state("T1")
    registry = _registry("T1", "T2")
    loop = _loop(StubRpc({"T1": ["P1"]}, {"P1": b"p1"}), registry, StubOrchestrator())

    asyncio.run(loop.run_once())

    assert registry.list() == {"T2"}


def test_rejected_pool_is_not_fetched_again(states: Dict[bytes, PoolState]) -> None:
    states[b"p1"] = _state("T1", collect_fee_mode=0)
    rpc = StubRpc({"T1": ["P1"]}, {"P1": b"p1"})
    registry = _registry("T1")
    orchestrator = StubOrchestrator()
    loop = _loop(rpc, registry, orchestrator)

    async def scenario() -> None:
        await loop.run_once()
        await loop.run_once()

    asyncio.run(scenario())

    assert orchestrator.submitted == []
    assert rpc.fetches == ["P1"]
    assert registry.has("T1")


def test_pool_fetch_failure_is_skipped_and_retried(states: Dict[bytes, PoolState]) -> None:
    states[b"p2"] = _state("T1")
    rpc = StubRpc({"T1": ["P1", "P2"]}, {"P1": RpcError("get_account_info", "timeout"), "P2": b"p2"})  # type: ignore[dict-item]
    orchestrator = StubOrchestrator()

    asyncio.run(_loop(rpc, _registry("T1"), orchestrator).run_once())

    assert orchestrator.submitted == [ActionKey(token_id="T1", pool_id="P2")]
    assert rpc.fetches == ["P1", "P2"]


def test_undecodable_pool_does_not_end_the_scan(states: Dict[bytes, PoolState]) -> None:
    states[b"p2"] = _state("T1")
    states[b"p3"] = _state("T2")
    rpc = StubRpc(
        {"T1": ["P1", "P2"], "T2": ["P3"]},
        {"P1": ValueError("Incorrect padding"), "P2": b"p2", "P3": b"p3"},  # type: ignore[dict-item]
    )
    orchestrator = StubOrchestrator()
    loop = _loop(rpc, _registry("T1", "T2"), orchestrator)

    asyncio.run(loop.run_once())

    assert rpc.fetches == ["P1", "P2", "P3"]
    assert orchestrator.submitted == [
        ActionKey(token_id="T1", pool_id="P2"),
        ActionKey(token_id="T2", pool_id="P3"),
    ]
    assert "P1" not in loop.seen_pools


def test_scan_error_for_one_token_moves_on_to_the_next(states: Dict[bytes, PoolState]) -> None:
    states[b"p3"] = _state("T2")
    rpc = StubRpc({"T1": KeyError("pubkey"), "T2": ["P3"]}, {"P3": b"p3"})  # type: ignore[dict-item]
    registry = _registry("T1", "T2")
    orchestrator = StubOrchestrator()

    asyncio.run(_loop(rpc, registry, orchestrator).run_once())

    assert orchestrator.submitted == [ActionKey(token_id="T2", pool_id="P3")]
    assert registry.has("T1")


def test_overlapping_tick_is_skipped(states: Dict[bytes, PoolState]) -> None:
    rpc = StubRpc({}, {})
    loop = _loop(rpc, _registry("T1"), StubOrchestrator())

    async def scenario() -> None:
        rpc.gate = asyncio.Event()
        first = asyncio.create_task(loop.run_once())
        await asyncio.sleep(0)
        assert loop.tick_in_progress
        assert await loop.run_once() is False
        rpc.gate.set()
        assert await first is True

    asyncio.run(scenario())

    assert len(rpc.scans) == 1
    assert not loop.tick_in_progress


def test_tick_failure_does_not_stop_the_loop(states: Dict[bytes, PoolState]) -> None:
    states[b"p1"] = _state("T1")
    rpc = StubRpc({"T1": ["P1"]}, {"P1": b"p1"})
    rpc.scan_error = RuntimeError("unexpected")
    orchestrator = StubOrchestrator()
    loop = _loop(rpc, _registry("T1"), orchestrator)

    async def scenario() -> None:
        assert await loop.run_once()
        rpc.scan_error = None
        assert await loop.run_once()

    asyncio.run(scenario())

    assert orchestrator.submitted == [ActionKey(token_id="T1", pool_id="P1")]
