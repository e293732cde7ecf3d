from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from migration_lp_bot.config.settings import ListenerConfig
from migration_lp_bot.domain.schemas import LogNotification, MigrationEvent
from migration_lp_bot.errors import RpcError
from migration_lp_bot.ingestion.dedup import DedupWindow
from migration_lp_bot.ingestion.migration_listener import MigrationListener, extract_migrated_mint
from migration_lp_bot.utils.constants import SOL_MINT

MIGRATE_LOGS = [
    "Program 39azUYFWPz3VHgKCf3VChUwbpURdCHRxjWVowf5jUJjg invoke [1]",
    "Program log: Instruction: Migrate",
    "Program 39azUYFWPz3VHgKCf3VChUwbpURdCHRxjWVowf5jUJjg success",
]


def _balance(mint: str, amount: str) -> Dict[str, Any]:
    return {"mint": mint, "uiTokenAmount": {"amount": amount, "decimals": 6}}


def _transaction(*balances: Dict[str, Any]) -> Dict[str, Any]:
    return {"slot": 10, "meta": {"err": None, "postTokenBalances": list(balances)}}


class StubRpc:
    def __init__(self, transactions: Optional[Dict[str, Any]] = None, *, error: Optional[Exception] = None) -> None:
        self.transactions = transactions or {}
        self.error = error
        self.calls: List[str] = []

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        self.calls.append(signature)
        if self.error is not None:
            raise self.error
        return self.transactions.get(signature)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _listener(rpc: StubRpc, clock: Optional[FakeClock] = None) -> tuple[MigrationListener, List[MigrationEvent]]:
    events: List[MigrationEvent] = []

    async def on_migration(event: MigrationEvent) -> None:
        events.append(event)

    clock = clock or FakeClock()
    listener = MigrationListener(
        rpc,  # type: ignore[arg-type]
        asyncio.Queue(),
        on_migration,
        ListenerConfig(),
        signatures=DedupWindow(180.0, clock=clock),
        mints=DedupWindow(180.0, clock=clock),
    )
    return listener, events


def test_extract_skips_wsol_and_empty_balances() -> None:
    tx = _transaction(
        _balance(SOL_MINT, "5000000"),
        _balance("EmptyMint", "0"),
        _balance("TokenMint", "1000"),
        _balance("LaterMint", "5"),
    )
    assert extract_migrated_mint(tx) == "TokenMint"


def test_extract_returns_none_without_positive_balance() -> None:
    assert extract_migrated_mint(_transaction(_balance(SOL_MINT, "1"), _balance("Other", "0"))) is None
    assert extract_migrated_mint(None) is None
    assert extract_migrated_mint({"meta": None}) is None


def test_migration_emits_event_once() -> None:
    rpc = StubRpc({"sig-1": _transaction(_balance("TokenMint", "42"))})
    listener, events = _listener(rpc)
    notification = LogNotification(signature="sig-1", logs=MIGRATE_LOGS, slot=77)

    async def scenario() -> None:
        first = await listener.handle(notification)
        second = await listener.handle(notification)
        assert first is not None and first.token_id == "TokenMint" and first.slot == 77
        assert second is None

    asyncio.run(scenario())

    assert [event.token_id for event in events] == ["TokenMint"]
    assert rpc.calls == ["sig-1"]


def test_logs_without_hint_or_marker_are_ignored() -> None:
    rpc = StubRpc()
    listener, events = _listener(rpc)

    async def scenario() -> None:
        assert await listener.handle(LogNotification(signature="a", logs=["Program log: Instruction: Buy"])) is None
        assert await listener.handle(
            LogNotification(signature="b", logs=["Program log: Instruction: Withdraw"])
        ) is None

    asyncio.run(scenario())

    assert events == []
    assert rpc.calls == []


def test_failed_transactions_are_dropped() -> None:
    rpc = StubRpc({"sig-1": _transaction(_balance("TokenMint", "42"))})
    listener, events = _listener(rpc)

    result = asyncio.run(
        listener.handle(LogNotification(signature="sig-1", logs=MIGRATE_LOGS, err={"InstructionError": [0, "X"]}))
    )

    assert result is None
    assert events == []
    assert rpc.calls == []


def test_fetch_failure_drops_event_without_marking() -> None:
    rpc = StubRpc(error=RpcError("getTransaction", "boom"))
    listener, events = _listener(rpc)
    notification = LogNotification(signature="sig-1", logs=MIGRATE_LOGS)

    async def scenario() -> None:
        assert await listener.handle(notification) is None
        rpc.error = None
        rpc.transactions["sig-1"] = _transaction(_balance("TokenMint", "42"))
        assert await listener.handle(notification) is not None

    asyncio.run(scenario())

    assert [event.token_id for event in events] == ["TokenMint"]


def test_same_mint_from_different_signature_is_suppressed() -> None:
    rpc = StubRpc(
        {
            "sig-1": _transaction(_balance("TokenMint", "42")),
            "sig-2": _transaction(_balance("TokenMint", "42")),
        }
    )
    clock = FakeClock()
    listener, events = _listener(rpc, clock)

    async def scenario() -> None:
        await listener.handle(LogNotification(signature="sig-1", logs=MIGRATE_LOGS))
        await listener.handle(LogNotification(signature="sig-2", logs=MIGRATE_LOGS))
        clock.now = 181.0
        await listener.handle(LogNotification(signature="sig-3", logs=MIGRATE_LOGS))

    rpc.transactions["sig-3"] = _transaction(_balance("TokenMint", "42"))
    asyncio.run(scenario())

    assert len(events) == 2
