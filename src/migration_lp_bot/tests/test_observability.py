from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import pytest
from solders.keypair import Keypair

from migration_lp_bot.bot import MigrationLiquidityBot
from migration_lp_bot.config.settings import AppConfig
from migration_lp_bot.domain.schemas import ActionKey, MigrationEvent
from migration_lp_bot.execution.wallet import Wallet
from migration_lp_bot.monitoring.logger import (
    StructuredFormatter,
    action_scope,
    correlation_scope,
    current_correlation_id,
    migration_scope,
)
from migration_lp_bot.monitoring.metrics import METRICS
from migration_lp_bot.monitoring.notifier import NotificationKind


def test_structured_formatter_emits_json_with_extras() -> None:
    record = logging.LogRecord("migration_lp_bot.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.correlation_id = "T1-P1"
    record.signature = "sig-1"

    payload = json.loads(StructuredFormatter().format(record))

    assert payload["message"] == "hello world"
    assert payload["correlation_id"] == "T1-P1"
    assert payload["extra"] == {"signature": "sig-1"}


def test_correlation_scope_is_restored() -> None:
    assert current_correlation_id() == "-"
    with correlation_scope("abc"):
        assert current_correlation_id() == "abc"
    assert current_correlation_id() == "-"


def test_action_scope_nests_inside_migration_scope() -> None:
    with migration_scope("5igA"):
        assert current_correlation_id() == "sig:5igA"
        with action_scope(ActionKey(token_id="T1", pool_id="P1")):
            assert current_correlation_id() == "action:T1:P1"
        assert current_correlation_id() == "sig:5igA"
    assert current_correlation_id() == "-"


def test_metrics_snapshot() -> None:
    METRICS.reset()
    METRICS.increment("listener.migrations")
    METRICS.gauge("registry.pending", 3)
    METRICS.observe("reconciler.candidate_pools", 2)
    METRICS.observe("reconciler.candidate_pools", 4)

    snapshot = METRICS.snapshot()

    assert snapshot["counters"] == {"listener.migrations": 1.0}
    assert snapshot["gauges"] == {"registry.pending": 3.0}
    assert snapshot["histograms"]["reconciler.candidate_pools"] == {"count": 2, "mean": 3.0, "max": 4.0}
    METRICS.reset()


class StubNotifier:
    def __init__(self) -> None:
        self.sent = []

    def notify(self, notification) -> None:
        self.sent.append(notification)


def test_bot_registers_migrated_tokens(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    notifier = StubNotifier()

    async def scenario() -> None:
        bot = MigrationLiquidityBot(
            AppConfig(),
            wallet=Wallet(Keypair()),
            rpc=object(),  # type: ignore[arg-type]
            notifier=notifier,  # type: ignore[arg-type]
            dry_run=True,
        )
        await bot.on_migration(MigrationEvent(token_id="T1", signature="sig-1", slot=5))
        assert bot.registry.has("T1")
        assert bot.orchestrator.ledger is bot.ledger
        bot.registry.close()

    asyncio.run(scenario())

    assert [notification.kind for notification in notifier.sent] == [NotificationKind.MIGRATION]
