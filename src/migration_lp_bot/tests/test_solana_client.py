from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import pytest
from solders.pubkey import Pubkey

from migration_lp_bot.config.settings import RPCConfig
from migration_lp_bot.errors import RpcError, RpcRateLimitedError
from migration_lp_bot.execution.solana_client import SolanaRpc


class FlakyClient:
    def __init__(self, failures: List[Exception], result: Dict[str, Any]) -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    def get_balance(self, *args: Any, **kwargs: Any) -> Dict[str, Any]:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _rpc(client: FlakyClient, sleep: RecordingSleep, attempts: int = 5) -> SolanaRpc:
    config = RPCConfig(rate_limit_attempts=attempts, rate_limit_base_delay=0.5, rate_limit_max_delay=8.0)
    return SolanaRpc(config, client=client, sleep=sleep)  # type: ignore[arg-type]


def test_rate_limited_calls_back_off_exponentially() -> None:
    client = FlakyClient(
        [RuntimeError("HTTP 429 Too Many Requests")] * 3,
        {"result": {"context": {"slot": 1}, "value": 42}},
    )
    sleep = RecordingSleep()

    balance = asyncio.run(_rpc(client, sleep).get_balance(str(Pubkey.new_unique())))

    assert balance == 42
    assert client.calls == 4
    assert sleep.delays == [0.5, 1.0, 2.0]


def test_rate_limit_gives_up_after_configured_attempts() -> None:
    client = FlakyClient([RuntimeError("429 Too Many Requests")] * 10, {})
    sleep = RecordingSleep()

    with pytest.raises(RpcRateLimitedError):
        asyncio.run(_rpc(client, sleep, attempts=3).get_balance(str(Pubkey.new_unique())))

    assert client.calls == 3
    assert len(sleep.delays) == 2


def test_other_errors_fail_fast() -> None:
    client = FlakyClient([RuntimeError("connection reset")], {})
    sleep = RecordingSleep()

    with pytest.raises(RpcError) as excinfo:
        asyncio.run(_rpc(client, sleep).get_balance(str(Pubkey.new_unique())))

    assert not isinstance(excinfo.value, RpcRateLimitedError)
    assert excinfo.value.method == "get_balance"
    assert client.calls == 1
    assert sleep.delays == []


def test_json_rpc_error_payload_is_raised() -> None:
    client = FlakyClient([], {"error": {"code": -32602, "message": "invalid param"}})

    with pytest.raises(RpcError, match="invalid param"):
        asyncio.run(_rpc(client, RecordingSleep()).get_balance(str(Pubkey.new_unique())))
