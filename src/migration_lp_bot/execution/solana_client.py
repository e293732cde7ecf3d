"""Async facade over the solana-py RPC client with rate-limit backoff."""

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

from solana.rpc.api import Client
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.types import DataSliceOpts, MemcmpOpts, TokenAccountOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import RPCConfig, get_app_config
from ..errors import RpcError, RpcRateLimitedError, is_rate_limited
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS


class SolanaRpc:
    """Runs blocking RPC calls off the event loop and normalises responses to dicts.

    HTTP 429 responses are retried with exponential backoff; every other
    error is raised immediately as :class:`RpcError`.
    """

    def __init__(
        self,
        config: Optional[RPCConfig] = None,
        *,
        client: Optional[Client] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._config = config or get_app_config().rpc
        self._client = client or Client(
            str(self._config.http_url),
            commitment=Commitment(self._config.commitment),
            timeout=self._config.request_timeout,
        )
        self._sleep = sleep or asyncio.sleep
        self._logger = get_logger(__name__)

    def _execute(self, method_name: str, *args, **kwargs) -> Dict[str, Any]:
        method = getattr(self._client, method_name)
        try:
            result = method(*args, **kwargs)
        except Exception as exc:  # noqa: BLE001 - solana-py raises a mix of httpx and RPC errors
            if is_rate_limited(exc):
                raise RpcRateLimitedError(method_name, str(exc)) from exc
            raise RpcError(method_name, str(exc)) from exc
        if isinstance(result, dict):
            return result
        if hasattr(result, "to_json"):
            return json.loads(result.to_json())
        return {"result": result}

    def _log_backoff(self, retry_state: RetryCallState) -> None:
        METRICS.increment("rpc.rate_limited")
        self._logger.warning(
            "RPC rate limited (attempt %d), backing off %.2fs",
            retry_state.attempt_number,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
        )

    async def call(self, method_name: str, *args, **kwargs) -> Dict[str, Any]:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RpcRateLimitedError),
            wait=wait_exponential(
                multiplier=self._config.rate_limit_base_delay,
                max=self._config.rate_limit_max_delay,
            ),
            stop=stop_after_attempt(self._config.rate_limit_attempts),
            sleep=self._sleep,
            before_sleep=self._log_backoff,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                payload = await asyncio.to_thread(self._execute, method_name, *args, **kwargs)
                if isinstance(payload.get("error"), dict):
                    error = payload["error"]
                    if error.get("code") == 429:
                        raise RpcRateLimitedError(method_name, error.get("message", "rate limited"))
                    raise RpcError(method_name, str(error.get("message", error)))
                return payload
        raise RpcError(method_name, "retry loop exited without a result")  # pragma: no cover

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        payload = await self.call(
            "get_transaction",
            Signature.from_string(signature),
            encoding="json",
            commitment=Confirmed,
            max_supported_transaction_version=0,
        )
        return payload.get("result")

    async def get_program_account_keys(self, program_id: str, *, data_size: int, offset: int, value: str) -> List[str]:
        """Return the addresses of program accounts with ``value`` embedded at ``offset``."""

        payload = await self.call(
            "get_program_accounts",
            Pubkey.from_string(program_id),
            encoding="base64",
            data_slice=DataSliceOpts(offset=0, length=0),
            filters=[data_size, MemcmpOpts(offset=offset, bytes=value)],
        )
        result = payload.get("result") or []
        if isinstance(result, dict):
            result = result.get("value") or []
        return [str(entry["pubkey"]) for entry in result]

    async def get_account_data(self, address: str) -> Optional[bytes]:
        payload = await self.call("get_account_info", Pubkey.from_string(address), encoding="base64")
        value = (payload.get("result") or {}).get("value")
        if not value or not value.get("data"):
            return None
        data = value["data"]
        encoded = data[0] if isinstance(data, list) else data
        return base64.b64decode(encoded)

    async def get_balance(self, address: str) -> int:
        payload = await self.call("get_balance", Pubkey.from_string(address))
        return int((payload.get("result") or {}).get("value", 0))

    async def get_token_balance(self, owner: str, mint: str) -> int:
        """Raw token amount held by ``owner`` across all its accounts for ``mint``."""

        payload = await self.call(
            "get_token_accounts_by_owner_json_parsed",
            Pubkey.from_string(owner),
            TokenAccountOpts(mint=Pubkey.from_string(mint)),
        )
        accounts = (payload.get("result") or {}).get("value") or []
        total = 0
        for entry in accounts:
            info = entry.get("account", {}).get("data", {}).get("parsed", {}).get("info", {})
            amount = info.get("tokenAmount", {}).get("amount")
            if amount is not None:
                total += int(amount)
        return total

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        payload = await self.call(
            "get_signature_statuses",
            [Signature.from_string(signature)],
            search_transaction_history=True,
        )
        statuses = (payload.get("result") or {}).get("value") or []
        return statuses[0] if statuses else None

    async def get_latest_blockhash(self) -> Hash:
        payload = await self.call("get_latest_blockhash")
        blockhash = payload["result"]["value"]["blockhash"]
        return Hash.from_string(blockhash)

    async def simulate(self, transaction) -> Dict[str, Any]:
        """Simulate a signed transaction and return ``{"err": ..., "logs": [...]}``."""

        payload = await self.call("simulate_transaction", transaction)
        value = (payload.get("result") or {}).get("value") or {}
        if value.get("err"):
            METRICS.increment("rpc.simulation_failed")
        return value

    async def send_raw_transaction(self, raw: bytes) -> str:
        payload = await self.call(
            "send_raw_transaction",
            raw,
            opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed, max_retries=3),
        )
        return str(payload["result"])


__all__ = ["SolanaRpc"]
