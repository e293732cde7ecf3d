"""Jupiter swap API client."""

from __future__ import annotations

import base64
from typing import Any, Dict, Optional

import requests
from solders.transaction import VersionedTransaction
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..config.settings import JupiterConfig, get_app_config
from ..errors import NoRouteError, SwapError, is_rate_limited

DEFAULT_HEADERS = {"User-Agent": "migration-lp-bot/0.1", "Accept": "application/json"}


class JupiterClient:
    """Fetches quotes and serialized swap transactions.

    Quotes are treated as opaque payloads and handed back unchanged to the
    swap endpoint.
    """

    def __init__(
        self,
        config: Optional[JupiterConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().jupiter
        self._session = session or requests.Session()
        self._base_url = str(self._config.base_url).rstrip("/")
        self._headers = dict(DEFAULT_HEADERS)
        if self._config.api_key:
            self._headers["x-api-key"] = self._config.api_key

    @retry(
        retry=retry_if_exception(is_rate_limited),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(5),
        reraise=True,
    )
    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = self._session.request(
            method,
            f"{self._base_url}{path}",
            headers=self._headers,
            timeout=self._config.http_timeout,
            **kwargs,
        )
        response.raise_for_status()
        return response.json()

    def quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> Dict[str, Any]:
        try:
            payload = self._request(
                "GET",
                "/quote",
                params={
                    "inputMint": input_mint,
                    "outputMint": output_mint,
                    "amount": str(amount),
                    "slippageBps": slippage_bps,
                },
            )
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status in (400, 404):
                raise NoRouteError(f"No route for {input_mint} -> {output_mint}: {exc}") from exc
            raise SwapError(f"Quote request failed: {exc}") from exc
        except requests.RequestException as exc:
            raise SwapError(f"Quote request failed: {exc}") from exc
        if not payload.get("outAmount") or int(payload["outAmount"]) <= 0:
            raise NoRouteError(f"Quote for {output_mint} returned no output amount")
        return payload

    def swap_transaction(
        self,
        quote: Dict[str, Any],
        user_public_key: str,
        *,
        priority_fee_lamports: int = 0,
    ) -> VersionedTransaction:
        body: Dict[str, Any] = {
            "quoteResponse": quote,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
        }
        if priority_fee_lamports:
            body["prioritizationFeeLamports"] = priority_fee_lamports
        try:
            payload = self._request("POST", "/swap", json=body)
        except requests.RequestException as exc:
            raise SwapError(f"Swap request failed: {exc}") from exc
        encoded = payload.get("swapTransaction")
        if not encoded:
            raise SwapError(f"Swap response missing transaction: {payload.get('error', payload)}")
        return VersionedTransaction.from_bytes(base64.b64decode(encoded))


__all__ = ["JupiterClient"]
