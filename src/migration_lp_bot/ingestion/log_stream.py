"""Websocket ``logsSubscribe`` transport feeding a bounded queue."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import websockets

from ..config.settings import ListenerConfig, RPCConfig
from ..domain.schemas import LogNotification
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

SUBSCRIPTION_REQUEST_ID = 1


class LogStream:
    """Subscribe to the logs mentioning one program and push them into ``queue``.

    Reconnection is handled here with capped exponential backoff so the
    consumer never sees transport failures.
    """

    def __init__(
        self,
        queue: "asyncio.Queue[LogNotification]",
        *,
        program_id: str,
        rpc_config: RPCConfig,
        listener_config: ListenerConfig,
    ) -> None:
        self._queue = queue
        self._program_id = program_id
        self._url = rpc_config.ws_url
        self._commitment = rpc_config.commitment
        self._receive_timeout = listener_config.receive_timeout
        self._max_backoff = listener_config.reconnect_max_delay
        self._stopping = asyncio.Event()
        self._socket: Optional[Any] = None
        self._logger = get_logger(__name__)

    def subscription_request(self) -> str:
        return json.dumps(
            {
                "jsonrpc": "2.0",
                "id": SUBSCRIPTION_REQUEST_ID,
                "method": "logsSubscribe",
                "params": [{"mentions": [self._program_id]}, {"commitment": self._commitment}],
            }
        )

    async def run(self) -> None:
        backoff = 1.0
        while not self._stopping.is_set():
            try:
                async with websockets.connect(self._url, ping_interval=20, ping_timeout=10, max_size=None) as socket:
                    self._socket = socket
                    await socket.send(self.subscription_request())
                    self._logger.info("Subscribed to logs for %s", self._program_id)
                    backoff = 1.0
                    await self._pump(socket)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001 - any transport failure leads to a reconnect
                if self._stopping.is_set():
                    break
                METRICS.increment("listener.reconnects")
                self._logger.warning("Log subscription dropped (%s); reconnecting in %.0fs", exc, backoff)
            finally:
                self._socket = None
            if self._stopping.is_set():
                break
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=backoff)
            except asyncio.TimeoutError:
                pass
            backoff = min(backoff * 2, self._max_backoff)

    async def _pump(self, socket: Any) -> None:
        while not self._stopping.is_set():
            try:
                raw = await asyncio.wait_for(socket.recv(), timeout=self._receive_timeout)
            except asyncio.TimeoutError:
                await socket.ping()
                continue
            try:
                self.handle_message(raw)
            except (ValueError, TypeError, AttributeError) as exc:
                METRICS.increment("listener.malformed_frames")
                self._logger.warning("Ignoring malformed log frame: %s", exc)

    def handle_message(self, raw: str | bytes) -> Optional[LogNotification]:
        message = json.loads(raw)
        if message.get("method") != "logsNotification":
            if message.get("id") == SUBSCRIPTION_REQUEST_ID and "result" in message:
                self._logger.debug("Subscription id %s", message["result"])
            return None
        result = (message.get("params") or {}).get("result") or {}
        value = result.get("value") or {}
        signature = value.get("signature")
        if not signature:
            return None
        notification = LogNotification(
            signature=signature,
            logs=list(value.get("logs") or []),
            slot=int(result.get("context", {}).get("slot", 0)),
            err=value.get("err"),
        )
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            METRICS.increment("listener.queue_dropped")
            self._logger.warning("Log queue full; dropping notification %s", signature)
            return None
        return notification

    async def stop(self) -> None:
        self._stopping.set()
        socket = self._socket
        if socket is not None:
            await socket.close()


__all__ = ["LogStream"]
