from __future__ import annotations

import asyncio
import json

import pytest

from migration_lp_bot.config.settings import ListenerConfig, RPCConfig
from migration_lp_bot.ingestion.log_stream import LogStream
from migration_lp_bot.monitoring.metrics import METRICS

PROGRAM = "39azUYFWPz3VHgKCf3VChUwbpURdCHRxjWVowf5jUJjg"


def _notification(signature: str, err=None) -> str:
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "method": "logsNotification",
            "params": {
                "subscription": 7,
                "result": {
                    "context": {"slot": 321},
                    "value": {"signature": signature, "err": err, "logs": ["Program log: Instruction: Migrate"]},
                },
            },
        }
    )


def _stream(queue: asyncio.Queue) -> LogStream:
    return LogStream(queue, program_id=PROGRAM, rpc_config=RPCConfig(), listener_config=ListenerConfig())


def test_subscription_request_filters_by_program() -> None:
    request = json.loads(_stream(asyncio.Queue()).subscription_request())

    assert request["method"] == "logsSubscribe"
    assert request["params"][0] == {"mentions": [PROGRAM]}
    assert request["params"][1] == {"commitment": "confirmed"}


def test_notifications_are_queued() -> None:
    queue: asyncio.Queue = asyncio.Queue()
    stream = _stream(queue)

    notification = stream.handle_message(_notification("sig-1"))

    assert notification is not None
    assert notification.slot == 321
    assert notification.logs == ["Program log: Instruction: Migrate"]
    assert queue.get_nowait() is notification


def test_subscription_ack_is_not_queued() -> None:
    queue: asyncio.Queue = asyncio.Queue()

    assert _stream(queue).handle_message(json.dumps({"jsonrpc": "2.0", "id": 1, "result": 7})) is None
    assert queue.empty()


def test_full_queue_drops_notification() -> None:
    queue: asyncio.Queue = asyncio.Queue(maxsize=1)
    stream = _stream(queue)

    assert stream.handle_message(_notification("sig-1")) is not None
    assert stream.handle_message(_notification("sig-2")) is None
    assert queue.qsize() == 1


class FakeSocket:
    def __init__(self, stream: LogStream, frames: list) -> None:
        self._stream = stream
        self._frames = list(frames)
        self.pings = 0

    async def recv(self) -> str:
        frame = self._frames.pop(0)
        if not self._frames:
            await self._stream.stop()
        return frame

    async def ping(self) -> None:
        self.pings += 1


def test_malformed_frames_are_skipped_without_dropping_the_socket() -> None:
    METRICS.reset()
    queue: asyncio.Queue = asyncio.Queue()
    stream = _stream(queue)
    frames = [
        "not json",
        "[1, 2]",
        json.dumps({"jsonrpc": "2.0", "method": "logsNotification", "params": None}),
        _notification("sig-1"),
    ]

    asyncio.run(stream._pump(FakeSocket(stream, frames)))

    assert queue.get_nowait().signature == "sig-1"
    assert queue.empty()
    assert METRICS.snapshot()["counters"]["listener.malformed_frames"] == 2.0


def test_malformed_frame_still_raises_from_handle_message() -> None:
    with pytest.raises(ValueError):
        _stream(asyncio.Queue()).handle_message("not json")
