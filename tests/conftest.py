"""Shared pytest fixtures.

This module provides reusable fixtures for:
- Response body streams that record how far they were read and whether they were closed
- Scripted ``httpx.MockTransport`` instances
- A transport that never answers, for cancelling in-flight requests
- Cancel scopes that record backoff sleeps instead of waiting
- Root logger isolation for tests that configure logging
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterator, Sequence

import httpx
import pytest

from artifacts_common.http import CancelScope


class TrackingStream(httpx.AsyncByteStream):
    """Response body that reports whether it reached end-of-data and was closed.

    With ``stall_s`` set the body hangs for that long after its last chunk.
    """

    def __init__(self, body: bytes = b"", chunk_size: int = 64, stall_s: float = 0.0) -> None:
        self.body = body
        self.chunk_size = chunk_size
        self.stall_s = stall_s
        self.bytes_read = 0
        self.exhausted = False
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for start in range(0, len(self.body), self.chunk_size):
            chunk = self.body[start : start + self.chunk_size]
            self.bytes_read += len(chunk)
            yield chunk
        if self.stall_s:
            await asyncio.sleep(self.stall_s)
        self.exhausted = True

    async def aclose(self) -> None:
        self.closed = True


class ScriptedTransport:
    """Serve scripted replies in order, repeating the last one once exhausted.

    A reply is ``(status, body)``, an ``httpx.Response`` or an exception instance
    raised by the transport.
    """

    def __init__(self, replies: Sequence[tuple[int, bytes] | httpx.Response | Exception]) -> None:
        self.replies = list(replies)
        self.requests: list[httpx.Request] = []
        self.streams: list[TrackingStream] = []
        self.transport = httpx.MockTransport(self._handle)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies[min(len(self.requests), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        status, body = reply
        stream = TrackingStream(body)
        self.streams.append(stream)
        return httpx.Response(status, stream=stream)


class HangingTransport(httpx.AsyncBaseTransport):
    """Transport that never answers; ``entered`` is set once a request is waiting."""

    def __init__(self) -> None:
        self.calls = 0
        self.entered = asyncio.Event()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        self.entered.set()
        await asyncio.sleep(10)
        return httpx.Response(200, request=request)


class RecordingScope(CancelScope):
    """Cancel scope whose backoff sleeps are recorded and skipped."""

    def __init__(self, timeout_s: float | None = None) -> None:
        super().__init__(timeout_s)
        self.sleeps: list[float] = []

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        await super().sleep(0)


@pytest.fixture
def tracking_stream() -> type[TrackingStream]:
    """Return the tracking response stream class."""
    return TrackingStream


@pytest.fixture
def scripted() -> Callable[..., ScriptedTransport]:
    """Return a factory for scripted mock transports."""

    def _make(*replies: tuple[int, bytes] | httpx.Response | Exception) -> ScriptedTransport:
        return ScriptedTransport(replies)

    return _make


@pytest.fixture
def hanging_transport() -> HangingTransport:
    """Return a transport whose requests wait until cancelled."""
    return HangingTransport()


@pytest.fixture
def recording_scope() -> RecordingScope:
    """Return a scope that records sleeps instead of waiting."""
    return RecordingScope()


@pytest.fixture(autouse=True)
def _isolate_root_logger() -> Iterator[None]:
    """Restore root logger handlers and level changed by ``setup_logging``."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
