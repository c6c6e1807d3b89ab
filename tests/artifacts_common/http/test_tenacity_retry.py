"""Tests for the retry coordinator in artifacts_common.http.tenacity_retry."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from artifacts_common.http import (
    CancelScope,
    DeadlineExceededError,
    DecodeError,
    ExponentialBackoff,
    HttpClient,
    HttpSettings,
    HttpStatusError,
    OperationCancelledError,
    Outcome,
    RequestDescriptor,
    RetryCoordinator,
    TransportError,
    is_retryable,
)

DESCRIPTOR = RequestDescriptor(path="/v2/")


def _client(transport: httpx.AsyncBaseTransport) -> HttpClient:
    return HttpClient(HttpSettings(service="test", base_url="https://r.test"), transport=transport)


def _backoff(scope: CancelScope, *, max_elapsed_s: float = 60.0, **kwargs: Any) -> ExponentialBackoff:
    kwargs.setdefault("randomization_factor", 0.0)
    return ExponentialBackoff(max_elapsed_s, scope=scope, **kwargs)


class SignallingScope(CancelScope):
    """Scope that announces when a backoff sleep begins."""

    def __init__(self, timeout_s: float | None = None) -> None:
        super().__init__(timeout_s)
        self.sleeping = asyncio.Event()

    async def sleep(self, delay: float) -> None:
        self.sleeping.set()
        await super().sleep(delay)


class TestIsRetryable:
    """Tests for outcome classification."""

    @pytest.mark.parametrize(
        ("outcome", "expected"),
        [
            (Outcome(error=TransportError("refused")), True),
            (Outcome(status=503, error=HttpStatusError(503, "busy")), True),
            (Outcome(status=504, error=HttpStatusError(504, "timeout")), True),
            (Outcome(status=502, error=HttpStatusError(502, "bad gateway")), False),
            (Outcome(status=501, error=HttpStatusError(501, "nope")), False),
            (Outcome(status=404, error=HttpStatusError(404, "missing")), False),
            (Outcome(status=200, error=DecodeError("bad json")), False),
            (Outcome(status=200), False),
            (Outcome(error=OperationCancelledError()), False),
        ],
        ids=["transport", "503", "504", "502", "501", "404", "decode", "ok", "cancelled"],
    )
    def test_default_classification(self, outcome: Outcome[object], expected: bool) -> None:
        """Only transport failures and statuses above 501 are retryable by default."""
        assert is_retryable(outcome) is expected

    def test_ignore_status_code_retries_any_error(self) -> None:
        """With ignore_status_code any non-cancellation error is retryable."""
        assert is_retryable(
            Outcome(status=404, error=HttpStatusError(404, "missing")), ignore_status_code=True
        )
        assert is_retryable(Outcome(status=200, error=DecodeError("bad")), ignore_status_code=True)
        assert not is_retryable(Outcome(status=200), ignore_status_code=True)


class TestRetryCoordinator:
    """Tests for the attempt loop."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(
        self, scripted: Callable[..., Any], recording_scope: Any
    ) -> None:
        """A 200 returns immediately without any backoff."""
        script = scripted((200, b'{"ok": true}'))
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR,
                backoff=_backoff(recording_scope),
                max_retries=5,
                scope=recording_scope,
                decode_into=dict[str, bool],
            )
        assert outcome.value == {"ok": True}
        assert script.calls == 1
        assert recording_scope.sleeps == []

    @pytest.mark.asyncio
    async def test_no_content_with_decode_target(
        self, scripted: Callable[..., Any], recording_scope: Any
    ) -> None:
        """A 204 succeeds with an empty result even when decoding was requested."""
        script = scripted((204, b""))
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR,
                backoff=_backoff(recording_scope),
                max_retries=5,
                scope=recording_scope,
                decode_into=dict[str, bool],
            )
        assert outcome.ok
        assert outcome.value is None
        assert script.calls == 1

    @pytest.mark.asyncio
    async def test_server_error_then_success(
        self, scripted: Callable[..., Any], recording_scope: Any
    ) -> None:
        """503 then 200 yields the 200 outcome after exactly one backoff sleep."""
        script = scripted((503, b"busy"), (200, b"{}"))
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR,
                backoff=_backoff(recording_scope),
                max_retries=1,
                scope=recording_scope,
            )
        assert outcome.ok
        assert outcome.status == 200
        assert script.calls == 2
        assert recording_scope.sleeps == [pytest.approx(0.5)]

    @pytest.mark.asyncio
    async def test_transport_error_exhausts_retries(
        self, scripted: Callable[..., Any], recording_scope: Any
    ) -> None:
        """Failing every attempt returns the last TransportError after max_retries + 1 attempts."""
        script = scripted(httpx.ConnectError("refused"))
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR,
                backoff=_backoff(recording_scope),
                max_retries=3,
                scope=recording_scope,
            )
        assert script.calls == 4
        assert len(recording_scope.sleeps) == 3
        assert outcome.status is None
        assert isinstance(outcome.error, TransportError)
        assert "refused" in str(outcome.error)

    @pytest.mark.asyncio
    async def test_zero_retries_makes_one_attempt(
        self, scripted: Callable[..., Any], recording_scope: Any
    ) -> None:
        """max_retries=0 sends exactly once and returns the failure as-is."""
        script = scripted((503, b"busy"))
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR, backoff=_backoff(recording_scope), max_retries=0, scope=recording_scope
            )
        assert script.calls == 1
        assert outcome.status == 503
        assert isinstance(outcome.error, HttpStatusError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 404, 501, 502])
    async def test_terminal_status_not_retried(
        self, scripted: Callable[..., Any], recording_scope: Any, status: int
    ) -> None:
        """Statuses at or below 501 are never retried by default."""
        script = scripted((status, b"no"))
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR, backoff=_backoff(recording_scope), max_retries=5, scope=recording_scope
            )
        assert script.calls == 1
        assert outcome.status == status
        assert isinstance(outcome.error, HttpStatusError)
        assert recording_scope.sleeps == []

    @pytest.mark.asyncio
    async def test_ignore_status_code_retries_client_error(
        self, scripted: Callable[..., Any], recording_scope: Any
    ) -> None:
        """ignore_status_code retries a 404 until the attempts run out."""
        script = scripted((404, b"missing"))
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR,
                backoff=_backoff(recording_scope),
                max_retries=2,
                scope=recording_scope,
                ignore_status_code=True,
            )
        assert script.calls == 3
        assert outcome.status == 404

    @pytest.mark.asyncio
    async def test_decode_failure_not_retried(
        self, scripted: Callable[..., Any], recording_scope: Any
    ) -> None:
        """A malformed success body is terminal."""
        script = scripted((200, b"{broken"))
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR,
                backoff=_backoff(recording_scope),
                max_retries=5,
                scope=recording_scope,
                decode_into=dict[str, int],
            )
        assert script.calls == 1
        assert isinstance(outcome.error, DecodeError)

    @pytest.mark.asyncio
    async def test_backoff_stop_returns_last_resort(
        self, scripted: Callable[..., Any], recording_scope: Any
    ) -> None:
        """When the backoff budget is spent the error is kept and the response dropped."""
        script = scripted((503, b"busy"))
        backoff = _backoff(recording_scope, max_elapsed_s=1.0, initial_interval_s=5.0)
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR, backoff=backoff, max_retries=5, scope=recording_scope
            )
        assert script.calls == 1
        assert outcome.status is None
        assert outcome.body == b""
        assert isinstance(outcome.error, HttpStatusError)
        assert outcome.error.status == 503

    @pytest.mark.asyncio
    async def test_cancel_during_sleep(self, scripted: Callable[..., Any]) -> None:
        """Cancelling mid-sleep ends the loop before another attempt."""
        script = scripted((503, b"busy"), (200, b"{}"))
        scope = SignallingScope()
        backoff = _backoff(scope, initial_interval_s=30.0)
        async with _client(script.transport) as client:
            task = asyncio.create_task(
                RetryCoordinator(client).run(DESCRIPTOR, backoff=backoff, max_retries=5, scope=scope)
            )
            await asyncio.wait_for(scope.sleeping.wait(), timeout=5)
            scope.cancel()
            outcome = await asyncio.wait_for(task, timeout=5)
        assert script.calls == 1
        assert isinstance(outcome.error, OperationCancelledError)
        assert outcome.status == 503

    @pytest.mark.asyncio
    async def test_cancel_during_attempt(self, hanging_transport: Any) -> None:
        """Cancelling while an attempt waits on the network ends the loop without retrying."""
        scope = CancelScope()
        backoff = _backoff(scope, initial_interval_s=0.001)
        async with _client(hanging_transport) as client:
            task = asyncio.create_task(
                RetryCoordinator(client).run(DESCRIPTOR, backoff=backoff, max_retries=5, scope=scope)
            )
            await asyncio.wait_for(hanging_transport.entered.wait(), timeout=5)
            scope.cancel()
            outcome = await asyncio.wait_for(task, timeout=5)
        assert isinstance(outcome.error, OperationCancelledError)
        assert outcome.status is None
        assert hanging_transport.calls == 1

    @pytest.mark.asyncio
    async def test_deadline_during_sleep(self, scripted: Callable[..., Any]) -> None:
        """A deadline shorter than the backoff delay ends the loop with DeadlineExceededError."""
        script = scripted((503, b"busy"))
        scope = CancelScope(timeout_s=0.05)
        backoff = _backoff(scope, initial_interval_s=30.0)
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR, backoff=backoff, max_retries=5, scope=scope
            )
        assert script.calls == 1
        assert isinstance(outcome.error, DeadlineExceededError)

    @pytest.mark.asyncio
    async def test_expired_deadline_sends_nothing(self, scripted: Callable[..., Any]) -> None:
        """A scope that already fired yields its cancellation error without transmitting."""
        script = scripted((200, b"{}"))
        scope = CancelScope(timeout_s=0)
        async with _client(script.transport) as client:
            outcome = await RetryCoordinator(client).run(
                DESCRIPTOR, backoff=_backoff(scope), max_retries=5, scope=scope
            )
        assert script.calls == 0
        assert isinstance(outcome.error, DeadlineExceededError)

    @pytest.mark.asyncio
    async def test_retries_are_logged(
        self,
        scripted: Callable[..., Any],
        recording_scope: Any,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Each retry emits a warning naming the attempt."""
        script = scripted((503, b"busy"), (200, b"{}"))
        with caplog.at_level(logging.WARNING, logger="artifacts_common.http.tenacity_retry"):
            async with _client(script.transport) as client:
                await RetryCoordinator(client).run(
                    DESCRIPTOR,
                    backoff=_backoff(recording_scope),
                    max_retries=3,
                    scope=recording_scope,
                )
        retries = [r for r in caplog.records if r.getMessage().startswith("retrying GET /v2/")]
        assert len(retries) == 1
        assert retries[0].attempt == 1  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_negative_retries_rejected(self, recording_scope: Any) -> None:
        """max_retries must not be negative."""
        coordinator = RetryCoordinator(_client(httpx.MockTransport(lambda _: httpx.Response(200))))
        with pytest.raises(ValueError, match="max_retries"):
            await coordinator.run(DESCRIPTOR, backoff=_backoff(recording_scope), max_retries=-1)

    @pytest.mark.asyncio
    async def test_concurrent_sessions_are_independent(
        self, scripted: Callable[..., Any]
    ) -> None:
        """Sessions sharing a client but not a scope or backoff do not interfere."""
        healthy = scripted((200, b"{}"))
        failing = scripted(httpx.ConnectError("refused"))
        scope_a, scope_b = CancelScope(), CancelScope()
        async with _client(healthy.transport) as ok_client, _client(failing.transport) as bad:
            ok, bad_outcome = await asyncio.gather(
                RetryCoordinator(ok_client).run(
                    DESCRIPTOR, backoff=_backoff(scope_a, initial_interval_s=0.001), max_retries=2
                ),
                RetryCoordinator(bad).run(
                    DESCRIPTOR, backoff=_backoff(scope_b, initial_interval_s=0.001), max_retries=2
                ),
            )
        assert ok.ok
        assert isinstance(bad_outcome.error, TransportError)
        assert failing.calls == 3


class TestHttpClientRetry:
    """Tests for the HttpClient.retry convenience wrapper."""

    @pytest.mark.asyncio
    async def test_retry_uses_backoff_scope(self, scripted: Callable[..., Any]) -> None:
        """retry() replays the request and honours the backoff's scope."""
        script = scripted((503, b"busy"), (200, b'{"v": 1}'))
        async with _client(script.transport) as client:
            scope = CancelScope(timeout_s=5)
            backoff = client.create_backoff(scope, max_elapsed_s=5)
            backoff.initial_interval_s = 0.001
            backoff.reset()
            outcome = await client.retry(
                "/v2/", "GET", decode_into=dict[str, int], backoff=backoff, retries=2
            )
        assert outcome.value == {"v": 1}
        assert script.calls == 2
        assert script.requests[0].headers["content-type"] == "application/json"
