"""Tenacity-based retry coordinator.

This module provides RetryCoordinator, which drives repeated request/response exchanges through a
``tenacity.AsyncRetrying`` controller. One :class:`RetrySession` per call supplies the retry,
stop, wait, sleep and give-up hooks, so the decision order below is applied after every attempt:

1. attempts exhausted: return the last outcome as-is;
2. cancellation fired: return the last outcome carrying the cancellation error;
3. ask the backoff for the next delay;
4. not retryable: return the last outcome unchanged;
5. retryable but the backoff said stop: return a last-resort outcome keeping only the error;
6. otherwise sleep for the delay under the cancellation scope and try again.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol, cast

from tenacity import AsyncRetrying, RetryCallState

from artifacts_common.http.backoff import STOP
from artifacts_common.http.cancellation import CancelScope
from artifacts_common.http.errors import (
    RETRYABLE_STATUS_FLOOR,
    CancellationError,
    TransportError,
)
from artifacts_common.http.types import Outcome
from artifacts_common.logging import get_logger

if TYPE_CHECKING:
    from artifacts_common.http.backoff import ExponentialBackoff
    from artifacts_common.http.types import RequestDescriptor

__all__ = ["RequestExecutor", "RetryCoordinator", "RetrySession", "is_retryable"]

logger = get_logger(__name__)


class RequestExecutor(Protocol):
    """Anything able to perform a single request/response exchange."""

    async def send[T](
        self,
        descriptor: RequestDescriptor,
        *,
        decode_into: type[T] | None = None,
        scope: CancelScope | None = None,
    ) -> Outcome[T]:
        """Perform one exchange and describe it as an outcome."""
        ...


def is_retryable(outcome: Outcome[object], *, ignore_status_code: bool = False) -> bool:
    """Return True when an outcome describes a transient failure.

    Parameters
    ----------
    outcome : Outcome[object]
        Outcome of the last attempt.
    ignore_status_code : bool, optional
        Treat every outcome carrying an error as retryable. Defaults to False.

    Returns
    -------
    bool
        True for a transport failure before any response, for a status above
        :data:`RETRYABLE_STATUS_FLOOR`, and (with ``ignore_status_code``) for
        any error other than cancellation.

    Notes
    -----
    502 is not above the floor, so a bad gateway answer is terminal by default.
    """
    error = outcome.error
    if isinstance(error, CancellationError):
        return False
    if not outcome.received_response and isinstance(error, TransportError):
        return True
    if outcome.status is not None and outcome.status > RETRYABLE_STATUS_FLOOR:
        return True
    return ignore_status_code and error is not None


class _Verdict(Enum):
    RETURN = "return"
    RETRY = "retry"
    CANCELLED = "cancelled"
    STOPPED = "stopped"


class RetrySession:
    """Per-call retry state and the tenacity hooks that act on it.

    Parameters
    ----------
    descriptor : RequestDescriptor
        Request replayed on every attempt; used for log context.
    backoff : ExponentialBackoff
        Delay policy owned by this session alone.
    max_retries : int
        Retries allowed after the first attempt.
    scope : CancelScope
        Cancellation scope observed by the transport and the sleep.
    ignore_status_code : bool, optional
        Retry any outcome carrying an error. Defaults to False.
    """

    def __init__(
        self,
        descriptor: RequestDescriptor,
        backoff: ExponentialBackoff,
        max_retries: int,
        scope: CancelScope,
        *,
        ignore_status_code: bool = False,
    ) -> None:
        self.descriptor = descriptor
        self.backoff = backoff
        self.max_retries = max_retries
        self.scope = scope
        self.ignore_status_code = ignore_status_code
        self.attempts = 0
        self.last: Outcome[object] = Outcome()
        self._verdict = _Verdict.RETURN
        self._delay = 0.0

    def record(self, outcome: Outcome[object]) -> None:
        """Count one finished attempt."""
        self.attempts += 1
        self.last = outcome

    def controller(self) -> AsyncRetrying:
        """Build a tenacity controller wired to this session.

        Returns
        -------
        AsyncRetrying
            Controller returning the terminal :class:`Outcome` of the call.
        """
        return AsyncRetrying(
            retry=self._should_retry,
            stop=self._should_stop,
            wait=self._wait,
            sleep=self.scope.sleep,
            before_sleep=self._log_retry,
            retry_error_callback=self._give_up,
        )

    def _decide(self) -> _Verdict:
        if self.attempts > self.max_retries:
            if not self.last.ok:
                self._log(
                    "retries exhausted after %d attempts: %s", self.attempts, self.last.error
                )
            return _Verdict.RETURN
        if self.scope.cancelled:
            self._log("request cancelled after %d attempts: %s", self.attempts, self.scope.error)
            return _Verdict.CANCELLED
        delay = self.backoff.next()
        if not is_retryable(self.last, ignore_status_code=self.ignore_status_code):
            return _Verdict.RETURN
        if delay is STOP:
            self._log("backoff stopped after %d attempts: %s", self.attempts, self.last.error)
            return _Verdict.STOPPED
        self._delay = delay
        return _Verdict.RETRY

    def _should_retry(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        # Unexpected exceptions from the executor are re-raised by tenacity
        if outcome is None or outcome.failed:
            return False
        self._verdict = self._decide()
        return self._verdict is not _Verdict.RETURN

    def _should_stop(self, retry_state: RetryCallState) -> bool:
        del retry_state
        return self._verdict is not _Verdict.RETRY

    def _wait(self, retry_state: RetryCallState) -> float:
        del retry_state
        return self._delay

    def _log_retry(self, retry_state: RetryCallState) -> None:
        del retry_state
        logger.warning(
            "retrying %s %s in %.3fs after attempt %d: %s",
            self.descriptor.method,
            self.descriptor.path,
            self._delay,
            self.attempts,
            self.last.error,
            extra={
                "operation": "http_retry",
                "attempt": self.attempts,
                "delay_s": self._delay,
                "upstream_status": self.last.status,
            },
        )

    def _give_up(self, retry_state: RetryCallState) -> Outcome[object]:
        del retry_state
        if self._verdict is _Verdict.CANCELLED:
            error = self.scope.error
            return self.last if error is None else self.last.with_error(error)
        return Outcome(error=self.last.error)

    def _log(self, msg: str, *args: object) -> None:
        logger.error(
            msg,
            *args,
            extra={
                "operation": "http_retry",
                "attempt": self.attempts,
                "method": self.descriptor.method,
                "path": self.descriptor.path,
            },
        )


class RetryCoordinator:
    """Repeat single exchanges until success, exhaustion, backoff stop or cancellation.

    Parameters
    ----------
    executor : RequestExecutor
        Performs each exchange, typically an :class:`~artifacts_common.http.client.HttpClient`.

    Notes
    -----
    The coordinator holds no per-call state; concurrent :meth:`run` calls are
    independent as long as each brings its own backoff and scope.
    """

    def __init__(self, executor: RequestExecutor) -> None:
        self._executor = executor

    async def run[T](  # noqa: PLR0913 - one argument per knob of the retry contract
        self,
        descriptor: RequestDescriptor,
        *,
        backoff: ExponentialBackoff,
        max_retries: int,
        scope: CancelScope | None = None,
        ignore_status_code: bool = False,
        decode_into: type[T] | None = None,
    ) -> Outcome[T]:
        """Send ``descriptor`` until a terminal outcome is reached.

        Parameters
        ----------
        descriptor : RequestDescriptor
            Request replayed unchanged on every attempt.
        backoff : ExponentialBackoff
            Fresh delay policy for this call.
        max_retries : int
            Retries allowed after the first attempt.
        scope : CancelScope | None, optional
            Cancellation scope. Defaults to the backoff's scope, or a scope
            without deadline.
        ignore_status_code : bool, optional
            Retry any outcome carrying an error. Defaults to False.
        decode_into : type[T] | None, optional
            Shape the success body is decoded into. Defaults to None.

        Returns
        -------
        Outcome[T]
            Terminal outcome. Its error, if any, is the last attempt's error or
            a :class:`CancellationError`.

        Raises
        ------
        ValueError
            If ``max_retries`` is negative.
        """
        if max_retries < 0:
            msg = f"max_retries must be >= 0, got {max_retries}"
            raise ValueError(msg)
        scope = scope or backoff.scope or CancelScope()
        session = RetrySession(
            descriptor,
            backoff,
            max_retries,
            scope,
            ignore_status_code=ignore_status_code,
        )

        async def attempt() -> Outcome[T]:
            outcome = await self._executor.send(descriptor, decode_into=decode_into, scope=scope)
            session.record(cast("Outcome[object]", outcome))
            return outcome

        try:
            result = await session.controller()(attempt)
        except CancellationError as exc:
            # Fired during the backoff sleep, before the next attempt
            logger.error(
                "request cancelled while waiting to retry: %s",
                exc,
                extra={"operation": "http_retry", "attempt": session.attempts},
            )
            return cast("Outcome[T]", session.last.with_error(exc))
        return cast("Outcome[T]", result)
