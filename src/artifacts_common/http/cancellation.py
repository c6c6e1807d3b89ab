"""Cooperative cancellation for outbound requests.

A :class:`CancelScope` combines an optional deadline with an explicit ``cancel()`` switch. Every
blocking wait of a retry session (the transport exchange and each backoff sleep) runs inside
:meth:`CancelScope.guard`, so either kind of cancellation interrupts whichever wait is in
progress instead of being noticed only between attempts.

Examples
--------
>>> import asyncio
>>> from artifacts_common.http.cancellation import CancelScope
>>> scope = CancelScope(timeout_s=5.0)
>>> scope.cancelled
False
>>> scope.cancel()
>>> type(scope.error).__name__
'OperationCancelledError'
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from artifacts_common.http.errors import (
    CancellationError,
    DeadlineExceededError,
    OperationCancelledError,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

__all__ = ["CancelScope"]


class CancelScope:
    """Deadline plus explicit cancellation, observed by every guarded wait.

    Parameters
    ----------
    timeout_s : float | None, optional
        Seconds from construction until the deadline. None means no deadline.
        Defaults to None.

    Notes
    -----
    A scope belongs to one logical call. It must not be shared between
    unrelated retry sessions, since cancelling it aborts every guarded wait.
    """

    def __init__(self, timeout_s: float | None = None) -> None:
        self._deadline = None if timeout_s is None else time.monotonic() + timeout_s
        self._cancelled = False
        self._guarded: set[asyncio.Task[object]] = set()

    @property
    def deadline(self) -> float | None:
        """Return the deadline on the :func:`time.monotonic` clock, if any."""
        return self._deadline

    def remaining(self) -> float | None:
        """Return seconds left before the deadline (never negative), or None."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def cancelled(self) -> bool:
        """Return True once ``cancel()`` was called or the deadline has passed."""
        return self.error is not None

    @property
    def error(self) -> CancellationError | None:
        """Return the cancellation error to report, or None while the scope is live.

        Explicit cancellation takes precedence over an expired deadline.
        """
        if self._cancelled:
            return OperationCancelledError()
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DeadlineExceededError()
        return None

    def raise_if_cancelled(self) -> None:
        """Raise the cancellation error when the scope has fired.

        Raises
        ------
        CancellationError
            When the scope was cancelled or its deadline passed.
        """
        error = self.error
        if error is not None:
            raise error

    def cancel(self) -> None:
        """Fire the scope and interrupt every wait currently guarded by it."""
        if self._cancelled:
            return
        self._cancelled = True
        for task in tuple(self._guarded):
            task.cancel()

    @asynccontextmanager
    async def guard(self) -> AsyncIterator[None]:
        """Run the enclosed block until it finishes, the deadline passes, or ``cancel()``.

        Yields
        ------
        None
            Control to the guarded block.

        Raises
        ------
        DeadlineExceededError
            When the deadline passes before or while the block runs.
        OperationCancelledError
            When ``cancel()`` is called before or while the block runs.
        RuntimeError
            When used outside of an asyncio task.
        """
        self.raise_if_cancelled()
        task = asyncio.current_task()
        if task is None:
            msg = "CancelScope.guard() requires a running asyncio task"
            raise RuntimeError(msg)
        self._guarded.add(task)
        timeout_cm = asyncio.timeout(self.remaining())
        try:
            async with timeout_cm:
                yield
        except TimeoutError as exc:
            if timeout_cm.expired():
                raise DeadlineExceededError from exc
            raise
        except asyncio.CancelledError:
            # Only swallow the cancellation this scope requested
            if self._cancelled and task.uncancel() == 0:
                raise OperationCancelledError from None
            raise
        finally:
            self._guarded.discard(task)

    async def sleep(self, delay: float) -> None:
        """Sleep ``delay`` seconds unless the scope fires first.

        Parameters
        ----------
        delay : float
            Seconds to sleep.
        """
        async with self.guard():
            await asyncio.sleep(delay)
