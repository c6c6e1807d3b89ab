"""Exponential backoff bounded by total elapsed time.

This module provides ExponentialBackoff, the delay generator consulted by the retry coordinator
between attempts, and the STOP sentinel it returns once the elapsed-time budget is spent or the
bound cancellation scope has fired.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import TYPE_CHECKING, Final, Literal

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.random import Generator

    from artifacts_common.http.cancellation import CancelScope

__all__ = [
    "DEFAULT_INITIAL_INTERVAL_S",
    "DEFAULT_MAX_INTERVAL_S",
    "DEFAULT_MULTIPLIER",
    "DEFAULT_RANDOMIZATION_FACTOR",
    "STOP",
    "BackoffStop",
    "ExponentialBackoff",
]

DEFAULT_INITIAL_INTERVAL_S: Final[float] = 0.5
DEFAULT_MULTIPLIER: Final[float] = 1.5
DEFAULT_MAX_INTERVAL_S: Final[float] = 60.0
DEFAULT_RANDOMIZATION_FACTOR: Final[float] = 0.5


class BackoffStop(Enum):
    """Sentinel type returned instead of a delay when retrying must stop."""

    STOP = "stop"


STOP: Final = BackoffStop.STOP


class ExponentialBackoff:
    """Randomized exponential delays with an overall elapsed-time bound.

    Each call to :meth:`next` returns the current interval randomized by
    ``randomization_factor`` (uniform in ``[i * (1 - f), i * (1 + f)]``) and
    then grows the interval by ``multiplier`` up to ``max_interval_s``.

    Parameters
    ----------
    max_elapsed_s : float
        Budget in seconds measured from construction (or :meth:`reset`). Once
        elapsed time plus the next delay would exceed it, :meth:`next` returns
        :data:`STOP` for good. Zero disables the bound.
    scope : CancelScope | None, optional
        Cancellation scope; :meth:`next` returns :data:`STOP` once it fired. Defaults to None.
    initial_interval_s : float, optional
        First interval. Defaults to 0.5.
    multiplier : float, optional
        Growth factor per call. Defaults to 1.5.
    max_interval_s : float, optional
        Cap for a single interval before randomization. Defaults to 60.0.
    randomization_factor : float, optional
        Jitter fraction between 0 and 1. Defaults to 0.5.
    clock : Callable[[], float] | None, optional
        Monotonic clock in seconds. Defaults to :func:`time.monotonic`.
    rng : Generator | None, optional
        Random generator for jitter. Defaults to ``numpy.random.default_rng()``.

    Raises
    ------
    ValueError
        If any interval parameter is out of range.

    Notes
    -----
    Instances hold mutable state and belong to exactly one retry session.
    """

    def __init__(  # noqa: PLR0913 - mirrors the tunables of the policy document
        self,
        max_elapsed_s: float,
        *,
        scope: CancelScope | None = None,
        initial_interval_s: float = DEFAULT_INITIAL_INTERVAL_S,
        multiplier: float = DEFAULT_MULTIPLIER,
        max_interval_s: float = DEFAULT_MAX_INTERVAL_S,
        randomization_factor: float = DEFAULT_RANDOMIZATION_FACTOR,
        clock: Callable[[], float] | None = None,
        rng: Generator | None = None,
    ) -> None:
        if max_elapsed_s < 0:
            msg = f"max_elapsed_s must be >= 0, got {max_elapsed_s}"
            raise ValueError(msg)
        if initial_interval_s <= 0:
            msg = f"initial_interval_s must be > 0, got {initial_interval_s}"
            raise ValueError(msg)
        if multiplier < 1:
            msg = f"multiplier must be >= 1, got {multiplier}"
            raise ValueError(msg)
        if max_interval_s < initial_interval_s:
            msg = "max_interval_s must be >= initial_interval_s"
            raise ValueError(msg)
        if not 0 <= randomization_factor <= 1:
            msg = f"randomization_factor must be within [0, 1], got {randomization_factor}"
            raise ValueError(msg)
        self.max_elapsed_s = max_elapsed_s
        self.scope = scope
        self.initial_interval_s = initial_interval_s
        self.multiplier = multiplier
        self.max_interval_s = max_interval_s
        self.randomization_factor = randomization_factor
        self._clock = clock or time.monotonic
        self._rng = rng if rng is not None else np.random.default_rng()
        self.reset()

    def reset(self) -> None:
        """Restart the interval sequence and the elapsed-time clock."""
        self._current = self.initial_interval_s
        self._start = self._clock()
        self._stopped = False

    @property
    def current_interval_s(self) -> float:
        """Return the interval the next call will randomize."""
        return self._current

    def elapsed(self) -> float:
        """Return seconds since construction or the last :meth:`reset`."""
        return self._clock() - self._start

    def next(self) -> float | Literal[BackoffStop.STOP]:
        """Return the next delay in seconds, or :data:`STOP`.

        Returns
        -------
        float | Literal[BackoffStop.STOP]
            Delay to sleep before the next attempt, or :data:`STOP` when the
            elapsed budget would be exceeded or the scope fired. Once STOP has
            been returned for the budget, every later call returns STOP too.
        """
        if self._stopped:
            return STOP
        if self.scope is not None and self.scope.cancelled:
            return STOP
        delay = self._randomize(self._current)
        self._grow()
        if self.max_elapsed_s and self.elapsed() + delay > self.max_elapsed_s:
            self._stopped = True
            return STOP
        return delay

    def _randomize(self, interval: float) -> float:
        delta = self.randomization_factor * interval
        return interval - delta + float(self._rng.random()) * (2 * delta)

    def _grow(self) -> None:
        if self._current >= self.max_interval_s / self.multiplier:
            self._current = self.max_interval_s
        else:
            self._current *= self.multiplier
