"""HTTP client exception classes.

This module defines the error kinds an outbound request can end with: transport failures,
cancellation, non-success status codes, and response decoding failures. Each kind is a
distinct type so callers can tell them apart without inspecting messages.
"""

from __future__ import annotations

import logging
from typing import Final

from artifacts_common.errors.codes import ErrorCode
from artifacts_common.errors.exceptions import ArtifactsError

__all__ = [
    "RETRYABLE_STATUS_FLOOR",
    "CancellationError",
    "DeadlineExceededError",
    "DecodeError",
    "HttpError",
    "HttpStatusError",
    "OperationCancelledError",
    "TransportError",
    "TransportTimeoutError",
]

# Status codes strictly above this value are treated as transient server overload.
RETRYABLE_STATUS_FLOOR: Final[int] = 501


class HttpError(ArtifactsError):
    """Base exception for all HTTP client errors."""


class TransportError(HttpError):
    """Connection, DNS, TLS or protocol failure before any response was received."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(
            message,
            code=ErrorCode.TRANSPORT_ERROR,
            http_status=503,
            cause=cause,
        )


class TransportTimeoutError(TransportError):
    """The transport timed out connecting, writing or reading."""


class CancellationError(HttpError):
    """The caller's cancellation signal fired; always terminal."""


class OperationCancelledError(CancellationError):
    """The caller cancelled the request explicitly."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(
            message,
            code=ErrorCode.REQUEST_CANCELLED,
            http_status=499,
            log_level=logging.WARNING,
        )


class DeadlineExceededError(CancellationError):
    """The caller's deadline elapsed."""

    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(
            message,
            code=ErrorCode.DEADLINE_EXCEEDED,
            http_status=504,
        )


class HttpStatusError(HttpError):
    """Exception raised for HTTP error status codes (anything above 299).

    Parameters
    ----------
    status : int
        HTTP status code.
    message : str
        Response body text when non-empty, otherwise the standard reason phrase.

    Notes
    -----
    After initialization, this exception has instance attributes:
    - ``status``: The HTTP status code (int)
    - ``retryable``: Whether the status falls in the transient server-error band
    """

    def __init__(self, status: int, message: str) -> None:
        super().__init__(
            message,
            code=ErrorCode.HTTP_STATUS_ERROR,
            http_status=502,
            context={"upstream_status": status},
        )
        self.status = status

    @property
    def retryable(self) -> bool:
        """Return True when the status is above :data:`RETRYABLE_STATUS_FLOOR`."""
        return self.status > RETRYABLE_STATUS_FLOOR


class DecodeError(HttpError):
    """A success response body could not be decoded into the requested shape."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(
            message,
            code=ErrorCode.DECODE_ERROR,
            http_status=502,
            cause=cause,
        )
