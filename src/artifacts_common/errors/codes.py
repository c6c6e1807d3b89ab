"""Stable error codes of the gateway.

Each code doubles as the last path segment of its Problem Details type URI. Clients match on
these strings, so existing values never change.

Examples
--------
>>> from artifacts_common.errors.codes import ErrorCode, get_type_uri
>>> get_type_uri(ErrorCode.TRANSPORT_ERROR)
'https://artifacts-gateway.dev/problems/transport-error'
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

__all__ = [
    "BASE_TYPE_URI",
    "ErrorCode",
    "get_type_uri",
]


BASE_TYPE_URI: Final[str] = "https://artifacts-gateway.dev/problems"


class ErrorCode(StrEnum):
    """Stable error codes for artifacts-gateway exceptions.

    Codes by area:
    - Outbound HTTP: transport, cancellation, status and decode failures
    - Inbound requests: malformed or unsupported operation requests
    - Configuration & runtime

    Attributes
    ----------
    TRANSPORT_ERROR
        Connection, DNS, TLS or timeout failure before a response arrived.
    REQUEST_CANCELLED
        The caller cancelled the outbound request.
    DEADLINE_EXCEEDED
        The caller's deadline elapsed before the request completed.
    HTTP_STATUS_ERROR
        The remote API answered with a non-success status code.
    DECODE_ERROR
        A success response body could not be decoded into the requested shape.
    INVALID_REQUEST
        An inbound operation request was malformed.
    UNSUPPORTED_OPERATION
        The requested artifact type, operation or provider is not supported.
    CONFIGURATION_ERROR
        Configuration could not be loaded or validated.
    RUNTIME_ERROR
        Unclassified runtime failure.
    """

    TRANSPORT_ERROR = "transport-error"
    REQUEST_CANCELLED = "request-cancelled"
    DEADLINE_EXCEEDED = "deadline-exceeded"
    HTTP_STATUS_ERROR = "http-status-error"
    DECODE_ERROR = "decode-error"
    INVALID_REQUEST = "invalid-request"
    UNSUPPORTED_OPERATION = "unsupported-operation"
    CONFIGURATION_ERROR = "configuration-error"
    RUNTIME_ERROR = "runtime-error"


def get_type_uri(code: ErrorCode) -> str:
    """Return the Problem Details type URI for an error code.

    Parameters
    ----------
    code : ErrorCode
        Error code to resolve.

    Returns
    -------
    str
        Absolute type URI, e.g. ``https://artifacts-gateway.dev/problems/decode-error``.
    """
    return f"{BASE_TYPE_URI}/{code.value}"
