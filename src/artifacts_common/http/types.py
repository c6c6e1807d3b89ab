"""Value types shared by the request executor and the retry coordinator.

This module defines RequestDescriptor, the immutable description of one logical request, and
Outcome, the uniform result of a single request/response exchange.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from artifacts_common.http.errors import HttpError
    from artifacts_common.types import Headers

__all__ = [
    "JSON_CONTENT_TYPE",
    "Outcome",
    "RequestDescriptor",
]

JSON_CONTENT_TYPE: Final[str] = "application/json"


@dataclass(frozen=True)
class RequestDescriptor:
    """Immutable description of one logical request.

    The same descriptor is replayed unchanged on every retry attempt.

    Attributes
    ----------
    path : str
        Target path appended to the client's base URL, or an absolute URL.
    method : str
        HTTP method; normalized to upper case. Defaults to ``"GET"``.
    payload : object | None
        Request body. ``bytes`` are sent as-is; any other value is serialized
        to JSON. Defaults to None (empty body).
    headers : Headers
        Header name to value. ``Content-Type`` is always set to
        :data:`JSON_CONTENT_TYPE`, replacing any caller-supplied variant.
    """

    path: str
    method: str = "GET"
    payload: object | None = None
    headers: Headers = field(default_factory=dict)

    def __post_init__(self) -> None:
        merged = {k: v for k, v in self.headers.items() if k.lower() != "content-type"}
        merged["Content-Type"] = JSON_CONTENT_TYPE
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", MappingProxyType(merged))


@dataclass(frozen=True)
class Outcome[T]:
    """Result of one request/response exchange.

    Exactly one of {received response, transport error} describes an attempt:
    ``status`` is None only when the transport failed before a response arrived.

    Attributes
    ----------
    status : int | None
        Response status code, or None when no response was received.
    body : bytes
        Response body bytes; empty for 204 responses and transport failures.
    error : HttpError | None
        Why the exchange failed, or None on success.
    value : T | None
        Decoded body when a decode target was requested and decoding succeeded.
    """

    status: int | None = None
    body: bytes = b""
    error: HttpError | None = None
    value: T | None = None

    @property
    def ok(self) -> bool:
        """Return True when the exchange carries no error."""
        return self.error is None

    @property
    def received_response(self) -> bool:
        """Return True when the remote server answered with a status code."""
        return self.status is not None

    def with_error(self, error: HttpError) -> Outcome[T]:
        """Return a copy whose error is replaced by ``error``."""
        return replace(self, error=error)

    def unwrap(self) -> T | None:
        """Return the decoded value or raise the outcome's error.

        Returns
        -------
        T | None
            The decoded value; None when no decode target was requested or the
            response had no content.

        Raises
        ------
        HttpError
            The outcome's error, when present.
        """
        if self.error is not None:
            raise self.error
        return self.value
