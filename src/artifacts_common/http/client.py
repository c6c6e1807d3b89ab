"""HTTP client with a single-exchange executor and retry support.

This module provides HttpClient, whose :meth:`HttpClient.send` performs exactly one
request/response exchange and converts it into an :class:`Outcome`, and whose
:meth:`HttpClient.retry` drives repeated exchanges through the retry coordinator.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Self

import httpx
from pydantic import TypeAdapter, ValidationError

from artifacts_common.http.backoff import ExponentialBackoff
from artifacts_common.http.cancellation import CancelScope
from artifacts_common.http.errors import (
    CancellationError,
    DecodeError,
    HttpStatusError,
    TransportError,
    TransportTimeoutError,
)
from artifacts_common.http.tenacity_retry import RetryCoordinator
from artifacts_common.http.types import Outcome, RequestDescriptor
from artifacts_common.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from artifacts_common.http.policy import RetryPolicyDoc
    from artifacts_common.types import Headers

__all__ = ["HttpClient", "HttpSettings"]

logger = get_logger(__name__)

_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


@dataclass(frozen=True)
class HttpSettings:
    """HTTP client configuration settings.

    Attributes
    ----------
    service : str
        Service name for logging.
    base_url : str
        Base URL for all requests.
    read_timeout_s : float
        Read timeout in seconds. Defaults to 30.0.
    connect_timeout_s : float
        Connection timeout in seconds. Defaults to 10.0.
    max_body_bytes : int
        Largest response body read into memory; longer bodies are truncated.
        Defaults to 1 MiB.
    drain_limit_bytes : int
        Most bytes discarded from an unread body before the stream is closed.
        Defaults to 4096.
    insecure : bool
        Skip TLS certificate verification. Defaults to False.
    """

    service: str
    base_url: str
    read_timeout_s: float = 30.0
    connect_timeout_s: float = 10.0
    max_body_bytes: int = 1 << 20
    drain_limit_bytes: int = 4096
    insecure: bool = False


@lru_cache(maxsize=64)
def _adapter_for(target: object) -> TypeAdapter[Any]:
    return TypeAdapter(target)


class HttpClient:
    """HTTP client executing JSON request/response exchanges.

    The client is an explicit value owned by its caller: it wraps its own
    ``httpx.AsyncClient`` (connection pool included) and never consults
    process-wide state. Redirects are never followed; a 3xx response is
    surfaced like any other non-success status.

    Parameters
    ----------
    settings : HttpSettings
        Client configuration settings including base URL and timeouts.
    transport : httpx.AsyncBaseTransport | None, optional
        Transport override, e.g. ``httpx.MockTransport`` in tests. Defaults to None.
    policy : RetryPolicyDoc | None, optional
        Retry policy applied by :meth:`request`. Defaults to None (single attempt).

    Examples
    --------
    >>> async def ping(url: str) -> int | None:
    ...     async with HttpClient(HttpSettings(service="docs", base_url=url)) as client:
    ...         outcome = await client.send(RequestDescriptor(path="/v2/"))
    ...         return outcome.status
    """

    def __init__(
        self,
        settings: HttpSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        policy: RetryPolicyDoc | None = None,
    ) -> None:
        self.s = settings
        self.policy = policy
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.read_timeout_s, connect=settings.connect_timeout_s),
            follow_redirects=False,
            verify=not settings.insecure,
            transport=transport,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()
        del exc_type, exc_val, exc_tb

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    def create_backoff(self, scope: CancelScope, max_elapsed_s: float) -> ExponentialBackoff:
        """Return a fresh backoff policy bound to ``scope``.

        Parameters
        ----------
        scope : CancelScope
            Cancellation scope of the call the backoff will serve.
        max_elapsed_s : float
            Elapsed-time budget in seconds.

        Returns
        -------
        ExponentialBackoff
            Policy with default intervals and the given budget.
        """
        return ExponentialBackoff(max_elapsed_s, scope=scope)

    async def retry[T](  # noqa: PLR0913 - one argument per knob of the retry contract
        self,
        path: str,
        method: str = "GET",
        *,
        payload: object | None = None,
        decode_into: type[T] | None = None,
        headers: Headers | None = None,
        backoff: ExponentialBackoff,
        ignore_status_code: bool = False,
        retries: int,
        scope: CancelScope | None = None,
    ) -> Outcome[T]:
        """Send a request, retrying transient failures.

        Parameters
        ----------
        path : str
            Target path or absolute URL.
        method : str, optional
            HTTP method. Defaults to ``"GET"``.
        payload : object | None, optional
            Body serialized to JSON (bytes are sent as-is). Defaults to None.
        decode_into : type[T] | None, optional
            Shape the success body is decoded into. Defaults to None.
        headers : Headers | None, optional
            Request headers. Defaults to None.
        backoff : ExponentialBackoff
            Delay policy, private to this call.
        ignore_status_code : bool, optional
            Retry any outcome carrying an error, whatever its status. Defaults to False.
        retries : int
            Maximum number of retries after the first attempt.
        scope : CancelScope | None, optional
            Cancellation scope. Defaults to the backoff's scope, or a scope
            without deadline.

        Returns
        -------
        Outcome[T]
            Terminal outcome of the call.
        """
        descriptor = RequestDescriptor(
            path=path, method=method, payload=payload, headers=dict(headers or {})
        )
        coordinator = RetryCoordinator(self)
        return await coordinator.run(
            descriptor,
            decode_into=decode_into,
            backoff=backoff,
            ignore_status_code=ignore_status_code,
            max_retries=retries,
            scope=scope or backoff.scope or CancelScope(),
        )

    async def request[T](
        self,
        descriptor: RequestDescriptor,
        *,
        decode_into: type[T] | None = None,
        scope: CancelScope | None = None,
    ) -> Outcome[T]:
        """Send ``descriptor`` under the client's retry policy, if any.

        Parameters
        ----------
        descriptor : RequestDescriptor
            Request to send.
        decode_into : type[T] | None, optional
            Shape the success body is decoded into. Defaults to None.
        scope : CancelScope | None, optional
            Cancellation scope. Defaults to a scope without deadline.

        Returns
        -------
        Outcome[T]
            Terminal outcome of the call.
        """
        scope = scope or CancelScope()
        if self.policy is None:
            return await self.send(descriptor, decode_into=decode_into, scope=scope)
        coordinator = RetryCoordinator(self)
        return await coordinator.run(
            descriptor,
            decode_into=decode_into,
            backoff=self.policy.build_backoff(scope),
            ignore_status_code=self.policy.ignore_status_code,
            max_retries=self.policy.max_retries,
            scope=scope,
        )

    async def send[T](
        self,
        descriptor: RequestDescriptor,
        *,
        decode_into: type[T] | None = None,
        scope: CancelScope | None = None,
    ) -> Outcome[T]:
        """Perform exactly one request/response exchange.

        Parameters
        ----------
        descriptor : RequestDescriptor
            Request to send.
        decode_into : type[T] | None, optional
            Shape the success body is decoded into. Defaults to None.
        scope : CancelScope | None, optional
            Cancellation scope observed while transmitting and reading. Defaults to None.

        Returns
        -------
        Outcome[T]
            ``status`` is None when no response was received. A 204 response is a
            success with an empty body. A status above 299 carries an
            :class:`HttpStatusError`. A success body that cannot be decoded
            carries a :class:`DecodeError`.

        Notes
        -----
        Any received response is drained (up to ``drain_limit_bytes``) and
        closed before this method returns, so the connection can be reused.
        """
        scope = scope or CancelScope()
        content = self._encode(descriptor.payload)
        try:
            request = self._client.build_request(
                descriptor.method,
                self._build_url(descriptor.path),
                headers=dict(descriptor.headers),
                content=content,
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            return Outcome(error=TransportError(f"http: invalid request: {exc}", cause=exc))
        try:
            async with scope.guard():
                return await self._exchange(request, decode_into)
        except CancellationError as exc:
            return Outcome(error=exc)

    async def _exchange[T](
        self, request: httpx.Request, decode_into: type[T] | None
    ) -> Outcome[T]:
        try:
            response = await self._client.send(request, stream=True)
        except httpx.TimeoutException as exc:
            return Outcome(
                error=TransportTimeoutError(f"http: request timed out: {exc}", cause=exc)
            )
        except httpx.HTTPError as exc:
            return Outcome(error=TransportError(f"http: request error: {exc}", cause=exc))

        chunks = response.aiter_bytes()
        interpreted = False
        try:
            outcome = await self._interpret(response, chunks, decode_into)
            interpreted = True
            return outcome
        finally:
            await self._release(response, chunks, drain=interpreted)

    async def _interpret[T](
        self,
        response: httpx.Response,
        chunks: AsyncIterator[bytes],
        decode_into: type[T] | None,
    ) -> Outcome[T]:
        status = response.status_code
        # No content: never read or decode the body
        if status == httpx.codes.NO_CONTENT:
            return Outcome(status=status)

        try:
            body = await self._read_body(chunks)
        except httpx.HTTPError as exc:
            return Outcome(
                status=status,
                error=TransportError(f"http: could not read response body: {exc}", cause=exc),
            )

        if status > httpx.codes.IM_USED:
            message = (
                body.decode("utf-8", errors="replace")
                if body
                else httpx.codes.get_reason_phrase(status)
            )
            return Outcome(status=status, body=body, error=HttpStatusError(status, message))

        if decode_into is None:
            return Outcome(status=status, body=body)
        try:
            value = _adapter_for(decode_into).validate_json(body)
        except ValidationError as exc:
            return Outcome(
                status=status,
                body=body,
                error=DecodeError(f"could not decode response body: {exc}", cause=exc),
            )
        return Outcome(status=status, body=body, value=value)

    async def _read_body(self, chunks: AsyncIterator[bytes]) -> bytes:
        body = bytearray()
        async for chunk in chunks:
            room = self.s.max_body_bytes - len(body)
            if len(chunk) > room:
                body.extend(chunk[:room])
                logger.warning(
                    "response body truncated at %d bytes",
                    self.s.max_body_bytes,
                    extra={"operation": "http_read", "service": self.s.service},
                )
                break
            body.extend(chunk)
        return bytes(body)

    async def _release(
        self, response: httpx.Response, chunks: AsyncIterator[bytes], *, drain: bool
    ) -> None:
        try:
            if drain:
                await self._drain(chunks)
        finally:
            # Runs even when a scope cancellation interrupts the drain
            aclose = getattr(chunks, "aclose", None)
            try:
                if aclose is not None:
                    await aclose()
            finally:
                await response.aclose()

    async def _drain(self, chunks: AsyncIterator[bytes]) -> None:
        discarded = 0
        try:
            async for chunk in chunks:
                discarded += len(chunk)
                if discarded >= self.s.drain_limit_bytes:
                    break
        except httpx.HTTPError as exc:
            logger.error(
                "could not drain response body: %s",
                exc,
                extra={"operation": "http_drain", "service": self.s.service},
            )

    def _encode(self, payload: object | None) -> bytes:
        if payload is None:
            return b""
        if isinstance(payload, (bytes, bytearray)):
            return bytes(payload)
        try:
            return _ANY_ADAPTER.dump_json(payload)
        except (TypeError, ValueError) as exc:
            logger.error(
                "could not encode input payload: %s",
                exc,
                extra={"operation": "http_encode", "service": self.s.service},
            )
            return b""

    def _build_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.s.base_url.rstrip('/')}/{url.lstrip('/')}"
