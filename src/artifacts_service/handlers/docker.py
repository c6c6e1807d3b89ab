"""Docker registry validation.

The handler checks a registry by calling its API version endpoint (``GET /v2/``) with the
configured credentials through the retrying HTTP client. Providers form a closed registry keyed
by :class:`~artifacts_service.params.ProviderType`; the provider is resolved once, when the handler
is built from its parameters.
"""

from __future__ import annotations

import base64
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Final, Self

from artifacts_common.errors import UnsupportedOperationError
from artifacts_common.http import CancelScope, HttpClient, HttpError, HttpStatusError
from artifacts_common.logging import get_logger, with_fields
from artifacts_service.params import AuthType, DockerArtifactParams, ProviderType, ValidationResponse

if TYPE_CHECKING:
    from artifacts_common.types import JsonValue
    from artifacts_service.handlers.base import HandlerContext

__all__ = [
    "API_VERSION_ENDPOINT",
    "PROVIDERS",
    "DockerHandler",
    "DockerRegistryClient",
]

logger = get_logger(__name__)

API_VERSION_ENDPOINT: Final[str] = "/v2/"


class DockerRegistryClient:
    """Client for the Docker registry HTTP API.

    Parameters
    ----------
    params : DockerArtifactParams
        Registry URL and credentials.
    context : HandlerContext
        Settings and transport used to build the HTTP client.
    """

    def __init__(self, params: DockerArtifactParams, context: HandlerContext) -> None:
        self.params = params
        self._context = context

    def auth_headers(self) -> dict[str, str]:
        """Return the ``Authorization`` header for the configured scheme."""
        if self.params.auth is AuthType.ANONYMOUS:
            return {}
        token = f"{self.params.username}:{self.params.password}".encode()
        return {"Authorization": "Basic " + base64.b64encode(token).decode("ascii")}

    async def validate(self, scope: CancelScope | None = None) -> None:
        """Call the API version endpoint until it answers or retrying stops.

        Parameters
        ----------
        scope : CancelScope | None, optional
            Cancellation scope for the whole check. Defaults to None.

        Raises
        ------
        HttpError
            The terminal error of the call.
        """
        settings = self._context.settings
        policy = settings.retry_policy()
        scope = scope or CancelScope()
        async with HttpClient(
            settings.http_settings("docker-registry", self.params.url),
            transport=self._context.transport,
        ) as http:
            outcome = await http.retry(
                API_VERSION_ENDPOINT,
                "GET",
                headers=self.auth_headers(),
                backoff=policy.build_backoff(scope),
                ignore_status_code=False,
                retries=policy.max_retries,
                scope=scope,
            )
        outcome.unwrap()


type ProviderFactory = Callable[[DockerArtifactParams, HandlerContext], DockerRegistryClient]

PROVIDERS: Final[Mapping[ProviderType, ProviderFactory]] = MappingProxyType(
    {ProviderType.DOCKER_HUB: DockerRegistryClient}
)


class DockerHandler:
    """Artifact handler for Docker registries.

    Parameters
    ----------
    params : DockerArtifactParams
        Checked registry parameters.
    client : DockerRegistryClient
        Provider-specific client resolved from ``params.provider_type``.
    """

    def __init__(self, params: DockerArtifactParams, client: DockerRegistryClient) -> None:
        self.params = params
        self.client = client

    @classmethod
    def from_params(cls, raw: dict[str, JsonValue], context: HandlerContext) -> Self:
        """Build a handler from raw ``artifact_params``.

        Parameters
        ----------
        raw : dict[str, JsonValue]
            Parameters from the operation request.
        context : HandlerContext
            Settings and transport for the registry client.

        Returns
        -------
        Self
            Handler bound to the provider named in the parameters.

        Raises
        ------
        InvalidRequestError
            If the parameters are malformed or incomplete.
        UnsupportedOperationError
            If the provider type is unknown.
        """
        params = DockerArtifactParams.parse(raw)
        provider = params.provider_type
        factory = PROVIDERS.get(ProviderType(provider)) if provider in ProviderType else None
        if factory is None:
            msg = f"unsupported docker provider type [{params.provider_type}]"
            raise UnsupportedOperationError(msg, context={"provider_type": params.provider_type})
        return cls(params, factory(params, context))

    async def validate(self, scope: CancelScope | None = None) -> ValidationResponse:
        """Validate the registry connection.

        Returns
        -------
        ValidationResponse
            ``SUCCESS`` when the registry answered, otherwise ``FAILURE`` with
            the error message and, for HTTP status errors, the status code.
        """
        with with_fields(
            logger,
            operation="validate",
            url=self.params.url,
            provider_type=self.params.provider_type,
        ) as log:
            try:
                await self.client.validate(scope)
            except HttpError as exc:
                log.error("failed validating artifact server: %s", exc)
                code = exc.status if isinstance(exc, HttpStatusError) else 0
                return ValidationResponse.failure(exc.message, reason=exc.code.value, code=code)
            log.info("successfully validated artifact server")
            return ValidationResponse.success()
