"""Artifact handlers and operation dispatch.

Handlers form a closed registry keyed by :class:`~artifacts_service.params.ArtifactType`. A
handler is built once per request from its ``artifact_params``, then the requested operation is
applied to it.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from artifacts_common.errors import UnsupportedOperationError
from artifacts_service.handlers.base import ArtifactHandler, HandlerContext
from artifacts_service.handlers.docker import DockerHandler
from artifacts_service.params import (
    ArtifactOperation,
    ArtifactType,
    OperationRequest,
    ValidationResponse,
)

if TYPE_CHECKING:
    from artifacts_common.http.cancellation import CancelScope
    from artifacts_common.types import JsonValue

__all__ = [
    "HANDLERS",
    "ArtifactHandler",
    "DockerHandler",
    "HandlerContext",
    "apply_operation",
    "dispatch",
    "resolve_handler",
]

type HandlerFactory = Callable[[dict[str, JsonValue], HandlerContext], ArtifactHandler]

HANDLERS: Final[Mapping[ArtifactType, HandlerFactory]] = MappingProxyType(
    {ArtifactType.DOCKER_REGISTRY: DockerHandler.from_params}
)


def resolve_handler(request: OperationRequest, context: HandlerContext) -> ArtifactHandler:
    """Build the handler for the request's artifact type.

    Raises
    ------
    UnsupportedOperationError
        If no handler is registered for the artifact type.
    InvalidRequestError
        If the handler rejects the artifact parameters.
    """
    artifact_type = request.artifact_type
    factory = HANDLERS.get(ArtifactType(artifact_type)) if artifact_type in ArtifactType else None
    if factory is None:
        msg = f"unsupported artifact type [{artifact_type}]"
        raise UnsupportedOperationError(msg, context={"artifact_type": artifact_type})
    return factory(request.artifact_params, context)


async def apply_operation(
    handler: ArtifactHandler,
    operation: str,
    scope: CancelScope | None = None,
) -> ValidationResponse:
    """Apply ``operation`` to ``handler``.

    Raises
    ------
    UnsupportedOperationError
        If the operation is unknown.
    """
    match operation:
        case ArtifactOperation.VALIDATE:
            return await handler.validate(scope)
        case _:
            msg = f"unsupported artifact operation [{operation}]"
            raise UnsupportedOperationError(msg, context={"artifact_operation": operation})


async def dispatch(
    raw: bytes | str,
    context: HandlerContext,
    scope: CancelScope | None = None,
) -> ValidationResponse:
    """Parse an operation request, build its handler and apply the operation.

    Parameters
    ----------
    raw : bytes | str
        JSON operation request.
    context : HandlerContext
        Collaborators for the handler.
    scope : CancelScope | None, optional
        Cancellation scope for the operation. Defaults to None.

    Returns
    -------
    ValidationResponse
        Operation result. Failures of the remote server are reported here, not raised.

    Raises
    ------
    InvalidRequestError
        If the request, its parameters, type or operation are invalid.
    """
    request = OperationRequest.parse(raw)
    handler = resolve_handler(request, context)
    return await apply_operation(handler, request.artifact_operation, scope)
