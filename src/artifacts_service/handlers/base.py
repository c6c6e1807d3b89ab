"""Artifact handler contract and shared construction context."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from artifacts_common.settings import RuntimeSettings, load_settings

if TYPE_CHECKING:
    import httpx

    from artifacts_common.http.cancellation import CancelScope
    from artifacts_service.params import ValidationResponse

__all__ = ["ArtifactHandler", "HandlerContext"]


@dataclass(frozen=True)
class HandlerContext:
    """Collaborators handed to every handler factory.

    Attributes
    ----------
    settings : RuntimeSettings
        Runtime configuration (HTTP timeouts and retry policy).
    transport : httpx.AsyncBaseTransport | None
        Transport override for outbound clients, e.g. ``httpx.MockTransport``.
    """

    settings: RuntimeSettings = field(default_factory=load_settings)
    transport: httpx.AsyncBaseTransport | None = None


class ArtifactHandler(Protocol):
    """Operations every artifact handler implements."""

    async def validate(self, scope: CancelScope | None = None) -> ValidationResponse:
        """Check that the configured artifact server is reachable and accepts the credentials."""
        ...
