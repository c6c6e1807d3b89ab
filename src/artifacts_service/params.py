"""Operation request and response models.

Inbound operation requests name an artifact type, an operation and the type-specific parameters;
every operation answers with a :class:`ValidationResponse`.

Examples
--------
>>> from artifacts_service.params import OperationRequest
>>> req = OperationRequest.parse(b'{"artifact_type": "DockerRegistry", "artifact_operation": "VALIDATE"}')
>>> req.artifact_type
'DockerRegistry'
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from artifacts_common.errors import InvalidRequestError
from artifacts_common.types import JsonValue

__all__ = [
    "ArtifactOperation",
    "ArtifactType",
    "AuthType",
    "DockerArtifactParams",
    "ErrorDetail",
    "OperationRequest",
    "ProviderType",
    "ValidationResponse",
    "ValidationStatus",
]


class ArtifactType(StrEnum):
    """Artifact server kinds the gateway knows how to handle."""

    DOCKER_REGISTRY = "DockerRegistry"


class ArtifactOperation(StrEnum):
    """Operations an artifact handler can apply."""

    VALIDATE = "VALIDATE"


class ProviderType(StrEnum):
    """Docker registry providers."""

    DOCKER_HUB = "DockerHub"


class AuthType(StrEnum):
    """Docker registry authentication schemes."""

    USERNAME_PASSWORD = "UsernamePassword"
    ANONYMOUS = "Anonymous"


class ValidationStatus(StrEnum):
    """Overall result of a validation."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class OperationRequest(BaseModel):
    """Operation request envelope.

    Type and operation are kept as plain strings so that unknown values are
    reported by the dispatcher with their original spelling.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore", frozen=True)

    artifact_type: str = ""
    artifact_operation: str = ""
    artifact_params: dict[str, JsonValue] = Field(default_factory=dict)

    @classmethod
    def parse(cls, raw: bytes | str) -> Self:
        """Decode a JSON request body.

        Parameters
        ----------
        raw : bytes | str
            Request body.

        Returns
        -------
        Self
            Parsed request.

        Raises
        ------
        InvalidRequestError
            If the body is not a JSON object of the expected shape.
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            msg = "invalid payload"
            raise InvalidRequestError(msg, cause=exc) from exc


class ErrorDetail(BaseModel):
    """One validation failure."""

    message: str = ""
    reason: str = ""
    code: int = 0


class ValidationResponse(BaseModel):
    """Result of a validation operation."""

    status: ValidationStatus
    errors: list[ErrorDetail] = Field(default_factory=list)
    error_summary: str = ""

    @classmethod
    def success(cls) -> Self:
        """Return a successful response."""
        return cls(status=ValidationStatus.SUCCESS)

    @classmethod
    def failure(cls, message: str, *, reason: str = "", code: int = 0) -> Self:
        """Return a failed response carrying a single error."""
        return cls(
            status=ValidationStatus.FAILURE,
            errors=[ErrorDetail(message=message, reason=reason, code=code)],
            error_summary=message,
        )


class DockerArtifactParams(BaseModel):
    """Connection parameters of a Docker registry.

    Attributes
    ----------
    url : str
        Registry base URL.
    provider_type : str
        Registry provider, one of :class:`ProviderType`.
    auth_type : str
        Authentication scheme, one of :class:`AuthType`.
    username : str
        Account name; required for ``UsernamePassword``.
    password : str
        Account password or token; required for ``UsernamePassword``.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore", frozen=True)

    url: str = ""
    provider_type: str = ""
    auth_type: str = ""
    username: str = ""
    password: str = Field(default="", repr=False)

    @classmethod
    def parse(cls, raw: dict[str, JsonValue]) -> Self:
        """Decode and check raw ``artifact_params``.

        Raises
        ------
        InvalidRequestError
            If a field has the wrong type or a required value is missing.
        """
        try:
            params = cls.model_validate(raw)
        except ValidationError as exc:
            msg = f"failed to decode artifact params: {exc}"
            raise InvalidRequestError(msg, cause=exc) from exc
        reason = params._problem()
        if reason is not None:
            msg = f"invalid docker artifact params: {reason}"
            raise InvalidRequestError(msg, context={"url": params.url})
        return params

    @property
    def auth(self) -> AuthType:
        """Return the authentication scheme."""
        return AuthType(self.auth_type)

    def _problem(self) -> str | None:
        if not self.url:
            return "url is empty"
        if not self.provider_type:
            return "providerType is empty"
        if not self.auth_type:
            return "authType is empty"
        if self.auth_type not in AuthType:
            return f"unsupported authType [{self.auth_type}]"
        if self.auth is AuthType.USERNAME_PASSWORD:
            if not self.username:
                return "username is empty"
            if not self.password:
                return "password is empty"
        return None
