"""Gateway exception hierarchy.

Every error raised on purpose by the gateway is an :class:`ArtifactsError`. It knows its stable
:class:`~artifacts_common.errors.codes.ErrorCode`, the HTTP status it maps to and the level it
should be logged at, and renders itself as RFC 9457 Problem Details.

Examples
--------
>>> from artifacts_common.errors import ErrorCode, InvalidRequestError
>>> error = InvalidRequestError("invalid payload")
>>> error.code is ErrorCode.INVALID_REQUEST, error.http_status
(True, 400)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from artifacts_common.errors.codes import ErrorCode, get_type_uri
from artifacts_common.problem_details import build_problem_details

if TYPE_CHECKING:
    from collections.abc import Mapping

    from artifacts_common.problem_details import ProblemDetails
    from artifacts_common.types import JsonValue

__all__ = [
    "ArtifactsError",
    "ConfigurationError",
    "InvalidRequestError",
    "SettingsError",
    "UnsupportedOperationError",
]


class ArtifactsError(Exception):
    """Root of the gateway's exceptions.

    Parameters
    ----------
    message : str
        Explanation shown to callers; also the Problem Details ``detail``.
    code : ErrorCode, optional
        Stable machine-readable code. Defaults to ``ErrorCode.RUNTIME_ERROR``.
    http_status : int, optional
        Status of the Problem Details response. Defaults to 500.
    log_level : int, optional
        Level the error is logged at by the HTTP layer. Defaults to ``logging.ERROR``.
    cause : BaseException | None, optional
        Exception chained as ``__cause__``. Defaults to None.
    context : Mapping[str, object] | None, optional
        Details rendered as Problem Details ``extensions``. Defaults to None.
    """

    def __init__(  # noqa: PLR0913 - one argument per Problem Details facet
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.RUNTIME_ERROR,
        http_status: int = 500,
        log_level: int = logging.ERROR,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.log_level = log_level
        self.context: dict[str, object] = dict(context or {})
        if cause is not None:
            self.__cause__ = cause

    def to_problem_details(
        self,
        instance: str | None = None,
        title: str | None = None,
    ) -> ProblemDetails:
        """Render the error as Problem Details.

        Parameters
        ----------
        instance : str | None, optional
            Request path or URN of the occurrence. Defaults to ``urn:artifacts:error``.
        title : str | None, optional
            Summary line. Defaults to the exception class name.

        Returns
        -------
        ProblemDetails
            Schema-checked payload; ``context`` becomes ``extensions``.

        Examples
        --------
        >>> ArtifactsError("boom").to_problem_details(instance="/")["code"]
        'runtime-error'
        """
        extensions = cast("Mapping[str, JsonValue]", self.context) if self.context else None
        return build_problem_details(
            problem_type=get_type_uri(self.code),
            title=title or type(self).__name__,
            status=self.http_status,
            detail=self.message,
            instance=instance or "urn:artifacts:error",
            code=self.code.value,
            extensions=extensions,
        )

    def __str__(self) -> str:
        return self.message


class ConfigurationError(ArtifactsError):
    """Configuration could not be loaded or is invalid."""

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.CONFIGURATION_ERROR,
            cause=cause,
            context=context,
        )


class SettingsError(ConfigurationError):
    """``ARTIFACTS_*`` settings or a named retry policy failed validation."""


class InvalidRequestError(ArtifactsError):
    """An inbound operation request is malformed.

    Maps to status 400 and is logged at warning level: the fault lies with the caller.
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.INVALID_REQUEST,
            http_status=400,
            log_level=logging.WARNING,
            cause=cause,
            context=context,
        )


class UnsupportedOperationError(InvalidRequestError):
    """No handler exists for the requested artifact type, operation or provider."""

    def __init__(self, message: str, context: Mapping[str, object] | None = None) -> None:
        super().__init__(message, context=context)
        self.code = ErrorCode.UNSUPPORTED_OPERATION
