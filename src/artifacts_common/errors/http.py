"""FastAPI glue for gateway errors.

Registering :func:`register_problem_details_handler` turns any :class:`ArtifactsError` escaping an
endpoint into an ``application/problem+json`` response with the error's own status.

Examples
--------
>>> from fastapi import FastAPI
>>> from artifacts_common.errors.http import register_problem_details_handler
>>> app = FastAPI()
>>> register_problem_details_handler(app)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from fastapi.responses import JSONResponse

from artifacts_common.errors.exceptions import ArtifactsError
from artifacts_common.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "problem_details_response",
    "register_problem_details_handler",
]

PROBLEM_MEDIA_TYPE: Final[str] = "application/problem+json"

logger = get_logger(__name__)


def _instance_of(request: Request) -> str:
    url = request.url
    return f"{url.path}?{url.query}" if url.query else url.path


def problem_details_response(
    error: ArtifactsError,
    request: Request | None = None,
) -> JSONResponse:
    """Log ``error`` at its level and wrap it in a Problem Details response.

    Parameters
    ----------
    error : ArtifactsError
        Error to render.
    request : Request | None, optional
        Request whose path and query become ``instance``. Defaults to None.

    Returns
    -------
    JSONResponse
        Response with ``error.http_status`` and :data:`PROBLEM_MEDIA_TYPE`.

    Examples
    --------
    >>> from artifacts_common.errors import InvalidRequestError
    >>> problem_details_response(InvalidRequestError("invalid payload")).status_code
    400
    """
    instance = _instance_of(request) if request is not None else None
    logger.log(
        error.log_level,
        "request failed: %s",
        error.message,
        exc_info=error.__cause__,
        extra={"operation": "problem_details", "code": error.code.value},
    )
    return JSONResponse(
        status_code=error.http_status,
        content=dict(error.to_problem_details(instance=instance)),
        media_type=PROBLEM_MEDIA_TYPE,
    )


def register_problem_details_handler(app: FastAPI) -> None:
    """Answer every :class:`ArtifactsError` raised by ``app`` with Problem Details."""

    async def _handle(request: Request, exc: Exception) -> JSONResponse:
        if not isinstance(exc, ArtifactsError):  # pragma: no cover - only registered for ArtifactsError
            raise exc
        return problem_details_response(exc, request)

    app.add_exception_handler(ArtifactsError, _handle)
