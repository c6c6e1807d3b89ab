"""HTTP front door of the artifacts gateway.

``POST /`` accepts an operation request and answers with the operation's
:class:`~artifacts_service.params.ValidationResponse`. Invalid requests are answered with RFC 9457
Problem Details (status 400).

Examples
--------
>>> from fastapi.testclient import TestClient
>>> from artifacts_service.app import create_app
>>> client = TestClient(create_app())
>>> client.get("/healthz").json()
{'status': 'ok'}
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from typing import Final

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from artifacts_common.errors.http import register_problem_details_handler
from artifacts_common.logging import get_logger, set_correlation_id
from artifacts_service.handlers import HandlerContext, dispatch

__all__ = ["CorrelationIDMiddleware", "app", "create_app"]

logger = get_logger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Propagate ``X-Correlation-ID`` into the logging context and the response."""

    HEADER_NAME: Final[str] = "X-Correlation-ID"

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Set the correlation ID from the header, or a fresh one, around the request."""
        correlation_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            set_correlation_id(None)
        response.headers[self.HEADER_NAME] = correlation_id
        return response


def create_app(context: HandlerContext | None = None) -> FastAPI:
    """Build the gateway application.

    Parameters
    ----------
    context : HandlerContext | None, optional
        Collaborators for the handlers. Defaults to settings loaded from the
        environment and the default transport.

    Returns
    -------
    FastAPI
        Configured application.
    """
    ctx = context or HandlerContext()
    application = FastAPI(title="Artifacts Gateway", version="0.1.0")
    register_problem_details_handler(application)
    application.add_middleware(CorrelationIDMiddleware)

    @application.post("/")
    async def handle(request: Request) -> JSONResponse:
        body = await request.body()
        response = await dispatch(body, ctx)
        logger.info(
            "operation completed",
            extra={"operation": "dispatch", "result": response.status.value},
        )
        return JSONResponse(response.model_dump(mode="json"))

    @application.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
