"""Artifact server validation service.

Parses operation requests, dispatches them to the handler registered for the artifact type, and
exposes the result over HTTP (:mod:`artifacts_service.app`) and the command line
(:mod:`artifacts_service.cli`).
"""

from __future__ import annotations

from artifacts_service.handlers import HandlerContext, dispatch
from artifacts_service.params import OperationRequest, ValidationResponse, ValidationStatus

__all__ = [
    "HandlerContext",
    "OperationRequest",
    "ValidationResponse",
    "ValidationStatus",
    "dispatch",
]
