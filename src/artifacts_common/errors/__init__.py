"""Exception hierarchy and Problem Details support.

This package provides the typed exception hierarchy with error codes and RFC 9457 Problem Details
mapping. FastAPI integration lives in :mod:`artifacts_common.errors.http` so that importing the
exceptions never pulls in the web stack.

Examples
--------
>>> from artifacts_common.errors import ArtifactsError, ErrorCode
>>> error = ArtifactsError("boom", code=ErrorCode.RUNTIME_ERROR)
>>> assert error.to_problem_details()["code"] == "runtime-error"
"""

from __future__ import annotations

from artifacts_common.errors.codes import BASE_TYPE_URI, ErrorCode, get_type_uri
from artifacts_common.errors.exceptions import (
    ArtifactsError,
    ConfigurationError,
    InvalidRequestError,
    SettingsError,
    UnsupportedOperationError,
)

__all__ = [
    "BASE_TYPE_URI",
    "ArtifactsError",
    "ConfigurationError",
    "ErrorCode",
    "InvalidRequestError",
    "SettingsError",
    "UnsupportedOperationError",
    "get_type_uri",
]
