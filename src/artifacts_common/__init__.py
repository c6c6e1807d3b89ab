"""Shared building blocks of the artifacts gateway.

This package groups the error hierarchy, structured logging, runtime settings and the resilient
outbound HTTP client used by the artifact validation service.
"""

from __future__ import annotations

from artifacts_common import errors, http, logging, problem_details, settings

__all__ = ["errors", "http", "logging", "problem_details", "settings"]
