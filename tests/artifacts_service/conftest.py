"""Fixtures for the artifacts service tests."""

from __future__ import annotations

import json
from collections.abc import Callable

import pytest

from artifacts_common.settings import RetryConfig, RuntimeSettings
from artifacts_common.types import JsonValue

REGISTRY_URL = "https://registry.example.test"


@pytest.fixture
def fast_settings() -> RuntimeSettings:
    """Return settings whose retry policy waits a millisecond between attempts."""
    return RuntimeSettings(
        retry=RetryConfig(
            max_retries=2,
            max_elapsed_s=5.0,
            initial_interval_s=0.001,
            max_interval_s=0.002,
            randomization_factor=0.0,
        )
    )


@pytest.fixture
def docker_request() -> Callable[..., bytes]:
    """Return a factory for Docker registry VALIDATE request bodies."""

    def _make(operation: str = "VALIDATE", **params: JsonValue) -> bytes:
        artifact_params: dict[str, JsonValue] = {
            "url": REGISTRY_URL,
            "provider_type": "DockerHub",
            "auth_type": "UsernamePassword",
            "username": "robot",
            "password": "s3cret",
        }
        artifact_params.update(params)
        return json.dumps(
            {
                "artifact_type": "DockerRegistry",
                "artifact_operation": operation,
                "artifact_params": artifact_params,
            }
        ).encode()

    return _make
