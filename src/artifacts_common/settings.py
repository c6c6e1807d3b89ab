"""Gateway configuration read from ``ARTIFACTS_*`` environment variables.

Settings are validated once, at load time; any invalid value raises :class:`SettingsError`
before a request is served.

Examples
--------
>>> from artifacts_common.settings import load_settings
>>> settings = load_settings()  # Raises SettingsError on invalid ARTIFACTS_* values
>>> settings.retry.max_retries
5
"""

from __future__ import annotations

from pathlib import Path
from typing import Self

import jsonschema
import yaml
from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from artifacts_common.errors import SettingsError
from artifacts_common.http.client import HttpSettings
from artifacts_common.http.policy import PolicyRegistry, RetryPolicyDoc
from artifacts_common.logging import get_logger

__all__ = [
    "HttpConfig",
    "ObservabilityConfig",
    "RetryConfig",
    "RuntimeSettings",
    "load_settings",
]

logger = get_logger(__name__)


class HttpConfig(BaseSettings):
    """Outbound HTTP transport configuration (``ARTIFACTS_HTTP_*``)."""

    model_config = SettingsConfigDict(env_prefix="ARTIFACTS_HTTP_", extra="forbid")

    connect_timeout_s: float = Field(default=10.0, gt=0, description="Connect timeout in seconds")
    read_timeout_s: float = Field(default=30.0, gt=0, description="Read timeout in seconds")
    max_body_bytes: int = Field(
        default=1 << 20, gt=0, description="Largest response body read into memory"
    )
    drain_limit_bytes: int = Field(
        default=4096, ge=0, description="Bytes discarded from an unread body before closing it"
    )
    insecure: bool = Field(default=False, description="Skip TLS certificate verification")


class RetryConfig(BaseSettings):
    """Retry and backoff configuration (``ARTIFACTS_RETRY_*``)."""

    model_config = SettingsConfigDict(env_prefix="ARTIFACTS_RETRY_", extra="forbid")

    max_retries: int = Field(default=5, ge=0, description="Retries after the first attempt")
    max_elapsed_s: float = Field(default=10.0, ge=0, description="Backoff elapsed-time budget")
    initial_interval_s: float = Field(default=0.5, gt=0, description="First backoff interval")
    max_interval_s: float = Field(default=60.0, gt=0, description="Largest single interval")
    multiplier: float = Field(default=1.5, ge=1, description="Interval growth factor")
    randomization_factor: float = Field(
        default=0.5, ge=0, le=1, description="Jitter fraction applied to each interval"
    )
    policy_name: str | None = Field(
        default=None, description="Named YAML policy overriding the values above"
    )
    policies_root: Path | None = Field(
        default=None, description="Directory holding policy YAML files (packaged by default)"
    )

    @model_validator(mode="after")
    def _check_interval_order(self) -> Self:
        if self.max_interval_s < self.initial_interval_s:
            msg = (
                f"max_interval_s ({self.max_interval_s}) must be >= "
                f"initial_interval_s ({self.initial_interval_s})"
            )
            raise ValueError(msg)
        return self


class ObservabilityConfig(BaseSettings):
    """Logging configuration (``ARTIFACTS_*`` namespace)."""

    model_config = SettingsConfigDict(env_prefix="ARTIFACTS_", extra="forbid")

    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_file: str | None = Field(
        default="artifacts-gateway.log", description="Log file; stderr when unset or unwritable"
    )
    log_json: bool = Field(default=True, description="Emit one JSON object per log line")


class RuntimeSettings(BaseSettings):
    """All gateway settings; nested values use ``__``, e.g. ``ARTIFACTS_RETRY__MAX_RETRIES``."""

    model_config = SettingsConfigDict(
        env_prefix="ARTIFACTS_",
        env_nested_delimiter="__",
        extra="forbid",
        case_sensitive=False,
    )

    http: HttpConfig = Field(default_factory=HttpConfig, description="HTTP transport configuration")
    retry: RetryConfig = Field(default_factory=RetryConfig, description="Retry configuration")
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Observability configuration"
    )

    def __init__(self, **overrides: object) -> None:
        """Load and validate, converting pydantic errors to :class:`SettingsError`."""
        try:
            super().__init__(**overrides)  # type: ignore[arg-type]  # BaseSettings.__init__ accepts Any kwargs
        except ValidationError as exc:
            msg = f"invalid ARTIFACTS_* settings: {exc}"
            logger.exception(
                "rejecting invalid settings",
                extra={"error_type": type(exc).__name__},
            )
            raise SettingsError(
                msg,
                cause=exc,
                context={"validation_error": str(exc)},
            ) from exc

    def http_settings(self, service: str, base_url: str) -> HttpSettings:
        """Return client settings for ``service`` at ``base_url``."""
        return HttpSettings(
            service=service,
            base_url=base_url,
            read_timeout_s=self.http.read_timeout_s,
            connect_timeout_s=self.http.connect_timeout_s,
            max_body_bytes=self.http.max_body_bytes,
            drain_limit_bytes=self.http.drain_limit_bytes,
            insecure=self.http.insecure,
        )

    def retry_policy(self) -> RetryPolicyDoc:
        """Return the configured retry policy.

        Returns
        -------
        RetryPolicyDoc
            The named YAML policy when ``retry.policy_name`` is set, otherwise a
            policy built from the ``ARTIFACTS_RETRY_*`` values.

        Raises
        ------
        SettingsError
            If the named policy cannot be found, fails schema validation or has
            its wait intervals out of order.
        """
        cfg = self.retry
        if cfg.policy_name is None:
            return RetryPolicyDoc(
                name="settings",
                description=None,
                max_retries=cfg.max_retries,
                max_elapsed_s=cfg.max_elapsed_s,
                wait_initial_s=cfg.initial_interval_s,
                wait_max_s=cfg.max_interval_s,
                wait_multiplier=cfg.multiplier,
                wait_jitter=cfg.randomization_factor,
            )
        try:
            return PolicyRegistry(cfg.policies_root).get(cfg.policy_name)
        except (OSError, ValueError, yaml.YAMLError, jsonschema.ValidationError) as exc:
            msg = f"Failed to load retry policy {cfg.policy_name!r}: {exc}"
            raise SettingsError(msg, cause=exc, context={"policy_name": cfg.policy_name}) from exc


def load_settings(**overrides: object) -> RuntimeSettings:
    """Load :class:`RuntimeSettings` with optional overrides."""
    return RuntimeSettings(**overrides)
