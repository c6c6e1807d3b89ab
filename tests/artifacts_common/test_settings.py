"""Tests for artifacts_common.settings module.

Tests cover settings loading, environment variable overrides, fail-fast
validation, and the derived HTTP settings and retry policy.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from artifacts_common.errors import ErrorCode, SettingsError
from artifacts_common.settings import (
    HttpConfig,
    ObservabilityConfig,
    RetryConfig,
    RuntimeSettings,
    load_settings,
)


class TestHttpConfig:
    """Tests for HttpConfig."""

    def test_defaults(self) -> None:
        """HttpConfig uses correct defaults."""
        config = HttpConfig()
        assert config.connect_timeout_s == 10.0
        assert config.read_timeout_s == 30.0
        assert config.max_body_bytes == 1 << 20
        assert config.drain_limit_bytes == 4096
        assert config.insecure is False

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """HttpConfig loads from ARTIFACTS_HTTP_* variables."""
        monkeypatch.setenv("ARTIFACTS_HTTP_READ_TIMEOUT_S", "5")
        monkeypatch.setenv("ARTIFACTS_HTTP_INSECURE", "true")
        config = HttpConfig()
        assert config.read_timeout_s == 5.0
        assert config.insecure is True

    def test_extra_fields_forbidden(self) -> None:
        """HttpConfig rejects unknown fields."""
        with pytest.raises(ValueError, match="Extra inputs are not permitted"):
            HttpConfig(unknown_field="value")  # type: ignore[call-arg]  # Intentionally invalid


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_defaults(self) -> None:
        """RetryConfig defaults to five retries within ten seconds."""
        config = RetryConfig()
        assert config.max_retries == 5
        assert config.max_elapsed_s == 10.0
        assert config.initial_interval_s == 0.5
        assert config.max_interval_s == 60.0
        assert config.multiplier == 1.5
        assert config.randomization_factor == 0.5
        assert config.policy_name is None

    def test_max_interval_below_initial_rejected(self) -> None:
        """max_interval_s may not be smaller than initial_interval_s."""
        with pytest.raises(ValueError, match="max_interval_s"):
            RetryConfig(initial_interval_s=5, max_interval_s=1)

    def test_equal_intervals_accepted(self) -> None:
        """A constant backoff (initial equal to max) is valid."""
        config = RetryConfig(initial_interval_s=2, max_interval_s=2)
        assert config.max_interval_s == config.initial_interval_s


class TestObservabilityConfig:
    """Tests for ObservabilityConfig."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """ObservabilityConfig uses correct defaults."""
        monkeypatch.delenv("ARTIFACTS_LOG_FILE", raising=False)
        config = ObservabilityConfig()
        assert config.log_level == "INFO"
        assert config.log_file == "artifacts-gateway.log"
        assert config.log_json is True


class TestRuntimeSettings:
    """Tests for RuntimeSettings."""

    def test_defaults(self) -> None:
        """RuntimeSettings aggregates the nested configs."""
        settings = RuntimeSettings()
        assert isinstance(settings.http, HttpConfig)
        assert isinstance(settings.retry, RetryConfig)
        assert isinstance(settings.observability, ObservabilityConfig)

    def test_nested_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Nested values can be set with the __ delimiter."""
        monkeypatch.setenv("ARTIFACTS_RETRY__MAX_RETRIES", "2")
        settings = RuntimeSettings()
        assert settings.retry.max_retries == 2

    def test_invalid_value_fails_fast(self) -> None:
        """Invalid values raise SettingsError with Problem Details."""
        with pytest.raises(SettingsError) as exc_info:
            RuntimeSettings(retry={"max_retries": -1})
        problem = exc_info.value.to_problem_details()
        assert problem["code"] == ErrorCode.CONFIGURATION_ERROR.value
        assert problem["status"] == 500

    def test_inverted_intervals_fail_fast(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Out-of-order backoff intervals are rejected when settings load."""
        monkeypatch.setenv("ARTIFACTS_RETRY__INITIAL_INTERVAL_S", "5")
        monkeypatch.setenv("ARTIFACTS_RETRY__MAX_INTERVAL_S", "1")
        with pytest.raises(SettingsError, match="max_interval_s"):
            RuntimeSettings()

    def test_load_settings(self) -> None:
        """load_settings returns RuntimeSettings."""
        assert isinstance(load_settings(), RuntimeSettings)

    def test_http_settings(self) -> None:
        """http_settings carries the transport configuration."""
        settings = RuntimeSettings(http=HttpConfig(read_timeout_s=3.0, drain_limit_bytes=10))
        http = settings.http_settings("docker-registry", "https://r.test")
        assert http.service == "docker-registry"
        assert http.base_url == "https://r.test"
        assert http.read_timeout_s == 3.0
        assert http.drain_limit_bytes == 10


class TestRetryPolicy:
    """Tests for RuntimeSettings.retry_policy."""

    def test_from_retry_config(self) -> None:
        """Without a policy name the ARTIFACTS_RETRY_* values are used."""
        settings = RuntimeSettings(retry=RetryConfig(max_retries=3, max_elapsed_s=4.0))
        policy = settings.retry_policy()
        assert policy.max_retries == 3
        assert policy.max_elapsed_s == 4.0
        assert policy.ignore_status_code is False

    def test_named_policy(self) -> None:
        """A policy name loads the packaged YAML document."""
        settings = RuntimeSettings(retry=RetryConfig(policy_name="default"))
        assert settings.retry_policy().name == "default"

    def test_inverted_named_policy(self, tmp_path: Path) -> None:
        """A named policy whose wait ceiling is below its first wait raises SettingsError."""
        (tmp_path / "inverted.yaml").write_text(
            "name: inverted\nmax_retries: 1\nstop: {after_delay_s: 1}\n"
            "wait: {kind: exponential, initial_s: 5, max_s: 1}\n",
            encoding="utf-8",
        )
        settings = RuntimeSettings(
            retry=RetryConfig(policy_name="inverted", policies_root=tmp_path)
        )
        with pytest.raises(SettingsError, match="wait.max_s"):
            settings.retry_policy()

    def test_unknown_policy(self) -> None:
        """An unknown policy name raises SettingsError."""
        settings = RuntimeSettings(retry=RetryConfig(policy_name="nope"))
        with pytest.raises(SettingsError, match="nope"):
            settings.retry_policy()
