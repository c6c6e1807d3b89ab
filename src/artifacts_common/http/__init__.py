"""Resilient outbound HTTP requests.

This package provides an HttpClient that performs single request/response exchanges, a
RetryCoordinator that repeats them under an exponential backoff bounded by elapsed time, and
CancelScope for cooperative cancellation of both the transport and the backoff sleep.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from artifacts_common.http.backoff import STOP, ExponentialBackoff
from artifacts_common.http.cancellation import CancelScope
from artifacts_common.http.client import HttpClient, HttpSettings
from artifacts_common.http.errors import (
    RETRYABLE_STATUS_FLOOR,
    CancellationError,
    DeadlineExceededError,
    DecodeError,
    HttpError,
    HttpStatusError,
    OperationCancelledError,
    TransportError,
    TransportTimeoutError,
)
from artifacts_common.http.policy import PolicyRegistry, RetryPolicyDoc
from artifacts_common.http.tenacity_retry import RetryCoordinator, is_retryable
from artifacts_common.http.types import Outcome, RequestDescriptor

if TYPE_CHECKING:
    from pathlib import Path

    import httpx

__all__ = [
    "RETRYABLE_STATUS_FLOOR",
    "STOP",
    "CancelScope",
    "CancellationError",
    "DeadlineExceededError",
    "DecodeError",
    "ExponentialBackoff",
    "HttpClient",
    "HttpError",
    "HttpSettings",
    "HttpStatusError",
    "OperationCancelledError",
    "Outcome",
    "PolicyRegistry",
    "RequestDescriptor",
    "RetryCoordinator",
    "RetryPolicyDoc",
    "TransportError",
    "TransportTimeoutError",
    "is_retryable",
    "make_client_with_policy",
]


def make_client_with_policy(
    service: str,
    base_url: str,
    policy_name: str,
    policies_root: Path | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpClient:
    """Create HTTP client with retry policy loaded from file.

    Parameters
    ----------
    service : str
        Service name for logging.
    base_url : str
        Base URL for all requests.
    policy_name : str
        Name of retry policy to load (without .yaml extension).
    policies_root : Path | None, optional
        Directory containing policy YAML files. Defaults to the packaged policies.
    transport : httpx.AsyncBaseTransport | None, optional
        Transport override. Defaults to None.

    Returns
    -------
    HttpClient
        Configured HTTP client whose :meth:`HttpClient.request` retries per the policy.
    """
    reg = PolicyRegistry(policies_root)
    pol = reg.get(policy_name)
    return HttpClient(
        settings=HttpSettings(service=service, base_url=base_url),
        transport=transport,
        policy=pol,
    )
