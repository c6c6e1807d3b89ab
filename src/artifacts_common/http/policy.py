"""Named retry policies stored as YAML.

A policy file ``<name>.yaml`` fixes the retry count, the backoff's elapsed-time budget and the
shape of its waits. Files are checked against ``policy.schema.json`` before use. The packaged
policies live in ``policies/`` next to this module.

Examples
--------
>>> from artifacts_common.http.policy import PolicyRegistry
>>> policy = PolicyRegistry().get("default")
>>> policy.max_retries
5
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import cache
from pathlib import Path
from typing import TYPE_CHECKING, Any

import jsonschema
import yaml

from artifacts_common.errors import SettingsError
from artifacts_common.http.backoff import (
    DEFAULT_INITIAL_INTERVAL_S,
    DEFAULT_MAX_INTERVAL_S,
    DEFAULT_MULTIPLIER,
    DEFAULT_RANDOMIZATION_FACTOR,
    ExponentialBackoff,
)

if TYPE_CHECKING:
    from numpy.random import Generator

    from artifacts_common.http.cancellation import CancelScope

__all__ = ["DEFAULT_POLICIES_ROOT", "PolicyRegistry", "RetryPolicyDoc", "load_policy"]

DEFAULT_POLICIES_ROOT = Path(__file__).with_name("policies")
_SCHEMA_PATH = Path(__file__).with_name("policy.schema.json")


@dataclass(frozen=True)
class RetryPolicyDoc:
    """How hard a call retries.

    Attributes
    ----------
    name : str
        File stem the policy was loaded from, or a synthetic name.
    description : str | None
        Free text shown to operators.
    max_retries : int
        Retries allowed after the first attempt.
    max_elapsed_s : float
        Elapsed-time budget of the backoff in seconds (0 disables the bound).
    ignore_status_code : bool
        Retry any outcome carrying an error, whatever its status.
    wait_initial_s, wait_max_s, wait_multiplier, wait_jitter : float
        First interval, largest interval, growth factor and jitter fraction of the backoff.
    """

    name: str
    description: str | None
    max_retries: int
    max_elapsed_s: float
    ignore_status_code: bool = False
    wait_initial_s: float = DEFAULT_INITIAL_INTERVAL_S
    wait_max_s: float = DEFAULT_MAX_INTERVAL_S
    wait_multiplier: float = DEFAULT_MULTIPLIER
    wait_jitter: float = DEFAULT_RANDOMIZATION_FACTOR

    def build_backoff(
        self, scope: CancelScope | None = None, *, rng: Generator | None = None
    ) -> ExponentialBackoff:
        """Return a new backoff shaped by this policy.

        A backoff carries its own clock start and interval, so every call needs its own.
        """
        return ExponentialBackoff(
            self.max_elapsed_s,
            scope=scope,
            initial_interval_s=self.wait_initial_s,
            multiplier=self.wait_multiplier,
            max_interval_s=self.wait_max_s,
            randomization_factor=self.wait_jitter,
            rng=rng,
        )


@cache
def _read_schema(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def load_policy(path: Path, schema_path: Path | None = None) -> RetryPolicyDoc:
    """Read one policy file.

    Parameters
    ----------
    path : Path
        YAML document to read.
    schema_path : Path | None, optional
        JSON schema the document must satisfy; skipped when None or missing. Defaults to None.

    Returns
    -------
    RetryPolicyDoc
        The parsed policy.

    Raises
    ------
    OSError
        If the file cannot be read.
    yaml.YAMLError
        If the file is not YAML.
    jsonschema.ValidationError
        If the document violates the schema.
    SettingsError
        If ``wait.max_s`` is smaller than ``wait.initial_s``.
    """
    doc = yaml.safe_load(path.read_text(encoding="utf-8"))
    if schema_path is not None and schema_path.exists():
        jsonschema.validate(doc, _read_schema(schema_path))
    wait = doc["wait"]
    if float(wait["max_s"]) < float(wait["initial_s"]):
        msg = f"policy {doc['name']!r}: wait.max_s must be >= wait.initial_s"
        raise SettingsError(msg, context={"policy": str(path)})
    return RetryPolicyDoc(
        name=doc["name"],
        description=doc.get("description"),
        max_retries=int(doc["max_retries"]),
        max_elapsed_s=float(doc["stop"]["after_delay_s"]),
        ignore_status_code=bool(doc.get("ignore_status_code", False)),
        wait_initial_s=float(wait["initial_s"]),
        wait_max_s=float(wait["max_s"]),
        wait_multiplier=float(wait.get("multiplier", DEFAULT_MULTIPLIER)),
        wait_jitter=float(wait.get("jitter", DEFAULT_RANDOMIZATION_FACTOR)),
    )


class PolicyRegistry:
    """Look policies up by name in one directory.

    Parameters
    ----------
    root : Path | None, optional
        Directory of ``<name>.yaml`` files. Defaults to the packaged policies.
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = root or DEFAULT_POLICIES_ROOT

    def get(self, name: str) -> RetryPolicyDoc:
        """Return the policy stored as ``<root>/<name>.yaml``.

        Raises
        ------
        FileNotFoundError
            If there is no such file.
        jsonschema.ValidationError
            If the file violates the policy schema.
        SettingsError
            If its wait intervals are out of order.
        """
        path = self.root / f"{name}.yaml"
        if not path.is_file():
            raise FileNotFoundError(path)
        return load_policy(path, _SCHEMA_PATH)
