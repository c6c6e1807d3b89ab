"""RFC 9457 payloads emitted by the gateway.

Every payload is checked against ``schema/problem_details.json`` before it leaves the process, so
HTTP responses and CLI output share one shape.

Examples
--------
>>> from artifacts_common.problem_details import build_problem_details
>>> problem = build_problem_details(
...     problem_type="https://artifacts-gateway.dev/problems/invalid-request",
...     title="InvalidRequestError",
...     status=400,
...     detail="invalid payload",
...     instance="/",
... )
>>> problem["status"]
400
"""

from __future__ import annotations

import json
from functools import cache
from pathlib import Path
from typing import TYPE_CHECKING, NotRequired, TypedDict, cast

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from artifacts_common.types import JsonValue

__all__ = [
    "ProblemDetails",
    "ProblemDetailsValidationError",
    "build_problem_details",
    "render_problem",
    "validate_problem_details",
]

SCHEMA_PATH = Path(__file__).parent / "schema" / "problem_details.json"


class ProblemDetails(TypedDict):
    """Problem Details members produced by the gateway."""

    type: str
    title: str
    status: int
    detail: str
    instance: str
    code: NotRequired[str]
    extensions: NotRequired[dict[str, JsonValue]]


class ProblemDetailsValidationError(Exception):
    """A payload, or the packaged schema itself, is not acceptable.

    Attributes
    ----------
    validation_errors : list[str]
        Violated constraints, with the offending path when known.
    """

    def __init__(self, message: str, validation_errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.validation_errors = list(validation_errors or ())


@cache
def _schema_validator() -> Draft202012Validator:
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        Draft202012Validator.check_schema(schema)
    except (OSError, json.JSONDecodeError, SchemaError) as exc:
        msg = f"cannot use problem details schema {SCHEMA_PATH.name}: {exc}"
        raise ProblemDetailsValidationError(msg) from exc
    return Draft202012Validator(schema)


def validate_problem_details(payload: Mapping[str, JsonValue]) -> None:
    """Check ``payload`` against the packaged schema.

    Raises
    ------
    ProblemDetailsValidationError
        On the first violated constraint.
    """
    try:
        _schema_validator().validate(payload)
    except ValidationError as exc:
        errors = [exc.message]
        location = "/".join(str(part) for part in exc.absolute_path)
        if location:
            errors.append(f"at /{location}")
        msg = "invalid problem details: " + ", ".join(errors)
        raise ProblemDetailsValidationError(msg, validation_errors=errors) from exc


def build_problem_details(  # noqa: PLR0913 - one argument per RFC 9457 member
    *,
    problem_type: str,
    title: str,
    status: int,
    detail: str,
    instance: str,
    code: str | None = None,
    extensions: Mapping[str, JsonValue] | None = None,
) -> ProblemDetails:
    """Assemble and validate a Problem Details payload.

    Parameters
    ----------
    problem_type : str
        Type URI, see :func:`artifacts_common.errors.get_type_uri`.
    title : str
        Short summary, usually the exception class name.
    status : int
        HTTP status of the occurrence.
    detail : str
        Explanation of this occurrence.
    instance : str
        Request path or URN of the occurrence.
    code : str | None, optional
        Stable error code. Defaults to None.
    extensions : Mapping[str, JsonValue] | None, optional
        Extra context; omitted when empty. Defaults to None.

    Returns
    -------
    ProblemDetails
        The validated payload.

    Raises
    ------
    ProblemDetailsValidationError
        If the assembled payload violates the schema.
    """
    problem: ProblemDetails = {
        "type": problem_type,
        "title": title,
        "status": status,
        "detail": detail,
        "instance": instance,
    }
    if code is not None:
        problem["code"] = code
    if extensions:
        problem["extensions"] = dict(extensions)
    validate_problem_details(cast("Mapping[str, JsonValue]", problem))
    return problem


def render_problem(problem: ProblemDetails) -> str:
    """Return ``problem`` as compact JSON with sorted keys."""
    return json.dumps(problem, sort_keys=True, default=str)
