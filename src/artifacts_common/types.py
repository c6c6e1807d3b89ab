"""Shared type aliases.

Kept free of package imports so that every module can depend on it.
"""

from __future__ import annotations

from collections.abc import Mapping

__all__ = ["Headers", "JsonScalar", "JsonValue"]

type JsonScalar = str | int | float | bool | None
type JsonValue = JsonScalar | list[JsonValue] | dict[str, JsonValue]

# Outbound header name -> value; names are unique, case preserved as given
type Headers = Mapping[str, str]
