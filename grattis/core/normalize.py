"""Payload normalization applied once, at write time.

A payload value is one of three kinds:

- a string that looks like an ObjectId (24 hex characters), which is stored
  as a native ``ObjectId`` so the store can index and join on it
- any other string, stored as-is
- anything else (numbers, nested mappings, lists, existing ObjectIds),
  stored as-is

Only top-level values are inspected.
"""

import re
from collections.abc import Mapping
from typing import Any

from bson import ObjectId

OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


def looks_like_object_id(value: str) -> bool:
    # fullmatch so a trailing newline does not slip past "$"
    return OBJECT_ID_PATTERN.fullmatch(value) is not None


def normalize_value(value: Any) -> Any:
    """Return the stored form of a single top-level payload value."""
    if isinstance(value, str) and looks_like_object_id(value):
        return ObjectId(value)
    return value


def normalize(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new payload dict with ObjectId-like strings converted.

    The input mapping is left untouched.

    Raises:
        TypeError: If ``payload`` is not a mapping or has non-string keys.
    """
    if not isinstance(payload, Mapping):
        raise TypeError(f"payload must be a mapping, got {type(payload).__name__}")

    normalized: dict[str, Any] = {}
    for key, value in payload.items():
        if not isinstance(key, str):
            raise TypeError(f"payload keys must be strings, found {type(key).__name__}: {key!r}")
        normalized[key] = normalize_value(value)
    return normalized
