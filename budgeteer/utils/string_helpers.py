"""
String Helpers: Key and Value Normalisation.

Bulk payloads arrive from other clients with camelCase keys
(``tenantId``), PascalCase keys, or padded string values.  Every key and
value crossing the import boundary passes through here before it reaches
the models.
"""

from __future__ import annotations

import re
from typing import Union, overload

__all__ = [
    "JsonValue",
    "normalize_keys",
    "normalize_value",
    "to_snake_case",
]

# ---------------------------------------------------------------------------
# Recursive JSON value type
# ---------------------------------------------------------------------------

JsonValue = Union[
    str,
    int,
    float,
    bool,
    None,
    dict[str, "JsonValue"],
    list["JsonValue"],
]

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns
# ---------------------------------------------------------------------------

# "IDValue" -> "ID_Value"
_RE_UPPER_RUN = re.compile(r"([A-Z]+)([A-Z][a-z])")

# "tenantId" -> "tenant_Id"
_RE_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")

_RE_MULTI_UNDERSCORE = re.compile(r"_+")


def to_snake_case(name: str) -> str:
    """Convert a camelCase, PascalCase, or mixed-case string to snake_case.

    Examples::

        tenantId           -> tenant_id
        nextOccurrenceDate -> next_occurrence_date
        IsDeleted          -> is_deleted
        transfer_account_id (unchanged)
    """
    s1 = _RE_UPPER_RUN.sub(r"\1_\2", name.strip())
    s2 = _RE_CAMEL_BOUNDARY.sub(r"\1_\2", s1)
    s3 = _RE_MULTI_UNDERSCORE.sub("_", s2.replace(" ", "_").replace("-", "_"))
    return s3.lower()


@overload
def normalize_keys(data: dict[str, JsonValue]) -> dict[str, JsonValue]: ...


@overload
def normalize_keys(data: list[JsonValue]) -> list[JsonValue]: ...


@overload
def normalize_keys(data: JsonValue) -> JsonValue: ...


def normalize_keys(
    data: Union[dict[str, JsonValue], list[JsonValue], JsonValue],
) -> Union[dict[str, JsonValue], list[JsonValue], JsonValue]:
    """Recursively convert all dictionary keys to snake_case."""
    if isinstance(data, dict):
        return {to_snake_case(k): normalize_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [normalize_keys(item) for item in data]
    return data


def normalize_value(value: JsonValue) -> JsonValue:
    """Trim string values; blank strings become ``None``.

    Non-string values pass through untouched.
    """
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else None
    return value
