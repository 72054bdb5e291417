"""Recursive JSON value type and total accessors over decoded objects.

Every accessor returns ``None`` (or an empty default) when the key is
missing or holds the wrong type, so callers never need ``try``/``except``
around field extraction.
"""

from __future__ import annotations

import json
from typing import TypeAlias

from pydantic import JsonValue

#: A JSON value: str, int, float, bool, None, list or dict, recursively.
JSONValue: TypeAlias = JsonValue

#: A decoded JSON object.
JSONObject: TypeAlias = dict[str, JsonValue]


def parse_object(text: str) -> JSONObject | None:
    """Parse *text* as a JSON object, or return ``None``."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, RecursionError):
        return None
    return data if isinstance(data, dict) else None


def get_str(obj: JSONObject, key: str) -> str | None:
    value = obj.get(key)
    return value if isinstance(value, str) else None


def get_int(obj: JSONObject, key: str) -> int | None:
    """Return an integer field; booleans and floats do not qualify."""
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def get_bool(obj: JSONObject, key: str) -> bool | None:
    value = obj.get(key)
    return value if isinstance(value, bool) else None


def get_object(obj: JSONObject, key: str) -> JSONObject | None:
    value = obj.get(key)
    return value if isinstance(value, dict) else None


def get_list(obj: JSONObject, key: str) -> list[JSONValue]:
    value = obj.get(key)
    return value if isinstance(value, list) else []


def get_str_list(obj: JSONObject, key: str) -> list[str]:
    """Return the string items of a list field, dropping anything else."""
    return [item for item in get_list(obj, key) if isinstance(item, str)]
