"""
Dotted key-path helpers over a section's nested data map.

Values are a closed variant: str | int | float | bool | date | list | nested map,
plus None for a cleared field. Dates are stored as ISO-8601 strings.
"""
from __future__ import annotations

import copy
import math
from datetime import date, datetime
from typing import Any

from exceptions import ValidationError

MAX_PATH_DEPTH = 16


def split_path(field_path: str) -> list[str]:
    """Split ``a.b.c`` into segments, rejecting empty or over-deep paths."""
    if not isinstance(field_path, str) or not field_path.strip():
        raise ValidationError("fieldPath is required")
    parts = field_path.split(".")
    if any(not p.strip() for p in parts):
        raise ValidationError(f"Invalid field path '{field_path}'")
    if len(parts) > MAX_PATH_DEPTH:
        raise ValidationError(f"Field path '{field_path}' is nested too deeply")
    return parts


def normalize_value(value: Any) -> Any:
    """Coerce a value into the storable variant or raise ValidationError."""
    if value is None or isinstance(value, (bool, str, int)):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValidationError("Numeric field values must be finite")
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if not isinstance(k, str) or not k or "." in k:
                raise ValidationError(f"Invalid nested field name {k!r}")
            out[k] = normalize_value(v)
        return out
    raise ValidationError(f"Unsupported field value type: {type(value).__name__}")


def get_path(data: dict[str, Any], field_path: str, default: Any = None) -> Any:
    current: Any = data
    for key in split_path(field_path):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default
    return current


def set_path(data: dict[str, Any], field_path: str, value: Any) -> dict[str, Any]:
    """
    Return a copy of ``data`` with ``value`` merged in at ``field_path``.
    Missing intermediate maps are created; a non-map intermediate is replaced by a map.
    """
    keys = split_path(field_path)
    out = copy.deepcopy(data) if data else {}
    current = out
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = normalize_value(value)
    return out


def flatten_leaves(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested maps to ``{dotted.path: leaf}``. Lists are leaves."""
    flat: dict[str, Any] = {}
    for key, value in (data or {}).items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            flat.update(flatten_leaves(value, path))
        else:
            flat[path] = value
    return flat


def is_filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, dict)):
        return len(value) > 0
    return True


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
