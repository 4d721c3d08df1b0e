"""
camelCase shaping for API responses, built on Pydantic's alias_generators.
Only keys the service owns are converted; filer-supplied section data passes through as stored.
"""
from datetime import datetime
from typing import Any, Iterable

from pydantic.alias_generators import to_camel


def dict_keys_to_camel(obj: Any) -> Any:
    """Recursively convert dict keys from snake_case to camelCase."""
    if isinstance(obj, dict):
        return {to_camel(k): dict_keys_to_camel(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [dict_keys_to_camel(x) for x in obj]
    return obj


def row_to_camel(row: Any, columns: Iterable[str]) -> dict[str, Any]:
    """Read ``columns`` off an ORM row into a camelCase dict; datetimes become ISO strings."""
    out = {}
    for name in columns:
        value = getattr(row, name)
        if isinstance(value, datetime):
            value = value.isoformat()
        out[to_camel(name)] = value
    return out
