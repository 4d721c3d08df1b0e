"""Shared utilities: response casing and section field paths."""
from utils.case import dict_keys_to_camel, row_to_camel
from utils.field_paths import flatten_leaves, get_path, is_filled, normalize_value, round_half_up, set_path, split_path

__all__ = [
    "dict_keys_to_camel",
    "row_to_camel",
    "flatten_leaves",
    "get_path",
    "is_filled",
    "normalize_value",
    "round_half_up",
    "set_path",
    "split_path",
]
