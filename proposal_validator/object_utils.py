"""
Dot-path helpers over plain trees of dicts and lists.

Shared by normalization, condition checks, transformer application and
ignore-aware comparison. Paths look like ``mutationVariables.data.effectiveDate``
and may index lists with ``items[0]``.

A missing segment is never an error: reads return ``None`` / ``False``.
"""

from __future__ import annotations

import copy
import math
import re
from typing import Any

_INDEXED_SEGMENT = re.compile(r"^(.+)\[(\d+)\]$")

_MISSING = object()


def _split(path: str) -> list[tuple[str, int | None]]:
    """'a.items[2].b' → [('a', None), ('items', 2), ('b', None)]"""
    segments: list[tuple[str, int | None]] = []
    for part in path.split("."):
        match = _INDEXED_SEGMENT.match(part)
        if match:
            segments.append((match.group(1), int(match.group(2))))
        else:
            segments.append((part, None))
    return segments


def _step(current: Any, key: str, index: int | None) -> Any:
    if not isinstance(current, dict) or key not in current:
        return _MISSING
    current = current[key]
    if index is None:
        return current
    if not isinstance(current, list) or index >= len(current):
        return _MISSING
    return current[index]


def get_value_at_path(obj: Any, path: str) -> Any:
    """Value at ``path``, or None if any segment is missing."""
    if obj is None or not path:
        return None

    current = obj
    for key, index in _split(path):
        current = _step(current, key, index)
        if current is _MISSING:
            return None
    return current


def has_value_at_path(obj: Any, path: str) -> bool:
    """True if every segment of ``path`` exists, even when the value is None."""
    if obj is None or not path:
        return False

    current = obj
    for key, index in _split(path):
        current = _step(current, key, index)
        if current is _MISSING:
            return False
    return True


def set_value_at_path(obj: dict[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Write ``value`` at ``path`` in place, creating intermediate containers.

    Non-dict intermediates (including None) are replaced by empty dicts.
    """
    if not path:
        return obj

    segments = _split(path)
    current: Any = obj

    for position, (key, index) in enumerate(segments):
        is_last = position == len(segments) - 1

        if index is None:
            if is_last:
                current[key] = value
                break
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
            continue

        if not isinstance(current.get(key), list):
            current[key] = []
        items = current[key]
        while len(items) <= index:
            items.append(None)
        if is_last:
            items[index] = value
            break
        if not isinstance(items[index], dict):
            items[index] = {}
        current = items[index]

    return obj


def path_matches_pattern(path: str, pattern: str) -> bool:
    """Match a dot-path against an ignore/transformer pattern.

    Supports exact paths, ``prefix.*`` (the prefix itself and anything below
    it) and general ``*`` wildcards such as ``*.timestamp``.
    """
    if path == pattern:
        return True

    if pattern.endswith(".*"):
        prefix = pattern[:-2]
        if path == prefix or path.startswith(f"{prefix}."):
            return True

    if "*" not in pattern:
        return False

    # Only "*" is special; brackets in "items[0]" are literal.
    wildcard = re.escape(pattern).replace(r"\*", ".*")
    return re.fullmatch(wildcard, path) is not None


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def same_value(a: Any, b: Any) -> bool:
    """Type-strict equality. Ints and floats compare numerically and NaN equals NaN."""
    if a is b:
        return True
    if is_number(a) and is_number(b):
        if a == b:
            return True
        return isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b)
    return type(a) is type(b) and a == b


def deep_clone(obj: Any) -> Any:
    return copy.deepcopy(obj)
