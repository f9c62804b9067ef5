"""Dot-segmented event names and single-segment ``*`` patterns.

``"order.*"`` matches ``"order.created"`` but not ``"order"`` or
``"order.line.added"``: a pattern matches only names with the same number of
segments, and ``*`` stands for exactly one segment.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Tuple

WILDCARD = "*"


@lru_cache(maxsize=1024)
def _split(value: str) -> Tuple[str, ...]:
    return tuple(value.split("."))


def is_valid_name(name: Any) -> bool:
    if not isinstance(name, str) or not name:
        return False
    return all(seg and WILDCARD not in seg for seg in _split(name))


def is_valid_pattern(pattern: Any) -> bool:
    if not isinstance(pattern, str) or not pattern:
        return False
    return all(seg and (seg == WILDCARD or WILDCARD not in seg) for seg in _split(pattern))


def pattern_matches(pattern: str, name: str) -> bool:
    pattern_parts = _split(pattern)
    name_parts = _split(name)
    if len(pattern_parts) != len(name_parts):
        return False
    return all(p == WILDCARD or p == n for p, n in zip(pattern_parts, name_parts))
