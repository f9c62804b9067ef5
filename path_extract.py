"""Restricted path extraction over plain JSON data.

Grammar::

    path      := "$" segment* | identifier segment*
    segment   := "." identifier | "[" digits "]" | "[*]"

Only dict keys and list indices are followed. Python attributes are never
looked up, so a path cannot reach an object's methods or dunders. ``[*]``
returns the array it is applied to and ignores the rest of the path.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Tuple

logger = logging.getLogger("widgets.path")

Segment = Tuple[str, Any]

_HEAD_RE = re.compile(r"[\w\-]+")
_SEGMENT_RE = re.compile(r"\.([\w\-]+)|\[([0-9]+|\*)\]")


@dataclass
class PathSyntaxError(Exception):
    message: str
    path: str
    position: int = 0

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.message} (path={self.path!r}, position={self.position})"


@lru_cache(maxsize=1024)
def _parse(path: str) -> Tuple[Segment, ...]:
    if path == "":
        raise PathSyntaxError("path must not be empty", path)
    segments: list[Segment] = []
    if path.startswith("$"):
        pos = 1
    else:
        head = _HEAD_RE.match(path)
        if not head:
            raise PathSyntaxError("path must start with '$' or an identifier", path)
        segments.append(("key", head.group(0)))
        pos = head.end()
    while pos < len(path):
        match = _SEGMENT_RE.match(path, pos)
        if not match:
            raise PathSyntaxError("unexpected character", path, pos)
        key, index = match.group(1), match.group(2)
        if key is not None:
            segments.append(("key", key))
        elif index == "*":
            segments.append(("all", None))
        else:
            segments.append(("index", int(index)))
        pos = match.end()
    return tuple(segments)


def parse_path(path: Any) -> Tuple[Segment, ...]:
    """Parse ``path`` into ``("key", name)``, ``("index", n)`` and ``("all", None)`` segments."""
    if not isinstance(path, str):
        raise PathSyntaxError("path must be a string", repr(path))
    return _parse(path)


def is_valid_path(path: Any) -> bool:
    try:
        parse_path(path)
    except PathSyntaxError:
        return False
    return True


def walk(value: Any, segments: Tuple[Segment, ...]) -> Any:
    current = value
    for kind, arg in segments:
        if current is None:
            return None
        if kind == "key":
            if not isinstance(current, dict):
                return None
            current = current.get(arg)
        elif kind == "index":
            if not isinstance(current, list) or arg >= len(current):
                return None
            current = current[arg]
        else:
            return current if isinstance(current, list) else None
    return current


def extract(record: Any, path: Any) -> Any:
    """Return the value at ``path`` inside ``record``, or None when it cannot be resolved."""
    try:
        segments = parse_path(path)
    except PathSyntaxError as exc:
        logger.debug("path_unparseable error=%s", exc)
        return None
    return walk(record, segments)
