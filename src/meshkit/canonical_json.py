"""Plain-JSON checks and canonical encoding.

Widget definitions are hashed from their canonical encoding, and event
payloads must be plain JSON before they are published. Both go through the
same walk so a value accepted by one is accepted by the other.
"""

from __future__ import annotations

import json
import math
from typing import Any, Iterator, Tuple

_SCALARS = (str, int, bool)


class CanonicalJsonTypeError(TypeError):
    """Raised when a value holds something other than plain JSON data."""


def _children(obj: Any, path: str) -> Iterator[Tuple[Any, str]]:
    if isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalJsonTypeError(f"{path}: object keys must be strings, got {type(key).__name__}")
            yield value, f"{path}.{key}"
    else:
        for idx, item in enumerate(obj):
            yield item, f"{path}[{idx}]"


def ensure_json_value(obj: Any, path: str = "$") -> None:
    """Raise if ``obj`` is not made of dicts, lists, strings, finite numbers, booleans and None."""
    stack = [(obj, path)]
    while stack:
        value, where = stack.pop()
        if value is None or isinstance(value, _SCALARS):
            continue
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError(f"{where}: non-finite number {value!r}")
            continue
        if isinstance(value, (dict, list, tuple)):
            stack.extend(_children(value, where))
            continue
        raise CanonicalJsonTypeError(f"{where}: unsupported type {type(value).__name__}")


def canonical_dumps(obj: Any) -> str:
    """Encode ``obj`` with sorted keys, no whitespace and non-ASCII kept as-is."""
    ensure_json_value(obj)
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
