"""Shared serialization helpers for the widget runtime."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps, ensure_json_value
from .definition_hash import HASH_PREFIX, definition_hash

__all__ = [
    "CanonicalJsonTypeError",
    "HASH_PREFIX",
    "canonical_dumps",
    "definition_hash",
    "ensure_json_value",
]
