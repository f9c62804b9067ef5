"""Content hashes for widget definitions."""

from __future__ import annotations

import hashlib
from typing import Any

from .canonical_json import canonical_dumps

HASH_PREFIX = "sha256:"


def definition_hash(definition: Any) -> str:
    """Hash the canonical encoding, so key order never changes the result."""
    digest = hashlib.sha256(canonical_dumps(definition).encode("utf-8")).hexdigest()
    return HASH_PREFIX + digest
