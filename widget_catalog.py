"""In-memory catalog of validated widget definitions."""

from __future__ import annotations

import copy
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List

from definition_validate import validate_definition
from meshkit.canonical_json import CanonicalJsonTypeError
from meshkit.definition_hash import definition_hash

logger = logging.getLogger("widgets.catalog")

Issue = Dict[str, Any]

_WIDGET_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]*$")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def is_valid_widget_id(widget_id: Any) -> bool:
    return isinstance(widget_id, str) and bool(_WIDGET_ID_RE.match(widget_id))


def parse_definition(text: Any) -> dict:
    """Parse a JSON definition document and validate it."""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    if not isinstance(text, str):
        return {"ok": False, "definition": None, "errors": [_issue("DEFINITION_PARSE_FAILED", "definition must be JSON text")], "warnings": []}
    try:
        definition = json.loads(text)
    except json.JSONDecodeError as exc:
        return {
            "ok": False,
            "definition": None,
            "errors": [_issue("DEFINITION_PARSE_FAILED", exc.msg, None, {"line": exc.lineno, "column": exc.colno})],
            "warnings": [],
        }
    result = validate_definition(definition)
    return {"ok": result["valid"], "definition": definition, "errors": result["errors"], "warnings": result["warnings"]}


class DefinitionCatalog:
    def __init__(self) -> None:
        self._records: Dict[str, dict] = {}

    def register(self, widget_id: str, definition: dict) -> dict:
        if not is_valid_widget_id(widget_id):
            errors = [_issue("WIDGET_ID_INVALID", "widget_id must be alphanumeric with '-' or '_'", "widget_id")]
            return {"ok": False, "errors": errors, "warnings": [], "widget_id": widget_id, "definition_hash": None}
        result = validate_definition(definition)
        if not result["valid"]:
            logger.warning("definition_rejected widget_id=%s errors=%s", widget_id, [e["message"] for e in result["errors"]])
            return {"ok": False, "errors": result["errors"], "warnings": result["warnings"], "widget_id": widget_id, "definition_hash": None}
        try:
            digest = definition_hash(definition)
        except (CanonicalJsonTypeError, ValueError) as exc:
            errors = [_issue("DEFINITION_NOT_JSON", str(exc), "definition")]
            return {"ok": False, "errors": errors, "warnings": result["warnings"], "widget_id": widget_id, "definition_hash": None}
        existing = self._records.get(widget_id)
        if existing is not None and existing["definition_hash"] == digest:
            logger.debug("definition_unchanged widget_id=%s hash=%s", widget_id, digest)
            return {"ok": True, "errors": [], "warnings": result["warnings"], "widget_id": widget_id, "definition_hash": digest}
        replaced = existing is not None
        self._records[widget_id] = {
            "widget_id": widget_id,
            "definition": copy.deepcopy(definition),
            "definition_hash": digest,
            "registered_at": _now(),
        }
        logger.info("definition_registered widget_id=%s hash=%s replaced=%s", widget_id, digest, replaced)
        return {"ok": True, "errors": [], "warnings": result["warnings"], "widget_id": widget_id, "definition_hash": digest}

    def register_json(self, widget_id: str, text: str) -> dict:
        parsed = parse_definition(text)
        if not parsed["ok"]:
            logger.warning("definition_rejected widget_id=%s errors=%s", widget_id, [e["message"] for e in parsed["errors"]])
            return {"ok": False, "errors": parsed["errors"], "warnings": parsed["warnings"], "widget_id": widget_id, "definition_hash": None}
        return self.register(widget_id, parsed["definition"])

    def get(self, widget_id: str) -> dict | None:
        if not is_valid_widget_id(widget_id):
            logger.warning("definition_id_invalid widget_id=%r", widget_id)
            return None
        record = self._records.get(widget_id)
        if record is None:
            logger.warning("definition_not_found widget_id=%s", widget_id)
            return None
        return copy.deepcopy(record["definition"])

    def get_hash(self, widget_id: str) -> str | None:
        record = self._records.get(widget_id)
        return record["definition_hash"] if record else None

    def exists(self, widget_id: str) -> bool:
        return widget_id in self._records

    def remove(self, widget_id: str) -> bool:
        removed = self._records.pop(widget_id, None) is not None
        if removed:
            logger.info("definition_removed widget_id=%s", widget_id)
        return removed

    def list(self) -> List[dict]:
        items = []
        for widget_id in sorted(self._records):
            record = self._records[widget_id]
            metadata = record["definition"].get("metadata") or {}
            items.append(
                {
                    "id": widget_id,
                    "name": metadata.get("name"),
                    "description": metadata.get("description"),
                    "category": metadata.get("category"),
                    "definition_hash": record["definition_hash"],
                    "registered_at": record["registered_at"],
                }
            )
        return items
