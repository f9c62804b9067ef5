"""Registry of widget types, their current versions and config migrations."""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

logger = logging.getLogger("widgets.registry")

Issue = Dict[str, Any]
Migration = Callable[[dict], dict]

DEFAULT_LAYOUT = {"x": 0, "y": 0, "w": 6, "h": 4}


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _is_version(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _layout_position(layout: Any, errors: List[Issue]) -> dict | None:
    if layout is None:
        return dict(DEFAULT_LAYOUT)
    if not isinstance(layout, dict):
        errors.append(_issue("INSTANCE_LAYOUT_INVALID", "layout must be object", "layout"))
        return None
    position = {}
    for key, default in DEFAULT_LAYOUT.items():
        value = layout.get(key)
        if value is None:
            value = default
        minimum = 1 if key in {"w", "h"} else 0
        if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
            errors.append(_issue("INSTANCE_LAYOUT_INVALID", f"layout.{key} must be an integer >= {minimum}", f"layout.{key}"))
            continue
        position[key] = value
    return position


class WidgetRegistry:
    def __init__(self) -> None:
        self._types: Dict[str, dict] = {}
        self._migrations: Dict[str, Dict[int, Migration]] = {}

    def register_type(
        self,
        widget_type: str,
        version: int = 1,
        name: str | None = None,
        description: str | None = None,
        default_config: dict | None = None,
    ) -> dict:
        errors: List[Issue] = []
        warnings: List[Issue] = []
        if not isinstance(widget_type, str) or not widget_type.strip():
            errors.append(_issue("WIDGET_TYPE_INVALID", "widget_type must be non-empty string", "widget_type"))
        if not _is_version(version):
            errors.append(_issue("WIDGET_VERSION_INVALID", "version must be a positive integer", "version"))
        if default_config is not None and not isinstance(default_config, dict):
            errors.append(_issue("WIDGET_DEFAULTS_INVALID", "default_config must be object", "default_config"))
        existing = self._types.get(widget_type) if not errors else None
        if existing is not None and version < existing["version"]:
            errors.append(
                _issue("WIDGET_VERSION_REGRESSION", "version must not decrease", "version", {"current": existing["version"]})
            )
        if errors:
            return {"ok": False, "errors": errors, "warnings": warnings, "widget_type": None}
        if existing is not None:
            warnings.append(_issue("WIDGET_TYPE_REPLACED", "widget type re-registered", "widget_type"))

        record = {
            "type": widget_type,
            "version": version,
            "name": name if name is not None else widget_type,
            "description": description if description is not None else "",
            "default_config": copy.deepcopy(default_config) if default_config is not None else {},
            "registered_at": _now(),
        }
        self._types[widget_type] = record
        self._migrations.setdefault(widget_type, {})
        logger.info("widget_type_registered type=%s version=%s", widget_type, version)
        return {"ok": True, "errors": errors, "warnings": warnings, "widget_type": copy.deepcopy(record)}

    def register_migration(self, widget_type: str, from_version: int, migration: Migration) -> dict:
        """Register the step that upgrades ``widget_type`` configs from ``from_version`` to ``from_version + 1``."""
        errors: List[Issue] = []
        warnings: List[Issue] = []
        if widget_type not in self._types:
            errors.append(_issue("WIDGET_TYPE_NOT_FOUND", "widget type not registered", "widget_type"))
        if not _is_version(from_version):
            errors.append(_issue("WIDGET_VERSION_INVALID", "from_version must be a positive integer", "from_version"))
        if not callable(migration):
            errors.append(_issue("MIGRATION_INVALID", "migration must be callable", "migration"))
        if errors:
            return {"ok": False, "errors": errors, "warnings": warnings}
        steps = self._migrations.setdefault(widget_type, {})
        if from_version in steps:
            warnings.append(_issue("MIGRATION_REPLACED", "migration step replaced", "from_version"))
        if from_version >= self._types[widget_type]["version"]:
            warnings.append(
                _issue("MIGRATION_BEYOND_CURRENT", "step starts at or after the current version", "from_version")
            )
        steps[from_version] = migration
        logger.info("migration_registered type=%s from=%s to=%s", widget_type, from_version, from_version + 1)
        return {"ok": True, "errors": errors, "warnings": warnings}

    def migration(self, widget_type: str, from_version: int) -> Migration | None:
        return self._migrations.get(widget_type, {}).get(from_version)

    def current_version(self, widget_type: str) -> int | None:
        record = self._types.get(widget_type)
        return record["version"] if record else None

    def default_config(self, widget_type: str) -> dict | None:
        record = self._types.get(widget_type)
        return copy.deepcopy(record["default_config"]) if record else None

    def exists(self, widget_type: str) -> bool:
        return widget_type in self._types

    def get(self, widget_type: str) -> dict | None:
        record = self._types.get(widget_type)
        return copy.deepcopy(record) if record else None

    def list_types(self) -> List[str]:
        return sorted(self._types.keys())

    def list(self) -> List[dict]:
        items = []
        for widget_type in self.list_types():
            record = copy.deepcopy(self._types[widget_type])
            record["migrations"] = sorted(self._migrations.get(widget_type, {}).keys())
            items.append(record)
        return items

    def create_instance(
        self,
        widget_type: str,
        config: dict | None = None,
        layout: dict | None = None,
        instance_id: str | None = None,
    ) -> dict:
        errors: List[Issue] = []
        warnings: List[Issue] = []
        record = self._types.get(widget_type) if isinstance(widget_type, str) else None
        if record is None:
            errors.append(_issue("WIDGET_TYPE_NOT_FOUND", f"Unknown widget type: {widget_type}", "type"))
        if config is not None and not isinstance(config, dict):
            errors.append(_issue("INSTANCE_CONFIG_INVALID", "config must be object", "config"))
        position = _layout_position(layout, errors)
        if errors:
            return {"ok": False, "errors": errors, "warnings": warnings, "instance": None}

        merged = copy.deepcopy(record["default_config"])
        merged.update(copy.deepcopy(config or {}))
        instance = {
            "id": instance_id or str(uuid.uuid4()),
            "type": widget_type,
            "version": record["version"],
            "config": merged,
            "layout": position,
        }
        logger.info("instance_created id=%s type=%s version=%s", instance["id"], widget_type, record["version"])
        return {"ok": True, "errors": errors, "warnings": warnings, "instance": instance}
