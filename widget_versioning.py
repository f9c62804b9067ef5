"""Load-time normalization of stored widget instances.

Stored instances are upgraded step by step through the registry's migration
chain. A missing or failing step stops the walk and the instance keeps the
version it reached. Instances of types the registry does not know come back
as :class:`UnknownWidgetType` so the renderer can show a fallback.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from widget_registry import WidgetRegistry

logger = logging.getLogger("widgets.versioning")

Issue = Dict[str, Any]


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


@dataclass
class MigrationResult:
    config: dict
    from_version: int
    to_version: int
    reached: int
    applied: List[int] = field(default_factory=list)
    error: str | None = None

    @property
    def complete(self) -> bool:
        return self.reached == self.to_version


@dataclass
class NormalizedInstance:
    instance: dict
    status: str
    from_version: int
    warnings: List[Issue] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "status": self.status,
            "instance": copy.deepcopy(self.instance),
            "from_version": self.from_version,
            "warnings": copy.deepcopy(self.warnings),
        }


@dataclass
class UnknownWidgetType:
    instance: dict
    widget_type: Any
    warnings: List[Issue] = field(default_factory=list)
    status: str = "unknown_type"

    def as_dict(self) -> dict:
        return {
            "status": self.status,
            "instance": copy.deepcopy(self.instance),
            "widget_type": self.widget_type,
            "warnings": copy.deepcopy(self.warnings),
        }


NormalizeResult = Union[NormalizedInstance, UnknownWidgetType]


def migrate_config(
    registry: WidgetRegistry,
    widget_type: str,
    config: dict,
    from_version: int,
    to_version: int,
) -> MigrationResult:
    """Apply migration steps ``from_version -> ... -> to_version`` to a copy of ``config``."""
    current = copy.deepcopy(config) if config is not None else {}
    result = MigrationResult(config=current, from_version=from_version, to_version=to_version, reached=from_version)
    version = from_version
    while version < to_version:
        step = registry.migration(widget_type, version)
        if step is None:
            result.error = f"no migration from v{version} to v{version + 1}"
            logger.warning("migration_step_missing type=%s from=%s to=%s", widget_type, version, version + 1)
            break
        try:
            migrated = step(copy.deepcopy(current))
        except Exception as exc:
            result.error = f"migration v{version} to v{version + 1} failed: {exc}"
            logger.warning("migration_step_failed type=%s from=%s to=%s error=%s", widget_type, version, version + 1, exc)
            break
        if not isinstance(migrated, dict):
            result.error = f"migration v{version} to v{version + 1} returned {type(migrated).__name__}"
            logger.warning("migration_step_invalid type=%s from=%s to=%s", widget_type, version, version + 1)
            break
        current = migrated
        result.applied.append(version)
        version += 1
        logger.info("migration_step type=%s from=%s to=%s", widget_type, version - 1, version)
    result.config = current
    result.reached = version
    return result


def needs_migration(registry: WidgetRegistry, widget_type: str, version: int, target: int | None = None) -> bool:
    """True when ``version`` is behind ``target`` and every step in between is registered."""
    if target is None:
        target = registry.current_version(widget_type)
    if target is None or version >= target:
        return False
    return all(registry.migration(widget_type, v) is not None for v in range(version, target))


def normalize_instance(registry: WidgetRegistry, instance: dict) -> NormalizeResult:
    if not isinstance(instance, dict):
        raise ValueError("instance must be object")
    version = instance.get("version")
    if version is None:
        version = 1
    config = instance.get("config")
    if config is None:
        config = {}
    widget_type = instance.get("type")
    normalized = copy.deepcopy(instance)
    normalized["version"] = version
    normalized["config"] = copy.deepcopy(config)

    latest = registry.current_version(widget_type) if isinstance(widget_type, str) else None
    if latest is None:
        logger.warning("widget_type_unknown id=%s type=%s", instance.get("id"), widget_type)
        warning = _issue("WIDGET_TYPE_UNKNOWN", f"Unknown widget type: {widget_type}", "type")
        return UnknownWidgetType(instance=normalized, widget_type=widget_type, warnings=[warning])

    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        logger.warning("instance_version_invalid id=%s type=%s version=%r", instance.get("id"), widget_type, version)
        warning = _issue("INSTANCE_VERSION_INVALID", "version must be a positive integer", "version")
        return NormalizedInstance(instance=normalized, status="partial", from_version=1, warnings=[warning])

    if version == latest:
        return NormalizedInstance(instance=normalized, status="current", from_version=version)

    if version > latest:
        logger.warning("instance_version_ahead id=%s type=%s version=%s latest=%s", instance.get("id"), widget_type, version, latest)
        warning = _issue("INSTANCE_VERSION_AHEAD", f"v{version} is newer than registered v{latest}", "version")
        return NormalizedInstance(instance=normalized, status="ahead", from_version=version, warnings=[warning])

    result = migrate_config(registry, widget_type, normalized["config"], version, latest)
    normalized["config"] = result.config
    normalized["version"] = result.reached
    if result.complete:
        logger.info("instance_migrated id=%s type=%s from=%s to=%s", instance.get("id"), widget_type, version, latest)
        return NormalizedInstance(instance=normalized, status="upgraded", from_version=version)
    logger.warning(
        "instance_migration_partial id=%s type=%s from=%s reached=%s latest=%s",
        instance.get("id"),
        widget_type,
        version,
        result.reached,
        latest,
    )
    warning = _issue(
        "INSTANCE_MIGRATION_INCOMPLETE",
        result.error or "migration incomplete",
        "version",
        {"reached": result.reached, "latest": latest},
    )
    return NormalizedInstance(instance=normalized, status="partial", from_version=version, warnings=[warning])


def normalize_instances(registry: WidgetRegistry, instances: List[dict]) -> List[NormalizeResult]:
    return [normalize_instance(registry, instance) for instance in instances]


def version_info(registry: WidgetRegistry, instance: dict) -> dict:
    widget_type = instance.get("type")
    version = instance.get("version")
    if version is None:
        version = 1
    latest = registry.current_version(widget_type) if isinstance(widget_type, str) else None
    comparable = latest is not None and isinstance(version, int) and not isinstance(version, bool)
    return {
        "type": widget_type,
        "current_version": version,
        "latest_version": latest,
        "needs_upgrade": comparable and version < latest,
        "migratable": comparable and needs_migration(registry, widget_type, version, latest),
    }
