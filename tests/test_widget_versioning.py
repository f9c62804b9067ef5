import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from widget_registry import WidgetRegistry
from widget_versioning import (
    UnknownWidgetType,
    migrate_config,
    needs_migration,
    normalize_instance,
    normalize_instances,
    version_info,
)


def _jira_registry(version: int = 2) -> WidgetRegistry:
    registry = WidgetRegistry()
    registry.register_type("jira", version, default_config={"project_key": "PROJ"})
    registry.register_migration("jira", 1, lambda c: {"project_key": c.get("projectKey", "PROJ")})
    return registry


class TestMigrateConfig(unittest.TestCase):
    def test_rename_key_scenario(self) -> None:
        registry = _jira_registry()
        instance = {"id": "w1", "type": "jira", "version": 1, "config": {"projectKey": "ABC"}}
        result = normalize_instance(registry, instance)
        self.assertEqual(result.status, "upgraded")
        self.assertEqual(result.from_version, 1)
        self.assertEqual(result.instance["version"], 2)
        self.assertEqual(result.instance["config"], {"project_key": "ABC"})
        self.assertEqual(instance["config"], {"projectKey": "ABC"})

    def test_two_step_upgrade_scenario(self) -> None:
        registry = WidgetRegistry()
        registry.register_type("x", 3)
        registry.register_migration("x", 1, lambda c: {**c, "b": 2})
        registry.register_migration("x", 2, lambda c: {**c, "c": 3})
        result = normalize_instance(registry, {"type": "x", "version": 1, "config": {"a": 1}})
        self.assertEqual(result.status, "upgraded")
        self.assertEqual(result.instance["version"], 3)
        self.assertEqual(result.instance["config"], {"a": 1, "b": 2, "c": 3})

    def test_identity_when_versions_equal(self) -> None:
        registry = _jira_registry()
        config = {"project_key": "X"}
        result = migrate_config(registry, "jira", config, 2, 2)
        self.assertEqual(result.config, config)
        self.assertIsNot(result.config, config)
        self.assertTrue(result.complete)
        self.assertEqual(result.applied, [])

    def test_steps_compose(self) -> None:
        registry = WidgetRegistry()
        registry.register_type("t", 4)
        registry.register_migration("t", 1, lambda c: {**c, "trail": c["trail"] + "a"})
        registry.register_migration("t", 2, lambda c: {**c, "trail": c["trail"] + "b"})
        registry.register_migration("t", 3, lambda c: {**c, "trail": c["trail"] + "c"})
        full = migrate_config(registry, "t", {"trail": ""}, 1, 4)
        first = migrate_config(registry, "t", {"trail": ""}, 1, 2)
        rest = migrate_config(registry, "t", first.config, 2, 4)
        self.assertEqual(full.config, {"trail": "abc"})
        self.assertEqual(full.config, rest.config)
        self.assertEqual(full.applied, [1, 2, 3])

    def test_missing_step_stops_walk(self) -> None:
        registry = WidgetRegistry()
        registry.register_type("t", 3)
        registry.register_migration("t", 1, lambda c: {**c, "v2": True})
        with self.assertLogs("widgets.versioning", level="WARNING"):
            result = migrate_config(registry, "t", {}, 1, 3)
        self.assertFalse(result.complete)
        self.assertEqual(result.reached, 2)
        self.assertEqual(result.config, {"v2": True})
        self.assertIn("no migration from v2", result.error)

    def test_raising_step_stops_walk(self) -> None:
        registry = WidgetRegistry()
        registry.register_type("t", 2)

        def boom(config: dict) -> dict:
            config["touched"] = True
            raise RuntimeError("bad data")

        registry.register_migration("t", 1, boom)
        with self.assertLogs("widgets.versioning", level="WARNING"):
            result = migrate_config(registry, "t", {"a": 1}, 1, 2)
        self.assertEqual(result.reached, 1)
        self.assertEqual(result.config, {"a": 1})
        self.assertIn("bad data", result.error)

    def test_non_dict_step_result_stops_walk(self) -> None:
        registry = WidgetRegistry()
        registry.register_type("t", 2)
        registry.register_migration("t", 1, lambda c: None)
        with self.assertLogs("widgets.versioning", level="WARNING"):
            result = migrate_config(registry, "t", {"a": 1}, 1, 2)
        self.assertFalse(result.complete)
        self.assertEqual(result.config, {"a": 1})

    def test_needs_migration(self) -> None:
        registry = _jira_registry()
        self.assertTrue(needs_migration(registry, "jira", 1))
        self.assertFalse(needs_migration(registry, "jira", 2))
        self.assertFalse(needs_migration(registry, "jira", 1, target=3))
        self.assertFalse(needs_migration(registry, "missing", 1))


class TestNormalizeInstance(unittest.TestCase):
    def test_current(self) -> None:
        registry = _jira_registry()
        result = normalize_instance(registry, {"id": "w1", "type": "jira", "version": 2, "config": {"project_key": "A"}})
        self.assertEqual(result.status, "current")
        self.assertEqual(result.warnings, [])

    def test_nullish_version_and_config(self) -> None:
        registry = WidgetRegistry()
        registry.register_type("welcome", 1)
        result = normalize_instance(registry, {"id": "w1", "type": "welcome", "version": None})
        self.assertEqual(result.status, "current")
        self.assertEqual(result.instance["version"], 1)
        self.assertEqual(result.instance["config"], {})

    def test_partial(self) -> None:
        registry = WidgetRegistry()
        registry.register_type("t", 3)
        registry.register_migration("t", 1, lambda c: {**c, "step": 1})
        with self.assertLogs("widgets.versioning", level="WARNING"):
            result = normalize_instance(registry, {"id": "w1", "type": "t", "version": 1, "config": {}})
        self.assertEqual(result.status, "partial")
        self.assertEqual(result.instance["version"], 2)
        self.assertEqual(result.instance["config"], {"step": 1})
        self.assertEqual(result.warnings[0]["code"], "INSTANCE_MIGRATION_INCOMPLETE")
        self.assertEqual(result.warnings[0]["detail"], {"reached": 2, "latest": 3})

    def test_ahead(self) -> None:
        registry = _jira_registry()
        with self.assertLogs("widgets.versioning", level="WARNING"):
            result = normalize_instance(registry, {"id": "w1", "type": "jira", "version": 5, "config": {"x": 1}})
        self.assertEqual(result.status, "ahead")
        self.assertEqual(result.instance["version"], 5)
        self.assertEqual(result.instance["config"], {"x": 1})

    def test_unknown_type(self) -> None:
        registry = _jira_registry()
        instance = {"id": "w9", "type": "kanban", "version": 3, "config": {"cols": 4}}
        with self.assertLogs("widgets.versioning", level="WARNING"):
            result = normalize_instance(registry, instance)
        self.assertIsInstance(result, UnknownWidgetType)
        self.assertEqual(result.status, "unknown_type")
        self.assertEqual(result.as_dict()["widget_type"], "kanban")
        self.assertEqual(result.instance["config"], {"cols": 4})

    def test_invalid_version(self) -> None:
        registry = _jira_registry()
        with self.assertLogs("widgets.versioning", level="WARNING"):
            result = normalize_instance(registry, {"id": "w1", "type": "jira", "version": "two"})
        self.assertEqual(result.status, "partial")
        self.assertEqual(result.warnings[0]["code"], "INSTANCE_VERSION_INVALID")

    def test_non_object_raises(self) -> None:
        with self.assertRaises(ValueError):
            normalize_instance(WidgetRegistry(), "w1")

    def test_normalize_many_and_version_info(self) -> None:
        registry = _jira_registry()
        results = normalize_instances(
            registry,
            [
                {"id": "a", "type": "jira", "version": 1, "config": {}},
                {"id": "b", "type": "jira", "version": 2, "config": {}},
            ],
        )
        self.assertEqual([r.status for r in results], ["upgraded", "current"])
        info = version_info(registry, {"type": "jira", "version": 1})
        self.assertEqual(
            info,
            {"type": "jira", "current_version": 1, "latest_version": 2, "needs_upgrade": True, "migratable": True},
        )
        unknown = version_info(registry, {"type": "kanban"})
        self.assertFalse(unknown["needs_upgrade"])
        self.assertIsNone(unknown["latest_version"])


if __name__ == "__main__":
    unittest.main()
