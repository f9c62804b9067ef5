import os
import sys
import unittest
from datetime import datetime, timezone


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from template_eval import render_template, stringify, template_vars


class TestRenderTemplate(unittest.TestCase):
    def test_placeholders_resolved_through_paths(self) -> None:
        ctx = {"user": {"login": "alice"}, "number": 42}
        self.assertEqual(render_template("{{user.login}} opened #{{number}}", ctx), "alice opened #42")

    def test_unresolved_renders_empty(self) -> None:
        self.assertEqual(render_template("[{{missing.key}}]", {}), "[]")
        self.assertEqual(render_template("{{a}}", {"a": None}), "")

    def test_falsy_values_are_rendered(self) -> None:
        ctx = {"zero": 0, "no": False, "blank": ""}
        self.assertEqual(render_template("{{zero}}|{{no}}|{{blank}}", ctx), "0|false|")

    def test_single_pass_no_double_substitution(self) -> None:
        ctx = {"a": "{{b}}", "b": "secret"}
        self.assertEqual(render_template("{{a}}", ctx), "{{b}}")

    def test_fixed_point(self) -> None:
        template = "PR #{{number}} by {{user.login}}"
        ctx = {"number": 7, "user": {"login": "bob"}}
        once = render_template(template, ctx)
        self.assertEqual(render_template(once, ctx), once)

    def test_none_and_non_string_templates(self) -> None:
        self.assertEqual(render_template(None, {}), "")
        self.assertEqual(render_template(5, {}), "5")

    def test_template_vars(self) -> None:
        self.assertEqual(template_vars("{{a}} and {{b.c}} {{ d }}"), ["a", "b.c"])
        self.assertEqual(template_vars(None), [])


class TestRenderTemplateAdversarial(unittest.TestCase):
    def test_expressions_left_literal(self) -> None:
        for template in [
            "{{__import__('os')}}",
            "{{ user.login }}",
            "{{user.login|upper}}",
            "{{1+1}}x",
            "{% for x in y %}{{x}}{% endfor %}",
        ]:
            rendered = render_template(template, {"user": {"login": "alice"}})
            self.assertNotIn("alice", rendered, template)
        self.assertEqual(render_template("{{__import__('os')}}", {}), "{{__import__('os')}}")
        self.assertEqual(render_template("{{1+1}}x", {}), "{{1+1}}x")

    def test_dunder_placeholder_reads_nothing(self) -> None:
        self.assertEqual(render_template("{{__class__}}", {}), "")
        self.assertEqual(render_template("{{user.__class__.__name__}}", {"user": {"login": "x"}}), "")

    def test_nested_braces_not_reinterpreted(self) -> None:
        ctx = {"a": "{{", "b": "c}}", "c": "boom"}
        self.assertEqual(render_template("{{a}}{{b}}", ctx), "{{c}}")


class TestStringify(unittest.TestCase):
    def test_scalars(self) -> None:
        self.assertEqual(stringify(None), "")
        self.assertEqual(stringify(True), "true")
        self.assertEqual(stringify(3.0), "3")
        self.assertEqual(stringify(2.5), "2.5")
        self.assertEqual(stringify(7), "7")

    def test_containers_are_compact_json(self) -> None:
        self.assertEqual(stringify({"a": 1}), '{"a":1}')
        self.assertEqual(stringify([1, "x"]), '[1,"x"]')

    def test_utc_datetime(self) -> None:
        self.assertEqual(stringify(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)), "2024-01-02T03:04:05Z")


if __name__ == "__main__":
    unittest.main()
