import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from event_log import EventLog
from event_pattern import is_valid_name, is_valid_pattern, pattern_matches


def _entry(idx: int, name: str = "order.created", source: str = "shop", ts=None) -> dict:
    return {
        "event_id": f"e{idx}",
        "name": name,
        "payload": {"n": idx},
        "source": source,
        "timestamp": ts or f"2024-01-01T00:00:{idx:02d}.000Z",
        "status": "delivered",
    }


class TestEventPattern(unittest.TestCase):
    def test_single_segment_wildcard_table(self) -> None:
        self.assertTrue(pattern_matches("a.b.*", "a.b.c"))
        self.assertFalse(pattern_matches("a.b.*", "a.b"))
        self.assertFalse(pattern_matches("a.b.*", "a.b.c.d"))
        self.assertFalse(pattern_matches("a.b.*", "a.x.c"))

    def test_literal_and_inner_wildcards(self) -> None:
        self.assertTrue(pattern_matches("order.created", "order.created"))
        self.assertTrue(pattern_matches("*.created", "invoice.created"))
        self.assertTrue(pattern_matches("*", "ping"))
        self.assertFalse(pattern_matches("*", "order.created"))

    def test_name_and_pattern_validity(self) -> None:
        self.assertTrue(is_valid_name("github.pr.selected"))
        for bad in ["", "a..b", ".a", "a.", "a.*", "a*b", None, 3]:
            self.assertFalse(is_valid_name(bad), repr(bad))
        self.assertTrue(is_valid_pattern("a.*.c"))
        for bad in ["", "a.b*", "a..*", "**", None]:
            self.assertFalse(is_valid_pattern(bad), repr(bad))


class TestEventLog(unittest.TestCase):
    def test_capacity_evicts_oldest(self) -> None:
        log = EventLog(capacity=3)
        for idx in range(5):
            log.append(_entry(idx))
        self.assertEqual(len(log), 3)
        self.assertEqual([e["event_id"] for e in log.entries()], ["e2", "e3", "e4"])

    def test_entries_are_copies(self) -> None:
        log = EventLog()
        entry = _entry(1)
        log.append(entry)
        entry["payload"]["n"] = 99
        log.entries()[0]["payload"]["n"] = 100
        self.assertEqual(log.entries()[0]["payload"], {"n": 1})

    def test_invalid_capacity(self) -> None:
        with self.assertRaises(ValueError):
            EventLog(capacity=0)

    def test_query_filters(self) -> None:
        log = EventLog()
        log.append(_entry(1, "order.created", "shop"))
        log.append(_entry(2, "order.paid", "billing"))
        log.append(_entry(3, "invoice.created", "billing"))
        self.assertEqual([e["event_id"] for e in log.query(name="order.*")], ["e1", "e2"])
        self.assertEqual([e["event_id"] for e in log.query(source="billing")], ["e2", "e3"])
        self.assertEqual([e["event_id"] for e in log.query(name="*.created", source="billing")], ["e3"])

    def test_query_time_bounds_inclusive(self) -> None:
        log = EventLog()
        for idx in range(1, 5):
            log.append(_entry(idx))
        since = "2024-01-01T00:00:02Z"
        until = "2024-01-01T00:00:03.000Z"
        self.assertEqual([e["event_id"] for e in log.query(since=since, until=until)], ["e2", "e3"])

    def test_find_and_clear(self) -> None:
        log = EventLog()
        log.append(_entry(1))
        self.assertEqual(log.find("e1")["name"], "order.created")
        self.assertIsNone(log.find("missing"))
        log.clear()
        self.assertEqual(log.entries(), [])


if __name__ == "__main__":
    unittest.main()
