"""Bounded in-memory event log for debugging and replay.

The log is observational only. Entries are deep copies, the oldest entry is
evicted once ``capacity`` is reached, and reads return most-recent-last.
"""

from __future__ import annotations

import copy
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List

from event_pattern import pattern_matches

Event = Dict[str, Any]

DEFAULT_CAPACITY = 100


def _parse_ts(value: Any) -> datetime | None:
    if isinstance(value, str) and value:
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class EventLog:
    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if not isinstance(capacity, int) or capacity < 1:
            raise ValueError("capacity must be a positive integer")
        self._entries: Deque[Event] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: Event) -> Event:
        """Store a copy of ``entry`` and return the stored dict for in-place status updates."""
        stored = copy.deepcopy(entry)
        self._entries.append(stored)
        return stored

    def entries(self) -> list[Event]:
        return copy.deepcopy(list(self._entries))

    def find(self, event_id: str) -> Event | None:
        for entry in self._entries:
            if entry.get("event_id") == event_id:
                return copy.deepcopy(entry)
        return None

    def query(
        self,
        *,
        name: str | None = None,
        source: str | None = None,
        status: str | None = None,
        since: str | datetime | None = None,
        until: str | datetime | None = None,
    ) -> List[Event]:
        """Filter the log. ``name`` may be a pattern; ``since``/``until`` are inclusive."""
        since_ts = _parse_ts(since)
        until_ts = _parse_ts(until)
        out = []
        for entry in self._entries:
            if name is not None and not pattern_matches(name, entry.get("name", "")):
                continue
            if source is not None and entry.get("source") != source:
                continue
            if status is not None and entry.get("status") != status:
                continue
            if since_ts is not None or until_ts is not None:
                ts = _parse_ts(entry.get("timestamp"))
                if ts is None:
                    continue
                if since_ts is not None and ts < since_ts:
                    continue
                if until_ts is not None and ts > until_ts:
                    continue
            out.append(copy.deepcopy(entry))
        return out

    def clear(self) -> None:
        self._entries.clear()
