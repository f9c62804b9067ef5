"""In-process event bus connecting widgets, with pattern subscriptions and safe mode."""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from event_log import DEFAULT_CAPACITY, EventLog
from event_pattern import is_valid_name, is_valid_pattern, pattern_matches
from meshkit.canonical_json import ensure_json_value

logger = logging.getLogger("widgets.bus")

Event = Dict[str, Any]
Handler = Callable[[Any], None]
Unsubscribe = Callable[[], bool]

DEFAULT_MAX_DEPTH = 10


@dataclass
class EventError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return self.message


@dataclass
class EventValidationError(EventError):
    code: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def _raise(code: str, message: str, path: str | None = None) -> None:
    raise EventValidationError(code=code, message=message, path=path)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def validate_event(event: Any) -> None:
    if not isinstance(event, dict):
        _raise("EVENT_INVALID", "event must be object")
    if not is_valid_name(event.get("name")):
        _raise("EVENT_NAME_INVALID", "name must be dot-separated non-empty segments without '*'", "name")
    try:
        ensure_json_value(event.get("payload"))
    except (TypeError, ValueError) as exc:
        _raise("PAYLOAD_INVALID", str(exc), "payload")
    source = event.get("source")
    if source is not None and not isinstance(source, str):
        _raise("SOURCE_INVALID", "source must be string or null", "source")
    if not isinstance(event.get("event_id"), str):
        _raise("EVENT_ID_INVALID", "event_id must be string", "event_id")
    if not isinstance(event.get("timestamp"), str):
        _raise("TIMESTAMP_INVALID", "timestamp must be string", "timestamp")


def make_event(name: str, payload: Any = None, source: str | None = None) -> Event:
    event = {
        "event_id": str(uuid.uuid4()),
        "name": name,
        "payload": copy.deepcopy(payload),
        "source": source,
        "timestamp": _now(),
    }
    validate_event(event)
    return event


@dataclass
class Subscription:
    sub_id: str
    pattern: str
    handler: Handler
    widget_id: str | None = None


class EventBus:
    """Publish/subscribe hub for one dashboard.

    Handlers run synchronously in subscription order and receive the event
    payload. A failing handler is logged and skipped. While safe mode is on
    (``is_enabled()`` is False) events are logged as suppressed and never
    delivered. Publishing from inside a handler is allowed up to
    ``max_depth`` nested levels; deeper events are dropped.
    """

    def __init__(
        self,
        log_capacity: int = DEFAULT_CAPACITY,
        max_depth: int = DEFAULT_MAX_DEPTH,
        enabled: bool = True,
    ) -> None:
        self._subs: List[Subscription] = []
        self._active: set[str] = set()
        self._log = EventLog(log_capacity)
        self._max_depth = max_depth
        self._enabled = enabled
        self._depth = 0

    def subscribe(self, pattern: str, handler: Handler, widget_id: str | None = None) -> Unsubscribe:
        if not is_valid_pattern(pattern):
            _raise("PATTERN_INVALID", "pattern must be dot-separated segments, '*' only as a whole segment", "pattern")
        if not callable(handler):
            _raise("HANDLER_INVALID", "handler must be callable", "handler")
        sub = Subscription(sub_id=str(uuid.uuid4()), pattern=pattern, handler=handler, widget_id=widget_id)
        self._subs.append(sub)
        self._active.add(sub.sub_id)
        logger.debug("subscribed pattern=%s widget_id=%s", pattern, widget_id)

        def _unsubscribe() -> bool:
            return self._remove(sub.sub_id)

        return _unsubscribe

    def _remove(self, sub_id: str) -> bool:
        if sub_id not in self._active:
            return False
        self._active.discard(sub_id)
        self._subs = [s for s in self._subs if s.sub_id != sub_id]
        return True

    def unsubscribe_widget(self, widget_id: str) -> int:
        removed = [s.sub_id for s in self._subs if s.widget_id == widget_id]
        for sub_id in removed:
            self._remove(sub_id)
        return len(removed)

    def subscriptions(self) -> list[dict]:
        return [{"id": s.sub_id, "pattern": s.pattern, "widget_id": s.widget_id} for s in self._subs]

    def publish(self, name: str, payload: Any = None, source: str | None = None) -> int:
        event = make_event(name, payload, source)
        if not self._enabled:
            self._log.append({**event, "status": "suppressed", "matched": 0, "failed": 0})
            logger.info("event_suppressed event=%s source=%s", name, source)
            return 0
        if self._depth >= self._max_depth:
            self._log.append({**event, "status": "dropped", "matched": 0, "failed": 0})
            logger.warning("event_depth_exceeded event=%s source=%s depth=%s", name, source, self._depth)
            return 0

        targets = [s for s in self._subs if pattern_matches(s.pattern, name)]
        entry = self._log.append({**event, "status": "delivered", "matched": len(targets), "failed": 0})
        delivered = 0
        failed = 0
        self._depth += 1
        try:
            for sub in targets:
                if sub.sub_id not in self._active:
                    continue
                delivered += 1
                try:
                    sub.handler(copy.deepcopy(event["payload"]))
                except Exception as exc:
                    failed += 1
                    logger.warning(
                        "event_handler_failed event=%s pattern=%s widget_id=%s error=%s",
                        name,
                        sub.pattern,
                        sub.widget_id,
                        exc,
                    )
        finally:
            self._depth -= 1
        entry["matched"] = delivered
        entry["failed"] = failed
        logger.debug("event_published event=%s source=%s matched=%s failed=%s", name, source, delivered, failed)
        return delivered

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
        logger.info("safe_mode active=%s", not self._enabled)

    def toggle_safe_mode(self) -> bool:
        self.set_enabled(not self._enabled)
        return self._enabled

    def get_event_log(self) -> list[Event]:
        return self._log.entries()

    def query_event_log(self, **filters: Any) -> list[Event]:
        return self._log.query(**filters)

    def clear_event_log(self) -> None:
        self._log.clear()
