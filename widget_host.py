"""Per-instance runtime state for mounted declarative widgets.

The host ties a validated definition to the event bus: it subscribes the
definition's patterns under the instance id, keeps the normalized records,
and re-applies the active filter and highlight whenever new data loads or a
matching event arrives.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from definition_validate import validate_definition
from event_bus import EventBus
from filter_eval import filter_records, highlight_records, render_notification
from widget_transform import normalize_response, resolve_publish_payload

logger = logging.getLogger("widgets.host")

Issue = Dict[str, Any]
Record = Dict[str, Any]


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


@dataclass
class WidgetState:
    instance_id: str
    definition: dict
    status: str = "idle"
    records: List[Record] = field(default_factory=list)
    visible: List[Record] = field(default_factory=list)
    highlighted: List[bool] | None = None
    notification: str | None = None
    active_filter: dict | None = None
    active_highlight: dict | None = None
    error: dict | None = None
    loaded_at: str | None = None

    @property
    def message(self) -> str | None:
        if self.status == "error":
            return self.definition.get("errorMessage") or (self.error or {}).get("message")
        if self.status == "empty":
            return self.definition.get("emptyMessage")
        return None


class WidgetHost:
    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._states: Dict[str, WidgetState] = {}

    def mount(self, instance_id: str, definition: dict) -> dict:
        errors: List[Issue] = []
        if not isinstance(instance_id, str) or not instance_id:
            errors.append(_issue("INSTANCE_ID_INVALID", "instance_id must be non-empty string", "instance_id"))
            return {"ok": False, "errors": errors, "warnings": []}
        if instance_id in self._states:
            errors.append(_issue("INSTANCE_ALREADY_MOUNTED", "instance already mounted", "instance_id"))
            return {"ok": False, "errors": errors, "warnings": []}
        result = validate_definition(definition)
        if not result["valid"]:
            logger.warning("mount_rejected id=%s errors=%s", instance_id, [e["message"] for e in result["errors"]])
            return {"ok": False, "errors": result["errors"], "warnings": result["warnings"]}

        state = WidgetState(instance_id=instance_id, definition=copy.deepcopy(definition))
        self._states[instance_id] = state
        for subscription in state.definition.get("subscriptions") or []:
            self._bus.subscribe(
                subscription["pattern"],
                self._make_handler(instance_id, subscription),
                widget_id=instance_id,
            )
        logger.info("widget_mounted id=%s subscriptions=%s", instance_id, len(state.definition.get("subscriptions") or []))
        return {"ok": True, "errors": errors, "warnings": result["warnings"]}

    def _make_handler(self, instance_id: str, subscription: dict):
        action = subscription.get("action") or {}

        def _handle(payload: Any) -> None:
            self._on_event(instance_id, action, payload)

        return _handle

    def _on_event(self, instance_id: str, action: dict, payload: Any) -> None:
        state = self._states.get(instance_id)
        if state is None:
            return
        if isinstance(action.get("filter"), dict):
            state.active_filter = {"spec": action["filter"], "payload": copy.deepcopy(payload)}
        if isinstance(action.get("highlight"), dict):
            state.active_highlight = {"spec": action["highlight"], "payload": copy.deepcopy(payload)}
        if isinstance(action.get("notification"), dict):
            state.notification = render_notification(action["notification"], payload)
        self._apply(state)

    def _apply(self, state: WidgetState) -> None:
        visible = state.records
        if state.active_filter is not None:
            visible = filter_records(state.records, state.active_filter["spec"], state.active_filter["payload"])
        state.visible = visible
        if state.active_highlight is not None:
            state.highlighted = highlight_records(visible, state.active_highlight["spec"], state.active_highlight["payload"])
        else:
            state.highlighted = None
        if state.status in {"ready", "empty"}:
            state.status = "ready" if visible else "empty"

    def _require(self, instance_id: str) -> WidgetState:
        state = self._states.get(instance_id)
        if state is None:
            raise KeyError(f"widget not mounted: {instance_id}")
        return state

    def is_mounted(self, instance_id: str) -> bool:
        return instance_id in self._states

    def definition(self, instance_id: str) -> dict:
        return copy.deepcopy(self._require(instance_id).definition)

    def state(self, instance_id: str) -> WidgetState:
        return copy.deepcopy(self._require(instance_id))

    def visible_records(self, instance_id: str) -> List[Record]:
        return copy.deepcopy(self._require(instance_id).visible)

    def begin_load(self, instance_id: str) -> None:
        state = self._require(instance_id)
        if state.status in {"idle", "error"}:
            state.status = "loading"

    def load_response(self, instance_id: str, response: Any) -> List[Record]:
        state = self._require(instance_id)
        state.records = normalize_response(response, state.definition)
        state.error = None
        state.loaded_at = _now()
        state.status = "ready"
        self._apply(state)
        logger.debug("widget_loaded id=%s records=%s visible=%s", instance_id, len(state.records), len(state.visible))
        return copy.deepcopy(state.visible)

    def fail(self, instance_id: str, error: dict) -> None:
        state = self._require(instance_id)
        state.error = copy.deepcopy(error)
        state.status = "error"
        logger.warning("widget_fetch_failed id=%s code=%s message=%s", instance_id, error.get("code"), error.get("message"))

    def select(self, instance_id: str, index: int) -> int | None:
        """Publish the ``onSelect`` event for the visible record at ``index``.

        Returns the matched subscriber count, or None when the definition has
        no ``onSelect`` or ``index`` is outside the visible records.
        """
        state = self._require(instance_id)
        spec = (state.definition.get("interactions") or {}).get("onSelect")
        if not isinstance(spec, dict):
            return None
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(state.visible):
            logger.warning("widget_select_out_of_range id=%s index=%r visible=%s", instance_id, index, len(state.visible))
            return None
        record = state.visible[index]
        payload = resolve_publish_payload(spec, record)
        source = spec.get("source") or instance_id
        return self._bus.publish(spec["eventName"], payload, source)

    def clear_filter(self, instance_id: str) -> List[Record]:
        state = self._require(instance_id)
        state.active_filter = None
        state.active_highlight = None
        state.notification = None
        self._apply(state)
        return copy.deepcopy(state.visible)

    def unmount(self, instance_id: str) -> bool:
        state = self._states.pop(instance_id, None)
        removed = self._bus.unsubscribe_widget(instance_id)
        if state is None:
            return False
        logger.info("widget_unmounted id=%s subscriptions=%s", instance_id, removed)
        return True

    def mounted(self) -> List[str]:
        return sorted(self._states.keys())
