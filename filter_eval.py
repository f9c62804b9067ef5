"""Event-driven narrowing of normalized records.

A subscription action names a record field, an operator and a value template.
The template is rendered against ``{"event": payload}`` for every delivery, so
``"{{event.key}}"`` picks up whatever the publishing widget sent.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from template_eval import render_template, stringify

logger = logging.getLogger("widgets.filter")

FILTER_OPERATORS = {"equals", "contains", "startsWith", "in"}

Record = Dict[str, Any]


def resolve_value(template: Any, event_payload: Any) -> str:
    return render_template(template, {"event": event_payload})


def _field_value(record: Any, field: Any) -> Any:
    if not isinstance(record, dict) or not isinstance(field, str):
        return None
    return record.get(field)


def matches(item_value: Any, operator: str, filter_value: str) -> bool:
    item_text = stringify(item_value)
    if operator == "equals":
        return item_text == filter_value
    if operator == "contains":
        return filter_value.lower() in item_text.lower()
    if operator == "startsWith":
        return item_text.lower().startswith(filter_value.lower())
    if operator == "in":
        return item_text in [part.strip() for part in filter_value.split(",")]
    return False


def filter_records(records: List[Record], filter_spec: dict, event_payload: Any = None) -> List[Record]:
    operator = filter_spec.get("operator")
    if not isinstance(operator, str) or operator not in FILTER_OPERATORS:
        logger.warning("filter_operator_unknown operator=%r", operator)
        return []
    field = filter_spec.get("field")
    target = resolve_value(filter_spec.get("value"), event_payload)
    kept = []
    for record in records or []:
        value = _field_value(record, field)
        if value is None:
            continue
        if matches(value, operator, target):
            kept.append(record)
    return kept


def highlight_records(records: List[Record], highlight_spec: dict, event_payload: Any = None) -> List[bool]:
    """Flag, per record, whether its field equals the rendered highlight value."""
    field = highlight_spec.get("field")
    target = resolve_value(highlight_spec.get("value"), event_payload)
    flags = []
    for record in records or []:
        value = _field_value(record, field)
        flags.append(value is not None and matches(value, "equals", target))
    return flags


def render_notification(notification_spec: dict, event_payload: Any = None) -> str:
    return render_template(notification_spec.get("message"), {"event": event_payload})


def apply_action(action: dict, records: List[Record], event_payload: Any = None) -> dict:
    """Run every configured part of a subscription action against ``records``.

    Returns ``visible`` (None when the action has no filter), ``highlighted``
    (flags aligned with ``visible`` when present, else ``records``) and
    ``notification`` (None when not configured).
    """
    result: dict = {"visible": None, "highlighted": None, "notification": None}
    shown = records
    if isinstance(action.get("filter"), dict):
        shown = filter_records(records, action["filter"], event_payload)
        result["visible"] = shown
    if isinstance(action.get("highlight"), dict):
        result["highlighted"] = highlight_records(shown, action["highlight"], event_payload)
    if isinstance(action.get("notification"), dict):
        result["notification"] = render_notification(action["notification"], event_payload)
    return result
