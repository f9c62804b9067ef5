"""Structural validation for declarative widget definitions.

``validate_definition`` is pure: it never mutates or normalizes its input, so a
definition that passes round-trips unchanged. Errors make the definition
unusable; warnings flag references that will render empty.
"""

from __future__ import annotations

from typing import Any, Dict, List

from event_pattern import is_valid_name, is_valid_pattern
from filter_eval import FILTER_OPERATORS
from path_extract import is_valid_path
from widget_layout import LAYOUT_TYPES, validate_layout
from widget_transform import FIELD_TYPES, ORIGINAL_KEY

Issue = Dict[str, Any]

ALLOWED_TOP_KEYS = {
    "metadata",
    "dataSource",
    "fields",
    "layout",
    "interactions",
    "subscriptions",
    "emptyMessage",
    "errorMessage",
}
ALLOWED_METHODS = {"GET", "POST", "PUT", "DELETE"}
ALLOWED_ACTION_KEYS = {"filter", "highlight", "notification"}


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _get(obj: Any, key: str, default=None):
    return obj.get(key, default) if isinstance(obj, dict) else default


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _validate_metadata(metadata: Any, errors: list[Issue]) -> None:
    if not isinstance(metadata, dict):
        errors.append(_issue("DEFINITION_FIELD_REQUIRED", "metadata.name is required", "metadata"))
        return
    if not _is_text(metadata.get("name")):
        errors.append(_issue("DEFINITION_FIELD_REQUIRED", "metadata.name is required", "metadata.name"))
    for key in ("description", "category"):
        if metadata.get(key) is not None and not isinstance(metadata.get(key), str):
            errors.append(_issue("DEFINITION_FIELD_INVALID", f"metadata.{key} must be string", f"metadata.{key}"))
    schema_version = metadata.get("schemaVersion")
    if schema_version is not None and (isinstance(schema_version, bool) or not isinstance(schema_version, int) or schema_version < 1):
        errors.append(_issue("DEFINITION_FIELD_INVALID", "metadata.schemaVersion must be a positive integer", "metadata.schemaVersion"))


def _validate_data_source(data_source: Any, errors: list[Issue]) -> None:
    if not isinstance(data_source, dict):
        errors.append(_issue("DEFINITION_FIELD_REQUIRED", "dataSource.provider is required", "dataSource"))
        errors.append(_issue("DEFINITION_FIELD_REQUIRED", "dataSource.endpoint is required", "dataSource"))
        return
    if not _is_text(data_source.get("provider")):
        errors.append(_issue("DEFINITION_FIELD_REQUIRED", "dataSource.provider is required", "dataSource.provider"))
    if not _is_text(data_source.get("endpoint")):
        errors.append(_issue("DEFINITION_FIELD_REQUIRED", "dataSource.endpoint is required", "dataSource.endpoint"))
    method = data_source.get("method")
    if method is not None and (not isinstance(method, str) or method not in ALLOWED_METHODS):
        errors.append(_issue("DATA_SOURCE_METHOD_INVALID", f"method must be one of {sorted(ALLOWED_METHODS)}", "dataSource.method"))
    for key in ("params", "body"):
        if data_source.get(key) is not None and not isinstance(data_source.get(key), dict):
            errors.append(_issue("DEFINITION_FIELD_INVALID", f"dataSource.{key} must be object", f"dataSource.{key}"))
    interval = data_source.get("pollIntervalSeconds")
    if interval is not None and (isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0):
        errors.append(_issue("DATA_SOURCE_POLL_INVALID", "pollIntervalSeconds must be a number >= 0", "dataSource.pollIntervalSeconds"))
    data_path = data_source.get("dataPath")
    if data_path is not None and not is_valid_path(data_path):
        errors.append(_issue("PATH_INVALID", "dataPath is not a valid path", "dataSource.dataPath"))


def _validate_fields(fields: Any, errors: list[Issue]) -> set[str]:
    names: set[str] = set()
    if not isinstance(fields, list) or not fields:
        errors.append(_issue("DEFINITION_FIELD_REQUIRED", "fields array is required", "fields"))
        return names
    for idx, field in enumerate(fields):
        fpath = f"fields[{idx}]"
        if not isinstance(field, dict):
            errors.append(_issue("FIELD_INVALID", "field must be object", fpath))
            continue
        name = field.get("name")
        if not _is_text(name):
            errors.append(_issue("FIELD_REQUIRED", f"{fpath}.name is required", f"{fpath}.name"))
        elif name == ORIGINAL_KEY:
            errors.append(_issue("FIELD_NAME_RESERVED", f"{ORIGINAL_KEY} is reserved", f"{fpath}.name"))
        elif name in names:
            errors.append(_issue("FIELD_DUPLICATE", f"Duplicate field name: {name}", f"{fpath}.name"))
        else:
            names.add(name)
        path = field.get("path")
        if not _is_text(path):
            errors.append(_issue("FIELD_REQUIRED", f"{fpath}.path is required", f"{fpath}.path"))
        elif not is_valid_path(path):
            errors.append(_issue("PATH_INVALID", f"{fpath}.path is not a valid path", f"{fpath}.path"))
        ftype = field.get("type")
        if not ftype:
            errors.append(_issue("FIELD_REQUIRED", f"{fpath}.type is required", f"{fpath}.type"))
        elif not isinstance(ftype, str) or ftype not in FIELD_TYPES:
            errors.append(_issue("FIELD_TYPE_INVALID", f"Unknown field type: {ftype}", f"{fpath}.type", {"allowed": sorted(FIELD_TYPES)}))
        for key in ("label", "format"):
            if field.get(key) is not None and not isinstance(field.get(key), str):
                errors.append(_issue("FIELD_INVALID", f"{key} must be string", f"{fpath}.{key}"))
        labels = field.get("enumLabels")
        if labels is not None:
            if not isinstance(labels, dict) or not all(isinstance(v, str) for v in labels.values()):
                errors.append(_issue("FIELD_INVALID", "enumLabels must map values to strings", f"{fpath}.enumLabels"))
    return names


def _validate_publish(spec: Any, path: str, errors: list[Issue]) -> None:
    if not isinstance(spec, dict):
        errors.append(_issue("PUBLISH_INVALID", "publish spec must be object", path))
        return
    if not is_valid_name(spec.get("eventName")):
        errors.append(_issue("EVENT_NAME_INVALID", "eventName must be dot-separated segments without '*'", f"{path}.eventName"))
    payload = spec.get("payload")
    if payload is not None:
        if not isinstance(payload, dict) or not all(isinstance(v, str) for v in payload.values()):
            errors.append(_issue("PUBLISH_PAYLOAD_INVALID", "payload must map keys to template strings", f"{path}.payload"))
    source = spec.get("source")
    if source is not None and not isinstance(source, str):
        errors.append(_issue("PUBLISH_INVALID", "source must be string", f"{path}.source"))


def _validate_action(action: Any, path: str, field_names: set[str], errors: list[Issue], warnings: list[Issue]) -> None:
    if not isinstance(action, dict):
        errors.append(_issue("SUBSCRIPTION_ACTION_INVALID", "action must be object", path))
        return
    if not any(action.get(key) is not None for key in ALLOWED_ACTION_KEYS):
        warnings.append(_issue("SUBSCRIPTION_ACTION_EMPTY", "action has no filter, highlight or notification", path))
    flt = action.get("filter")
    if flt is not None:
        if not isinstance(flt, dict):
            errors.append(_issue("FILTER_INVALID", "filter must be object", f"{path}.filter"))
        else:
            if not _is_text(flt.get("field")):
                errors.append(_issue("FILTER_INVALID", "filter.field is required", f"{path}.filter.field"))
            elif flt["field"] not in field_names:
                warnings.append(_issue("FILTER_FIELD_UNKNOWN", f"filter field not defined: {flt['field']}", f"{path}.filter.field"))
            if not isinstance(flt.get("operator"), str) or flt["operator"] not in FILTER_OPERATORS:
                errors.append(_issue("FILTER_OPERATOR_INVALID", f"operator must be one of {sorted(FILTER_OPERATORS)}", f"{path}.filter.operator"))
            if not isinstance(flt.get("value"), str):
                errors.append(_issue("FILTER_INVALID", "filter.value must be a template string", f"{path}.filter.value"))
    highlight = action.get("highlight")
    if highlight is not None:
        if not isinstance(highlight, dict) or not _is_text(highlight.get("field")) or not isinstance(highlight.get("value"), str):
            errors.append(_issue("HIGHLIGHT_INVALID", "highlight requires field and value", f"{path}.highlight"))
        elif highlight["field"] not in field_names:
            warnings.append(_issue("HIGHLIGHT_FIELD_UNKNOWN", f"highlight field not defined: {highlight['field']}", f"{path}.highlight.field"))
    notification = action.get("notification")
    if notification is not None and (not isinstance(notification, dict) or not isinstance(notification.get("message"), str)):
        errors.append(_issue("NOTIFICATION_INVALID", "notification.message is required", f"{path}.notification"))


def _validate_subscriptions(subscriptions: Any, field_names: set[str], errors: list[Issue], warnings: list[Issue]) -> None:
    if not isinstance(subscriptions, list):
        errors.append(_issue("SUBSCRIPTIONS_INVALID", "subscriptions must be list", "subscriptions"))
        return
    for idx, sub in enumerate(subscriptions):
        spath = f"subscriptions[{idx}]"
        if not isinstance(sub, dict):
            errors.append(_issue("SUBSCRIPTION_INVALID", "subscription must be object", spath))
            continue
        if not is_valid_pattern(sub.get("pattern")):
            errors.append(_issue("SUBSCRIPTION_PATTERN_INVALID", "pattern must be dot-separated segments, '*' only as a whole segment", f"{spath}.pattern"))
        _validate_action(sub.get("action"), f"{spath}.action", field_names, errors, warnings)


def validate_definition(definition: Any) -> dict:
    errors: list[Issue] = []
    warnings: list[Issue] = []
    if not isinstance(definition, dict):
        errors.append(_issue("DEFINITION_INVALID", "definition must be object", None))
        return {"valid": False, "errors": errors, "warnings": warnings}

    for key in definition.keys():
        if key not in ALLOWED_TOP_KEYS:
            warnings.append(_issue("DEFINITION_UNKNOWN_KEY", f"Unknown key: {key}", key))

    _validate_metadata(definition.get("metadata"), errors)
    _validate_data_source(definition.get("dataSource"), errors)
    field_names = _validate_fields(definition.get("fields"), errors)

    layout = definition.get("layout")
    layout_errors = validate_layout(layout)
    errors.extend(layout_errors)
    if not layout_errors:
        variant = LAYOUT_TYPES[layout["type"]].from_dict(layout)
        for ref in variant.field_refs():
            if ref not in field_names:
                warnings.append(_issue("LAYOUT_FIELD_UNKNOWN", f"layout references undefined field: {ref}", "layout", {"field": ref}))

    interactions = definition.get("interactions")
    if interactions is not None:
        if not isinstance(interactions, dict):
            errors.append(_issue("INTERACTIONS_INVALID", "interactions must be object", "interactions"))
        elif interactions.get("onSelect") is not None:
            _validate_publish(interactions["onSelect"], "interactions.onSelect", errors)

    if definition.get("subscriptions") is not None:
        _validate_subscriptions(definition["subscriptions"], field_names, errors, warnings)

    for key in ("emptyMessage", "errorMessage"):
        if definition.get(key) is not None and not isinstance(definition.get(key), str):
            errors.append(_issue("DEFINITION_FIELD_INVALID", f"{key} must be string", key))

    return {"valid": not errors, "errors": errors, "warnings": warnings}


def error_messages(result: dict) -> List[str]:
    return [issue["message"] for issue in _get(result, "errors", []) or []]
