"""Field-mapping pipeline: provider JSON to normalized widget records."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List

from path_extract import extract
from template_eval import render_template, stringify

logger = logging.getLogger("widgets.transform")

ORIGINAL_KEY = "_original"
FIELD_TYPES = {"string", "number", "boolean", "date", "url", "enum"}

Record = Dict[str, Any]


def _to_number(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _is_truthy(value: Any) -> bool:
    # JSON containers count as present even when empty.
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def _to_date(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def _enum_label(value: Any, labels: Any) -> Any:
    if not isinstance(labels, dict) or isinstance(value, (dict, list)):
        return value
    label = labels.get(stringify(value))
    return label if label is not None else value


def coerce_value(value: Any, field: dict) -> Any:
    """Cast ``value`` by ``field["type"]`` and apply ``field["format"]`` when present."""
    if value is None:
        return None
    ftype = field.get("type")
    if ftype in ("string", "url"):
        value = stringify(value)
    elif ftype == "number":
        value = _to_number(value)
    elif ftype == "boolean":
        value = _is_truthy(value)
    elif ftype == "date":
        value = _to_date(value)
    elif ftype == "enum":
        value = _enum_label(value, field.get("enumLabels"))
    if value is None:
        return None
    fmt = field.get("format")
    if isinstance(fmt, str):
        value = render_template(fmt, {"value": value})
    return value


def transform_record(raw: Any, fields: List[dict]) -> Record:
    record: Record = {}
    for field in fields:
        if not isinstance(field, dict) or not isinstance(field.get("name"), str):
            continue
        record[field["name"]] = coerce_value(extract(raw, field.get("path")), field)
    record[ORIGINAL_KEY] = raw
    return record


def transform_records(raw_records: Any, fields: List[dict]) -> List[Record]:
    if not isinstance(raw_records, list):
        logger.warning("transform_input_not_list type=%s", type(raw_records).__name__)
        return []
    if not isinstance(fields, list):
        logger.warning("transform_fields_not_list type=%s", type(fields).__name__)
        return []
    return [transform_record(raw, fields) for raw in raw_records]


def record_fields(record: Record) -> Record:
    """Return the normalized fields of ``record`` without the retained raw item."""
    return {key: value for key, value in record.items() if key != ORIGINAL_KEY}


def extract_records(response: Any, data_path: str | None = None) -> Any:
    """Locate the record array inside a provider response envelope."""
    if data_path is None:
        return response
    return extract(response, data_path)


def normalize_response(response: Any, definition: dict) -> List[Record]:
    data_source = definition.get("dataSource") or {}
    raw_records = extract_records(response, data_source.get("dataPath"))
    return transform_records(raw_records, definition.get("fields") or [])


def record_context(record: Record) -> dict:
    """Template context for a record: raw keys, overlaid by normalized fields, plus ``_original``."""
    raw = record.get(ORIGINAL_KEY)
    ctx = dict(raw) if isinstance(raw, dict) else {}
    ctx.update(record)
    return ctx


def resolve_publish_payload(publish_spec: dict, record: Record) -> Dict[str, str]:
    payload = publish_spec.get("payload") or {}
    if not isinstance(payload, dict):
        return {}
    ctx = record_context(record)
    return {str(key): render_template(template, ctx) for key, template in payload.items()}
