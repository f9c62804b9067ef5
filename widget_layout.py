"""Layout variants for widget definitions.

``layout.type`` selects one of five variants registered in ``LAYOUT_TYPES``.
Each variant validates its raw dict into issues and parses into a dataclass
the renderer can consume. Unknown kinds are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

Issue = Dict[str, Any]

METRIC_FORMATS = {"number", "currency", "percentage", "duration"}
CHART_TYPES = {"line", "bar", "pie", "area"}
SORT_DIRECTIONS = {"asc", "desc"}


@dataclass
class LayoutError(Exception):
    code: str
    message: str
    path: str | None = None
    issues: List[Issue] = field(default_factory=list)

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _is_name(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _check_optional_names(errors: list[Issue], value: Any, path: str) -> None:
    if value is None:
        return
    if not isinstance(value, list) or not all(_is_name(item) for item in value):
        errors.append(_issue("LAYOUT_FIELD_LIST_INVALID", "must be a list of field names", path))


@dataclass
class ListLayout:
    title: str
    subtitle: str | None = None
    metadata: List[str] = field(default_factory=list)
    badge_field: str | None = None
    badge_colors: Dict[str, str] = field(default_factory=dict)
    searchable: bool = False
    search_field: str | None = None
    type: str = "list"

    @staticmethod
    def validate(raw: dict, path: str) -> List[Issue]:
        errors: list[Issue] = []
        fields = raw.get("fields")
        if not isinstance(fields, dict):
            errors.append(_issue("LAYOUT_FIELD_REQUIRED", "List layout requires fields.title", f"{path}.fields"))
            return errors
        if not _is_name(fields.get("title")):
            errors.append(_issue("LAYOUT_FIELD_REQUIRED", "List layout requires fields.title", f"{path}.fields.title"))
        if fields.get("subtitle") is not None and not _is_name(fields.get("subtitle")):
            errors.append(_issue("LAYOUT_FIELD_INVALID", "fields.subtitle must be a field name", f"{path}.fields.subtitle"))
        _check_optional_names(errors, fields.get("metadata"), f"{path}.fields.metadata")
        badge = fields.get("badge")
        if badge is not None:
            if not isinstance(badge, dict) or not _is_name(badge.get("field")):
                errors.append(_issue("LAYOUT_FIELD_INVALID", "fields.badge.field is required", f"{path}.fields.badge"))
            elif badge.get("colorMap") is not None and not isinstance(badge.get("colorMap"), dict):
                errors.append(_issue("LAYOUT_FIELD_INVALID", "fields.badge.colorMap must be object", f"{path}.fields.badge.colorMap"))
        return errors

    @classmethod
    def from_dict(cls, raw: dict) -> "ListLayout":
        fields = raw["fields"]
        badge = fields.get("badge") if isinstance(fields.get("badge"), dict) else {}
        return cls(
            title=fields["title"],
            subtitle=fields.get("subtitle"),
            metadata=_str_list(fields.get("metadata")),
            badge_field=badge.get("field"),
            badge_colors=dict(badge.get("colorMap") or {}),
            searchable=bool(raw.get("searchable")),
            search_field=raw.get("searchField"),
        )

    def field_refs(self) -> List[str]:
        refs = [self.title]
        if self.subtitle:
            refs.append(self.subtitle)
        refs.extend(self.metadata)
        if self.badge_field:
            refs.append(self.badge_field)
        if self.search_field:
            refs.append(self.search_field)
        return refs


@dataclass
class TableColumn:
    field: str
    header: str
    width: str | None = None
    sortable: bool = False


@dataclass
class TableLayout:
    columns: List[TableColumn]
    sortable: bool = False
    sort_field: str | None = None
    sort_direction: str = "asc"
    type: str = "table"

    @staticmethod
    def validate(raw: dict, path: str) -> List[Issue]:
        errors: list[Issue] = []
        columns = raw.get("columns")
        if not isinstance(columns, list) or not columns:
            errors.append(_issue("LAYOUT_FIELD_REQUIRED", "Table layout requires columns", f"{path}.columns"))
            return errors
        for idx, column in enumerate(columns):
            cpath = f"{path}.columns[{idx}]"
            if not isinstance(column, dict):
                errors.append(_issue("LAYOUT_COLUMN_INVALID", "column must be object", cpath))
                continue
            if not _is_name(column.get("field")):
                errors.append(_issue("LAYOUT_COLUMN_INVALID", "column.field is required", f"{cpath}.field"))
            if not isinstance(column.get("header"), str):
                errors.append(_issue("LAYOUT_COLUMN_INVALID", "column.header is required", f"{cpath}.header"))
        default_sort = raw.get("defaultSort")
        if default_sort is not None:
            if not isinstance(default_sort, dict) or not _is_name(default_sort.get("field")):
                errors.append(_issue("LAYOUT_FIELD_INVALID", "defaultSort.field is required", f"{path}.defaultSort"))
            elif not isinstance(default_sort.get("direction"), str) or default_sort["direction"] not in SORT_DIRECTIONS:
                errors.append(_issue("LAYOUT_FIELD_INVALID", "defaultSort.direction must be asc or desc", f"{path}.defaultSort.direction"))
        return errors

    @classmethod
    def from_dict(cls, raw: dict) -> "TableLayout":
        default_sort = raw.get("defaultSort") or {}
        return cls(
            columns=[
                TableColumn(
                    field=column["field"],
                    header=column["header"],
                    width=column.get("width"),
                    sortable=bool(column.get("sortable")),
                )
                for column in raw["columns"]
            ],
            sortable=bool(raw.get("sortable")),
            sort_field=default_sort.get("field"),
            sort_direction=default_sort.get("direction") or "asc",
        )

    def field_refs(self) -> List[str]:
        refs = [column.field for column in self.columns]
        if self.sort_field:
            refs.append(self.sort_field)
        return refs


@dataclass
class CardsLayout:
    title: str
    description: str | None = None
    image: str | None = None
    metadata: List[str] = field(default_factory=list)
    actions: List[dict] = field(default_factory=list)
    columns: int | None = None
    type: str = "cards"

    @staticmethod
    def validate(raw: dict, path: str) -> List[Issue]:
        errors: list[Issue] = []
        card = raw.get("card")
        if not isinstance(card, dict) or not _is_name(card.get("title")):
            errors.append(_issue("LAYOUT_FIELD_REQUIRED", "Cards layout requires card.title", f"{path}.card.title"))
            return errors
        _check_optional_names(errors, card.get("metadata"), f"{path}.card.metadata")
        actions = card.get("actions")
        if actions is not None:
            if not isinstance(actions, list):
                errors.append(_issue("LAYOUT_FIELD_INVALID", "card.actions must be list", f"{path}.card.actions"))
            else:
                for idx, action in enumerate(actions):
                    if not isinstance(action, dict) or not isinstance(action.get("label"), str) or not isinstance(action.get("event"), dict):
                        errors.append(_issue("LAYOUT_FIELD_INVALID", "card action requires label and event", f"{path}.card.actions[{idx}]"))
        columns = raw.get("columns")
        if columns is not None and (isinstance(columns, bool) or not isinstance(columns, int) or columns < 1):
            errors.append(_issue("LAYOUT_FIELD_INVALID", "columns must be a positive integer", f"{path}.columns"))
        return errors

    @classmethod
    def from_dict(cls, raw: dict) -> "CardsLayout":
        card = raw["card"]
        return cls(
            title=card["title"],
            description=card.get("description"),
            image=card.get("image"),
            metadata=_str_list(card.get("metadata")),
            actions=list(card.get("actions") or []),
            columns=raw.get("columns"),
        )

    def field_refs(self) -> List[str]:
        refs = [self.title]
        refs.extend(ref for ref in (self.description, self.image) if ref)
        refs.extend(self.metadata)
        return refs


@dataclass
class MetricLayout:
    value: str
    label: str
    comparison_field: str | None = None
    comparison_label: str | None = None
    format: str | None = None
    type: str = "metric"

    @staticmethod
    def validate(raw: dict, path: str) -> List[Issue]:
        errors: list[Issue] = []
        if not _is_name(raw.get("value")):
            errors.append(_issue("LAYOUT_FIELD_REQUIRED", "Metric layout requires value", f"{path}.value"))
        if not isinstance(raw.get("label"), str) or not raw.get("label"):
            errors.append(_issue("LAYOUT_FIELD_REQUIRED", "Metric layout requires label", f"{path}.label"))
        comparison = raw.get("comparison")
        if comparison is not None and (not isinstance(comparison, dict) or not _is_name(comparison.get("field"))):
            errors.append(_issue("LAYOUT_FIELD_INVALID", "comparison.field is required", f"{path}.comparison"))
        fmt = raw.get("format")
        if fmt is not None and (not isinstance(fmt, str) or fmt not in METRIC_FORMATS):
            errors.append(_issue("LAYOUT_FIELD_INVALID", f"format must be one of {sorted(METRIC_FORMATS)}", f"{path}.format"))
        return errors

    @classmethod
    def from_dict(cls, raw: dict) -> "MetricLayout":
        comparison = raw.get("comparison") or {}
        return cls(
            value=raw["value"],
            label=raw["label"],
            comparison_field=comparison.get("field"),
            comparison_label=comparison.get("label"),
            format=raw.get("format"),
        )

    def field_refs(self) -> List[str]:
        refs = [self.value]
        if self.comparison_field:
            refs.append(self.comparison_field)
        return refs


@dataclass
class ChartLayout:
    chart_type: str
    x_axis: str
    y_axis: List[str]
    title: str | None = None
    legend: bool = False
    type: str = "chart"

    @staticmethod
    def validate(raw: dict, path: str) -> List[Issue]:
        errors: list[Issue] = []
        chart_type = raw.get("chartType")
        if chart_type is None:
            errors.append(_issue("LAYOUT_FIELD_REQUIRED", "Chart layout requires chartType", f"{path}.chartType"))
        elif not isinstance(chart_type, str) or chart_type not in CHART_TYPES:
            errors.append(_issue("LAYOUT_FIELD_INVALID", f"chartType must be one of {sorted(CHART_TYPES)}", f"{path}.chartType"))
        if not _is_name(raw.get("xAxis")):
            errors.append(_issue("LAYOUT_FIELD_REQUIRED", "Chart layout requires xAxis", f"{path}.xAxis"))
        y_axis = raw.get("yAxis")
        if isinstance(y_axis, list):
            if not y_axis or not all(_is_name(item) for item in y_axis):
                errors.append(_issue("LAYOUT_FIELD_REQUIRED", "Chart layout requires yAxis", f"{path}.yAxis"))
        elif not _is_name(y_axis):
            errors.append(_issue("LAYOUT_FIELD_REQUIRED", "Chart layout requires yAxis", f"{path}.yAxis"))
        return errors

    @classmethod
    def from_dict(cls, raw: dict) -> "ChartLayout":
        y_axis = raw["yAxis"]
        return cls(
            chart_type=raw["chartType"],
            x_axis=raw["xAxis"],
            y_axis=list(y_axis) if isinstance(y_axis, list) else [y_axis],
            title=raw.get("title"),
            legend=bool(raw.get("legend")),
        )

    def field_refs(self) -> List[str]:
        return [self.x_axis, *self.y_axis]


Layout = Union[ListLayout, TableLayout, CardsLayout, MetricLayout, ChartLayout]

LAYOUT_TYPES: Dict[str, type] = {
    "list": ListLayout,
    "table": TableLayout,
    "cards": CardsLayout,
    "metric": MetricLayout,
    "chart": ChartLayout,
}


def validate_layout(raw: Any, path: str = "layout") -> List[Issue]:
    if not isinstance(raw, dict):
        return [_issue("LAYOUT_REQUIRED", "layout is required", path)]
    kind = raw.get("type")
    if kind is None:
        return [_issue("LAYOUT_REQUIRED", "layout.type is required", f"{path}.type")]
    variant = LAYOUT_TYPES.get(kind) if isinstance(kind, str) else None
    if variant is None:
        return [_issue("LAYOUT_TYPE_UNKNOWN", f"Unknown layout type: {kind}", f"{path}.type", {"allowed": sorted(LAYOUT_TYPES)})]
    return variant.validate(raw, path)


def parse_layout(raw: Any, path: str = "layout") -> Layout:
    errors = validate_layout(raw, path)
    if errors:
        first = errors[0]
        raise LayoutError(first["code"], first["message"], first["path"], errors)
    return LAYOUT_TYPES[raw["type"]].from_dict(raw)
