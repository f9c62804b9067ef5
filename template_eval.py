"""Placeholder templates: ``"{{user.login}} opened #{{number}}"``.

The only construct is ``{{identifier(.identifier)*}}``. Each placeholder is
resolved with :func:`path_extract.extract` against the context and replaced in
a single pass, so substituted text is never scanned again. Anything that does
not match the placeholder grammar (expressions, calls, filters, blocks) is
left as literal text and never interpreted.
"""

from __future__ import annotations

import json
import re
from datetime import date, datetime, timedelta
from typing import Any, List

from path_extract import extract

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+(?:\.\w+)*)\}\}")


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (str, int)):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None and value.utcoffset() == timedelta(0):
            return value.replace(tzinfo=None).isoformat() + "Z"
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    return str(value)


def template_vars(template: Any) -> List[str]:
    """Return the placeholder paths in ``template``, in order of appearance."""
    if not isinstance(template, str):
        return []
    return [match.group(1) for match in _PLACEHOLDER_RE.finditer(template)]


def render_template(template: Any, context: Any) -> str:
    if template is None:
        return ""
    if not isinstance(template, str):
        return stringify(template)

    def _substitute(match: re.Match) -> str:
        return stringify(extract(context, match.group(1)))

    return _PLACEHOLDER_RE.sub(_substitute, template)
