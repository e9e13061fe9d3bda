"""``{{variable}}`` interpolation against a workflow context.

Supported forms:

- ``{{name}}`` and dotted paths ``{{lead.email}}``; missing values render as
  an empty string, mappings and lists render as compact JSON.
- ``{{json name}}`` renders the value as indented JSON.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

_PLACEHOLDER = re.compile(r"\{\{\s*(json\s+)?([A-Za-z_][\w.-]*)\s*\}\}")
_MISSING = object()


def lookup(context: Mapping[str, Any], path: str) -> Any:
    value: Any = context
    for part in path.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        elif isinstance(value, (list, tuple)) and part.isdigit() and int(part) < len(value):
            value = value[int(part)]
        else:
            return _MISSING
    return value


def render(template: str, context: Mapping[str, Any]) -> str:
    def _sub(match: re.Match) -> str:
        as_json, path = match.group(1), match.group(2)
        value = lookup(context, path)
        if value is _MISSING or value is None:
            return "null" if as_json else ""
        if as_json:
            return json.dumps(value, indent=2, default=str)
        if isinstance(value, (Mapping, list, tuple)):
            return json.dumps(value, default=str)
        return str(value)

    return _PLACEHOLDER.sub(_sub, template)
