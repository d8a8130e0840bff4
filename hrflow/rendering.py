"""Placeholder substitution for step configuration.

Step configs may reference the execution context with ``{{ path }}``
placeholders, e.g. ``{"subject": "Welcome {{ employee.first_name }}"}``.
Unknown paths are left untouched so adapters can report them.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

_PLACEHOLDER = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")
_MISSING = object()


def resolve_path(context: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Look up a dotted ``path`` in nested mappings and sequences."""
    current: Any = context
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def render_value(value: Any, context: Mapping[str, Any]) -> Any:
    if isinstance(value, str):
        return _render_string(value, context)
    if isinstance(value, Mapping):
        return {key: render_value(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [render_value(item, context) for item in value]
    return value


def render_config(config: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``config`` with placeholders filled from ``context``."""
    return {key: render_value(value, context) for key, value in config.items()}


def _render_string(text: str, context: Mapping[str, Any]) -> Any:
    whole = _PLACEHOLDER.fullmatch(text.strip())
    if whole:
        # a lone placeholder keeps the referenced value's type
        value = resolve_path(context, whole.group(1), _MISSING)
        return text if value is _MISSING else value

    def _replace(match: re.Match) -> str:
        value = resolve_path(context, match.group(1), _MISSING)
        return match.group(0) if value is _MISSING else str(value)

    return _PLACEHOLDER.sub(_replace, text)
