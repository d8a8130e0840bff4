"""Evaluation of condition-step expressions against an execution context.

Two forms are accepted. Structured dicts::

    {"field": "candidate.score", "op": "gte", "value": 70}
    {"all": [...]}, {"any": [...]}, {"not": {...}}

and short strings such as ``"score > 70"``, ``"stage == 'HIRED'"`` or a bare
``"training_completed"`` (truthiness of the path, optionally prefixed with
``not``). Nothing is passed to ``eval``.
"""

from __future__ import annotations

import json
import operator
import re
from typing import Any, Callable, Mapping

from .rendering import resolve_path

_MISSING = object()


class ConditionError(ValueError):
    """Raised for malformed condition expressions."""


def _contains(container: Any, item: Any) -> bool:
    return item in container


def _is_in(item: Any, container: Any) -> bool:
    return item in container


def _not_in(item: Any, container: Any) -> bool:
    return item not in container


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "in": _is_in,
    "not_in": _not_in,
    "contains": _contains,
}

_SYMBOLS = {
    "==": "eq",
    "!=": "ne",
    ">=": "gte",
    "<=": "lte",
    ">": "gt",
    "<": "lt",
    "in": "in",
    "not in": "not_in",
    "contains": "contains",
}

_COMPARISON = re.compile(
    r"^\s*(?P<field>[\w.\-]+)"
    r"(?:\s*(?P<sym>==|!=|>=|<=|>|<)\s*|\s+(?P<word>not in|in|contains)\s+)"
    r"(?P<value>.+?)\s*$"
)


def evaluate(expression: Any, context: Mapping[str, Any]) -> bool:
    """Return the truth value of ``expression`` for ``context``."""
    if isinstance(expression, bool):
        return expression
    if isinstance(expression, str):
        return _evaluate_string(expression, context)
    if not isinstance(expression, Mapping):
        raise ConditionError(f"Unsupported condition expression: {expression!r}")

    if "all" in expression:
        return all(evaluate(item, context) for item in _as_list(expression["all"]))
    if "any" in expression:
        return any(evaluate(item, context) for item in _as_list(expression["any"]))
    if "not" in expression:
        return not evaluate(expression["not"], context)
    if "field" in expression:
        return _compare(
            expression["field"],
            expression.get("op", "eq" if "value" in expression else "truthy"),
            expression.get("value"),
            context,
        )
    if "condition" in expression:
        return evaluate(expression["condition"], context)
    raise ConditionError(f"Unrecognized condition expression: {dict(expression)!r}")


def _as_list(value: Any) -> list:
    if not isinstance(value, list):
        raise ConditionError(f"Expected a list of conditions, got {value!r}")
    return value


def _compare(field: str, op: str, expected: Any, context: Mapping[str, Any]) -> bool:
    actual = resolve_path(context, field, _MISSING)
    if op == "exists":
        return actual is not _MISSING
    if op == "truthy":
        return actual is not _MISSING and bool(actual)
    if op not in OPERATORS:
        raise ConditionError(f"Unknown operator {op!r}")
    if actual is _MISSING:
        return op in ("ne", "not_in")
    try:
        return bool(OPERATORS[op](actual, expected))
    except TypeError:
        return False


def _evaluate_string(expression: str, context: Mapping[str, Any]) -> bool:
    text = expression.strip()
    if not text:
        raise ConditionError("Empty condition expression")
    if text.startswith("not "):
        return not _evaluate_string(text[4:], context)

    match = _COMPARISON.match(text)
    if match:
        return _compare(
            match.group("field"),
            _SYMBOLS[match.group("sym") or match.group("word")],
            _parse_literal(match.group("value")),
            context,
        )
    if re.fullmatch(r"[\w.\-]+", text):
        return _compare(text, "truthy", None, context)
    raise ConditionError(f"Cannot parse condition {expression!r}")


def _parse_literal(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        pass
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "'\"":
        return raw[1:-1]
    return raw
