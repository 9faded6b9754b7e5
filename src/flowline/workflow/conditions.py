"""Condition trees and the evaluator that decides whether a workflow fires.

Stored definitions keep conditions in an untagged JSON shape::

    {"logic": "AND", "rules": [
        {"field": "post_type", "type": "string", "operator": "equals", "value": "post"},
        {"logic": "OR", "rules": [...]},
    ]}

That shape is parsed once, when a definition is loaded, into explicit
:class:`Rule` / :class:`ConditionGroup` nodes. An entry carrying both ``logic``
and ``rules`` is a group; anything else is a rule.
"""

from __future__ import annotations

import json
import math
import re
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol

Logic = Literal["AND", "OR"]

# Smallest representable difference between two floats near 1.0
# (2.220446049250313e-16). Numeric equality is `abs(a - b) < FLOAT_EPSILON`.
FLOAT_EPSILON = sys.float_info.epsilon

_LEADING_NUMBER_RE = re.compile(
    r"\s*[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?"
)


class ConditionParseError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Rule:
    field: str
    type: str = "string"
    operator: str = "equals"
    value: Any = ""


@dataclass(frozen=True, slots=True)
class ConditionGroup:
    logic: Logic = "AND"
    rules: tuple[Rule | ConditionGroup, ...] = ()

    def to_json(self) -> dict[str, object]:
        out: list[dict[str, object]] = []
        for node in self.rules:
            if isinstance(node, ConditionGroup):
                out.append(node.to_json())
            else:
                out.append(
                    {
                        "field": node.field,
                        "type": node.type,
                        "operator": node.operator,
                        "value": node.value,
                    }
                )
        return {"logic": self.logic, "rules": out}


ConditionNode = Rule | ConditionGroup


def _parse_logic(raw: object) -> Logic:
    return "OR" if isinstance(raw, str) and raw.strip().upper() == "OR" else "AND"


def _parse_node(entry: object) -> ConditionNode:
    if not isinstance(entry, Mapping):
        raise ConditionParseError(f"Condition entry must be an object, got {type(entry).__name__}")
    if "logic" in entry and "rules" in entry:
        return parse_condition_group(entry)
    return Rule(
        field=str(entry.get("field", "") or ""),
        type=str(entry.get("type", "string") or "string"),
        operator=str(entry.get("operator", "equals") or "equals"),
        value=entry.get("value", ""),
    )


def parse_condition_group(raw: object) -> ConditionGroup:
    """Parse the stored condition shape into a tagged tree.

    ``None`` and empty values give an empty group (which always matches). A bare
    list of rules is accepted as an AND group.
    """

    if isinstance(raw, ConditionGroup):
        return raw
    if raw is None or raw == {} or raw == []:
        return ConditionGroup()
    if isinstance(raw, list):
        return ConditionGroup(logic="AND", rules=tuple(_parse_node(e) for e in raw))
    if not isinstance(raw, Mapping):
        raise ConditionParseError(f"Condition group must be an object, got {type(raw).__name__}")

    rules_raw = raw.get("rules") or []
    if not isinstance(rules_raw, list):
        raise ConditionParseError("Condition group 'rules' must be a list")
    return ConditionGroup(
        logic=_parse_logic(raw.get("logic", "AND")),
        rules=tuple(_parse_node(e) for e in rules_raw),
    )


def resolve_field(path: str, payload: Mapping[str, Any]) -> Any:
    """Resolve a dot-notation path like ``user.role`` against the payload.

    Returns ``None`` if any segment is missing or the value at that point is not
    a mapping.
    """

    current: Any = payload
    for key in path.split("."):
        if isinstance(current, Mapping) and key in current:
            current = current[key]
        else:
            return None
    return current


def to_text(value: Any) -> str:
    """Loose text cast: ``None``/``False`` -> "", ``True`` -> "1", ``5.0`` -> "5"."""

    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def to_number(value: Any) -> float:
    """Loose numeric cast.

    Text is read up to the end of its leading number (`"12abc"` -> 12.0). Text
    without one, non-finite values and anything else give 0.0.
    """

    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    elif isinstance(value, str):
        match = _LEADING_NUMBER_RE.match(value)
        if match is None:
            return 0.0
        number = float(match.group(0))
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


class ConditionType(Protocol):
    """A typed comparison, registered under a unique slug."""

    slug: str
    label: str
    operators: Mapping[str, str]

    def evaluate(self, actual: Any, operator: str, expected: Any) -> bool: ...


class StringCondition:
    slug = "string"
    label = "Text"
    operators: Mapping[str, str] = {
        "equals": "Equals",
        "not_equals": "Does not equal",
        "contains": "Contains",
        "not_contains": "Does not contain",
        "starts_with": "Starts with",
        "ends_with": "Ends with",
        "is_empty": "Is empty",
        "is_not_empty": "Is not empty",
    }

    def evaluate(self, actual: Any, operator: str, expected: Any) -> bool:
        a = to_text(actual)
        e = to_text(expected)

        if operator == "equals":
            return a == e
        if operator == "not_equals":
            return a != e
        if operator == "contains":
            return e in a
        if operator == "not_contains":
            return e not in a
        if operator == "starts_with":
            return a.startswith(e)
        if operator == "ends_with":
            return a.endswith(e) if e else a == ""
        if operator == "is_empty":
            return a == ""
        if operator == "is_not_empty":
            return a != ""
        return False


class NumericCondition:
    slug = "numeric"
    label = "Number"
    operators: Mapping[str, str] = {
        "equals": "Equals",
        "not_equals": "Does not equal",
        "greater_than": "Greater than",
        "less_than": "Less than",
        "greater_than_equal": "Greater than or equal",
        "less_than_equal": "Less than or equal",
    }

    def evaluate(self, actual: Any, operator: str, expected: Any) -> bool:
        a = to_number(actual)
        e = to_number(expected)

        if operator == "equals":
            return abs(a - e) < FLOAT_EPSILON
        if operator == "not_equals":
            return abs(a - e) >= FLOAT_EPSILON
        if operator == "greater_than":
            return a > e
        if operator == "less_than":
            return a < e
        if operator == "greater_than_equal":
            return a >= e
        if operator == "less_than_equal":
            return a <= e
        return False


class ConditionEvaluator:
    """Evaluate condition trees against an event payload.

    The evaluator is type-agnostic: every leaf is delegated to the condition type
    registered under the rule's ``type`` slug.
    """

    def __init__(self, conditions: Iterable[ConditionType] = ()) -> None:
        self._conditions: dict[str, ConditionType] = {}
        for condition in conditions:
            self.add_condition(condition)

    def add_condition(self, condition: ConditionType) -> None:
        # Keyed by slug: registering the same slug twice replaces the first one.
        self._conditions[condition.slug] = condition

    def get(self, slug: str) -> ConditionType | None:
        return self._conditions.get(slug)

    def all(self) -> list[ConditionType]:
        return list(self._conditions.values())

    def describe(self) -> list[dict[str, object]]:
        return [
            {"slug": c.slug, "label": c.label, "operators": dict(c.operators)}
            for c in self._conditions.values()
        ]

    def evaluate(
        self, group: ConditionGroup | Mapping[str, Any] | list[Any] | None, payload: Mapping[str, Any]
    ) -> bool:
        if not isinstance(group, ConditionGroup):
            group = parse_condition_group(group)

        if not group.rules:
            return True

        for node in group.rules:
            if isinstance(node, ConditionGroup):
                result = self.evaluate(node, payload)
            else:
                result = self.evaluate_rule(node, payload)

            if group.logic == "OR":
                if result:
                    return True
            elif not result:
                return False

        return group.logic != "OR"

    def evaluate_rule(self, rule: Rule, payload: Mapping[str, Any]) -> bool:
        condition = self._conditions.get(rule.type)
        if condition is None:
            return False
        actual = resolve_field(rule.field, payload)
        return condition.evaluate(actual, rule.operator, rule.value)


def default_condition_evaluator(extra: Iterable[ConditionType] = ()) -> ConditionEvaluator:
    """Build an evaluator with the built-in condition types plus ``extra``."""

    evaluator = ConditionEvaluator([StringCondition(), NumericCondition()])
    for condition in extra:
        evaluator.add_condition(condition)
    return evaluator
