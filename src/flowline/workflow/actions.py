from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Outcome of a single action invocation. Built once, never mutated."""

    success: bool
    message: str = ""
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    @classmethod
    def ok(cls, message: str = "", data: Mapping[str, Any] | None = None) -> ActionResult:
        return cls(success=True, message=message, data=data or {})

    @classmethod
    def failure(cls, message: str = "", data: Mapping[str, Any] | None = None) -> ActionResult:
        return cls(success=False, message=message, data=data or {})

    def to_json(self) -> dict[str, object]:
        return {"success": self.success, "message": self.message, "data": dict(self.data)}


class Action(Protocol):
    """A side-effecting step a workflow can run.

    Expected failures (bad input, unreachable endpoint, missing target entity) are
    returned as ``ActionResult.failure``. Only programming or structural faults
    should raise; the engine contains those too.
    """

    slug: str
    label: str
    group: str

    def config_schema(self) -> dict[str, Any]: ...

    def execute(self, config: Mapping[str, Any], payload: Mapping[str, Any]) -> ActionResult: ...


class ActionRegistry:
    """Actions keyed by slug. Registering a slug again replaces the earlier action."""

    def __init__(self, actions: Iterable[Action] = ()) -> None:
        self._actions: dict[str, Action] = {}
        for action in actions:
            self.add(action)

    def add(self, action: Action) -> None:
        self._actions[action.slug] = action

    def get(self, slug: str) -> Action | None:
        return self._actions.get(slug)

    def all(self) -> list[Action]:
        return list(self._actions.values())

    def grouped(self) -> dict[str, list[Action]]:
        groups: dict[str, list[Action]] = {}
        for action in self._actions.values():
            groups.setdefault(action.group, []).append(action)
        return groups

    def describe(self) -> list[dict[str, object]]:
        return [
            {
                "slug": a.slug,
                "label": a.label,
                "group": a.group,
                "config_schema": a.config_schema(),
            }
            for a in self._actions.values()
        ]

    def __contains__(self, slug: object) -> bool:
        return slug in self._actions

    def __len__(self) -> int:
        return len(self._actions)
