"""Workflow definitions and the store they are read from.

The engine never mutates definitions. It reads them per dispatch and again per
execution so that edits made between enqueue and execution are honoured.

The bundled store persists to a single JSON file, which is enough for a single
host. Anything bigger should implement :class:`WorkflowDefinitionStore` on top of
a real database.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError

from flowline.workflow.conditions import ConditionGroup, ConditionParseError, parse_condition_group


class WorkflowDefinitionError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class ActionInvocation:
    type: str
    config: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class WorkflowDefinition:
    id: int
    trigger_slug: str
    conditions: ConditionGroup
    actions: tuple[ActionInvocation, ...]
    enabled: bool = True
    name: str = ""
    webhook_token: str | None = None


class WorkflowRecord(BaseModel):
    """Stored shape of a workflow. Conditions keep their untagged JSON form."""

    id: int = Field(gt=0)
    name: str = ""
    trigger: str
    conditions: dict[str, Any] | list[Any] = Field(default_factory=dict)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    enabled: bool = True
    webhook_token: str | None = None

    def to_definition(self) -> WorkflowDefinition:
        try:
            conditions = parse_condition_group(self.conditions)
        except ConditionParseError as e:
            raise WorkflowDefinitionError(f"Workflow {self.id}: {e}") from e

        invocations: list[ActionInvocation] = []
        for raw in self.actions:
            config = raw.get("config") or {}
            if not isinstance(config, Mapping):
                raise WorkflowDefinitionError(
                    f"Workflow {self.id}: action config must be an object"
                )
            invocations.append(ActionInvocation(type=str(raw.get("type", "")), config=config))

        return WorkflowDefinition(
            id=self.id,
            trigger_slug=self.trigger,
            conditions=conditions,
            actions=tuple(invocations),
            enabled=self.enabled,
            name=self.name,
            webhook_token=self.webhook_token,
        )


class WorkflowDefinitionStore(Protocol):
    def find_enabled_by_trigger(self, trigger_slug: str) -> list[int]: ...

    def get_definition(self, workflow_id: int) -> WorkflowDefinition | None: ...

    def find_by_webhook_token(self, token: str) -> WorkflowDefinition | None: ...


class JsonWorkflowStore:
    """Workflow records persisted as a JSON list."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[WorkflowRecord]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise WorkflowDefinitionError(f"Invalid workflow file {self.path}: {e}") from e
        if not isinstance(raw, list):
            raise WorkflowDefinitionError(f"Workflow file {self.path} must contain a list")
        try:
            return [WorkflowRecord.model_validate(item) for item in raw]
        except ValidationError as e:
            raise WorkflowDefinitionError(str(e)) from e

    def _save_unlocked(self, records: list[WorkflowRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.model_dump(mode="json") for r in records]
        self.path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    def list(self) -> list[WorkflowRecord]:
        with self._lock:
            return self._load_unlocked()

    def upsert(self, record: WorkflowRecord) -> WorkflowRecord:
        with self._lock:
            records = [r for r in self._load_unlocked() if r.id != record.id]
            records.append(record)
            records.sort(key=lambda r: r.id)
            self._save_unlocked(records)
            return record

    def find_enabled_by_trigger(self, trigger_slug: str) -> list[int]:
        with self._lock:
            return [
                r.id for r in self._load_unlocked() if r.enabled and r.trigger == trigger_slug
            ]

    def get_definition(self, workflow_id: int) -> WorkflowDefinition | None:
        with self._lock:
            for record in self._load_unlocked():
                if record.id == workflow_id:
                    return record.to_definition()
            return None

    def find_by_webhook_token(self, token: str) -> WorkflowDefinition | None:
        if not token:
            return None
        with self._lock:
            for record in self._load_unlocked():
                if record.webhook_token == token:
                    return record.to_definition()
            return None
