"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from flowline.config import FlowlineSettings
from flowline.engine import WorkflowEngine
from flowline.logging import MemorySink
from flowline.queue.store import QueueStore, create_queue_engine, init_db
from flowline.workflow.actions import ActionRegistry, ActionResult
from flowline.workflow.builtin_actions import JsonMetaStore, default_action_registry
from flowline.workflow.conditions import default_condition_evaluator
from flowline.workflow.definitions import JsonWorkflowStore, WorkflowRecord


@dataclass
class FakeMailTransport:
    """Records outgoing mail; ``result`` controls what ``send`` reports."""

    result: bool = True
    sent: list[dict[str, Any]] = field(default_factory=list)

    def send(self, to: str, subject: str, body: str, headers: Mapping[str, str]) -> bool:
        self.sent.append({"to": to, "subject": subject, "body": body, "headers": dict(headers)})
        return self.result


@dataclass
class RecordingAction:
    """Test action that records its calls into a shared list."""

    slug: str
    calls: list[str]
    result: ActionResult = field(default_factory=lambda: ActionResult.ok("done"))
    raises: Exception | None = None
    label: str = "Recording"
    group: str = "Test"

    def config_schema(self) -> dict[str, Any]:
        return {"type": "object"}

    def execute(self, config: Mapping[str, Any], payload: Mapping[str, Any]) -> ActionResult:
        self.calls.append(self.slug)
        if self.raises is not None:
            raise self.raises
        return self.result


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class SettingsBox:
    """Mutable holder so tests can change configuration between reads."""

    def __init__(self, settings: FlowlineSettings) -> None:
        self.value = settings

    def __call__(self) -> FlowlineSettings:
        return self.value

    def update(self, **changes: Any) -> None:
        self.value = self.value.model_copy(update=changes)


@pytest.fixture
def settings(tmp_path: Path) -> FlowlineSettings:
    """Provide test settings isolated from the environment and any .env file."""
    return FlowlineSettings(
        _env_file=None,
        execution_mode="async",
        max_retries=3,
        database_url=f"sqlite:///{tmp_path / 'queue.db'}",
        state_path=tmp_path / "state",
    )


@pytest.fixture
def settings_box(settings: FlowlineSettings) -> SettingsBox:
    return SettingsBox(settings)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue(settings: FlowlineSettings, settings_box: SettingsBox) -> QueueStore:
    db = create_queue_engine(settings.database_url)
    init_db(db)
    return QueueStore(db, settings_provider=settings_box)


@pytest.fixture
def clocked_queue(
    settings: FlowlineSettings, settings_box: SettingsBox, clock: FakeClock
) -> QueueStore:
    db = create_queue_engine(settings.database_url)
    init_db(db)
    return QueueStore(db, settings_provider=settings_box, clock=clock)


@pytest.fixture
def workflows(settings: FlowlineSettings) -> JsonWorkflowStore:
    return JsonWorkflowStore(settings.workflows_file)


@pytest.fixture
def meta_store(settings: FlowlineSettings) -> JsonMetaStore:
    return JsonMetaStore(settings.meta_file)


@pytest.fixture
def mail() -> FakeMailTransport:
    return FakeMailTransport()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def registry(
    settings_box: SettingsBox, mail: FakeMailTransport, meta_store: JsonMetaStore
) -> ActionRegistry:
    return default_action_registry(settings_box, mail=mail, meta=meta_store)


@pytest.fixture
def engine(
    registry: ActionRegistry,
    queue: QueueStore,
    workflows: JsonWorkflowStore,
    sink: MemorySink,
    settings_box: SettingsBox,
) -> WorkflowEngine:
    return WorkflowEngine(
        evaluator=default_condition_evaluator(),
        actions=registry,
        queue=queue,
        definitions=workflows,
        log=sink,
        settings_provider=settings_box,
    )


@pytest.fixture
def make_action() -> type[RecordingAction]:
    return RecordingAction


@pytest.fixture
def add_workflow(workflows: JsonWorkflowStore) -> Callable[..., WorkflowRecord]:
    def _add(
        workflow_id: int,
        trigger: str,
        *,
        conditions: dict[str, Any] | list[Any] | None = None,
        actions: list[dict[str, Any]] | None = None,
        enabled: bool = True,
        webhook_token: str | None = None,
    ) -> WorkflowRecord:
        return workflows.upsert(
            WorkflowRecord(
                id=workflow_id,
                trigger=trigger,
                conditions=conditions or {},
                actions=actions or [],
                enabled=enabled,
                webhook_token=webhook_token,
            )
        )

    return _add
