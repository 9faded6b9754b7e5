from __future__ import annotations

import pytest

from flowline.workflow.conditions import ConditionGroup, Rule
from flowline.workflow.definitions import (
    ActionInvocation,
    JsonWorkflowStore,
    WorkflowDefinitionError,
    WorkflowRecord,
)


def test_missing_file_means_no_workflows(tmp_path) -> None:
    store = JsonWorkflowStore(tmp_path / "workflows.json")

    assert store.list() == []
    assert store.find_enabled_by_trigger("post_published") == []
    assert store.get_definition(1) is None


def test_upsert_replaces_by_id_and_keeps_id_order(workflows) -> None:
    workflows.upsert(WorkflowRecord(id=2, trigger="b"))
    workflows.upsert(WorkflowRecord(id=1, trigger="a"))
    workflows.upsert(WorkflowRecord(id=2, trigger="c", name="renamed"))

    records = workflows.list()
    assert [(r.id, r.trigger, r.name) for r in records] == [(1, "a", ""), (2, "c", "renamed")]


def test_find_enabled_by_trigger(add_workflow, workflows) -> None:
    add_workflow(3, "post_published")
    add_workflow(1, "post_published")
    add_workflow(2, "post_published", enabled=False)
    add_workflow(4, "comment_posted")

    assert workflows.find_enabled_by_trigger("post_published") == [1, 3]


def test_get_definition_parses_conditions_and_actions(add_workflow, workflows) -> None:
    add_workflow(
        5,
        "post_published",
        conditions={"logic": "or", "rules": [{"field": "post_type", "value": "post"}]},
        actions=[{"type": "send_email", "config": {"to": "a@example.com"}}, {"type": "x"}],
    )

    definition = workflows.get_definition(5)

    assert definition is not None
    assert definition.trigger_slug == "post_published"
    assert definition.conditions == ConditionGroup(
        logic="OR", rules=(Rule(field="post_type", value="post"),)
    )
    assert definition.actions == (
        ActionInvocation(type="send_email", config={"to": "a@example.com"}),
        ActionInvocation(type="x", config={}),
    )


def test_find_by_webhook_token(add_workflow, workflows) -> None:
    token = "a" * 32
    add_workflow(1, "inbound_webhook", webhook_token=token)

    assert workflows.find_by_webhook_token(token).id == 1
    assert workflows.find_by_webhook_token("b" * 32) is None
    assert workflows.find_by_webhook_token("") is None


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        '{"id": 1}',
        '[{"id": 0, "trigger": "x"}]',
        '[{"id": 1}]',
    ],
)
def test_corrupt_file_raises(tmp_path, content: str) -> None:
    path = tmp_path / "workflows.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(WorkflowDefinitionError):
        JsonWorkflowStore(path).list()


def test_malformed_condition_entries_raise_on_load(add_workflow, workflows) -> None:
    add_workflow(1, "evt", conditions={"logic": "AND", "rules": ["oops"]})

    with pytest.raises(WorkflowDefinitionError, match="Workflow 1"):
        workflows.get_definition(1)
