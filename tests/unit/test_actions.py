from __future__ import annotations

import pytest

from flowline.workflow.actions import ActionRegistry, ActionResult


def test_action_result_constructors() -> None:
    ok = ActionResult.ok("done", {"id": 1})
    assert ok.success is True
    assert ok.message == "done"
    assert ok.data == {"id": 1}

    bad = ActionResult.failure("nope")
    assert bad.success is False
    assert bad.data == {}
    assert bad.to_json() == {"success": False, "message": "nope", "data": {}}


def test_registry_keeps_registration_order_and_overwrites_by_slug(make_action) -> None:
    calls: list[str] = []
    first = make_action("a", calls, label="First")
    second = make_action("b", calls)
    replacement = make_action("a", calls, label="Replacement")

    registry = ActionRegistry([first, second])
    registry.add(replacement)

    assert len(registry) == 2
    assert "a" in registry
    assert "missing" not in registry
    assert registry.get("a") is replacement
    assert [a.slug for a in registry.all()] == ["a", "b"]


def test_registry_grouped(make_action) -> None:
    calls: list[str] = []
    registry = ActionRegistry(
        [
            make_action("mail", calls, group="Communication"),
            make_action("hook", calls, group="Integration"),
            make_action("sms", calls, group="Communication"),
        ]
    )

    grouped = registry.grouped()

    assert list(grouped) == ["Communication", "Integration"]
    assert [a.slug for a in grouped["Communication"]] == ["mail", "sms"]


def test_registry_describe_includes_schema(make_action) -> None:
    registry = ActionRegistry([make_action("a", [])])

    assert registry.describe() == [
        {"slug": "a", "label": "Recording", "group": "Test", "config_schema": {"type": "object"}}
    ]


def test_default_registry_builtin_slugs(registry) -> None:
    assert [a.slug for a in registry.all()] == [
        "send_email",
        "send_webhook",
        "update_post_meta",
        "update_user_meta",
    ]
    assert list(registry.grouped()) == ["Communication", "Integration", "Data"]


def test_action_result_data_is_read_only() -> None:
    source = {"id": 1}
    result = ActionResult.ok("done", source)
    source["id"] = 2

    assert result.data == {"id": 1}
    with pytest.raises(TypeError):
        result.data["id"] = 3  # type: ignore[index]
    with pytest.raises(TypeError):
        ActionResult(success=True, data={"a": 1}).data["a"] = 2  # type: ignore[index]
