from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class TriggerSpec:
    """Describes a class of event that can start workflow evaluation.

    Purely descriptive: event sources dispatch by slug and the engine does not
    require the slug to be catalogued.
    """

    slug: str
    label: str
    group: str
    payload_schema: dict[str, Any] = field(default_factory=dict)


def _object_schema(**properties: dict[str, Any]) -> dict[str, Any]:
    return {"type": "object", "properties": properties}


BUILTIN_TRIGGERS: tuple[TriggerSpec, ...] = (
    TriggerSpec(
        slug="post_published",
        label="Post Published",
        group="Posts",
        payload_schema=_object_schema(
            post_id={"type": "integer"},
            post_type={"type": "string"},
            post_title={"type": "string"},
            author_id={"type": "integer"},
            old_status={"type": "string"},
        ),
    ),
    TriggerSpec(
        slug="user_registered",
        label="User Registered",
        group="Users",
        payload_schema=_object_schema(
            user_id={"type": "integer"},
            user_email={"type": "string", "format": "email"},
            user_login={"type": "string"},
            roles={"type": "array", "items": {"type": "string"}},
        ),
    ),
    TriggerSpec(
        slug="user_role_changed",
        label="User Role Changed",
        group="Users",
        payload_schema=_object_schema(
            user_id={"type": "integer"},
            user_email={"type": "string", "format": "email"},
            new_role={"type": "string"},
            old_roles={"type": "array", "items": {"type": "string"}},
        ),
    ),
    TriggerSpec(
        slug="comment_posted",
        label="Comment Posted",
        group="Comments",
        payload_schema=_object_schema(
            comment_id={"type": "integer"},
            post_id={"type": "integer"},
            author_name={"type": "string"},
            author_email={"type": "string", "format": "email"},
            comment_status={"type": "string"},
        ),
    ),
    TriggerSpec(
        slug="inbound_webhook",
        label="Inbound Webhook",
        group="Integration",
        payload_schema=_object_schema(
            webhook_token={"type": "string"},
            payload={"type": "object"},
        ),
    ),
)


class TriggerCatalog:
    def __init__(self, triggers: Iterable[TriggerSpec] = BUILTIN_TRIGGERS) -> None:
        self._triggers: dict[str, TriggerSpec] = {}
        for trigger in triggers:
            self.add(trigger)

    def add(self, trigger: TriggerSpec) -> None:
        self._triggers[trigger.slug] = trigger

    def get(self, slug: str) -> TriggerSpec | None:
        return self._triggers.get(slug)

    def all(self) -> list[TriggerSpec]:
        return list(self._triggers.values())

    def grouped(self) -> dict[str, list[TriggerSpec]]:
        groups: dict[str, list[TriggerSpec]] = {}
        for trigger in self._triggers.values():
            groups.setdefault(trigger.group, []).append(trigger)
        return groups

    def describe(self) -> list[dict[str, object]]:
        return [
            {
                "slug": t.slug,
                "label": t.label,
                "group": t.group,
                "payload_schema": t.payload_schema,
            }
            for t in self._triggers.values()
        ]
