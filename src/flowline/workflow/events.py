from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class TriggerEvent:
    """A signal emitted by an event source.

    Event sources detect external facts (a post was published, a webhook arrived)
    and hand the engine a slug plus a payload. They never run workflows themselves.
    The payload is only borrowed for the duration of the dispatch.
    """

    slug: str
    payload: dict[str, Any] = field(default_factory=dict)
