#!/usr/bin/env python3
"""Programmatic workflow example.

This demonstrates using the engine components directly:

* load settings from `.env`
* register a workflow bound to `post_published`
* dispatch an event and drain the queue once

Email delivery is replaced by a transport that prints instead of sending.
"""

from __future__ import annotations

import argparse
from collections.abc import Mapping
from typing import Sequence

from flowline.config import FlowlineSettings
from flowline.factory import EngineFactory
from flowline.logging import configure_logging
from flowline.workflow.definitions import JsonWorkflowStore, WorkflowRecord


class PrintingMailTransport:
    def send(self, to: str, subject: str, body: str, headers: Mapping[str, str]) -> bool:
        print(f"To: {to}\nSubject: {subject}\n\n{body}\n")
        return True


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dispatch a post_published event (example).")
    parser.add_argument("--post-id", type=int, default=42, help="Post ID carried by the event")
    parser.add_argument("--title", default="Hello world", help="Post title")
    parser.add_argument("--author-email", required=True, help="Recipient of the notification")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = FlowlineSettings()
    configure_logging(settings.log_level)

    JsonWorkflowStore(settings.workflows_file).upsert(
        WorkflowRecord(
            id=1,
            name="Notify author on publish",
            trigger="post_published",
            conditions={
                "logic": "AND",
                "rules": [
                    {"field": "post_type", "type": "string", "operator": "equals", "value": "post"}
                ],
            },
            actions=[
                {
                    "type": "send_email",
                    "config": {
                        "to": "{{author_email}}",
                        "subject": "Published: {{post_title}}",
                        "body": "<p>Post #{{post_id}} is live.</p>",
                    },
                }
            ],
        )
    )

    engine = EngineFactory.create(settings, mail=PrintingMailTransport())
    engine.handle_trigger(
        "post_published",
        {
            "post_id": args.post_id,
            "post_type": "post",
            "post_title": args.title,
            "author_email": args.author_email,
        },
    )

    report = engine.process_queue()
    print(f"Claimed {report.claimed} job(s): {report.completed} completed, {report.failed} failed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
