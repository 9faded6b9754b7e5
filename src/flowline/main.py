"""CLI entrypoint for the workflow engine.

Acts as an event source (``dispatch``), a direct executor (``run-workflow``) and
the periodic driver for the job queue (``process-queue`` from cron or a systemd
timer).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from pydantic import ValidationError

from flowline import __version__
from flowline.config import FlowlineSettings
from flowline.factory import EngineFactory
from flowline.logging import configure_logging
from flowline.workflow.definitions import WorkflowDefinitionError
from flowline.workflow.events import TriggerEvent
from flowline.workflow.triggers import TriggerCatalog

logger = logging.getLogger(__name__)


def _parse_payload(value: str) -> dict[str, Any]:
    try:
        payload = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise argparse.ArgumentTypeError("payload must be a JSON object")
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowline",
        description="Event-driven workflow automation engine",
    )
    parser.add_argument("--version", action="version", version=f"flowline {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    dispatch = subparsers.add_parser(
        "dispatch", help="Dispatch a trigger event to all enabled workflows bound to it"
    )
    dispatch.add_argument("--trigger", required=True, help="Trigger slug, e.g. 'post_published'")
    dispatch.add_argument(
        "--payload",
        type=_parse_payload,
        default={},
        help='Event payload as a JSON object, e.g. \'{"post_id": 42}\'',
    )

    run_workflow = subparsers.add_parser(
        "run-workflow", help="Execute one workflow synchronously, bypassing the queue"
    )
    run_workflow.add_argument("--workflow-id", type=int, required=True, help="Workflow ID")
    run_workflow.add_argument(
        "--payload", type=_parse_payload, default={}, help="Event payload as a JSON object"
    )

    process = subparsers.add_parser("process-queue", help="Claim and execute one batch of jobs")
    process.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of jobs to claim (defaults to FLOWLINE_QUEUE_BATCH_SIZE)",
    )

    purge = subparsers.add_parser("purge-queue", help="Delete old completed/failed jobs")
    purge.add_argument(
        "--days",
        type=int,
        default=None,
        help="Age threshold in days (defaults to FLOWLINE_QUEUE_RETENTION_DAYS)",
    )

    subparsers.add_parser("list-actions", help="List registered action types")
    subparsers.add_parser("list-conditions", help="List registered condition types")
    subparsers.add_parser("list-triggers", help="List catalogued trigger types")

    return parser


def _print_json(value: object) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False, default=str))


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = FlowlineSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    if args.command == "list-triggers":
        _print_json(TriggerCatalog().describe())
        return 0

    try:
        engine = EngineFactory.create(settings)

        if args.command == "dispatch":
            engine.dispatch(TriggerEvent(slug=args.trigger, payload=args.payload))
            print(f"Dispatched trigger {args.trigger}")
            return 0

        if args.command == "run-workflow":
            run = engine.execute_workflow(args.workflow_id, args.payload)
            _print_json(
                {
                    "workflow_id": run.workflow_id,
                    "found": run.found,
                    "matched": run.matched,
                    "executed": list(run.executed),
                    "skipped": list(run.skipped),
                    "halted_at": run.halted_at,
                    "succeeded": run.succeeded,
                }
            )
            return 0 if run.succeeded else 1

        if args.command == "process-queue":
            report = engine.process_queue(args.limit)
            print(
                f"Claimed {report.claimed} job(s): "
                f"{report.completed} completed, {report.failed} failed"
            )
            return 0

        if args.command == "purge-queue":
            days = args.days if args.days is not None else settings.queue_retention_days
            deleted = engine.queue.purge(days)
            print(f"Purged {deleted} job(s) older than {days} day(s)")
            return 0

        if args.command == "list-actions":
            _print_json(engine.actions.describe())
            return 0

        if args.command == "list-conditions":
            _print_json(engine.evaluator.describe())
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except WorkflowDefinitionError as e:
        logger.error("Invalid workflow definitions", extra={"error": str(e)})
        print(str(e), file=sys.stderr)
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
