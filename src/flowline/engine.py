"""Workflow engine - ties triggers, conditions, actions and the queue together.

Per dispatch::

    handle_trigger -> enabled workflows for the slug
        -> sync:  execute_workflow
        -> async: queue.push ... process_queue -> claim -> execute_workflow
                                                  -> complete | fail

The engine does no locking of its own. Exclusive delivery of queue jobs is the
queue store's claim guarantee.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from flowline.config import FlowlineSettings
from flowline.logging import LogSink
from flowline.queue.store import QueueStore
from flowline.workflow.actions import ActionRegistry, ActionResult
from flowline.workflow.conditions import ConditionEvaluator
from flowline.workflow.definitions import WorkflowDefinitionStore
from flowline.workflow.events import TriggerEvent

logger = logging.getLogger(__name__)

QUEUE_TRIGGER = "queue"


@dataclass(frozen=True, slots=True)
class WorkflowRun:
    """What happened during one ``execute_workflow`` call."""

    workflow_id: int
    matched: bool
    executed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    halted_at: str | None = None
    found: bool = True

    @property
    def succeeded(self) -> bool:
        return self.found and self.matched and self.halted_at is None


@dataclass
class QueueRunReport:
    claimed: int = 0
    completed: int = 0
    failed: int = 0
    job_ids: list[int] = field(default_factory=list)


class WorkflowEngine:
    def __init__(
        self,
        *,
        evaluator: ConditionEvaluator,
        actions: ActionRegistry,
        queue: QueueStore,
        definitions: WorkflowDefinitionStore,
        log: LogSink,
        settings_provider: Callable[[], FlowlineSettings],
    ) -> None:
        self._evaluator = evaluator
        self._actions = actions
        self._queue = queue
        self._definitions = definitions
        self._log = log
        self._settings_provider = settings_provider

    @property
    def evaluator(self) -> ConditionEvaluator:
        return self._evaluator

    @property
    def actions(self) -> ActionRegistry:
        return self._actions

    @property
    def queue(self) -> QueueStore:
        return self._queue

    @property
    def definitions(self) -> WorkflowDefinitionStore:
        return self._definitions

    def handle_trigger(self, trigger_slug: str, payload: Mapping[str, Any]) -> None:
        """Run or enqueue every enabled workflow bound to ``trigger_slug``.

        The execution mode is read per workflow, so a configuration change in the
        middle of a dispatch can leave one dispatch with mixed sync/async handling.
        """

        snapshot = dict(payload)
        workflow_ids = self._definitions.find_enabled_by_trigger(trigger_slug)
        logger.debug(
            "Trigger dispatched",
            extra={"trigger": trigger_slug, "workflow_count": len(workflow_ids)},
        )

        for workflow_id in workflow_ids:
            mode = self._settings_provider().execution_mode
            if mode == "sync":
                self.execute_workflow(workflow_id, snapshot)
            else:
                job_id = self._queue.push(workflow_id, snapshot)
                self._log.log(
                    workflow_id,
                    trigger_slug,
                    "info",
                    "Workflow queued for async execution.",
                    {"job_id": job_id},
                )

    def dispatch(self, event: TriggerEvent) -> None:
        self.handle_trigger(event.slug, event.payload)

    def execute_workflow(self, workflow_id: int, payload: Mapping[str, Any]) -> WorkflowRun:
        """Evaluate and run one workflow against ``payload``.

        The definition is read live so edits made after a job was enqueued apply.
        Actions run strictly in order; the first failure or fault stops the chain
        and nothing already done is rolled back. Action faults never escape.
        """

        definition = self._definitions.get_definition(workflow_id)
        if definition is None:
            self._log.log(workflow_id, "", "warning", "Workflow definition not found.")
            return WorkflowRun(workflow_id=workflow_id, matched=False, found=False)

        trigger = definition.trigger_slug

        if not self._evaluator.evaluate(definition.conditions, payload):
            self._log.log(
                workflow_id,
                trigger,
                "info",
                "Conditions not met, skipping execution.",
                {"payload": dict(payload)},
            )
            return WorkflowRun(workflow_id=workflow_id, matched=False)

        executed: list[str] = []
        skipped: list[str] = []

        for invocation in definition.actions:
            slug = invocation.type
            action = self._actions.get(slug)
            if action is None:
                self._log.log(workflow_id, trigger, "warning", f"Unknown action type: {slug}")
                skipped.append(slug)
                continue

            executed.append(slug)
            try:
                result = action.execute(invocation.config, payload)
                if not isinstance(result, ActionResult):
                    raise TypeError(
                        f"execute() returned {type(result).__name__}, expected ActionResult"
                    )
            except Exception as e:
                self._log.log(
                    workflow_id,
                    trigger,
                    "error",
                    f'Action "{slug}" threw an exception: {e}',
                    {"trace": traceback.format_exc()},
                )
                return WorkflowRun(
                    workflow_id=workflow_id,
                    matched=True,
                    executed=tuple(executed),
                    skipped=tuple(skipped),
                    halted_at=slug,
                )

            if result.success:
                self._log.log(
                    workflow_id,
                    trigger,
                    "info",
                    f'Action "{slug}" succeeded: {result.message}',
                    dict(result.data),
                )
                continue

            self._log.log(
                workflow_id,
                trigger,
                "error",
                f'Action "{slug}" failed: {result.message}',
                dict(result.data),
            )
            return WorkflowRun(
                workflow_id=workflow_id,
                matched=True,
                executed=tuple(executed),
                skipped=tuple(skipped),
                halted_at=slug,
            )

        return WorkflowRun(
            workflow_id=workflow_id,
            matched=True,
            executed=tuple(executed),
            skipped=tuple(skipped),
        )

    def process_queue(self, limit: int | None = None) -> QueueRunReport:
        """Claim a batch of due jobs and execute them.

        A fault in one job marks that job failed (or back to pending for retry)
        and the batch carries on. Faults from ``claim`` itself propagate.
        """

        batch_size = limit if limit is not None else self._settings_provider().queue_batch_size
        jobs = self._queue.claim(batch_size)
        report = QueueRunReport(claimed=len(jobs))

        for job in jobs:
            report.job_ids.append(job.id)
            try:
                self.execute_workflow(job.workflow_id, job.decoded_payload())
                self._queue.complete(job.id)
                report.completed += 1
            except Exception as e:
                logger.exception(
                    "Queue job failed", extra={"job_id": job.id, "workflow_id": job.workflow_id}
                )
                self._log.log(
                    job.workflow_id,
                    QUEUE_TRIGGER,
                    "error",
                    f"Queue job {job.id} failed: {e}",
                )
                self._queue.fail(job.id)
                report.failed += 1

        if jobs:
            logger.info(
                "Queue batch processed",
                extra={
                    "claimed": report.claimed,
                    "completed": report.completed,
                    "failed": report.failed,
                },
            )
        return report
