"""Factory for wiring a workflow engine from settings."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from flowline.config import FlowlineSettings
from flowline.engine import WorkflowEngine
from flowline.logging import LoggingSink, LogSink
from flowline.queue.store import QueueStore, create_queue_engine, init_db
from flowline.workflow.actions import Action
from flowline.workflow.builtin_actions import (
    JsonMetaStore,
    MailTransport,
    MetaStore,
    SmtpMailTransport,
    default_action_registry,
)
from flowline.workflow.conditions import ConditionType, default_condition_evaluator
from flowline.workflow.definitions import JsonWorkflowStore, WorkflowDefinitionStore

logger = logging.getLogger(__name__)


class EngineFactory:
    """Build a :class:`WorkflowEngine` and its collaborators."""

    @staticmethod
    def create(
        settings: FlowlineSettings,
        *,
        settings_provider: Callable[[], FlowlineSettings] | None = None,
        definitions: WorkflowDefinitionStore | None = None,
        mail: MailTransport | None = None,
        meta: MetaStore | None = None,
        log: LogSink | None = None,
        extra_actions: Iterable[Action] = (),
        extra_conditions: Iterable[ConditionType] = (),
    ) -> WorkflowEngine:
        """Create an engine backed by the configured database and state files.

        Args:
            settings: Loaded settings.
            settings_provider: Called whenever fresh settings are needed. Defaults
                to always returning ``settings``.
            definitions: Workflow definition store (defaults to the JSON store).
            mail: Mail transport for ``send_email`` (defaults to SMTP).
            meta: Meta store for the ``update_*_meta`` actions.
            log: Workflow log sink.
            extra_actions: Actions registered after the built-ins.
            extra_conditions: Condition types registered after the built-ins.

        Returns:
            A ready-to-use engine. The queue tables are created if missing.
        """
        provider = settings_provider or (lambda: settings)

        db = create_queue_engine(settings.database_url)
        init_db(db)
        logger.info("Queue database ready", extra={"database_url": db.url.render_as_string()})

        return WorkflowEngine(
            evaluator=default_condition_evaluator(extra_conditions),
            actions=default_action_registry(
                provider,
                mail=mail or SmtpMailTransport.from_settings(settings),
                meta=meta or JsonMetaStore(settings.meta_file),
                extra=extra_actions,
            ),
            queue=QueueStore(db, settings_provider=provider),
            definitions=definitions or JsonWorkflowStore(settings.workflows_file),
            log=log or LoggingSink(enabled=settings.enable_logging),
            settings_provider=provider,
        )
