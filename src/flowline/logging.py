"""Logging for flowline.

Two concerns live here. Process logs go through the standard library with a JSON
formatter on the root logger (`configure_logging`). Per-workflow execution entries
(action outcomes, skipped workflows, queued jobs) go to a `LogSink`; the default
sink forwards them to the `flowline.workflow` logger with the workflow ID, trigger
slug and context attached as structured fields.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, Protocol

LogLevel = Literal["debug", "info", "warning", "error"]

WORKFLOW_LOGGER_NAME = "flowline.workflow"

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_RESERVED_LOG_RECORD_ATTRS: set[str] = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}


class JsonFormatter(logging.Formatter):
    """A minimal JSON formatter for logging records."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str) -> None:
    """Configure root logging with structured JSON output."""

    root = logging.getLogger()

    # Remove any existing handlers to avoid duplicate logs when re-configuring.
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.addHandler(handler)
    root.setLevel(level.upper())

    # Keep third-party loggers reasonably quiet unless explicitly configured.
    logging.getLogger("urllib3").setLevel(max(root.level, logging.INFO))
    logging.getLogger("sqlalchemy.engine").setLevel(max(root.level, logging.WARNING))


class LogSink(Protocol):
    """Fire-and-forget destination for per-workflow execution log entries.

    Implementations must never raise back into the engine.
    """

    def log(
        self,
        workflow_id: int,
        trigger_slug: str,
        level: LogLevel,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None: ...


class LoggingSink:
    """Route workflow log entries to the ``flowline.workflow`` logger."""

    def __init__(self, *, enabled: bool = True, logger: logging.Logger | None = None) -> None:
        self._enabled = enabled
        self._logger = logger or logging.getLogger(WORKFLOW_LOGGER_NAME)

    def log(
        self,
        workflow_id: int,
        trigger_slug: str,
        level: LogLevel,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        if not self._enabled:
            return
        try:
            self._logger.log(
                _LEVELS.get(level, logging.INFO),
                message,
                extra={
                    "workflow_id": workflow_id,
                    "trigger": trigger_slug,
                    "context": context or {},
                },
            )
        except Exception:  # noqa: BLE001
            # A broken handler must not take the workflow down with it.
            pass


@dataclass(frozen=True, slots=True)
class LogEntry:
    workflow_id: int
    trigger_slug: str
    level: LogLevel
    message: str
    context: dict[str, Any]


@dataclass
class MemorySink:
    """Keep log entries in memory. Handy for tests and one-off CLI runs."""

    entries: list[LogEntry] = field(default_factory=list)

    def log(
        self,
        workflow_id: int,
        trigger_slug: str,
        level: LogLevel,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.entries.append(
            LogEntry(
                workflow_id=workflow_id,
                trigger_slug=trigger_slug,
                level=level,
                message=message,
                context=dict(context or {}),
            )
        )

    def messages(self, level: LogLevel | None = None) -> list[str]:
        return [e.message for e in self.entries if level is None or e.level == level]
