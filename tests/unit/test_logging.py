from __future__ import annotations

import json
import logging

import pytest

from flowline.logging import JsonFormatter, LoggingSink, MemorySink, configure_logging


def test_json_formatter_includes_extras() -> None:
    record = logging.LogRecord("flowline.test", logging.INFO, __file__, 1, "hello %s", ("x",), None)
    record.workflow_id = 7

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "flowline.test"
    assert payload["message"] == "hello x"
    assert payload["extra"] == {"workflow_id": 7}


def test_logging_sink_routes_to_workflow_logger(caplog: pytest.LogCaptureFixture) -> None:
    sink = LoggingSink()

    with caplog.at_level(logging.DEBUG, logger="flowline.workflow"):
        sink.log(3, "post_published", "warning", "Unknown action type: x", {"k": "v"})

    (record,) = caplog.records
    assert record.levelno == logging.WARNING
    assert record.getMessage() == "Unknown action type: x"
    assert record.workflow_id == 3
    assert record.trigger == "post_published"
    assert record.context == {"k": "v"}


def test_disabled_sink_is_silent(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="flowline.workflow"):
        LoggingSink(enabled=False).log(1, "t", "error", "nope")

    assert caplog.records == []


def test_sink_never_raises() -> None:
    class BrokenLogger:
        def log(self, *_args, **_kwargs) -> None:
            raise RuntimeError("handler down")

    LoggingSink(logger=BrokenLogger()).log(1, "t", "info", "still fine")  # type: ignore[arg-type]


def test_memory_sink_filters_by_level() -> None:
    sink = MemorySink()
    sink.log(1, "t", "info", "a")
    sink.log(1, "t", "error", "b", {"x": 1})

    assert sink.messages() == ["a", "b"]
    assert sink.messages("error") == ["b"]
    assert sink.entries[1].context == {"x": 1}


def test_configure_logging_installs_json_handler() -> None:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    try:
        configure_logging("debug")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
