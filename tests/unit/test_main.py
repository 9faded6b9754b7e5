from __future__ import annotations

import json
from pathlib import Path

import pytest

from flowline.main import build_parser, main
from flowline.workflow.definitions import JsonWorkflowStore, WorkflowRecord


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    # Leave the root logger to pytest; main() would otherwise replace its handlers.
    monkeypatch.setattr("flowline.main.configure_logging", lambda _level: None)
    monkeypatch.setenv("FLOWLINE_STATE_PATH", str(tmp_path / "state"))
    monkeypatch.setenv("FLOWLINE_DATABASE_URL", f"sqlite:///{tmp_path / 'queue.db'}")
    monkeypatch.setenv("FLOWLINE_EXECUTION_MODE", "async")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    JsonWorkflowStore(tmp_path / "state" / "workflows.json").upsert(
        WorkflowRecord(
            id=1,
            trigger="post_published",
            conditions={
                "logic": "AND",
                "rules": [{"field": "post_type", "type": "string", "value": "post"}],
            },
        )
    )
    return tmp_path


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_payload_must_be_a_json_object() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["dispatch", "--trigger", "x", "--payload", "[1]"])


def test_dispatch_then_process_queue(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["dispatch", "--trigger", "post_published", "--payload", '{"post_type": "post"}']) == 0
    assert main(["process-queue"]) == 0

    out = capsys.readouterr().out
    assert "Dispatched trigger post_published" in out
    assert "Claimed 1 job(s): 1 completed, 0 failed" in out


def test_run_workflow_exit_code_reflects_outcome(
    cli_env: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert main(["run-workflow", "--workflow-id", "1", "--payload", '{"post_type": "post"}']) == 0
    matched = json.loads(capsys.readouterr().out)
    assert matched["matched"] is True
    assert matched["succeeded"] is True

    assert main(["run-workflow", "--workflow-id", "1", "--payload", '{"post_type": "page"}']) == 1
    assert json.loads(capsys.readouterr().out)["matched"] is False


def test_purge_queue(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["purge-queue", "--days", "0"]) == 0
    assert "Purged 0 job(s) older than 0 day(s)" in capsys.readouterr().out


def test_listing_commands(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["list-actions"]) == 0
    assert "send_webhook" in [a["slug"] for a in json.loads(capsys.readouterr().out)]

    assert main(["list-conditions"]) == 0
    assert [c["slug"] for c in json.loads(capsys.readouterr().out)] == ["string", "numeric"]

    assert main(["list-triggers"]) == 0
    assert "comment_posted" in [t["slug"] for t in json.loads(capsys.readouterr().out)]


def test_invalid_configuration_exits_2(
    cli_env: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("FLOWLINE_MAX_RETRIES", "0")

    assert main(["list-actions"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_corrupt_definitions_exit_2(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (cli_env / "state" / "workflows.json").write_text("{oops", encoding="utf-8")

    assert main(["dispatch", "--trigger", "post_published"]) == 2
    assert "Invalid workflow file" in capsys.readouterr().err
