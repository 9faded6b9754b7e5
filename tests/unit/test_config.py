"""Unit tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from flowline.config import FlowlineSettings

_ENV_VARS = (
    "FLOWLINE_EXECUTION_MODE",
    "FLOWLINE_MAX_RETRIES",
    "FLOWLINE_WEBHOOK_TIMEOUT",
    "FLOWLINE_STATE_PATH",
    "FLOWLINE_DATABASE_URL",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_defaults(clean_env: Path) -> None:
    settings = FlowlineSettings()

    assert settings.execution_mode == "async"
    assert settings.max_retries == 3
    assert settings.webhook_timeout == 15
    assert settings.queue_batch_size == 10
    assert settings.enable_logging is True
    assert settings.state_path == Path("flowline_state")
    assert settings.workflows_file == Path("flowline_state") / "workflows.json"
    assert settings.meta_file == Path("flowline_state") / "meta.json"


def test_settings_loads_from_dotenv(clean_env: Path) -> None:
    (clean_env / ".env").write_text(
        "\n".join(
            [
                "FLOWLINE_EXECUTION_MODE=sync",
                "FLOWLINE_MAX_RETRIES=5",
                "LOG_LEVEL=DEBUG",
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = FlowlineSettings()

    assert settings.execution_mode == "sync"
    assert settings.max_retries == 5
    assert settings.log_level == "DEBUG"


def test_environment_overrides_dotenv(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (clean_env / ".env").write_text("FLOWLINE_MAX_RETRIES=5\n", encoding="utf-8")
    monkeypatch.setenv("FLOWLINE_MAX_RETRIES", "7")

    assert FlowlineSettings().max_retries == 7


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("FLOWLINE_EXECUTION_MODE", "later"),
        ("FLOWLINE_MAX_RETRIES", "0"),
        ("FLOWLINE_MAX_RETRIES", "11"),
        ("FLOWLINE_WEBHOOK_TIMEOUT", "0"),
    ],
)
def test_invalid_values_are_rejected(
    clean_env: Path, monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        FlowlineSettings()


def test_webhook_timeout_is_clamped(clean_env: Path) -> None:
    assert FlowlineSettings(webhook_timeout=10).effective_webhook_timeout == 10
    assert FlowlineSettings(webhook_timeout=90).effective_webhook_timeout == 30


def test_settings_are_immutable(clean_env: Path) -> None:
    settings = FlowlineSettings()

    with pytest.raises(ValidationError):
        settings.max_retries = 9  # type: ignore[misc]

    updated = settings.model_copy(update={"max_retries": 9})
    assert updated.max_retries == 9
    assert settings.max_retries == 3
