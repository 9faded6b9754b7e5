"""Configuration for the workflow automation engine.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Settings are immutable once loaded. Components that want to honour changes made
while the process is running take a ``settings_provider`` callable and call it at
the start of each dispatch or queue run instead of holding a shared global.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Upper bound applied to webhook timeouts regardless of configuration.
WEBHOOK_TIMEOUT_CEILING = 30

ExecutionMode = Literal["sync", "async"]


class FlowlineSettings(BaseSettings):
    """Settings for the engine, queue and built-in actions.

    Environment variables:
    - FLOWLINE_EXECUTION_MODE   (sync | async)
    - FLOWLINE_MAX_RETRIES
    - FLOWLINE_WEBHOOK_TIMEOUT
    - FLOWLINE_DATABASE_URL
    - FLOWLINE_STATE_PATH
    - LOG_LEVEL

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `FlowlineSettings(_env_file=path_to_env)`.
    """

    execution_mode: ExecutionMode = Field(
        default="async",
        validation_alias="FLOWLINE_EXECUTION_MODE",
        description="Run matched workflows inline (sync) or through the job queue (async)",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        validation_alias="FLOWLINE_MAX_RETRIES",
        description="Attempt ceiling copied onto each queue job when it is enqueued",
    )
    webhook_timeout: int = Field(
        default=15,
        ge=1,
        validation_alias="FLOWLINE_WEBHOOK_TIMEOUT",
        description=(
            "Timeout (seconds) for outbound webhook requests. "
            f"Values above {WEBHOOK_TIMEOUT_CEILING} are clamped at request time."
        ),
    )

    queue_batch_size: int = Field(
        default=10,
        ge=1,
        validation_alias="FLOWLINE_QUEUE_BATCH_SIZE",
        description="Maximum number of jobs claimed per queue run",
    )
    queue_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        validation_alias="FLOWLINE_QUEUE_INTERVAL_SECONDS",
        description="Polling interval (seconds) for the background queue runner",
    )
    queue_runner_enabled: bool = Field(
        default=False,
        validation_alias="FLOWLINE_QUEUE_RUNNER_ENABLED",
        description="If true, the HTTP server starts the background queue runner",
    )
    queue_retention_days: int = Field(
        default=7,
        ge=0,
        validation_alias="FLOWLINE_QUEUE_RETENTION_DAYS",
        description="Default age (days) after which terminal jobs are purged",
    )

    enable_logging: bool = Field(
        default=True,
        validation_alias="FLOWLINE_ENABLE_LOGGING",
        description="Emit per-workflow execution log entries",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    database_url: str = Field(
        default="sqlite:///flowline_state/queue.db",
        validation_alias="FLOWLINE_DATABASE_URL",
        description="SQLAlchemy URL of the queue database",
    )
    state_path: Path = Field(
        default=Path("flowline_state"),
        validation_alias="FLOWLINE_STATE_PATH",
        description="Directory where workflow definitions and entity meta are persisted",
    )

    smtp_host: str = Field(default="localhost", validation_alias="FLOWLINE_SMTP_HOST")
    smtp_port: int = Field(default=25, validation_alias="FLOWLINE_SMTP_PORT")
    smtp_username: str = Field(default="", validation_alias="FLOWLINE_SMTP_USERNAME")
    smtp_password: str = Field(default="", validation_alias="FLOWLINE_SMTP_PASSWORD")
    smtp_from_addr: str = Field(
        default="flowline@localhost", validation_alias="FLOWLINE_SMTP_FROM_ADDR"
    )
    smtp_use_tls: bool = Field(default=False, validation_alias="FLOWLINE_SMTP_USE_TLS")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    @property
    def workflows_file(self) -> Path:
        """Path where workflow definitions are persisted."""

        return self.state_path / "workflows.json"

    @property
    def meta_file(self) -> Path:
        """Path where post/user meta is persisted."""

        return self.state_path / "meta.json"

    @property
    def effective_webhook_timeout(self) -> int:
        return min(self.webhook_timeout, WEBHOOK_TIMEOUT_CEILING)
