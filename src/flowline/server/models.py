"""Pydantic models for the REST server."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

JobStatusName = Literal["pending", "processing", "completed", "failed"]


class TriggerAccepted(BaseModel):
    received: bool = True
    trigger: str


class ApiAction(BaseModel):
    slug: str
    label: str
    group: str
    config_schema: dict[str, Any] = Field(default_factory=dict)


class ApiCondition(BaseModel):
    slug: str
    label: str
    operators: dict[str, str]


class ApiTrigger(BaseModel):
    slug: str
    label: str
    group: str
    payload_schema: dict[str, Any] = Field(default_factory=dict)


class ApiJob(BaseModel):
    id: int
    workflow_id: int
    status: JobStatusName
    attempts: int
    max_attempts: int
    payload: dict[str, Any] = Field(default_factory=dict)

    scheduled_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime


class QueueRunResponse(BaseModel):
    claimed: int
    completed: int
    failed: int
    job_ids: list[int] = Field(default_factory=list)


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
