"""FastAPI app factory.

Endpoints are thin wrappers over the workflow engine. The app is an
event source (trigger + inbound webhook ingress), an introspection surface, and
optionally the host of the periodic queue runner.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Query

from flowline import __version__
from flowline.config import FlowlineSettings
from flowline.engine import WorkflowEngine
from flowline.factory import EngineFactory
from flowline.queue.store import JobStatus, QueueJob
from flowline.server.models import (
    ApiAction,
    ApiCondition,
    ApiJob,
    ApiTrigger,
    JobStatusName,
    QueueRunResponse,
    QueueStats,
    TriggerAccepted,
)
from flowline.server.queue_runner import QueueRunner
from flowline.workflow.events import TriggerEvent
from flowline.workflow.triggers import TriggerCatalog

logger = logging.getLogger(__name__)

INBOUND_WEBHOOK_TRIGGER = "inbound_webhook"
_WEBHOOK_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{32,64}$")


def _to_api_job(job: QueueJob) -> ApiJob:
    return ApiJob(
        id=job.id,
        workflow_id=job.workflow_id,
        status=job.status.value,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        payload=job.decoded_payload(),
        scheduled_at=job.scheduled_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        created_at=job.created_at,
    )


def create_app(
    settings: FlowlineSettings | None = None,
    engine: WorkflowEngine | None = None,
    triggers: TriggerCatalog | None = None,
) -> FastAPI:
    settings = settings or FlowlineSettings()
    engine = engine or EngineFactory.create(settings)
    triggers = triggers or TriggerCatalog()
    runner = QueueRunner(engine, interval_seconds=settings.queue_interval_seconds)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if settings.queue_runner_enabled:
            runner.start()
        try:
            yield
        finally:
            if runner.running:
                runner.stop()

    app = FastAPI(
        title="Flowline",
        version=__version__,
        description="Trigger ingress, introspection and queue control for the workflow engine.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    # Expose collaborators for request handlers and tests that want to read them.
    app.state.settings = settings
    app.state.engine = engine
    app.state.queue_runner = runner

    @app.get("/api/v1/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.post("/api/v1/triggers/{slug}", response_model=TriggerAccepted, status_code=202)
    def dispatch_trigger(
        slug: str, payload: dict[str, Any] | None = Body(default=None)
    ) -> TriggerAccepted:
        engine.dispatch(TriggerEvent(slug=slug, payload=payload or {}))
        return TriggerAccepted(trigger=slug)

    @app.post("/api/v1/webhook/{token}", response_model=TriggerAccepted, status_code=202)
    def inbound_webhook(token: str, body: Any = Body(default=None)) -> TriggerAccepted:
        if not _WEBHOOK_TOKEN_RE.match(token):
            raise HTTPException(status_code=404, detail="Not Found")
        if engine.definitions.find_by_webhook_token(token) is None:
            raise HTTPException(status_code=403, detail="Invalid webhook token.")

        engine.dispatch(
            TriggerEvent(
                slug=INBOUND_WEBHOOK_TRIGGER,
                payload={"webhook_token": token, "payload": body},
            )
        )
        return TriggerAccepted(trigger=INBOUND_WEBHOOK_TRIGGER)

    @app.get("/api/v1/actions", response_model=list[ApiAction])
    def list_actions() -> list[ApiAction]:
        return [ApiAction.model_validate(a) for a in engine.actions.describe()]

    @app.get("/api/v1/conditions", response_model=list[ApiCondition])
    def list_conditions() -> list[ApiCondition]:
        return [ApiCondition.model_validate(c) for c in engine.evaluator.describe()]

    @app.get("/api/v1/triggers", response_model=list[ApiTrigger])
    def list_triggers() -> list[ApiTrigger]:
        return [ApiTrigger.model_validate(t) for t in triggers.describe()]

    @app.post("/api/v1/queue/process", response_model=QueueRunResponse)
    def process_queue(limit: int | None = Query(default=None, ge=1, le=500)) -> QueueRunResponse:
        report = engine.process_queue(limit)
        return QueueRunResponse(
            claimed=report.claimed,
            completed=report.completed,
            failed=report.failed,
            job_ids=report.job_ids,
        )

    @app.get("/api/v1/queue/stats", response_model=QueueStats)
    def queue_stats() -> QueueStats:
        return QueueStats.model_validate(engine.queue.counts())

    @app.get("/api/v1/queue/jobs", response_model=list[ApiJob])
    def list_jobs(
        status: JobStatusName | None = Query(default=None),
        limit: int = Query(default=50, ge=1, le=500),
    ) -> list[ApiJob]:
        jobs = engine.queue.list(JobStatus(status) if status else None, limit=limit)
        return [_to_api_job(j) for j in jobs]

    @app.get("/api/v1/queue/jobs/{job_id}", response_model=ApiJob)
    def get_job(job_id: int) -> ApiJob:
        job = engine.queue.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return _to_api_job(job)

    return app
