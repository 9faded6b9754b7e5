"""Queue store for deferred workflow execution.

Job lifecycle::

    pending --claim--> processing --complete--> completed
                           |
                           +--fail--> pending   (attempts + 1 < max_attempts)
                           +--fail--> failed    (otherwise)

``completed`` and ``failed`` are terminal. Jobs left in ``processing`` by a
crashed worker are not reclaimed here.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, case, create_engine, delete, event, func, select, update
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from flowline.config import FlowlineSettings
from flowline.queue.schema import Base, QueueJobRow

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETED.value, JobStatus.FAILED.value)


def _utc_now() -> datetime:
    # Stored naive; every timestamp in the table is UTC.
    return datetime.now(tz=UTC).replace(tzinfo=None)


def create_queue_engine(url: str) -> Engine:
    """Create a SQLAlchemy engine for the queue database.

    SQLite pragmas (WAL, busy_timeout) are applied automatically so several
    worker processes can share one database file. An in-memory SQLite URL gets a
    single shared connection so every session sees the same tables.
    """

    parsed = make_url(url)
    is_sqlite = parsed.get_backend_name() == "sqlite"
    in_memory = is_sqlite and parsed.database in (None, "", ":memory:")

    if in_memory:
        engine = create_engine(
            url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        if is_sqlite and parsed.database:
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, echo=False)

    if is_sqlite:

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):  # type: ignore[no-untyped-def]
            cursor = dbapi_conn.cursor()
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    """Create the queue tables if they do not exist yet."""

    Base.metadata.create_all(engine)


@dataclass(frozen=True, slots=True)
class QueueJob:
    id: int
    workflow_id: int
    payload: str
    status: JobStatus
    attempts: int
    max_attempts: int
    scheduled_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime

    @staticmethod
    def from_row(row: QueueJobRow) -> QueueJob:
        return QueueJob(
            id=row.id,
            workflow_id=row.workflow_id,
            payload=row.payload,
            status=JobStatus(row.status),
            attempts=row.attempts,
            max_attempts=row.max_attempts,
            scheduled_at=row.scheduled_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
            created_at=row.created_at,
        )

    def decoded_payload(self) -> dict[str, Any]:
        """Return the frozen trigger payload; undecodable snapshots give ``{}``."""

        try:
            raw = json.loads(self.payload)
        except (TypeError, json.JSONDecodeError):
            return {}
        return raw if isinstance(raw, dict) else {}


class QueueStore:
    """Durable FIFO-ish job table with an atomic claim.

    Claiming is a compare-and-swap per candidate row
    (``UPDATE ... WHERE id = ? AND status = 'pending'``); only rows whose update
    actually matched are handed back, so concurrent claimers in any number of
    processes never receive the same job.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        settings_provider: Callable[[], FlowlineSettings],
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        self._settings_provider = settings_provider
        self._clock = clock

    def push(self, workflow_id: int, payload: dict[str, Any], delay: int = 0) -> int:
        now = self._clock()
        row = QueueJobRow(
            workflow_id=workflow_id,
            payload=json.dumps(payload, ensure_ascii=False, default=str),
            status=JobStatus.PENDING.value,
            attempts=0,
            max_attempts=self._settings_provider().max_retries,
            scheduled_at=now + timedelta(seconds=max(0, delay)),
            started_at=None,
            completed_at=None,
            created_at=now,
        )
        with self._sessions.begin() as session:
            session.add(row)
            session.flush()
            job_id = row.id

        logger.debug("Job enqueued", extra={"job_id": job_id, "workflow_id": workflow_id})
        return job_id

    def claim(self, limit: int = 10) -> list[QueueJob]:
        if limit <= 0:
            return []

        now = self._clock()
        candidates_stmt = (
            select(QueueJobRow.id)
            .where(
                QueueJobRow.status == JobStatus.PENDING.value,
                QueueJobRow.scheduled_at <= now,
                QueueJobRow.attempts < QueueJobRow.max_attempts,
            )
            .order_by(QueueJobRow.scheduled_at.asc(), QueueJobRow.id.asc())
            .limit(limit)
        )

        claimed: list[int] = []
        with self._engine.begin() as conn:
            candidates = conn.execute(candidates_stmt).scalars().all()
            for job_id in candidates:
                result = conn.execute(
                    update(QueueJobRow)
                    .where(
                        QueueJobRow.id == job_id,
                        QueueJobRow.status == JobStatus.PENDING.value,
                    )
                    .values(status=JobStatus.PROCESSING.value, started_at=now)
                )
                if result.rowcount == 1:
                    claimed.append(job_id)

        if not claimed:
            return []

        with self._sessions() as session:
            rows = session.execute(
                select(QueueJobRow).where(QueueJobRow.id.in_(claimed))
            ).scalars().all()
        by_id = {row.id: QueueJob.from_row(row) for row in rows}
        return [by_id[job_id] for job_id in claimed if job_id in by_id]

    def complete(self, job_id: int) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                update(QueueJobRow)
                .where(
                    QueueJobRow.id == job_id,
                    QueueJobRow.status.not_in(TERMINAL_STATUSES),
                )
                .values(status=JobStatus.COMPLETED.value, completed_at=self._clock())
            )

    def fail(self, job_id: int) -> None:
        # SET expressions see the pre-update row, so the status decision and the
        # increment happen in one statement.
        with self._engine.begin() as conn:
            conn.execute(
                update(QueueJobRow)
                .where(
                    QueueJobRow.id == job_id,
                    QueueJobRow.status.not_in(TERMINAL_STATUSES),
                )
                .values(
                    status=case(
                        (
                            QueueJobRow.attempts + 1 >= QueueJobRow.max_attempts,
                            JobStatus.FAILED.value,
                        ),
                        else_=JobStatus.PENDING.value,
                    ),
                    attempts=QueueJobRow.attempts + 1,
                    started_at=None,
                )
            )

    def purge(self, older_than_days: int = 7) -> int:
        cutoff = self._clock() - timedelta(days=older_than_days)
        with self._engine.begin() as conn:
            result = conn.execute(
                delete(QueueJobRow).where(
                    QueueJobRow.status.in_(TERMINAL_STATUSES),
                    QueueJobRow.created_at < cutoff,
                )
            )
        deleted = int(result.rowcount or 0)
        logger.info("Queue purged", extra={"deleted": deleted, "older_than_days": older_than_days})
        return deleted

    def get(self, job_id: int) -> QueueJob | None:
        with self._sessions() as session:
            row = session.get(QueueJobRow, job_id)
            return QueueJob.from_row(row) if row is not None else None

    def list(self, status: JobStatus | None = None, limit: int = 50) -> list[QueueJob]:
        stmt = select(QueueJobRow).order_by(QueueJobRow.id.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(QueueJobRow.status == JobStatus(status).value)
        with self._sessions() as session:
            return [QueueJob.from_row(row) for row in session.execute(stmt).scalars().all()]

    def counts(self) -> dict[str, int]:
        out = {s.value: 0 for s in JobStatus}
        with self._sessions() as session:
            rows = session.execute(
                select(QueueJobRow.status, func.count()).group_by(QueueJobRow.status)
            ).all()
        for status, count in rows:
            out[status] = int(count)
        return out
