"""Background polling runner that drains the job queue on a fixed interval."""

from __future__ import annotations

import logging
import threading

from flowline.engine import QueueRunReport, WorkflowEngine

logger = logging.getLogger(__name__)


class QueueRunner:
    """Call ``engine.process_queue()`` every ``interval_seconds`` on a daemon thread.

    Any exception escaping a run (database unreachable, definition store broken)
    is logged and the runner keeps ticking.
    """

    def __init__(self, engine: WorkflowEngine, *, interval_seconds: float) -> None:
        self._engine = engine
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="flowline-queue-runner", daemon=True)
        self._thread.start()
        logger.info("Queue runner started", extra={"interval_seconds": self._interval})

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Queue runner stopped")

    def run_once(self) -> QueueRunReport | None:
        try:
            return self._engine.process_queue()
        except Exception:
            logger.exception("Queue run failed")
            return None

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(self._interval)
