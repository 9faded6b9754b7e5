"""Durable job queue for deferred workflow execution."""

from flowline.queue.store import JobStatus, QueueJob, QueueStore, create_queue_engine, init_db

__all__ = ["JobStatus", "QueueJob", "QueueStore", "create_queue_engine", "init_db"]
