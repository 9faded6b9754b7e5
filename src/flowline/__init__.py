"""Flowline.

Event-driven workflow automation:
- condition trees evaluated against trigger payloads
- ordered, fail-fast action chains
- a durable job queue with bounded retries for deferred execution
"""

__version__ = "0.1.0"

from flowline.config import FlowlineSettings

__all__ = ["__version__", "FlowlineSettings"]
