"""
Hotlist Work Queue
==================

Durable queue with visibility timeouts, retry backoff and a dead-letter
companion per queue.
"""

from .messages import PayloadValidationError, QueueMessage, ReconcilePayload, parse_payload
from .retry_policy import RetryPolicy
from .work_queue import InMemoryWorkQueue, WorkQueue, dead_letter_queue_name
from .postgres_queue import PostgresWorkQueue

__all__ = [
    "PayloadValidationError",
    "QueueMessage",
    "ReconcilePayload",
    "parse_payload",
    "RetryPolicy",
    "WorkQueue",
    "InMemoryWorkQueue",
    "PostgresWorkQueue",
    "dead_letter_queue_name",
]
