"""
Hotlist Work Queue
==================

Durable mailbox per logical queue name with visibility-timeout dequeue.

A message is eligible for dequeue when:
    - next_eligible_at is NULL or <= now, and
    - it is not checked out (invisible_until is NULL or <= now)

Eligible messages come out oldest-enqueued first. Dequeue selects and marks
in one atomic step so two concurrent consumers never receive the same
message within a visibility window. A consumer that crashes simply lets
the visibility timeout lapse and the message becomes eligible again.

Implementations:
    - InMemoryWorkQueue: process-local, for tests and dry runs
    - PostgresWorkQueue (postgres_queue.py): SELECT ... FOR UPDATE SKIP LOCKED
"""

import itertools
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from ..data.data_models import utc_now
from .messages import QueueMessage

logger = logging.getLogger(__name__)

DEAD_LETTER_SUFFIX = "_dlq"


def dead_letter_queue_name(queue_name: str) -> str:
    """Name of the dead-letter companion of a queue."""
    return f"{queue_name}{DEAD_LETTER_SUFFIX}"


class WorkQueue(ABC):
    """Queue operations shared by every backend."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock

    @abstractmethod
    def enqueue(self, queue_name: str, payload: Dict[str, Any]) -> str:
        """Add a message; returns its fresh message id."""

    @abstractmethod
    def dequeue(self, queue_name: str, batch_size: int, visibility_timeout: float) -> List[QueueMessage]:
        """Check out up to batch_size eligible messages for visibility_timeout seconds."""

    @abstractmethod
    def update(
        self,
        queue_name: str,
        message_id: str,
        payload: Dict[str, Any],
        next_eligible_at: Optional[datetime] = None,
    ) -> bool:
        """Replace the payload and re-arm eligibility. False if the message is gone."""

    @abstractmethod
    def delete(self, queue_name: str, message_id: str) -> bool:
        """Remove a message permanently. False if it was already gone."""

    @abstractmethod
    def release_expired(self, queue_name: str) -> int:
        """Clear checkout markers whose visibility timeout has lapsed; returns the count."""

    @abstractmethod
    def pending_identity_keys(self, queue_name: str) -> Set[str]:
        """Identity keys that currently have a message in the queue."""

    @abstractmethod
    def list_messages(self, queue_name: str, limit: int = 100) -> List[QueueMessage]:
        """Messages in enqueue order, without checking them out."""

    @abstractmethod
    def count(self, queue_name: str) -> int:
        """Number of messages in the queue, eligible or not."""

    def dead_letter(self, queue_name: str, payload: Dict[str, Any]) -> str:
        """
        Enqueue payload into the dead-letter companion of queue_name.

        The caller deletes the original message afterwards.
        """
        dlq = dead_letter_queue_name(queue_name)
        message_id = self.enqueue(dlq, payload)
        logger.warning(f"Message for {payload.get('identity_key')} dead-lettered to {dlq} as {message_id}")
        return message_id


@dataclass
class _StoredMessage:
    queue_name: str
    message_id: str
    payload: Dict[str, Any]
    enqueued_at: datetime
    seq: int
    next_eligible_at: Optional[datetime] = None
    invisible_until: Optional[datetime] = None

    def is_eligible(self, now: datetime) -> bool:
        if self.next_eligible_at is not None and self.next_eligible_at > now:
            return False
        if self.invisible_until is not None and self.invisible_until > now:
            return False
        return True

    def snapshot(self) -> QueueMessage:
        return QueueMessage(
            queue_name=self.queue_name,
            message_id=self.message_id,
            payload=dict(self.payload),
            enqueued_at=self.enqueued_at,
            next_eligible_at=self.next_eligible_at,
            invisible_until=self.invisible_until,
        )


class InMemoryWorkQueue(WorkQueue):
    """
    Process-local queue.

    A single lock makes select-and-mark atomic, playing the part of the
    row locks in the PostgreSQL backend.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        super().__init__(clock)
        self._messages: Dict[str, _StoredMessage] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count()

    def enqueue(self, queue_name: str, payload: Dict[str, Any]) -> str:
        message_id = str(uuid.uuid4())
        with self._lock:
            self._messages[message_id] = _StoredMessage(
                queue_name=queue_name,
                message_id=message_id,
                payload=dict(payload),
                enqueued_at=self.clock(),
                seq=next(self._seq),
            )
        logger.debug(f"Enqueued {message_id} on {queue_name}")
        return message_id

    def dequeue(self, queue_name: str, batch_size: int, visibility_timeout: float) -> List[QueueMessage]:
        if batch_size <= 0:
            return []
        with self._lock:
            now = self.clock()
            eligible = sorted(
                (m for m in self._messages.values() if m.queue_name == queue_name and m.is_eligible(now)),
                key=lambda m: (m.enqueued_at, m.seq),
            )[:batch_size]
            invisible_until = now + timedelta(seconds=visibility_timeout)
            for message in eligible:
                message.invisible_until = invisible_until
            return [m.snapshot() for m in eligible]

    def update(
        self,
        queue_name: str,
        message_id: str,
        payload: Dict[str, Any],
        next_eligible_at: Optional[datetime] = None,
    ) -> bool:
        with self._lock:
            message = self._messages.get(message_id)
            if message is None or message.queue_name != queue_name:
                return False
            message.payload = dict(payload)
            message.next_eligible_at = next_eligible_at
            message.invisible_until = None
            return True

    def delete(self, queue_name: str, message_id: str) -> bool:
        with self._lock:
            message = self._messages.get(message_id)
            if message is None or message.queue_name != queue_name:
                return False
            del self._messages[message_id]
            return True

    def release_expired(self, queue_name: str) -> int:
        released = 0
        with self._lock:
            now = self.clock()
            for message in self._messages.values():
                if (
                    message.queue_name == queue_name
                    and message.invisible_until is not None
                    and message.invisible_until <= now
                ):
                    message.invisible_until = None
                    released += 1
        return released

    def pending_identity_keys(self, queue_name: str) -> Set[str]:
        with self._lock:
            return {
                m.payload["identity_key"]
                for m in self._messages.values()
                if m.queue_name == queue_name and isinstance(m.payload.get("identity_key"), str)
            }

    def list_messages(self, queue_name: str, limit: int = 100) -> List[QueueMessage]:
        with self._lock:
            messages = sorted(
                (m for m in self._messages.values() if m.queue_name == queue_name),
                key=lambda m: (m.enqueued_at, m.seq),
            )
            return [m.snapshot() for m in messages[:limit]]

    def count(self, queue_name: str) -> int:
        with self._lock:
            return sum(1 for m in self._messages.values() if m.queue_name == queue_name)
