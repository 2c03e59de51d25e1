"""
PostgreSQL-backed work queue.

All queues share the work_queue table, partitioned by queue_name. Dequeue
is a single UPDATE over a FOR UPDATE SKIP LOCKED sub-select, so concurrent
workers skip rows another transaction is checking out instead of blocking
on them or receiving them twice.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from psycopg2.extras import Json, RealDictCursor

from ..data.data_models import utc_now
from ..db import Database
from .messages import QueueMessage
from .work_queue import WorkQueue

logger = logging.getLogger(__name__)


_DEQUEUE_SQL = """
    UPDATE work_queue
    SET invisible_until = %(invisible_until)s
    WHERE message_id IN (
        SELECT message_id
        FROM work_queue
        WHERE queue_name = %(queue_name)s
          AND (next_eligible_at IS NULL OR next_eligible_at <= %(now)s)
          AND (invisible_until IS NULL OR invisible_until <= %(now)s)
        ORDER BY enqueued_at
        LIMIT %(batch_size)s
        FOR UPDATE SKIP LOCKED
    )
    RETURNING queue_name, message_id, payload, enqueued_at, next_eligible_at, invisible_until
"""


def _row_to_message(row: Dict[str, Any]) -> QueueMessage:
    return QueueMessage(
        queue_name=row["queue_name"],
        message_id=row["message_id"],
        payload=row["payload"],
        enqueued_at=row["enqueued_at"],
        next_eligible_at=row.get("next_eligible_at"),
        invisible_until=row.get("invisible_until"),
    )


class PostgresWorkQueue(WorkQueue):
    """WorkQueue over the work_queue table."""

    def __init__(self, database: Database, clock: Callable[[], datetime] = utc_now):
        super().__init__(clock)
        self.database = database

    def enqueue(self, queue_name: str, payload: Dict[str, Any]) -> str:
        message_id = str(uuid.uuid4())
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO work_queue (message_id, queue_name, payload, enqueued_at)
                    VALUES (%s, %s, %s, %s)
                """, (message_id, queue_name, Json(payload), self.clock()))
        logger.debug(f"Enqueued {message_id} on {queue_name}")
        return message_id

    def dequeue(self, queue_name: str, batch_size: int, visibility_timeout: float) -> List[QueueMessage]:
        if batch_size <= 0:
            return []
        now = self.clock()
        params = {
            "queue_name": queue_name,
            "now": now,
            "invisible_until": now + timedelta(seconds=visibility_timeout),
            "batch_size": batch_size,
        }
        with self.database.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(_DEQUEUE_SQL, params)
                rows = cur.fetchall()
        # RETURNING does not preserve the sub-select order
        messages = [_row_to_message(row) for row in rows]
        messages.sort(key=lambda m: m.enqueued_at)
        return messages

    def update(
        self,
        queue_name: str,
        message_id: str,
        payload: Dict[str, Any],
        next_eligible_at: Optional[datetime] = None,
    ) -> bool:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    UPDATE work_queue
                    SET payload = %s, next_eligible_at = %s, invisible_until = NULL
                    WHERE queue_name = %s AND message_id = %s
                """, (Json(payload), next_eligible_at, queue_name, message_id))
                return cur.rowcount > 0

    def delete(self, queue_name: str, message_id: str) -> bool:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM work_queue WHERE queue_name = %s AND message_id = %s",
                    (queue_name, message_id),
                )
                return cur.rowcount > 0

    def release_expired(self, queue_name: str) -> int:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    UPDATE work_queue
                    SET invisible_until = NULL
                    WHERE queue_name = %s
                      AND invisible_until IS NOT NULL
                      AND invisible_until <= %s
                """, (queue_name, self.clock()))
                return cur.rowcount

    def pending_identity_keys(self, queue_name: str) -> Set[str]:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    SELECT DISTINCT payload ->> 'identity_key'
                    FROM work_queue
                    WHERE queue_name = %s AND payload ? 'identity_key'
                """, (queue_name,))
                return {row[0] for row in cur.fetchall() if row[0]}

    def list_messages(self, queue_name: str, limit: int = 100) -> List[QueueMessage]:
        with self.database.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("""
                    SELECT queue_name, message_id, payload, enqueued_at, next_eligible_at, invisible_until
                    FROM work_queue
                    WHERE queue_name = %s
                    ORDER BY enqueued_at
                    LIMIT %s
                """, (queue_name, limit))
                return [_row_to_message(row) for row in cur.fetchall()]

    def count(self, queue_name: str) -> int:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM work_queue WHERE queue_name = %s", (queue_name,))
                return cur.fetchone()[0]
