"""
Maintenance sweeps.

    deadline   - archive ACTIVE entities whose monitoring deadline has passed
    queue      - enqueue a message for every ACTIVE entity that has none
    visibility - clear checkout markers left behind by crashed workers

None of these are on the hot path; each is safe to run concurrently with
the pipelines because the underlying store writes are conditional.
"""

import logging
from datetime import datetime
from typing import Callable

from ..data.config import QueueConfig
from ..data.data_models import EntityState, SweepResult, utc_now
from ..lifecycle.entity_store import EntityStore
from ..queue.messages import ReconcilePayload
from ..queue.work_queue import WorkQueue

logger = logging.getLogger(__name__)


class MaintenanceSweeps:
    """Janitor tasks over the entity store and the work queue."""

    def __init__(
        self,
        entity_store: EntityStore,
        work_queue: WorkQueue,
        queue_config: QueueConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.entity_store = entity_store
        self.work_queue = work_queue
        self.queue_config = queue_config
        self.clock = clock

    def archive_expired(self) -> SweepResult:
        """ACTIVE -> ARCHIVED for every entity past its deadline. Never touches PROMOTED."""
        now = self.clock()
        result = SweepResult(sweep="deadline", started_at=now)

        archived = self.entity_store.archive_expired(now)
        result.affected = len(archived)
        result.examined = len(archived)
        result.keys = archived
        result.completed_at = self.clock()

        for key in archived:
            logger.info(f"Archived {key}: monitoring deadline passed", extra={"identity_key": key, "stage": "sweep"})
        logger.info(f"Deadline sweep complete: {len(archived)} archived")
        return result

    def ensure_queued(self) -> SweepResult:
        """
        Give every ACTIVE entity a pending message.

        Covers entities whose ingestion-time enqueue failed.
        """
        result = SweepResult(sweep="queue", started_at=self.clock())
        queue_name = self.queue_config.queue_name

        active = self.entity_store.list_by_state(EntityState.ACTIVE)
        pending = self.work_queue.pending_identity_keys(queue_name)
        result.examined = len(active)

        for entity in active:
            if entity.identity_key in pending:
                continue
            self.work_queue.enqueue(queue_name, ReconcilePayload.new(entity.identity_key).to_json_dict())
            result.affected += 1
            result.keys.append(entity.identity_key)
            logger.info(f"Queued {entity.identity_key}: no pending message", extra={
                "identity_key": entity.identity_key, "stage": "sweep", "queue": queue_name,
            })

        result.completed_at = self.clock()
        logger.info(f"Queue sweep complete: {result.examined} active, {result.affected} queued")
        return result

    def release_stale_checkouts(self) -> SweepResult:
        """Make messages whose visibility timeout lapsed eligible again."""
        result = SweepResult(sweep="visibility", started_at=self.clock())
        released = self.work_queue.release_expired(self.queue_config.queue_name)
        result.affected = released
        result.examined = released
        result.completed_at = self.clock()
        if released:
            logger.warning(f"Visibility sweep released {released} stale checkouts")
        else:
            logger.debug("Visibility sweep: nothing to release")
        return result
