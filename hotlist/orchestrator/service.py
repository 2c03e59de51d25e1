"""
Hotlist Service
===============

One object exposing every trigger and query the outer surfaces need:
the CLI, the scheduler and the HTTP API all go through HotlistService.

Triggers:
    run_ingestion, run_reconciliation, run_deadline_sweep,
    run_queue_sweep, run_visibility_sweep

Queries:
    get_entity, list_entities, list_dead_letters, health_check
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..data.config import LifecycleConfig, QueueConfig, Settings
from ..data.data_models import (
    EntityState,
    IngestionResult,
    ReconciliationResult,
    SweepResult,
    utc_now,
)
from ..data.ingestion_pipeline import IngestionPipeline
from ..data.market_data_client import MarketDataClient
from ..db import Database, StorageError
from ..lifecycle.entity_store import EntityStore, InMemoryEntityStore
from ..lifecycle.postgres_store import PostgresEntityStore
from ..notifications.telegram_notifier import PromotionNotifier, build_notifier
from ..queue.postgres_queue import PostgresWorkQueue
from ..queue.work_queue import InMemoryWorkQueue, WorkQueue, dead_letter_queue_name
from .reconciliation import StatsReconciliationPipeline
from .sweeps import MaintenanceSweeps

logger = logging.getLogger(__name__)


class HotlistService:
    """Facade over the pipelines, sweeps and stores."""

    def __init__(
        self,
        client: MarketDataClient,
        entity_store: EntityStore,
        work_queue: WorkQueue,
        queue_config: QueueConfig,
        lifecycle_config: LifecycleConfig,
        notifier: Optional[PromotionNotifier] = None,
        database: Optional[Database] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.entity_store = entity_store
        self.work_queue = work_queue
        self.queue_config = queue_config
        self.lifecycle_config = lifecycle_config
        self.database = database

        self.ingestion = IngestionPipeline(
            client, entity_store, work_queue, queue_config, lifecycle_config,
            clock=clock, sleep=sleep,
        )
        self.reconciliation = StatsReconciliationPipeline(
            client, entity_store, work_queue, queue_config, lifecycle_config,
            notifier=notifier, clock=clock,
        )
        self.sweeps = MaintenanceSweeps(entity_store, work_queue, queue_config, clock=clock)

    # =========================================================================
    # Triggers
    # =========================================================================

    def run_ingestion(self, filters: Optional[str] = None) -> IngestionResult:
        return self.ingestion.run(filters=filters)

    def run_reconciliation(self, batch_size: Optional[int] = None) -> ReconciliationResult:
        return self.reconciliation.run(batch_size=batch_size)

    def run_deadline_sweep(self) -> SweepResult:
        return self.sweeps.archive_expired()

    def run_queue_sweep(self) -> SweepResult:
        return self.sweeps.ensure_queued()

    def run_visibility_sweep(self) -> SweepResult:
        return self.sweeps.release_stale_checkouts()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_entity(self, identity_key: str, include_history: bool = True) -> Optional[Dict[str, Any]]:
        """Entity with its promotion record and, optionally, its history."""
        entity = self.entity_store.get(identity_key)
        if entity is None:
            return None

        data = entity.to_dict()
        promotion = self.entity_store.promotion_for(identity_key)
        data["promotion"] = promotion.to_dict() if promotion else None
        if include_history:
            data["history"] = [
                {
                    "valuation": h.valuation,
                    "liquidity": h.liquidity,
                    "cumulative_buy_volume": h.cumulative_buy_volume,
                    "cumulative_net_volume": h.cumulative_net_volume,
                    "recorded_at": h.recorded_at.isoformat(),
                }
                for h in self.entity_store.history_for(identity_key)
            ]
        return data

    def list_entities(self, state: Optional[str] = None, limit: Optional[int] = 100) -> List[Dict[str, Any]]:
        """
        Entities, optionally filtered by state name.

        Raises:
            ValueError: If state is not a known lifecycle state
        """
        state_filter = EntityState(state.lower()) if state else None
        return [e.to_dict() for e in self.entity_store.list_by_state(state_filter, limit)]

    def list_dead_letters(self, limit: int = 100) -> List[Dict[str, Any]]:
        dlq = dead_letter_queue_name(self.queue_config.queue_name)
        return [m.to_dict() for m in self.work_queue.list_messages(dlq, limit)]

    def health_check(self) -> Dict[str, Any]:
        """
        Component status, entity counts and queue depths.

        Never raises; storage failures are reported as unhealthy.
        """
        health: Dict[str, Any] = {"status": "healthy", "checked_at": utc_now().isoformat()}

        if self.database is not None:
            health["database"] = self.database.check_health()
            if health["database"]["status"] != "healthy":
                health["status"] = "unhealthy"

        try:
            queue_name = self.queue_config.queue_name
            health["entities"] = self.entity_store.count_by_state()
            health["queue"] = {
                "name": queue_name,
                "depth": self.work_queue.count(queue_name),
                "dead_letters": self.work_queue.count(dead_letter_queue_name(queue_name)),
            }
        except StorageError as e:
            logger.warning(f"Health check could not read stores: {e}")
            health["status"] = "unhealthy"
            health["error"] = str(e)

        health["market_data"] = self.client.health_check()
        return health

    def close(self):
        self.client.close()
        if self.database is not None:
            self.database.close()


def build_service(settings: Settings, in_memory: bool = False) -> HotlistService:
    """
    Wire a HotlistService from settings.

    Args:
        settings: Loaded application settings
        in_memory: Use process-local stores instead of PostgreSQL (dry runs)
    """
    client = MarketDataClient(settings.market_data)
    notifier = build_notifier(settings.notifications)

    if in_memory:
        logger.info("Using in-memory stores")
        database = None
        entity_store: EntityStore = InMemoryEntityStore()
        work_queue: WorkQueue = InMemoryWorkQueue()
    else:
        database = Database(settings.database)
        entity_store = PostgresEntityStore(database)
        work_queue = PostgresWorkQueue(database)

    return HotlistService(
        client=client,
        entity_store=entity_store,
        work_queue=work_queue,
        queue_config=settings.queue,
        lifecycle_config=settings.lifecycle,
        notifier=notifier,
        database=database,
    )
