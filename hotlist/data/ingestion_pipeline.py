"""
Hotlist Ingestion Pipeline
==========================

Discovers new entities from the market-data search feed and seeds them
into monitoring.

Process, per candidate:
    1. Skip if the key is already tracked, in any state (permanent idempotency)
    2. Admission filter: liquidity >= ratio x valuation
    3. Seed window volumes (explicit feed figures, else GET /stats, else zero)
    4. Insert the ACTIVE entity with its deadline and an initial history record
    5. Enqueue a reconcile message, retrying with bounded backoff

An entity whose enqueue ultimately fails still exists; the queue coverage
sweep gives it a message on its next run.

Usage:
    pipeline = IngestionPipeline(client, entity_store, work_queue,
                                 settings.queue, settings.lifecycle)
    result = pipeline.run()
    print(result.get_summary())
"""

import logging
import time
import uuid
from datetime import timedelta
from typing import Callable, List, Optional, Tuple

from .config import LifecycleConfig, QueueConfig
from .data_models import (
    CandidateRecord,
    HistoryRecord,
    IngestionResult,
    TrackedEntity,
    utc_now,
)
from .market_data_client import MarketDataAPIError, MarketDataClient
from .validation import validate_stats
from ..db import StorageError
from ..lifecycle.entity_store import EntityStore
from ..queue.messages import ReconcilePayload
from ..queue.work_queue import WorkQueue

logger = logging.getLogger(__name__)

ENQUEUE_BASE_DELAY_MS = 1000
ENQUEUE_MAX_DELAY_MS = 8000


class IngestionPipeline:
    """
    Discovery and admission of new entities.

    Storage errors while writing an entity abort the run; enqueue errors
    are retried and then recorded per entity.
    """

    def __init__(
        self,
        client: MarketDataClient,
        entity_store: EntityStore,
        work_queue: WorkQueue,
        queue_config: QueueConfig,
        lifecycle_config: LifecycleConfig,
        clock: Callable = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        fetch_stats_for_volume: bool = True,
    ):
        self.client = client
        self.entity_store = entity_store
        self.work_queue = work_queue
        self.queue_config = queue_config
        self.lifecycle_config = lifecycle_config
        self.clock = clock
        self._sleep = sleep
        self.fetch_stats_for_volume = fetch_stats_for_volume

        logger.info(
            f"IngestionPipeline initialized: queue={queue_config.queue_name}, "
            f"admission_ratio={lifecycle_config.admission_liquidity_ratio}, "
            f"window={lifecycle_config.monitoring_window_hours}h"
        )

    def admission_rejection(self, candidate: CandidateRecord) -> Optional[str]:
        """Reason the candidate fails admission, or None if it passes."""
        if not candidate.has_figures:
            return (
                f"missing valuation or liquidity: valuation={candidate.valuation}, "
                f"liquidity={candidate.liquidity}"
            )
        if candidate.valuation <= 0:
            return f"valuation not positive: {candidate.valuation}"
        if candidate.liquidity < 0:
            return f"liquidity negative: {candidate.liquidity}"

        required = self.lifecycle_config.admission_liquidity_ratio
        if candidate.liquidity < required * candidate.valuation:
            return (
                f"insufficient liquidity ratio: {candidate.liquidity_ratio:.2%} "
                f"(required >= {required:.0%})"
            )
        return None

    def seed_volumes(self, candidate: CandidateRecord) -> Tuple[float, float]:
        """
        Initial (buy, sell) window volume for a candidate.

        Explicit feed figures win. Otherwise the stats endpoint is asked;
        any failure there seeds zero with a warning.
        """
        if candidate.has_explicit_volume:
            return candidate.buy_volume, candidate.sell_volume

        if not self.fetch_stats_for_volume:
            logger.warning(f"No volume figures for {candidate.identity_key}, seeding zero")
            return 0.0, 0.0

        try:
            raw = self.client.get_stats(candidate.identity_key)
        except MarketDataAPIError as e:
            logger.warning(f"Volume seeding failed for {candidate.identity_key}, seeding zero: {e}")
            return 0.0, 0.0

        report = validate_stats(raw, candidate.identity_key)
        if report.window is None:
            logger.warning(f"No volume window for {candidate.identity_key}, seeding zero")
        return report.buy_volume, report.sell_volume

    def enqueue_with_backoff(self, identity_key: str) -> Optional[str]:
        """
        Enqueue a fresh reconcile message.

        Returns the message id, or None once every attempt has failed.
        """
        payload = ReconcilePayload.new(identity_key).to_json_dict()
        attempts = self.queue_config.enqueue_attempts

        for attempt in range(attempts):
            try:
                return self.work_queue.enqueue(self.queue_config.queue_name, payload)
            except StorageError as e:
                if attempt + 1 >= attempts:
                    logger.error(f"Enqueue failed for {identity_key} after {attempts} attempts: {e}")
                    return None
                delay_ms = min(ENQUEUE_BASE_DELAY_MS * (2 ** attempt), ENQUEUE_MAX_DELAY_MS)
                logger.warning(
                    f"Enqueue failed for {identity_key} (attempt {attempt + 1}/{attempts}), "
                    f"retrying in {delay_ms}ms: {e}"
                )
                self._sleep(delay_ms / 1000.0)
        return None

    def ingest_candidate(self, candidate: CandidateRecord, result: IngestionResult) -> None:
        """Run the admission steps for one candidate, recording the outcome in result."""
        key = candidate.identity_key
        log_extra = {"run_id": result.run_id, "stage": "ingestion", "identity_key": key}

        if self.entity_store.exists(key):
            result.already_tracked += 1
            logger.debug(f"{key} already tracked, skipping", extra=log_extra)
            return

        reason = self.admission_rejection(candidate)
        if reason is not None:
            result.add_rejection(key, reason)
            logger.info(f"Rejected {key}: {reason}", extra=log_extra)
            return

        buy_volume, sell_volume = self.seed_volumes(candidate)

        now = self.clock()
        entity = TrackedEntity(
            identity_key=key,
            name=candidate.name,
            symbol=candidate.symbol,
            start_valuation=candidate.valuation,
            current_valuation=candidate.valuation,
            current_liquidity=candidate.liquidity,
            cumulative_buy_volume=buy_volume,
            cumulative_net_volume=buy_volume - sell_volume,
            monitoring_deadline=now + timedelta(hours=self.lifecycle_config.monitoring_window_hours),
            created_at=now,
            last_updated_at=now,
        )

        if not self.entity_store.insert_new(entity, HistoryRecord.from_entity(entity, now)):
            result.already_tracked += 1
            logger.debug(f"{key} was inserted concurrently, skipping", extra=log_extra)
            return

        result.admitted += 1
        logger.info(
            f"Admitted {key}: valuation=${entity.start_valuation:,.0f}, "
            f"liquidity=${entity.current_liquidity:,.0f}, deadline={entity.monitoring_deadline.isoformat()}",
            extra=log_extra,
        )

        message_id = self.enqueue_with_backoff(key)
        if message_id is None:
            result.enqueue_failures += 1
            result.add_error(key, "EnqueueError", "enqueue retries exhausted; left for queue coverage sweep")
        else:
            result.queued += 1

    def run(
        self,
        candidates: Optional[List[CandidateRecord]] = None,
        filters: Optional[str] = None,
    ) -> IngestionResult:
        """
        Run one discovery cycle.

        Args:
            candidates: Pre-fetched candidates (skips the search call)
            filters: Search query string override

        Returns:
            IngestionResult with counters, rejections and errors

        Raises:
            StorageError: If the entity store fails; the run is aborted
        """
        run_id = str(uuid.uuid4())
        result = IngestionResult(run_id=run_id, started_at=self.clock())
        logger.info(f"Starting ingestion run (run_id={run_id})", extra={"run_id": run_id, "stage": "ingestion"})

        if candidates is None:
            try:
                candidates = self.client.search(filters)
            except MarketDataAPIError as e:
                logger.error(f"Search failed: {e}")
                result.add_error("search", type(e).__name__, str(e))
                result.completed_at = self.clock()
                return result

        result.candidates_discovered = len(candidates)

        try:
            for candidate in candidates:
                self.ingest_candidate(candidate, result)
        except StorageError as e:
            logger.error(f"Ingestion run aborted by storage error: {e}")
            result.add_error("pipeline", "StorageError", str(e))
            result.completed_at = self.clock()
            raise

        result.completed_at = self.clock()
        logger.info(
            f"Ingestion complete: {result.candidates_discovered} discovered, "
            f"{result.already_tracked} already tracked, {result.rejected} rejected, "
            f"{result.admitted} admitted, {result.queued} queued, "
            f"{result.enqueue_failures} enqueue failures in {result.duration_seconds:.1f}s",
            extra={"run_id": run_id, "stage": "ingestion"},
        )
        return result
