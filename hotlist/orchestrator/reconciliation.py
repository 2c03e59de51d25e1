"""
Hotlist Stats Reconciliation Pipeline
=====================================

Drains the work queue: for each checked-out message it refreshes the
entity's metrics from the market-data API, accumulates volume, runs the
classification rules, and applies the resulting transition.

Per message:
    0. Checkout already lapsed -> leave it for whoever holds it now
    1. Parse the payload (malformed -> retryable failure)
    2. Load the entity; missing, terminal or refreshed since this
       checkout began -> delete message, done
    3. GET /stats and validate (429, timeouts, bad data -> retryable)
    4. cumulative volume += observed window volume
    5. Above the evaluation threshold: classify
         promoted -> ACTIVE -> PROMOTED + promotion record + notification
         otherwise -> update metrics + history record
    6. Delete the message

Failures re-arm the message with exponential backoff until the retry
budget is spent, then move it to the dead-letter queue. Terminal errors
go to the dead-letter queue immediately. Storage errors abort the batch;
unfinished messages reappear once their visibility timeout lapses.

Usage:
    pipeline = StatsReconciliationPipeline(client, entity_store, work_queue,
                                           settings.queue, settings.lifecycle,
                                           notifier=notifier)
    result = pipeline.run()
"""

import logging
import math
import random
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from ..data.config import LifecycleConfig, QueueConfig
from ..data.data_models import (
    HistoryRecord,
    PromotionRecord,
    ReconciliationResult,
    TrackedEntity,
    utc_now,
)
from ..data.market_data_client import MarketDataClient
from ..data.validation import StatsValidationError, to_snapshot
from ..db import StorageError
from ..lifecycle.entity_store import EntityStore
from ..lifecycle.transitions import TransitionOutcome
from ..notifications.telegram_notifier import PromotionNotifier
from ..queue.messages import (
    PayloadValidationError,
    QueueMessage,
    ReconcilePayload,
    parse_payload,
)
from ..queue.retry_policy import RetryPolicy
from ..queue.work_queue import WorkQueue
from ..scoring.classification import (
    ClassificationThresholds,
    classify,
    should_evaluate,
)

logger = logging.getLogger(__name__)


# Per-message outcomes
OUTCOME_PROMOTED = "promoted"
OUTCOME_UPDATED = "updated"
OUTCOME_SKIPPED = "skipped"
OUTCOME_RETRIED = "retried"
OUTCOME_DEAD_LETTERED = "dead_lettered"


def _raw_attempt_count(raw: Any) -> int:
    value = raw.get("attempt_count") if isinstance(raw, Mapping) else None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def _annotate_raw(
    raw: Any,
    attempt_count: int,
    error_type: str,
    error: str,
    now: datetime,
    next_eligible_at: Optional[datetime] = None,
    failed: bool = False,
) -> Dict[str, Any]:
    """Retry metadata for a payload that could not be parsed."""
    payload = dict(raw) if isinstance(raw, Mapping) else {"raw": raw}
    history = payload.get("failure_history")
    history = list(history) if isinstance(history, list) else []
    history.append({
        "attempt": _raw_attempt_count(raw),
        "error_type": error_type,
        "error": error,
        "at": now.isoformat(),
    })
    payload.update({
        "attempt_count": attempt_count,
        "last_attempt_at": now.isoformat(),
        "next_eligible_at": next_eligible_at.isoformat() if next_eligible_at else None,
        "last_error": error,
        "failure_history": history,
    })
    if failed:
        payload["failed_at"] = now.isoformat()
    return payload


class StatsReconciliationPipeline:
    """Queue consumer that refreshes metrics and applies lifecycle transitions."""

    def __init__(
        self,
        client: MarketDataClient,
        entity_store: EntityStore,
        work_queue: WorkQueue,
        queue_config: QueueConfig,
        lifecycle_config: LifecycleConfig,
        notifier: Optional[PromotionNotifier] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.entity_store = entity_store
        self.work_queue = work_queue
        self.queue_config = queue_config
        self.lifecycle_config = lifecycle_config
        self.notifier = notifier or PromotionNotifier()
        self.retry_policy = retry_policy or RetryPolicy.from_config(queue_config)
        self.thresholds = ClassificationThresholds.from_config(lifecycle_config)
        self.clock = clock
        self.rng = rng

    @property
    def queue_name(self) -> str:
        return self.queue_config.queue_name

    def run(self, batch_size: Optional[int] = None) -> ReconciliationResult:
        """
        Process one dequeued batch.

        Returns:
            ReconciliationResult with per-outcome counters

        Raises:
            StorageError: If the queue or entity store fails; the batch is aborted
        """
        run_id = str(uuid.uuid4())
        result = ReconciliationResult(run_id=run_id, started_at=self.clock())
        batch_size = batch_size or self.queue_config.batch_size

        messages = self.work_queue.dequeue(self.queue_name, batch_size, self.queue_config.visibility_timeout)
        result.total = len(messages)
        if not messages:
            logger.debug(f"No eligible messages on {self.queue_name}")
            result.completed_at = self.clock()
            return result

        logger.info(
            f"Reconciling {len(messages)} messages from {self.queue_name} (run_id={run_id})",
            extra={"run_id": run_id, "stage": "reconciliation", "queue": self.queue_name},
        )

        try:
            for message in messages:
                self.process_message(message, result)
        except StorageError as e:
            logger.error(f"Reconciliation batch aborted by storage error: {e}")
            result.add_error("pipeline", "StorageError", str(e))
            result.completed_at = self.clock()
            raise

        result.completed_at = self.clock()
        logger.info(
            f"Reconciliation complete: {result.total} total, {result.succeeded} succeeded, "
            f"{result.failed} failed, {result.promoted} promoted, {result.skipped} skipped, "
            f"{result.retried} retried, {result.dead_lettered} dead-lettered",
            extra={"run_id": run_id, "stage": "reconciliation", "queue": self.queue_name},
        )
        return result

    def process_message(self, message: QueueMessage, result: ReconciliationResult) -> str:
        """
        Handle one message end to end.

        Returns one of the OUTCOME_* strings. Only StorageError escapes.
        """
        if self._checkout_lapsed(message):
            logger.warning(
                f"Checkout of message {message.message_id} lapsed before processing, leaving it for redelivery",
                extra={"run_id": result.run_id, "stage": "reconciliation", "message_id": message.message_id},
            )
            result.skipped += 1
            return OUTCOME_SKIPPED

        payload: Optional[ReconcilePayload] = None
        try:
            payload = parse_payload(message.payload)
            outcome = self._reconcile(payload, result, self._checkout_started(message))
        except StorageError:
            raise
        except Exception as e:
            return self._handle_failure(message, payload, e, result)

        self.work_queue.delete(self.queue_name, message.message_id)
        result.succeeded += 1
        if outcome == OUTCOME_PROMOTED:
            result.promoted += 1
        elif outcome == OUTCOME_SKIPPED:
            result.skipped += 1
        return outcome

    def _checkout_started(self, message: QueueMessage) -> Optional[datetime]:
        if message.invisible_until is None:
            return None
        return message.invisible_until - timedelta(seconds=self.queue_config.visibility_timeout)

    def _checkout_lapsed(self, message: QueueMessage) -> bool:
        """True once another consumer may have been handed the same message."""
        return message.invisible_until is not None and message.invisible_until <= self.clock()

    def _reconcile(
        self,
        payload: ReconcilePayload,
        result: ReconciliationResult,
        checked_out_at: Optional[datetime] = None,
    ) -> str:
        key = payload.identity_key
        log_extra = {
            "run_id": result.run_id,
            "stage": "reconciliation",
            "identity_key": key,
            "attempt": payload.attempt_count,
        }

        entity = self.entity_store.get(key)
        if entity is None:
            logger.info(f"{key} not tracked, dropping message", extra=log_extra)
            return OUTCOME_SKIPPED
        if entity.state.is_terminal:
            logger.info(f"{key} already {entity.state.value}, dropping message", extra=log_extra)
            return OUTCOME_SKIPPED
        if checked_out_at is not None and entity.last_updated_at > checked_out_at:
            logger.info(f"{key} refreshed since this delivery was checked out, dropping duplicate", extra=log_extra)
            return OUTCOME_SKIPPED

        start = entity.start_valuation
        if isinstance(start, bool) or not isinstance(start, (int, float)) or not math.isfinite(start) or start <= 0:
            raise StatsValidationError(f"{key} has invalid start valuation: {start!r}")

        snapshot = to_snapshot(self.client.get_stats(key), key)

        now = self.clock()
        updated = replace(
            entity,
            current_valuation=snapshot.valuation,
            current_liquidity=snapshot.liquidity,
            cumulative_buy_volume=entity.cumulative_buy_volume + snapshot.buy_volume,
            cumulative_net_volume=entity.cumulative_net_volume + snapshot.net_volume,
            last_updated_at=now,
        )

        if should_evaluate(updated.current_valuation, self.lifecycle_config.evaluation_threshold):
            decision = classify(
                updated.start_valuation,
                updated.current_valuation,
                updated.cumulative_buy_volume,
                updated.cumulative_net_volume,
                updated.current_liquidity,
                self.thresholds,
            )
            logger.info(f"{key}: {decision.explain()}", extra=log_extra)
            if decision.promoted:
                return self._promote(updated, now, log_extra)
        else:
            logger.debug(
                f"{key} valuation ${updated.current_valuation:,.0f} not above "
                f"${self.lifecycle_config.evaluation_threshold:,.0f}, evaluation deferred",
                extra=log_extra,
            )

        outcome = self.entity_store.update_metrics(updated, HistoryRecord.from_entity(updated, now))
        if not outcome.applied:
            logger.info(f"{key} metrics not written ({outcome.value})", extra=log_extra)
            return OUTCOME_SKIPPED
        return OUTCOME_UPDATED

    def _promote(self, entity: TrackedEntity, now: datetime, log_extra: Dict[str, Any]) -> str:
        key = entity.identity_key
        record = PromotionRecord.from_entity(entity, now)
        outcome = self.entity_store.promote(entity, record)

        if outcome is not TransitionOutcome.APPLIED:
            logger.warning(f"Promotion of {key} lost to a concurrent transition ({outcome.value})", extra=log_extra)
            return OUTCOME_SKIPPED

        logger.info(
            f"PROMOTED {key}: {record.growth_multiple:.2f}x, valuation=${record.valuation:,.0f}",
            extra=log_extra,
        )
        try:
            self.notifier.notify_promotion(record)
        except Exception as e:
            logger.error(f"Promotion notification for {key} failed: {e}", extra=log_extra)
        return OUTCOME_PROMOTED

    def _handle_failure(
        self,
        message: QueueMessage,
        payload: Optional[ReconcilePayload],
        error: Exception,
        result: ReconciliationResult,
    ) -> str:
        key = message.identity_key or "unknown"
        error_type = type(error).__name__
        error_text = str(error)
        now = self.clock()
        attempt_count = payload.attempt_count if payload is not None else _raw_attempt_count(message.payload)
        log_extra = {
            "run_id": result.run_id,
            "stage": "reconciliation",
            "identity_key": key,
            "message_id": message.message_id,
            "attempt": attempt_count,
        }

        result.failed += 1
        result.add_error(key, error_type, error_text)

        retryable = self.retry_policy.is_retryable(error)
        if retryable and not self.retry_policy.is_exhausted(attempt_count):
            next_eligible_at = self.retry_policy.next_eligible_at(attempt_count, now, self.rng)
            if payload is not None:
                new_payload = payload.with_failure(error_type, error_text, now, next_eligible_at).to_json_dict()
            else:
                new_payload = _annotate_raw(
                    message.payload, attempt_count + 1, error_type, error_text, now, next_eligible_at
                )
            if not self.work_queue.update(self.queue_name, message.message_id, new_payload, next_eligible_at):
                logger.warning(f"Message {message.message_id} vanished before retry metadata was saved",
                               extra=log_extra)
            result.retried += 1
            logger.warning(
                f"Retryable failure for {key} (attempt {attempt_count + 1}/{self.retry_policy.max_retries}), "
                f"next attempt at {next_eligible_at.isoformat()}: {error_type}: {error_text}",
                extra=log_extra,
            )
            return OUTCOME_RETRIED

        if payload is not None:
            dlq_payload = payload.dead_lettered(error_type, error_text, now).to_json_dict()
        else:
            dlq_payload = _annotate_raw(message.payload, attempt_count, error_type, error_text, now, failed=True)
        self.work_queue.dead_letter(self.queue_name, dlq_payload)
        self.work_queue.delete(self.queue_name, message.message_id)
        result.dead_lettered += 1
        reason = "retries exhausted" if retryable else "terminal error"
        logger.error(f"Dead-lettered {key} ({reason}): {error_type}: {error_text}", extra=log_extra)
        return OUTCOME_DEAD_LETTERED
