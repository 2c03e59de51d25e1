"""
Hotlist Entity Lifecycle Store
==============================

Authoritative state of every tracked entity plus its history and
promotion records.

Every write that touches state is conditional on the entity still being
ACTIVE. Callers never read-then-write a transition; they ask the store to
apply it and inspect the TransitionOutcome.

Implementations:
    - InMemoryEntityStore: process-local, for tests and dry runs
    - PostgresEntityStore (postgres_store.py)
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from ..data.data_models import (
    EntityState,
    HistoryRecord,
    PromotionRecord,
    TrackedEntity,
)
from .transitions import TransitionOutcome, check_transition

logger = logging.getLogger(__name__)


class EntityStore(ABC):
    """Entity, history and promotion persistence."""

    @abstractmethod
    def get(self, identity_key: str) -> Optional[TrackedEntity]:
        """Entity by key, in any state."""

    def exists(self, identity_key: str) -> bool:
        return self.get(identity_key) is not None

    @abstractmethod
    def insert_new(self, entity: TrackedEntity, initial_history: HistoryRecord) -> bool:
        """
        Create an entity together with its first history record.

        Returns False, writing nothing, if the key is already tracked in
        any state.
        """

    @abstractmethod
    def update_metrics(self, entity: TrackedEntity, history: HistoryRecord) -> TransitionOutcome:
        """Persist refreshed metrics and append history, only while ACTIVE."""

    @abstractmethod
    def promote(self, entity: TrackedEntity, record: PromotionRecord) -> TransitionOutcome:
        """
        ACTIVE -> PROMOTED with the entity's latest metrics, plus the
        promotion record, in one unit.
        """

    @abstractmethod
    def archive_expired(self, now: datetime) -> List[str]:
        """ACTIVE -> ARCHIVED for every entity whose deadline is before now; returns the keys."""

    @abstractmethod
    def list_by_state(self, state: Optional[EntityState] = None, limit: Optional[int] = None) -> List[TrackedEntity]:
        """Entities, oldest first, optionally filtered by state."""

    @abstractmethod
    def history_for(self, identity_key: str) -> List[HistoryRecord]:
        """History records for one entity in recording order."""

    @abstractmethod
    def promotion_for(self, identity_key: str) -> Optional[PromotionRecord]:
        """Promotion record, if the entity was promoted."""

    def count_by_state(self) -> Dict[str, int]:
        counts = {state.value: 0 for state in EntityState}
        for entity in self.list_by_state():
            counts[entity.state.value] += 1
        return counts


class InMemoryEntityStore(EntityStore):
    """
    Dict-backed store.

    The lock makes each conditional write atomic the way a single UPDATE
    ... WHERE state = 'active' is in PostgreSQL.
    """

    def __init__(self):
        self._entities: Dict[str, TrackedEntity] = {}
        self._history: Dict[str, List[HistoryRecord]] = {}
        self._promotions: Dict[str, PromotionRecord] = {}
        self._lock = threading.Lock()

    def get(self, identity_key: str) -> Optional[TrackedEntity]:
        with self._lock:
            entity = self._entities.get(identity_key)
            return replace(entity) if entity else None

    def insert_new(self, entity: TrackedEntity, initial_history: HistoryRecord) -> bool:
        with self._lock:
            if entity.identity_key in self._entities:
                return False
            self._entities[entity.identity_key] = replace(entity, state=EntityState.ACTIVE)
            self._history[entity.identity_key] = [initial_history]
            return True

    def _conditional(self, identity_key: str) -> TransitionOutcome:
        current = self._entities.get(identity_key)
        if current is None:
            return TransitionOutcome.NOT_FOUND
        if current.state is not EntityState.ACTIVE:
            return TransitionOutcome.NOT_ACTIVE
        return TransitionOutcome.APPLIED

    def update_metrics(self, entity: TrackedEntity, history: HistoryRecord) -> TransitionOutcome:
        with self._lock:
            outcome = self._conditional(entity.identity_key)
            if outcome.applied:
                current = self._entities[entity.identity_key]
                self._entities[entity.identity_key] = _with_metrics(current, entity)
                self._history[entity.identity_key].append(history)
            return outcome

    def promote(self, entity: TrackedEntity, record: PromotionRecord) -> TransitionOutcome:
        with self._lock:
            outcome = self._conditional(entity.identity_key)
            if outcome.applied:
                current = self._entities[entity.identity_key]
                check_transition(current.state, EntityState.PROMOTED)
                promoted = _with_metrics(current, entity)
                promoted.state = EntityState.PROMOTED
                self._entities[entity.identity_key] = promoted
                self._promotions.setdefault(entity.identity_key, record)
            return outcome

    def archive_expired(self, now: datetime) -> List[str]:
        archived = []
        with self._lock:
            for key, entity in self._entities.items():
                if entity.state is EntityState.ACTIVE and entity.is_expired(now):
                    check_transition(entity.state, EntityState.ARCHIVED)
                    self._entities[key] = replace(entity, state=EntityState.ARCHIVED, last_updated_at=now)
                    archived.append(key)
        return archived

    def list_by_state(self, state: Optional[EntityState] = None, limit: Optional[int] = None) -> List[TrackedEntity]:
        with self._lock:
            entities = sorted(
                (e for e in self._entities.values() if state is None or e.state is state),
                key=lambda e: (e.created_at, e.identity_key),
            )
            if limit is not None:
                entities = entities[:limit]
            return [replace(e) for e in entities]

    def history_for(self, identity_key: str) -> List[HistoryRecord]:
        with self._lock:
            return list(self._history.get(identity_key, []))

    def promotion_for(self, identity_key: str) -> Optional[PromotionRecord]:
        with self._lock:
            return self._promotions.get(identity_key)


def _with_metrics(current: TrackedEntity, updated: TrackedEntity) -> TrackedEntity:
    """Copy of current carrying updated's mutable metrics."""
    return replace(
        current,
        current_valuation=updated.current_valuation,
        current_liquidity=updated.current_liquidity,
        cumulative_buy_volume=updated.cumulative_buy_volume,
        cumulative_net_volume=updated.cumulative_net_volume,
        last_updated_at=updated.last_updated_at,
    )
