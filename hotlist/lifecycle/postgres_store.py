"""
PostgreSQL-backed entity lifecycle store.

Transitions are single conditional UPDATEs on state = 'active'. When an
UPDATE matches no row, a follow-up SELECT in the same transaction tells
NOT_FOUND apart from NOT_ACTIVE.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from psycopg2.extras import RealDictCursor

from ..data.data_models import (
    EntityState,
    HistoryRecord,
    PromotionRecord,
    TrackedEntity,
)
from ..db import Database
from .entity_store import EntityStore
from .transitions import TransitionOutcome

logger = logging.getLogger(__name__)


_ENTITY_COLUMNS = """
    identity_key, name, symbol, state, start_valuation, current_valuation,
    current_liquidity, cumulative_buy_volume, cumulative_net_volume,
    monitoring_deadline, created_at, last_updated_at
"""


def _row_to_entity(row: Dict[str, Any]) -> TrackedEntity:
    return TrackedEntity(
        identity_key=row["identity_key"],
        name=row["name"],
        symbol=row["symbol"],
        state=EntityState(row["state"]),
        start_valuation=float(row["start_valuation"]),
        current_valuation=float(row["current_valuation"]),
        current_liquidity=float(row["current_liquidity"]),
        cumulative_buy_volume=float(row["cumulative_buy_volume"]),
        cumulative_net_volume=float(row["cumulative_net_volume"]),
        monitoring_deadline=row["monitoring_deadline"],
        created_at=row["created_at"],
        last_updated_at=row["last_updated_at"],
    )


def _insert_history(cur, history: HistoryRecord):
    cur.execute("""
        INSERT INTO history_records (
            identity_key, valuation, liquidity,
            cumulative_buy_volume, cumulative_net_volume, recorded_at
        ) VALUES (%s, %s, %s, %s, %s, %s)
    """, (
        history.identity_key,
        history.valuation,
        history.liquidity,
        history.cumulative_buy_volume,
        history.cumulative_net_volume,
        history.recorded_at,
    ))


def _miss_outcome(cur, identity_key: str) -> TransitionOutcome:
    cur.execute("SELECT state FROM tracked_entities WHERE identity_key = %s", (identity_key,))
    row = cur.fetchone()
    return TransitionOutcome.NOT_FOUND if row is None else TransitionOutcome.NOT_ACTIVE


class PostgresEntityStore(EntityStore):
    """EntityStore over tracked_entities, history_records and promotion_records."""

    def __init__(self, database: Database):
        self.database = database

    def get(self, identity_key: str) -> Optional[TrackedEntity]:
        with self.database.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"SELECT {_ENTITY_COLUMNS} FROM tracked_entities WHERE identity_key = %s",
                    (identity_key,),
                )
                row = cur.fetchone()
        return _row_to_entity(row) if row else None

    def exists(self, identity_key: str) -> bool:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 FROM tracked_entities WHERE identity_key = %s", (identity_key,))
                return cur.fetchone() is not None

    def insert_new(self, entity: TrackedEntity, initial_history: HistoryRecord) -> bool:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO tracked_entities (
                        identity_key, name, symbol, state, start_valuation,
                        current_valuation, current_liquidity,
                        cumulative_buy_volume, cumulative_net_volume,
                        monitoring_deadline, created_at, last_updated_at
                    ) VALUES (%s, %s, %s, 'active', %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (identity_key) DO NOTHING
                """, (
                    entity.identity_key,
                    entity.name,
                    entity.symbol,
                    entity.start_valuation,
                    entity.current_valuation,
                    entity.current_liquidity,
                    entity.cumulative_buy_volume,
                    entity.cumulative_net_volume,
                    entity.monitoring_deadline,
                    entity.created_at,
                    entity.last_updated_at,
                ))
                if cur.rowcount == 0:
                    return False
                _insert_history(cur, initial_history)
                return True

    def update_metrics(self, entity: TrackedEntity, history: HistoryRecord) -> TransitionOutcome:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    UPDATE tracked_entities
                    SET current_valuation = %s,
                        current_liquidity = %s,
                        cumulative_buy_volume = %s,
                        cumulative_net_volume = %s,
                        last_updated_at = %s
                    WHERE identity_key = %s AND state = 'active'
                """, (
                    entity.current_valuation,
                    entity.current_liquidity,
                    entity.cumulative_buy_volume,
                    entity.cumulative_net_volume,
                    entity.last_updated_at,
                    entity.identity_key,
                ))
                if cur.rowcount == 0:
                    return _miss_outcome(cur, entity.identity_key)
                _insert_history(cur, history)
                return TransitionOutcome.APPLIED

    def promote(self, entity: TrackedEntity, record: PromotionRecord) -> TransitionOutcome:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    UPDATE tracked_entities
                    SET state = 'promoted',
                        current_valuation = %s,
                        current_liquidity = %s,
                        cumulative_buy_volume = %s,
                        cumulative_net_volume = %s,
                        last_updated_at = %s
                    WHERE identity_key = %s AND state = 'active'
                """, (
                    entity.current_valuation,
                    entity.current_liquidity,
                    entity.cumulative_buy_volume,
                    entity.cumulative_net_volume,
                    entity.last_updated_at,
                    entity.identity_key,
                ))
                if cur.rowcount == 0:
                    return _miss_outcome(cur, entity.identity_key)
                cur.execute("""
                    INSERT INTO promotion_records (
                        identity_key, name, symbol, promoted_at, start_valuation,
                        valuation, liquidity, cumulative_buy_volume, cumulative_net_volume
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (identity_key) DO NOTHING
                """, (
                    record.identity_key,
                    record.name,
                    record.symbol,
                    record.promoted_at,
                    record.start_valuation,
                    record.valuation,
                    record.liquidity,
                    record.cumulative_buy_volume,
                    record.cumulative_net_volume,
                ))
                return TransitionOutcome.APPLIED

    def archive_expired(self, now: datetime) -> List[str]:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    UPDATE tracked_entities
                    SET state = 'archived', last_updated_at = %s
                    WHERE state = 'active' AND monitoring_deadline < %s
                    RETURNING identity_key
                """, (now, now))
                return [row[0] for row in cur.fetchall()]

    def list_by_state(self, state: Optional[EntityState] = None, limit: Optional[int] = None) -> List[TrackedEntity]:
        query = f"SELECT {_ENTITY_COLUMNS} FROM tracked_entities"
        params: List[Any] = []
        if state is not None:
            query += " WHERE state = %s"
            params.append(state.value)
        query += " ORDER BY created_at, identity_key"
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)

        with self.database.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                return [_row_to_entity(row) for row in cur.fetchall()]

    def count_by_state(self) -> Dict[str, int]:
        counts = {state.value: 0 for state in EntityState}
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT state, COUNT(*) FROM tracked_entities GROUP BY state")
                for state, count in cur.fetchall():
                    counts[state] = count
        return counts

    def history_for(self, identity_key: str) -> List[HistoryRecord]:
        with self.database.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("""
                    SELECT identity_key, valuation, liquidity,
                           cumulative_buy_volume, cumulative_net_volume, recorded_at
                    FROM history_records
                    WHERE identity_key = %s
                    ORDER BY recorded_at, id
                """, (identity_key,))
                return [
                    HistoryRecord(
                        identity_key=row["identity_key"],
                        valuation=float(row["valuation"]),
                        liquidity=float(row["liquidity"]),
                        cumulative_buy_volume=float(row["cumulative_buy_volume"]),
                        cumulative_net_volume=float(row["cumulative_net_volume"]),
                        recorded_at=row["recorded_at"],
                    )
                    for row in cur.fetchall()
                ]

    def promotion_for(self, identity_key: str) -> Optional[PromotionRecord]:
        with self.database.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("""
                    SELECT identity_key, name, symbol, promoted_at, start_valuation, valuation,
                           liquidity, cumulative_buy_volume, cumulative_net_volume
                    FROM promotion_records
                    WHERE identity_key = %s
                """, (identity_key,))
                row = cur.fetchone()
        if row is None:
            return None
        return PromotionRecord(
            identity_key=row["identity_key"],
            promoted_at=row["promoted_at"],
            start_valuation=float(row["start_valuation"]),
            valuation=float(row["valuation"]),
            liquidity=float(row["liquidity"]),
            cumulative_buy_volume=float(row["cumulative_buy_volume"]),
            cumulative_net_volume=float(row["cumulative_net_volume"]),
            name=row["name"],
            symbol=row["symbol"],
        )
