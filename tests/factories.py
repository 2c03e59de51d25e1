"""
Shared builders for the Hotlist test suite.

Configs are built with explicit values so tests never depend on the
environment of the machine running them.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

from hotlist.data.config import LifecycleConfig, MarketDataConfig, QueueConfig
from hotlist.data.data_models import EntityState, HistoryRecord, TrackedEntity

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_queue_config(**overrides) -> QueueConfig:
    values = dict(
        queue_name="test_queue",
        batch_size=10,
        visibility_timeout=60,
        max_retries=5,
        base_delay_ms=2000,
        max_delay_ms=300000,
        jitter_ms=0,
        enqueue_attempts=3,
        message_delay=0.0,
        idle_delay=0.0,
    )
    values.update(overrides)
    return QueueConfig(**values)


def make_lifecycle_config(**overrides) -> LifecycleConfig:
    values = dict(
        evaluation_threshold=600000.0,
        admission_liquidity_ratio=0.03,
        monitoring_window_hours=6.0,
        growth_multiple=3.0,
        buy_volume_ratio=0.05,
        liquidity_ratio=0.03,
    )
    values.update(overrides)
    return LifecycleConfig(**values)


def make_market_data_config(**overrides) -> MarketDataConfig:
    values = dict(
        api_url="https://api.test",
        api_key="test-key",
        request_timeout=5.0,
        requests_per_minute=600,
        search_filters="",
    )
    values.update(overrides)
    return MarketDataConfig(**values)


def make_entity(
    identity_key: str = "TOKEN1",
    start_valuation: float = 500000.0,
    current_valuation: Optional[float] = None,
    current_liquidity: float = 50000.0,
    cumulative_buy_volume: float = 0.0,
    cumulative_net_volume: float = 0.0,
    state: EntityState = EntityState.ACTIVE,
    created_at: datetime = T0,
    monitoring_deadline: Optional[datetime] = None,
    name: Optional[str] = "Test Token",
    symbol: Optional[str] = "TT",
) -> TrackedEntity:
    return TrackedEntity(
        identity_key=identity_key,
        start_valuation=start_valuation,
        current_valuation=start_valuation if current_valuation is None else current_valuation,
        current_liquidity=current_liquidity,
        cumulative_buy_volume=cumulative_buy_volume,
        cumulative_net_volume=cumulative_net_volume,
        state=state,
        created_at=created_at,
        last_updated_at=created_at,
        monitoring_deadline=monitoring_deadline or created_at + timedelta(hours=6),
        name=name,
        symbol=symbol,
    )


def insert_entity(store, entity: TrackedEntity) -> TrackedEntity:
    """Insert entity with its initial history record."""
    assert store.insert_new(entity, HistoryRecord.from_entity(entity))
    return entity


def make_stats(
    valuation: Any = 2000000,
    liquidity: Any = 70000,
    buys: Any = 150000,
    sells: Any = 100000,
    window: Optional[str] = "24h",
) -> Dict[str, Any]:
    """Raw /stats body in the shape the API returns it."""
    raw: Dict[str, Any] = {"marketCapUsd": valuation, "liquidityUsd": liquidity}
    if window:
        raw[window] = {"volume": {"buys": buys, "sells": sells}}
    return raw


def make_response(
    status_code: int = 200,
    body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    json_error: bool = False,
) -> MagicMock:
    """Stand-in for requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.headers = headers or {}
    response.text = "" if body is None else str(body)
    response.reason = "Test Reason"
    if json_error:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = body
    return response


def make_database(cursor: MagicMock):
    """
    MagicMock Database whose connection() yields a connection whose
    cursor() yields `cursor`.
    """
    database = MagicMock()
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    database.connection.return_value.__enter__.return_value = conn
    return database, conn
