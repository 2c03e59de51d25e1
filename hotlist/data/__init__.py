"""
Hotlist Data Module
===================

Market-data integration and discovery.

This module provides:
    - MarketDataClient: API client with shared rate limiting
    - validate_stats / to_snapshot: Stats response validation
    - Data models: TrackedEntity, HistoryRecord, PromotionRecord, ...

The discovery pipeline lives in hotlist.data.ingestion_pipeline; it is
not re-exported here because it depends on the lifecycle and queue
packages, which themselves import from this one.

Quick Start:
    from hotlist.data import MarketDataClient, get_settings

    client = MarketDataClient(get_settings().market_data)
    candidates = client.search()

Required Environment Variables:
    MARKET_DATA_API_URL: Base URL of the market-data API
    MARKET_DATA_API_KEY: API key
    DATABASE_PASSWORD: PostgreSQL password
"""

from .config import get_settings, load_settings, reset_settings, Settings
from .data_models import (
    EntityState,
    TrackedEntity,
    HistoryRecord,
    PromotionRecord,
    CandidateRecord,
    MetricsSnapshot,
    IngestionResult,
    ReconciliationResult,
    SweepResult,
)
from .market_data_client import (
    MarketDataClient,
    MarketDataAPIError,
    MarketDataRateLimitError,
    MarketDataTimeoutError,
    MarketDataNotFoundError,
)
from .validation import StatsValidationError, validate_stats, to_snapshot

__all__ = [
    # Configuration
    "get_settings",
    "load_settings",
    "reset_settings",
    "Settings",
    # Data models
    "EntityState",
    "TrackedEntity",
    "HistoryRecord",
    "PromotionRecord",
    "CandidateRecord",
    "MetricsSnapshot",
    "IngestionResult",
    "ReconciliationResult",
    "SweepResult",
    # Market data client
    "MarketDataClient",
    "MarketDataAPIError",
    "MarketDataRateLimitError",
    "MarketDataTimeoutError",
    "MarketDataNotFoundError",
    # Validation
    "StatsValidationError",
    "validate_stats",
    "to_snapshot",
]
