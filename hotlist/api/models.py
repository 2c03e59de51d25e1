"""
Hotlist API Models
==================

Pydantic models for API request/response serialization.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EntityStateEnum(str, Enum):
    """Lifecycle state filter."""
    ACTIVE = "active"
    PROMOTED = "promoted"
    ARCHIVED = "archived"


class ErrorEntry(BaseModel):
    identity_key: str
    error_type: str
    message: str
    timestamp: datetime


class Rejection(BaseModel):
    identity_key: str
    reason: str


class DiscoverRequest(BaseModel):
    """Optional overrides for an ingestion run."""
    filters: Optional[str] = Field(None, description="Search query string override")


class ReconcileRequest(BaseModel):
    batch_size: Optional[int] = Field(None, ge=1, le=1000)


class IngestionSummary(BaseModel):
    """Result of POST /api/discover."""
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    discovered: int
    already_tracked: int
    rejected: int
    admitted: int
    queued: int
    enqueue_failures: int
    rejections: List[Rejection] = []
    errors: List[ErrorEntry] = []


class ReconciliationSummary(BaseModel):
    """Result of POST /api/reconcile."""
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    total: int
    success: int
    failure: int
    promoted: int
    skipped: int
    retried: int
    dead_lettered: int
    errors: List[ErrorEntry] = []


class SweepSummary(BaseModel):
    """Result of a maintenance sweep."""
    sweep: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    examined: int
    affected: int
    keys: List[str] = []
    errors: List[ErrorEntry] = []


class PromotionModel(BaseModel):
    identity_key: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    promoted_at: datetime
    start_valuation: float
    valuation: float
    liquidity: float
    cumulative_buy_volume: float
    cumulative_net_volume: float


class HistoryModel(BaseModel):
    valuation: float
    liquidity: float
    cumulative_buy_volume: float
    cumulative_net_volume: float
    recorded_at: datetime


class EntityModel(BaseModel):
    """Tracked entity."""
    identity_key: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    state: EntityStateEnum
    start_valuation: float
    current_valuation: float
    current_liquidity: float
    cumulative_buy_volume: float
    cumulative_net_volume: float
    monitoring_deadline: datetime
    created_at: datetime
    last_updated_at: datetime


class EntityDetail(EntityModel):
    """Tracked entity with its promotion record and history."""
    promotion: Optional[PromotionModel] = None
    history: List[HistoryModel] = []


class EntityListResponse(BaseModel):
    count: int
    entities: List[EntityModel]


class QueueHealth(BaseModel):
    name: str
    depth: int
    dead_letters: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    checked_at: datetime
    database: Optional[Dict[str, Any]] = None
    entities: Optional[Dict[str, int]] = None
    queue: Optional[QueueHealth] = None
    market_data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
