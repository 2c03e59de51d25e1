"""
Hotlist Data Models
===================

Dataclasses representing the core records handled by the pipelines.
These models are the intermediate representation between market-data API
responses and the PostgreSQL schema in hotlist/schema.sql.

Models:
    - TrackedEntity: Authoritative state of a monitored asset
    - HistoryRecord: Append-only metrics snapshot, one per reconciliation cycle
    - PromotionRecord: Metrics captured at the moment of promotion
    - CandidateRecord: Raw discovery candidate from the /search feed
    - MetricsSnapshot: Validated figures from the /stats endpoint
    - IngestionResult / ReconciliationResult / SweepResult: Cycle summaries
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class EntityState(Enum):
    """Lifecycle state of a tracked entity."""
    ACTIVE = "active"        # Monitoring in progress
    PROMOTED = "promoted"    # Met every classification criterion (terminal)
    ARCHIVED = "archived"    # Deadline passed without promotion (terminal)

    @property
    def is_terminal(self) -> bool:
        return self is not EntityState.ACTIVE


@dataclass
class TrackedEntity:
    """
    A monitored asset.

    Maps directly to the tracked_entities table. Entities are never
    deleted, only transitioned to a terminal state.
    """
    identity_key: str
    start_valuation: float
    current_valuation: float
    current_liquidity: float
    monitoring_deadline: datetime
    cumulative_buy_volume: float = 0.0
    cumulative_net_volume: float = 0.0
    state: EntityState = EntityState.ACTIVE
    created_at: datetime = field(default_factory=utc_now)
    last_updated_at: datetime = field(default_factory=utc_now)
    name: Optional[str] = None
    symbol: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        """True once the monitoring deadline has elapsed."""
        return now > self.monitoring_deadline

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation."""
        return {
            "identity_key": self.identity_key,
            "name": self.name,
            "symbol": self.symbol,
            "state": self.state.value,
            "start_valuation": self.start_valuation,
            "current_valuation": self.current_valuation,
            "current_liquidity": self.current_liquidity,
            "cumulative_buy_volume": self.cumulative_buy_volume,
            "cumulative_net_volume": self.cumulative_net_volume,
            "monitoring_deadline": self.monitoring_deadline.isoformat(),
            "created_at": self.created_at.isoformat(),
            "last_updated_at": self.last_updated_at.isoformat(),
        }


@dataclass(frozen=True)
class HistoryRecord:
    """Point-in-time metrics snapshot. Immutable once written."""
    identity_key: str
    valuation: float
    liquidity: float
    cumulative_buy_volume: float
    cumulative_net_volume: float
    recorded_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_entity(cls, entity: TrackedEntity, recorded_at: Optional[datetime] = None) -> "HistoryRecord":
        return cls(
            identity_key=entity.identity_key,
            valuation=entity.current_valuation,
            liquidity=entity.current_liquidity,
            cumulative_buy_volume=entity.cumulative_buy_volume,
            cumulative_net_volume=entity.cumulative_net_volume,
            recorded_at=recorded_at or entity.last_updated_at,
        )


@dataclass(frozen=True)
class PromotionRecord:
    """
    Metrics captured when an entity is promoted.

    Kept apart from regular history; at most one per identity key.
    """
    identity_key: str
    promoted_at: datetime
    start_valuation: float
    valuation: float
    liquidity: float
    cumulative_buy_volume: float
    cumulative_net_volume: float
    name: Optional[str] = None
    symbol: Optional[str] = None

    @property
    def growth_multiple(self) -> float:
        if self.start_valuation <= 0:
            return 0.0
        return self.valuation / self.start_valuation

    @classmethod
    def from_entity(cls, entity: TrackedEntity, promoted_at: datetime) -> "PromotionRecord":
        return cls(
            identity_key=entity.identity_key,
            promoted_at=promoted_at,
            start_valuation=entity.start_valuation,
            valuation=entity.current_valuation,
            liquidity=entity.current_liquidity,
            cumulative_buy_volume=entity.cumulative_buy_volume,
            cumulative_net_volume=entity.cumulative_net_volume,
            name=entity.name,
            symbol=entity.symbol,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity_key": self.identity_key,
            "name": self.name,
            "symbol": self.symbol,
            "promoted_at": self.promoted_at.isoformat(),
            "start_valuation": self.start_valuation,
            "valuation": self.valuation,
            "liquidity": self.liquidity,
            "cumulative_buy_volume": self.cumulative_buy_volume,
            "cumulative_net_volume": self.cumulative_net_volume,
        }


@dataclass
class CandidateRecord:
    """Discovery candidate as returned by the /search feed."""
    identity_key: str
    valuation: Optional[float]
    liquidity: Optional[float]
    buy_volume: Optional[float] = None
    sell_volume: Optional[float] = None
    name: Optional[str] = None
    symbol: Optional[str] = None

    @property
    def has_figures(self) -> bool:
        """Valuation and liquidity both present."""
        return self.valuation is not None and self.liquidity is not None

    @property
    def liquidity_ratio(self) -> float:
        if not self.has_figures or self.valuation <= 0:
            return 0.0
        return self.liquidity / self.valuation

    @property
    def has_explicit_volume(self) -> bool:
        return self.buy_volume is not None and self.sell_volume is not None


@dataclass(frozen=True)
class MetricsSnapshot:
    """
    Validated figures for one entity from the /stats endpoint.

    Volumes come from the first time-window bucket that carries them;
    `window` is None when no bucket did and volumes defaulted to zero.
    """
    identity_key: str
    valuation: float
    liquidity: float
    buy_volume: float = 0.0
    sell_volume: float = 0.0
    window: Optional[str] = None

    @property
    def net_volume(self) -> float:
        return self.buy_volume - self.sell_volume


@dataclass
class IngestionResult:
    """Summary of one discovery run."""
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    candidates_discovered: int = 0
    already_tracked: int = 0
    rejected: int = 0
    admitted: int = 0
    queued: int = 0
    enqueue_failures: int = 0
    rejections: List[Dict[str, str]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def add_rejection(self, identity_key: str, reason: str):
        self.rejected += 1
        self.rejections.append({"identity_key": identity_key, "reason": reason})

    def add_error(self, identity_key: str, error_type: str, message: str):
        """Add an error to the result."""
        self.errors.append({
            "identity_key": identity_key,
            "error_type": error_type,
            "message": message,
            "timestamp": utc_now().isoformat(),
        })

    def get_summary(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "discovered": self.candidates_discovered,
            "already_tracked": self.already_tracked,
            "rejected": self.rejected,
            "admitted": self.admitted,
            "queued": self.queued,
            "enqueue_failures": self.enqueue_failures,
            "rejections": self.rejections,
            "errors": self.errors,
        }


@dataclass
class ReconciliationResult:
    """Summary of one reconciliation cycle over a dequeued batch."""
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    promoted: int = 0
    skipped: int = 0
    retried: int = 0
    dead_lettered: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def add_error(self, identity_key: str, error_type: str, message: str):
        self.errors.append({
            "identity_key": identity_key,
            "error_type": error_type,
            "message": message,
            "timestamp": utc_now().isoformat(),
        })

    def get_summary(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "total": self.total,
            "success": self.succeeded,
            "failure": self.failed,
            "promoted": self.promoted,
            "skipped": self.skipped,
            "retried": self.retried,
            "dead_lettered": self.dead_lettered,
            "errors": self.errors,
        }


@dataclass
class SweepResult:
    """Summary of a maintenance sweep (deadline, queue coverage, visibility)."""
    sweep: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    examined: int = 0
    affected: int = 0
    keys: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def add_error(self, identity_key: str, error_type: str, message: str):
        self.errors.append({
            "identity_key": identity_key,
            "error_type": error_type,
            "message": message,
            "timestamp": utc_now().isoformat(),
        })

    def get_summary(self) -> Dict[str, Any]:
        return {
            "sweep": self.sweep,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "examined": self.examined,
            "affected": self.affected,
            "keys": self.keys,
            "errors": self.errors,
        }
