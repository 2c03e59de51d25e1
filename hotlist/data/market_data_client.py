"""
Hotlist Market Data Client
==========================

HTTP client for the external market-data API.

Endpoints:
    GET /search[?filters]  -> {"data": [{"mint", "marketCapUsd", "liquidityUsd", ...}]}
    GET /stats/{id}        -> current metrics with nested time-window volume buckets

Features:
    - Token-bucket rate limiting shared by every outbound call
    - HTTP status mapped onto a small exception hierarchy
    - Request/error counters for health reporting

Retries are not done here: a failed stats call surfaces to the
reconciliation pipeline, which re-arms the queue message with backoff.

Usage:
    client = MarketDataClient(settings.market_data)
    candidates = client.search()
    raw_stats = client.get_stats(candidates[0].identity_key)
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests

from .config import MarketDataConfig
from .data_models import CandidateRecord, utc_now

logger = logging.getLogger(__name__)


class MarketDataAPIError(Exception):
    """Base exception for market-data API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[Any] = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class MarketDataRateLimitError(MarketDataAPIError):
    """HTTP 429 from the API."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None,
                 response: Optional[Any] = None):
        self.retry_after = retry_after
        if retry_after is not None:
            message += f", retry after {retry_after:.0f}s"
        super().__init__(message, status_code=429, response=response)


class MarketDataTimeoutError(MarketDataAPIError):
    """Request did not complete within the configured timeout."""
    pass


class MarketDataNotFoundError(MarketDataAPIError):
    """Requested identifier is unknown to the API."""
    pass


@dataclass
class RateLimitState:
    """Token bucket refilled continuously at capacity per minute."""
    capacity: int = 60
    tokens: float = 60.0
    last_refill: Optional[float] = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    @property
    def refill_rate(self) -> float:
        """Tokens per second."""
        return self.capacity / 60.0

    def _refill(self):
        now = self.clock()
        if self.last_refill is not None:
            elapsed = now - self.last_refill
            self.tokens = min(float(self.capacity), self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def wait_time(self, tokens_needed: float = 1.0) -> float:
        """Seconds until tokens_needed are available (0 if available now)."""
        self._refill()
        if self.tokens >= tokens_needed:
            return 0.0
        if self.refill_rate <= 0:
            return 60.0
        return (tokens_needed - self.tokens) / self.refill_rate

    def consume(self, tokens: float = 1.0):
        self._refill()
        self.tokens = max(0.0, self.tokens - tokens)


def _as_number(value: Any) -> Optional[float]:
    """Finite float for ints/floats, None for anything else (bools included)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


class MarketDataClient:
    """
    Market-data API client.

    One requests.Session per client; every call first takes a token from
    the shared bucket, sleeping if the bucket is empty.
    """

    def __init__(
        self,
        config: MarketDataConfig,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({
            "x-api-key": config.api_key,
            "Accept": "application/json",
        })
        self._sleep = sleep

        self._rate_limit = RateLimitState(
            capacity=config.requests_per_minute,
            tokens=float(config.requests_per_minute),
        )
        self._rate_limit_lock = threading.Lock()

        self._stats = {
            "total_requests": 0,
            "total_errors": 0,
            "rate_limited": 0,
            "last_request_time": None,
        }

        logger.info(
            f"MarketDataClient initialized: url={config.api_url}, "
            f"requests/min={config.requests_per_minute}, timeout={config.request_timeout}s"
        )

    def _wait_for_rate_limit(self) -> None:
        with self._rate_limit_lock:
            wait_time = self._rate_limit.wait_time()
            if wait_time > 0:
                logger.info(f"Rate limit: waiting {wait_time:.2f}s")
                self._sleep(wait_time)
            self._rate_limit.consume()
            self._stats["total_requests"] += 1
            self._stats["last_request_time"] = utc_now()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Issue a GET and decode the JSON body.

        Raises:
            MarketDataRateLimitError: HTTP 429
            MarketDataNotFoundError: HTTP 404
            MarketDataTimeoutError: Request timed out
            MarketDataAPIError: Any other non-2xx, network failure or bad JSON
        """
        self._wait_for_rate_limit()
        url = f"{self.config.api_url}{path}"

        try:
            response = self.session.get(url, params=params, timeout=self.config.request_timeout)
        except requests.Timeout as e:
            self._stats["total_errors"] += 1
            raise MarketDataTimeoutError(f"Timeout calling {path}: {e}") from e
        except requests.RequestException as e:
            self._stats["total_errors"] += 1
            raise MarketDataAPIError(f"Network error calling {path}: {e}") from e

        if response.status_code == 429:
            self._stats["total_errors"] += 1
            self._stats["rate_limited"] += 1
            retry_after = _safe_float(response.headers.get("Retry-After"))
            raise MarketDataRateLimitError(retry_after=retry_after, response=response.text)

        if response.status_code == 404:
            self._stats["total_errors"] += 1
            raise MarketDataNotFoundError(f"Not found: {path}", status_code=404, response=response.text)

        if not response.ok:
            self._stats["total_errors"] += 1
            raise MarketDataAPIError(
                f"HTTP {response.status_code} from {path}: {response.reason}",
                status_code=response.status_code,
                response=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            self._stats["total_errors"] += 1
            raise MarketDataAPIError(
                f"Invalid JSON from {path}: {e}",
                status_code=response.status_code,
                response=response.text,
            ) from e

    def search(self, filters: Optional[str] = None) -> List[CandidateRecord]:
        """
        Discover candidate entities.

        Args:
            filters: Raw query string (e.g. "minLiquidity=1000&sortBy=createdAt").
                Defaults to the configured search filters.

        Returns:
            Parsed candidates. Rows without an identifier are dropped here;
            rows with missing numbers are kept with None so the ingestion
            pipeline can reject them with a reason.
        """
        filters = self.config.search_filters if filters is None else filters
        path = "/search"
        if filters:
            path = f"{path}?{filters.lstrip('?')}"

        body = self._get(path)
        rows = body.get("data") if isinstance(body, dict) else None
        if not isinstance(rows, list):
            raise MarketDataAPIError("Search response has no data list", response=body)

        candidates = []
        for row in rows:
            candidate = self._parse_candidate(row)
            if candidate is not None:
                candidates.append(candidate)

        logger.info(f"Search returned {len(rows)} rows, {len(candidates)} candidates")
        return candidates

    def _parse_candidate(self, row: Any) -> Optional[CandidateRecord]:
        if not isinstance(row, dict):
            logger.debug(f"Skipping non-object search row: {row!r}")
            return None
        identity_key = row.get("mint") or row.get("id")
        if not isinstance(identity_key, str) or not identity_key:
            logger.debug(f"Skipping search row without identifier: {row!r}")
            return None

        return CandidateRecord(
            identity_key=identity_key,
            valuation=_as_number(row.get("marketCapUsd")),
            liquidity=_as_number(row.get("liquidityUsd")),
            buy_volume=_as_number(row.get("buyVolume")),
            sell_volume=_as_number(row.get("sellVolume")),
            name=row.get("name") if isinstance(row.get("name"), str) else None,
            symbol=row.get("symbol") if isinstance(row.get("symbol"), str) else None,
        )

    def get_stats(self, identity_key: str) -> Dict[str, Any]:
        """
        Fetch current metrics for one entity.

        Returns the raw JSON object; use validation.validate_stats to read it.
        """
        if not identity_key:
            raise ValueError("identity_key is required")
        body = self._get(f"/stats/{identity_key}")
        if not isinstance(body, dict):
            raise MarketDataAPIError(f"Stats response for {identity_key} is not an object", response=body)
        return body

    def get_usage_stats(self) -> Dict[str, Any]:
        """Client usage counters."""
        with self._rate_limit_lock:
            stats = dict(self._stats)
            stats["tokens_available"] = round(self._rate_limit.tokens, 2)
        last: Optional[datetime] = stats["last_request_time"]
        stats["last_request_time"] = last.isoformat() if last else None
        return stats

    def health_check(self) -> Dict[str, Any]:
        """Report client configuration and counters without calling the API."""
        usage = self.get_usage_stats()
        return {
            "status": "healthy" if usage["rate_limited"] == 0 or usage["tokens_available"] > 0 else "degraded",
            "api_url": self.config.api_url,
            **usage,
        }

    def close(self):
        self.session.close()


def _safe_float(value: Optional[str]) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
