"""
Retry policy for failed queue messages.

delay = min(base_delay x 2^attempt_count + jitter, max_delay)

Jitter is drawn uniformly from [0, jitter_ms) so that entities failing in
the same cycle do not all come back at the same instant.
"""

import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import requests

from ..data.config import QueueConfig
from ..data.market_data_client import (
    MarketDataAPIError,
    MarketDataNotFoundError,
)
from ..data.validation import StatsValidationError
from .messages import PayloadValidationError


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with jitter, a cap, and a retry budget."""
    max_retries: int = 5
    base_delay_ms: int = 2000
    max_delay_ms: int = 300000
    jitter_ms: int = 1000

    @classmethod
    def from_config(cls, config: QueueConfig) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            jitter_ms=config.jitter_ms,
        )

    def compute_delay_ms(self, attempt_count: int, rng: Optional[random.Random] = None) -> float:
        """Backoff delay in milliseconds for a message that has failed attempt_count times before."""
        if attempt_count < 0:
            raise ValueError("attempt_count cannot be negative")
        jitter = (rng or random).uniform(0, self.jitter_ms) if self.jitter_ms else 0.0
        return min(self.base_delay_ms * (2 ** attempt_count) + jitter, self.max_delay_ms)

    def next_eligible_at(
        self,
        attempt_count: int,
        now: datetime,
        rng: Optional[random.Random] = None,
    ) -> datetime:
        return now + timedelta(milliseconds=self.compute_delay_ms(attempt_count, rng))

    def is_exhausted(self, attempt_count: int) -> bool:
        """True once the retry budget is spent and the message belongs in the dead-letter queue."""
        return attempt_count >= self.max_retries

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        """
        Classify a processing failure.

        Rate limiting, timeouts, network failures, other API errors and
        malformed data are retryable since the source may recover. An
        identifier the API does not know, or an unexpected bug, is terminal.
        """
        if isinstance(error, MarketDataNotFoundError):
            return False
        if isinstance(error, (MarketDataAPIError, StatsValidationError, PayloadValidationError)):
            return True
        if isinstance(error, (requests.Timeout, requests.ConnectionError, TimeoutError, ConnectionError)):
            return True
        return False
