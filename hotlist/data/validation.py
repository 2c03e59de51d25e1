"""
Stats response validation.

The /stats endpoint returns valuation and liquidity at the top level and
volume figures nested in time-window buckets:

    {
        "marketCapUsd": 2000000,
        "liquidityUsd": 70000,
        "24h": {"volume": {"buys": 150000, "sells": 100000}},
        "1h": {"volume": {"buys": 9000, "sells": 7000}},
        ...
    }

Valuation and liquidity are required. Volume is best-effort: the first
bucket in WINDOW_FALLBACK_ORDER with numeric buys and sells wins, and
when none does the volumes default to zero with a warning.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .data_models import MetricsSnapshot

logger = logging.getLogger(__name__)

PRIMARY_WINDOW = "24h"
WINDOW_FALLBACK_ORDER: Tuple[str, ...] = (
    "24h", "12h", "6h", "5h", "4h", "3h", "2h", "1h", "30m", "15m", "5m", "1m",
)


class StatsValidationError(Exception):
    """Stats response is missing or has invalid required figures."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(message)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def extract_window_volume(raw: Dict[str, Any]) -> Optional[Tuple[str, float, float]]:
    """
    First (window, buys, sells) with numeric figures, in fallback order.

    Returns None when no bucket carries usable volume.
    """
    for window in WINDOW_FALLBACK_ORDER:
        bucket = raw.get(window)
        if not isinstance(bucket, dict):
            continue
        volume = bucket.get("volume")
        if not isinstance(volume, dict):
            continue
        buys = _number(volume.get("buys"))
        sells = _number(volume.get("sells"))
        if buys is None or sells is None:
            continue
        if not (math.isfinite(buys) and math.isfinite(sells)):
            continue
        return window, buys, sells
    return None


@dataclass
class ValidationReport:
    """Outcome of validating one stats response."""
    identity_key: str
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    valuation: float = 0.0
    liquidity: float = 0.0
    buy_volume: float = 0.0
    sell_volume: float = 0.0
    window: Optional[str] = None

    def add_error(self, message: str):
        self.is_valid = False
        self.errors.append(message)

    @property
    def net_volume(self) -> float:
        return self.buy_volume - self.sell_volume

    def to_snapshot(self) -> MetricsSnapshot:
        if not self.is_valid:
            raise StatsValidationError(
                f"Invalid stats for {self.identity_key}: {'; '.join(self.errors)}",
                errors=list(self.errors),
            )
        return MetricsSnapshot(
            identity_key=self.identity_key,
            valuation=self.valuation,
            liquidity=self.liquidity,
            buy_volume=self.buy_volume,
            sell_volume=self.sell_volume,
            window=self.window,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity_key": self.identity_key,
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "processed": {
                "valuation": self.valuation,
                "liquidity": self.liquidity,
                "buy_volume": self.buy_volume,
                "sell_volume": self.sell_volume,
                "net_volume": self.net_volume,
                "window": self.window,
            },
        }


def _check_required(report: ValidationReport, raw: Dict[str, Any], key: str, label: str) -> float:
    value = raw.get(key)
    number = _number(value)
    if number is None:
        report.add_error(f"{report.identity_key} has invalid {label}: {key}={value!r}")
        return 0.0
    if not math.isfinite(number):
        report.add_error(f"{report.identity_key} has non-finite {label}: {key}={value!r}")
        return 0.0
    if number < 0:
        report.add_error(f"{report.identity_key} has negative {label}: {key}={value!r}")
        return 0.0
    return number


def validate_stats(raw: Any, identity_key: str) -> ValidationReport:
    """
    Validate a raw stats response without raising.

    Args:
        raw: Decoded JSON body from GET /stats/{identity_key}
        identity_key: Entity the stats belong to (for messages)

    Returns:
        ValidationReport with errors, warnings and the processed figures
    """
    report = ValidationReport(identity_key=identity_key)

    if not isinstance(raw, dict) or not raw:
        report.add_error(f"{identity_key} has no stats data")
        return report

    report.valuation = _check_required(report, raw, "marketCapUsd", "valuation")
    report.liquidity = _check_required(report, raw, "liquidityUsd", "liquidity")

    volume = extract_window_volume(raw)
    if volume is None:
        report.warnings.append(f"{identity_key} is missing volume data, using zero")
    else:
        window, buys, sells = volume
        report.window = window
        report.buy_volume = buys
        report.sell_volume = sells
        if window != PRIMARY_WINDOW:
            report.warnings.append(
                f"{identity_key} is missing {PRIMARY_WINDOW} volume data, using {window} instead"
            )

    for warning in report.warnings:
        logger.warning(warning)
    return report


def to_snapshot(raw: Any, identity_key: str) -> MetricsSnapshot:
    """
    Validate and convert a stats response.

    Raises:
        StatsValidationError: If valuation or liquidity is missing, non-numeric or negative
    """
    return validate_stats(raw, identity_key).to_snapshot()
