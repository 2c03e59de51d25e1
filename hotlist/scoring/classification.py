"""
Hotlist Classification Rules
============================

Deterministic promotion rules for a tracked entity. Same inputs always
produce the same result, and every result carries the full trace of the
four criteria so a decision can be explained from logs alone.

An entity is promoted only when all four hold:
    1. Growth:         current_valuation >= growth_multiple x start_valuation
    2. Buy pressure:   cumulative_buy_volume / current_valuation >= buy_volume_ratio
    3. Net flow:       cumulative_net_volume > 0
    4. Liquidity:      current_liquidity / current_valuation >= liquidity_ratio

Rules only run once the valuation exceeds the evaluation threshold
(see should_evaluate); below it an entity is deferred, not rejected.

Usage:
    from hotlist.scoring import classify

    result = classify(500_000, 2_000_000, 150_000, 50_000, 70_000)
    result.promoted   # True
    result.reason     # None, or the first failing criterion
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from ..data.config import LifecycleConfig


REASON_GROWTH = "growth below threshold"
REASON_BUY_PRESSURE = "buy pressure below threshold"
REASON_NET_FLOW = "net flow not positive"
REASON_LIQUIDITY = "liquidity ratio below threshold"
REASON_NON_POSITIVE_VALUATION = "valuation not positive"


@dataclass(frozen=True)
class ClassificationThresholds:
    """Promotion criteria."""
    growth_multiple: float = 3.0
    buy_volume_ratio: float = 0.05
    liquidity_ratio: float = 0.03

    @classmethod
    def from_config(cls, config: LifecycleConfig) -> "ClassificationThresholds":
        return cls(
            growth_multiple=config.growth_multiple,
            buy_volume_ratio=config.buy_volume_ratio,
            liquidity_ratio=config.liquidity_ratio,
        )


DEFAULT_THRESHOLDS = ClassificationThresholds()


@dataclass(frozen=True)
class CriterionCheck:
    """Outcome of a single criterion."""
    name: str
    passed: bool
    measured: Optional[float]
    required: float
    failure_reason: str

    def describe(self) -> str:
        measured = "n/a" if self.measured is None else f"{self.measured:.4f}"
        return f"{self.name}: {'YES' if self.passed else 'NO'} (measured {measured}, required {self.required})"


@dataclass(frozen=True)
class ClassificationResult:
    """
    Promotion decision with its trace.

    `reason` is the first failing criterion in evaluation order, or None
    when promoted.
    """
    promoted: bool
    reason: Optional[str]
    checks: Tuple[CriterionCheck, ...]

    @property
    def failed_checks(self) -> Tuple[CriterionCheck, ...]:
        return tuple(c for c in self.checks if not c.passed)

    def explain(self) -> str:
        lines = [c.describe() for c in self.checks]
        lines.append(f"RESULT: {'PROMOTED' if self.promoted else 'not promoted'}"
                     + (f" ({self.reason})" if self.reason else ""))
        return "; ".join(lines)


def _check_number(name: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number, got {value!r}")


def should_evaluate(current_valuation: float, evaluation_threshold: float) -> bool:
    """True when the valuation is high enough for the rules to run."""
    return current_valuation > evaluation_threshold


def classify(
    start_valuation: float,
    current_valuation: float,
    cumulative_buy_volume: float,
    cumulative_net_volume: float,
    current_liquidity: float,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
) -> ClassificationResult:
    """
    Evaluate the four promotion criteria.

    Args:
        start_valuation: Valuation at discovery (must be > 0)
        current_valuation: Latest valuation
        cumulative_buy_volume: Buy volume accumulated since discovery
        cumulative_net_volume: Net (buy - sell) volume since discovery
        current_liquidity: Latest liquidity
        thresholds: Promotion criteria

    Returns:
        ClassificationResult with all four checks

    Raises:
        ValueError: On non-finite inputs or a non-positive start valuation
    """
    _check_number("start_valuation", start_valuation)
    _check_number("current_valuation", current_valuation)
    _check_number("cumulative_buy_volume", cumulative_buy_volume)
    _check_number("cumulative_net_volume", cumulative_net_volume)
    _check_number("current_liquidity", current_liquidity)
    if start_valuation <= 0:
        raise ValueError(f"start_valuation must be positive, got {start_valuation}")

    # Ratios are undefined without a positive valuation
    valuation_ok = current_valuation > 0

    growth = current_valuation / start_valuation
    buy_ratio = cumulative_buy_volume / current_valuation if valuation_ok else None
    liquidity_ratio = current_liquidity / current_valuation if valuation_ok else None

    checks = (
        CriterionCheck(
            name="growth",
            passed=valuation_ok and current_valuation >= thresholds.growth_multiple * start_valuation,
            measured=growth,
            required=thresholds.growth_multiple,
            failure_reason=REASON_GROWTH,
        ),
        CriterionCheck(
            name="buy_pressure",
            passed=buy_ratio is not None and buy_ratio >= thresholds.buy_volume_ratio,
            measured=buy_ratio,
            required=thresholds.buy_volume_ratio,
            failure_reason=REASON_BUY_PRESSURE,
        ),
        CriterionCheck(
            name="net_flow",
            passed=cumulative_net_volume > 0,
            measured=float(cumulative_net_volume),
            required=0.0,
            failure_reason=REASON_NET_FLOW,
        ),
        CriterionCheck(
            name="liquidity",
            passed=liquidity_ratio is not None and liquidity_ratio >= thresholds.liquidity_ratio,
            measured=liquidity_ratio,
            required=thresholds.liquidity_ratio,
            failure_reason=REASON_LIQUIDITY,
        ),
    )

    if not valuation_ok:
        return ClassificationResult(promoted=False, reason=REASON_NON_POSITIVE_VALUATION, checks=checks)

    for check in checks:
        if not check.passed:
            return ClassificationResult(promoted=False, reason=check.failure_reason, checks=checks)

    return ClassificationResult(promoted=True, reason=None, checks=checks)
