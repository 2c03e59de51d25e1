"""
Tests for the Hotlist promotion rules.
"""

import math

import pytest

from hotlist.scoring.classification import (
    ClassificationThresholds,
    DEFAULT_THRESHOLDS,
    REASON_BUY_PRESSURE,
    REASON_GROWTH,
    REASON_LIQUIDITY,
    REASON_NET_FLOW,
    REASON_NON_POSITIVE_VALUATION,
    classify,
    should_evaluate,
)

from factories import make_lifecycle_config


class TestClassify:
    """Tests for the four-criteria AND rule."""

    def test_all_criteria_met_promotes(self):
        """4x growth, 7.5% buys, positive net flow, 3.5% liquidity."""
        result = classify(500_000, 2_000_000, 150_000, 50_000, 70_000)

        assert result.promoted is True
        assert result.reason is None
        assert all(check.passed for check in result.checks)

    def test_negative_net_flow_blocks_promotion(self):
        """Every other criterion holds, net flow is negative."""
        result = classify(500_000, 2_000_000, 150_000, -10_000, 70_000)

        assert result.promoted is False
        assert result.reason == REASON_NET_FLOW
        assert [c.name for c in result.failed_checks] == ["net_flow"]

    def test_zero_net_flow_is_not_positive(self):
        result = classify(500_000, 2_000_000, 150_000, 0, 70_000)
        assert result.reason == REASON_NET_FLOW

    def test_thresholds_are_inclusive(self):
        """Exactly 3x growth, 5% buys and 3% liquidity pass."""
        result = classify(500_000, 1_500_000, 75_000, 1, 45_000)
        assert result.promoted is True

    def test_growth_just_below_threshold(self):
        result = classify(500_000, 1_499_999, 150_000, 50_000, 70_000)

        assert result.promoted is False
        assert result.reason == REASON_GROWTH

    def test_low_buy_pressure(self):
        result = classify(500_000, 2_000_000, 99_999, 50_000, 70_000)
        assert result.reason == REASON_BUY_PRESSURE

    def test_low_liquidity(self):
        result = classify(500_000, 2_000_000, 150_000, 50_000, 59_999)
        assert result.reason == REASON_LIQUIDITY

    def test_reason_is_first_failure_in_order(self):
        """When everything fails, growth is reported."""
        result = classify(500_000, 600_000, 0, -1, 0)

        assert result.reason == REASON_GROWTH
        assert len(result.failed_checks) == 4

    def test_zero_current_valuation(self):
        """Ratios are undefined; never promoted."""
        result = classify(500_000, 0, 150_000, 50_000, 70_000)

        assert result.promoted is False
        assert result.reason == REASON_NON_POSITIVE_VALUATION

    def test_non_positive_start_valuation_raises(self):
        with pytest.raises(ValueError):
            classify(0, 2_000_000, 150_000, 50_000, 70_000)

    def test_non_finite_input_raises(self):
        with pytest.raises(ValueError):
            classify(500_000, math.nan, 150_000, 50_000, 70_000)
        with pytest.raises(ValueError):
            classify(500_000, 2_000_000, math.inf, 50_000, 70_000)

    def test_deterministic(self):
        """Same inputs, same result."""
        first = classify(500_000, 2_000_000, 150_000, 50_000, 70_000)
        second = classify(500_000, 2_000_000, 150_000, 50_000, 70_000)
        assert first == second

    def test_explain_lists_every_check(self):
        text = classify(500_000, 2_000_000, 150_000, -10_000, 70_000).explain()

        for name in ("growth", "buy_pressure", "net_flow", "liquidity"):
            assert name in text
        assert "RESULT: not promoted (net flow not positive)" in text

    def test_custom_thresholds(self):
        """A stricter growth multiple rejects a 4x entity."""
        strict = ClassificationThresholds(growth_multiple=5.0)
        result = classify(500_000, 2_000_000, 150_000, 50_000, 70_000, strict)

        assert result.reason == REASON_GROWTH


class TestThresholds:
    """Tests for threshold configuration."""

    def test_defaults(self):
        assert DEFAULT_THRESHOLDS.growth_multiple == 3.0
        assert DEFAULT_THRESHOLDS.buy_volume_ratio == 0.05
        assert DEFAULT_THRESHOLDS.liquidity_ratio == 0.03

    def test_from_config(self):
        config = make_lifecycle_config(growth_multiple=2.5, buy_volume_ratio=0.1, liquidity_ratio=0.02)
        thresholds = ClassificationThresholds.from_config(config)

        assert thresholds == ClassificationThresholds(2.5, 0.1, 0.02)


class TestShouldEvaluate:
    """Tests for the evaluation gate."""

    def test_strictly_above_threshold(self):
        assert should_evaluate(600_001, 600_000) is True

    def test_at_threshold_is_deferred(self):
        assert should_evaluate(600_000, 600_000) is False

    def test_below_threshold(self):
        assert should_evaluate(500_000, 600_000) is False
