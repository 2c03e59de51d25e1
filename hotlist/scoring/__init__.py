"""
Hotlist Scoring
===============

Deterministic promotion rules.
"""

from .classification import (
    ClassificationResult,
    ClassificationThresholds,
    CriterionCheck,
    DEFAULT_THRESHOLDS,
    classify,
    should_evaluate,
)

__all__ = [
    "ClassificationResult",
    "ClassificationThresholds",
    "CriterionCheck",
    "DEFAULT_THRESHOLDS",
    "classify",
    "should_evaluate",
]
