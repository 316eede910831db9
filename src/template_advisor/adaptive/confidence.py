"""
template_advisor/adaptive/confidence.py

Confidence levels and the overall confidence calculator.

Each signal feeding a recommendation (template similarity, news, backtest
evidence) carries its own low/medium/high label. The calculator maps them to
ordinals, takes a weighted average in which backtest evidence dominates and
thresholds the result back into a label.

Example usage:
    calc = ConfidenceCalculator.from_config()
    overall = calc.combine(
        parameter=ConfidenceLevel.HIGH,
        news=ConfidenceLevel.LOW,
        backtest=ConfidenceLevel.MEDIUM,
    )
    overall.value  # "medium"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

from template_advisor.adaptive import config_adaptive as cfg

logger = logging.getLogger("advisor.confidence")


class ConfidenceLevel(Enum):
    """Ordinal confidence label. Serialized by label, never by rank."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def __lt__(self, other: "ConfidenceLevel") -> bool:
        if not isinstance(other, ConfidenceLevel):
            return NotImplemented
        return self.rank < other.rank


_RANKS = {
    ConfidenceLevel.LOW: 1,
    ConfidenceLevel.MEDIUM: 2,
    ConfidenceLevel.HIGH: 3,
}


def similarity_confidence(
    similarity_score: float,
    high_thresh: float = cfg.SIMILARITY_HIGH_CONFIDENCE,
    medium_thresh: float = cfg.SIMILARITY_MEDIUM_CONFIDENCE,
) -> ConfidenceLevel:
    """Confidence that a template's parameters fit the current conditions."""
    if similarity_score >= high_thresh:
        return ConfidenceLevel.HIGH
    if similarity_score >= medium_thresh:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


@dataclass(frozen=True)
class ConfidenceCalculator:
    """
    Weighted combination of component confidences.

    Attributes
    ----------
    weights : Dict[str, float]
        Weights for "parameter", "news" and "backtest". Must be non-negative
        and sum to 1.0.
    high_threshold : float
        Weighted rank at or above which the result is HIGH.
    medium_threshold : float
        Weighted rank at or above which the result is MEDIUM.
    """

    weights: Dict[str, float] = field(default_factory=lambda: dict(cfg.CONFIDENCE_WEIGHTS))
    high_threshold: float = cfg.CONFIDENCE_HIGH_THRESHOLD
    medium_threshold: float = cfg.CONFIDENCE_MEDIUM_THRESHOLD

    def __post_init__(self) -> None:
        missing = {"parameter", "news", "backtest"} - set(self.weights)
        if missing:
            raise ValueError(f"Confidence weights missing keys: {sorted(missing)}")
        if any(w < 0 for w in self.weights.values()):
            raise ValueError(f"Confidence weights must be non-negative: {self.weights}")
        total = sum(self.weights[k] for k in ("parameter", "news", "backtest"))
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Confidence weights must sum to 1.0, got {total:.4f}")

    @classmethod
    def from_config(cls) -> "ConfidenceCalculator":
        return cls(
            weights=dict(getattr(cfg, "CONFIDENCE_WEIGHTS", {"parameter": 0.3, "news": 0.15, "backtest": 0.55})),
            high_threshold=getattr(cfg, "CONFIDENCE_HIGH_THRESHOLD", 2.5),
            medium_threshold=getattr(cfg, "CONFIDENCE_MEDIUM_THRESHOLD", 1.7),
        )

    def weighted_rank(
        self,
        parameter: ConfidenceLevel,
        news: ConfidenceLevel,
        backtest: ConfidenceLevel,
    ) -> float:
        return (
            self.weights["parameter"] * parameter.rank
            + self.weights["news"] * news.rank
            + self.weights["backtest"] * backtest.rank
        )

    def combine(
        self,
        parameter: ConfidenceLevel,
        news: ConfidenceLevel,
        backtest: ConfidenceLevel,
    ) -> ConfidenceLevel:
        """Combine component confidences into one overall label."""
        score = self.weighted_rank(parameter, news, backtest)
        if score >= self.high_threshold:
            level = ConfidenceLevel.HIGH
        elif score >= self.medium_threshold:
            level = ConfidenceLevel.MEDIUM
        else:
            level = ConfidenceLevel.LOW

        logger.debug(
            "Confidence: parameter=%s news=%s backtest=%s -> %.2f (%s)",
            parameter.value, news.value, backtest.value, score, level.value,
        )
        return level
