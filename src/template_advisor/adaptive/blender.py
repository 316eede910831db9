"""
template_advisor/adaptive/blender.py

Confidence-adaptive blending of adjustment multipliers.

Combines four signals into one AdjustmentFactors:
1. Backtest multipliers, weighted by how much evidence backs them
2. Baseline volatility and session multipliers (condition heuristics)
3. Multi-period performance trend (target fields only)
4. News impact (last, lowest priority, widening only)

Weights by backtest confidence tier (backtest / volatility / session):
    high    0.7 / 0.15 / 0.15
    medium  0.5 / 0.30 / 0.20
    low     0.3 / 0.40 / 0.30

An aggregate built from zero records carries no evidence at all: its weight
drops to zero and the volatility/session weights are renormalized.
Every output multiplier is clamped to [0.7, 1.5].

Example usage:
    blender = AdjustmentBlender.from_config()
    factors = blender.blend(baseline, backtest_perf, news_impact, trend)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from template_advisor.adaptive import config_adaptive as cfg
from template_advisor.adaptive.confidence import ConfidenceLevel
from template_advisor.adaptive.regime_parameters import AdjustmentFactors, BaselineAdjustments
from template_advisor.backtest.performance import BacktestPerformance
from template_advisor.backtest.trend_analysis import PerformanceTrend
from template_advisor.news.sentiment import NewsImpact, Sentiment

logger = logging.getLogger("advisor.blender")


@dataclass(frozen=True)
class BlendWeights:
    """Weights for one confidence tier. Must be non-negative and sum to 1."""
    backtest: float
    volatility: float
    session: float

    def __post_init__(self) -> None:
        if min(self.backtest, self.volatility, self.session) < 0:
            raise ValueError(f"Blend weights must be non-negative: {self}")
        total = self.backtest + self.volatility + self.session
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Blend weights must sum to 1.0, got {total:.4f}")

    @property
    def baseline(self) -> float:
        return self.volatility + self.session

    def without_backtest(self) -> "BlendWeights":
        """Renormalize volatility/session weights when backtests carry no evidence."""
        if self.baseline <= 0:
            return BlendWeights(0.0, 0.5, 0.5)
        return BlendWeights(0.0, self.volatility / self.baseline, self.session / self.baseline)

    def to_dict(self) -> Dict[str, float]:
        return {"backtest": self.backtest, "volatility": self.volatility, "session": self.session}


_TREND_DIRECTION = {
    PerformanceTrend.STRONG_IMPROVING: (1, True),
    PerformanceTrend.IMPROVING: (1, False),
    PerformanceTrend.DECLINING: (-1, False),
    PerformanceTrend.STRONG_DECLINING: (-1, True),
}


@dataclass(frozen=True)
class AdjustmentBlender:
    """
    Single canonical blender for all template kinds.

    Attributes
    ----------
    tier_weights : Dict[ConfidenceLevel, BlendWeights]
        Blend weights per backtest confidence tier.
    strong_trend_scalar, weak_trend_scalar : float
        Target bias applied for strong/weak performance trends.
    news_max_stop_widen, news_max_target_widen : float
        Upper bound of news-driven widening.
    bounds : Tuple[float, float]
        Hard clamp for every output multiplier.
    """

    tier_weights: Dict[ConfidenceLevel, BlendWeights] = field(
        default_factory=lambda: _weights_from_table(cfg.BLEND_WEIGHTS)
    )
    strong_trend_scalar: float = cfg.TREND_STRONG_SCALAR
    weak_trend_scalar: float = cfg.TREND_WEAK_SCALAR
    news_max_stop_widen: float = cfg.NEWS_MAX_STOP_WIDEN
    news_max_target_widen: float = cfg.NEWS_MAX_TARGET_WIDEN
    bounds: Tuple[float, float] = cfg.MULTIPLIER_BOUNDS

    def __post_init__(self) -> None:
        missing = set(ConfidenceLevel) - set(self.tier_weights)
        if missing:
            raise ValueError(f"Blend weights missing tiers: {sorted(m.value for m in missing)}")

    @classmethod
    def from_config(cls) -> "AdjustmentBlender":
        return cls(
            tier_weights=_weights_from_table(getattr(cfg, "BLEND_WEIGHTS", cfg.BLEND_WEIGHTS)),
            strong_trend_scalar=float(getattr(cfg, "TREND_STRONG_SCALAR", 0.10)),
            weak_trend_scalar=float(getattr(cfg, "TREND_WEAK_SCALAR", 0.05)),
            news_max_stop_widen=float(getattr(cfg, "NEWS_MAX_STOP_WIDEN", 0.15)),
            news_max_target_widen=float(getattr(cfg, "NEWS_MAX_TARGET_WIDEN", 0.10)),
            bounds=tuple(getattr(cfg, "MULTIPLIER_BOUNDS", (0.7, 1.5))),
        )

    def weights_for(self, backtest: BacktestPerformance) -> BlendWeights:
        weights = self.tier_weights[backtest.confidence_level]
        if backtest.sample_size <= 0:
            return weights.without_backtest()
        return weights

    def blend(
        self,
        baseline: BaselineAdjustments,
        backtest: Optional[BacktestPerformance] = None,
        news: Optional[NewsImpact] = None,
        trend: Optional[PerformanceTrend] = None,
    ) -> AdjustmentFactors:
        """
        Blend all signals into final multipliers.

        Parameters
        ----------
        baseline : BaselineAdjustments
            Volatility- and session-derived multipliers.
        backtest : BacktestPerformance, optional
            Aggregated backtest evidence; None is treated as empty.
        news : NewsImpact, optional
            Ignored entirely when its confidence is LOW.
        trend : PerformanceTrend, optional
            Multi-period trend; STABLE/INSUFFICIENT_DATA apply no bias.

        Returns
        -------
        AdjustmentFactors
            Each multiplier within `bounds`.
        """
        backtest = backtest or BacktestPerformance.empty()
        w = self.weights_for(backtest)

        def mix(field_name: str) -> float:
            return (
                w.backtest * getattr(backtest.factors, field_name)
                + w.volatility * getattr(baseline.volatility, field_name)
                + w.session * getattr(baseline.session, field_name)
            )

        stop_loss = mix("stop_loss")
        target = mix("target")
        trailing_stop = mix("trailing_stop")

        if trend in _TREND_DIRECTION:
            direction, strong = _TREND_DIRECTION[trend]
            scalar = self.strong_trend_scalar if strong else self.weak_trend_scalar
            target *= 1.0 + direction * scalar

        if news is not None and news.confidence != ConfidenceLevel.LOW:
            stop_loss *= 1.0 + self.news_max_stop_widen * min(max(news.volatility_impact, 0.0), 1.0)
            if news.sentiment != Sentiment.NEUTRAL:
                target *= 1.0 + self.news_max_target_widen * min(abs(news.trend_impact), 1.0)

        result = AdjustmentFactors(stop_loss, target, trailing_stop).clamped(self.bounds)
        logger.info(
            "Blend (backtest confidence=%s, n=%d) weights bt=%.2f vol=%.2f sess=%.2f -> "
            "stop=%.3f target=%.3f trail=%.3f",
            backtest.confidence_level.value, backtest.sample_size,
            w.backtest, w.volatility, w.session,
            result.stop_loss, result.target, result.trailing_stop,
        )
        return result


def _weights_from_table(table: Dict[str, Tuple[float, float, float]]) -> Dict[ConfidenceLevel, BlendWeights]:
    return {ConfidenceLevel(tier): BlendWeights(*row) for tier, row in table.items()}
