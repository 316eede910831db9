"""
template_advisor/backtest/performance.py

Similarity-weighted aggregation of historical backtest performance.

Every record whose market snapshot has a non-zero similarity to the current
condition is eligible. Eligible records contribute to win rate, profit factor
and average reward:risk in proportion to their similarity, so runs under
near-identical conditions dominate the estimate. The aggregate is turned into
stop/target/trailing-stop multipliers by a fixed monotone function of profit
factor and average RR relative to a baseline.

An empty or fully ineligible record set is not an error: it yields neutral
multipliers, sample_size 0 and LOW confidence.

Example usage:
    perf = aggregate(condition, records)
    perf.profit_factor        # similarity-weighted
    perf.factors.stop_loss    # in [0.7, 1.5]
    performance_score(perf)   # 0..100, used for template selection
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from template_advisor.adaptive import config_adaptive as cfg
from template_advisor.adaptive.confidence import ConfidenceLevel
from template_advisor.adaptive.market_regime import MarketCondition
from template_advisor.adaptive.regime_parameters import AdjustmentFactors
from template_advisor.adaptive.similarity import similarity_score
from template_advisor.backtest.records import BacktestRecord

logger = logging.getLogger("advisor.backtest_performance")


@dataclass(frozen=True)
class BacktestPerformance:
    """
    Aggregated evidence from similar backtests.

    Attributes:
        win_rate: Weighted win rate in percent
        profit_factor: Weighted profit factor
        average_rr: Weighted average reward:risk
        sample_size: Number of eligible records
        total_trades: Trades across eligible records
        effective_trades: Trades weighted by similarity / 100
        average_similarity: Mean similarity of eligible records (0-100)
        confidence_level: Evidence strength
        factors: Derived adjustment multipliers
    """
    win_rate: float = 0.0
    profit_factor: float = 0.0
    average_rr: float = 0.0
    sample_size: int = 0
    total_trades: int = 0
    effective_trades: float = 0.0
    average_similarity: float = 0.0
    confidence_level: ConfidenceLevel = ConfidenceLevel.LOW
    factors: AdjustmentFactors = field(default_factory=AdjustmentFactors.neutral)

    @classmethod
    def empty(cls) -> "BacktestPerformance":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "win_rate": round(self.win_rate, 2),
            "profit_factor": round(self.profit_factor, 3),
            "average_rr": round(self.average_rr, 3),
            "sample_size": self.sample_size,
            "total_trades": self.total_trades,
            "effective_trades": round(self.effective_trades, 2),
            "average_similarity": round(self.average_similarity, 1),
            "confidence_level": self.confidence_level.value,
            "factors": self.factors.to_dict(),
        }


def records_for_template(records: Sequence[BacktestRecord], template_name: Optional[str]) -> List[BacktestRecord]:
    """Records that exercised `template_name`, or all records if none name it."""
    if template_name:
        own = [r for r in records if r.template_name == template_name]
        if own:
            return own
    return list(records)


def _weighted_mean(values: pd.Series, weights: pd.Series) -> Optional[float]:
    mask = values.notna() & (weights > 0)
    if not mask.any():
        return None
    return float(np.average(values[mask].astype(float), weights=weights[mask].astype(float)))


def confidence_for(
    effective_trades: float,
    sample_size: int,
    high_trades: float = cfg.HIGH_CONFIDENCE_EFFECTIVE_TRADES,
    high_records: int = cfg.HIGH_CONFIDENCE_MIN_RECORDS,
    medium_trades: float = cfg.MEDIUM_CONFIDENCE_EFFECTIVE_TRADES,
    medium_records: int = cfg.MEDIUM_CONFIDENCE_MIN_RECORDS,
) -> ConfidenceLevel:
    if effective_trades >= high_trades and sample_size >= high_records:
        return ConfidenceLevel.HIGH
    if effective_trades >= medium_trades and sample_size >= medium_records:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def derive_adjustment_factors(
    profit_factor: float,
    average_rr: float,
    baseline_pf: float = cfg.BASELINE_PROFIT_FACTOR,
    baseline_rr: float = cfg.BASELINE_AVERAGE_RR,
    bounds=cfg.MULTIPLIER_BOUNDS,
) -> AdjustmentFactors:
    """
    Map profit factor and average RR to multipliers.

    The normalized profit-factor delta d = (pf - baseline) / baseline is
    clipped to [-1, 1]. Stops move by 0.2*d, trailing stops by 0.15*d and
    targets by d scaled up with the reward:risk ratio, so every multiplier is
    above 1.0 for a better-than-baseline profit factor and below 1.0 for a
    worse one.
    """
    if baseline_pf <= 0:
        return AdjustmentFactors.neutral()
    pf_delta = float(np.clip((profit_factor - baseline_pf) / baseline_pf, -1.0, 1.0))
    rr_ratio = float(np.clip(average_rr / baseline_rr, 0.0, 2.0)) if baseline_rr > 0 else 1.0

    return AdjustmentFactors(
        stop_loss=1.0 + cfg.STOP_LOSS_PF_SLOPE * pf_delta,
        target=1.0 + pf_delta * (cfg.TARGET_PF_SLOPE + cfg.TARGET_RR_SLOPE * rr_ratio),
        trailing_stop=1.0 + cfg.TRAILING_STOP_PF_SLOPE * pf_delta,
    ).clamped(bounds)


def aggregate(
    current: MarketCondition,
    records: Iterable[BacktestRecord],
    min_similarity: float = cfg.BACKTEST_MIN_SIMILARITY,
) -> BacktestPerformance:
    """
    Aggregate backtest evidence for `current`.

    Parameters
    ----------
    current : MarketCondition
        Condition being recommended for.
    records : iterable of BacktestRecord
        Candidate records (typically from BacktestStore.query).
    min_similarity : float
        Records must score strictly above this to be eligible.

    Returns
    -------
    BacktestPerformance
    """
    rows = []
    for record in records or ():
        score = similarity_score(current, record.market_conditions)
        if score <= min_similarity:
            continue
        perf = record.performance
        rows.append({
            "similarity": float(score),
            "win_rate": perf.win_rate,
            "profit_factor": perf.profit_factor,
            "average_rr": perf.average_rr,
            "total_trades": perf.total_trades,
        })

    if not rows:
        logger.info("No eligible backtests, using neutral adjustments")
        return BacktestPerformance.empty()

    df = pd.DataFrame(rows)
    weights = df["similarity"]
    win_rate = _weighted_mean(df["win_rate"], weights)
    profit_factor = _weighted_mean(df["profit_factor"], weights)
    average_rr = _weighted_mean(df["average_rr"], weights)

    sample_size = len(df)
    effective_trades = float((df["total_trades"] * weights / 100.0).sum())
    confidence = confidence_for(effective_trades, sample_size)

    if profit_factor is None:
        factors = AdjustmentFactors.neutral()
    else:
        factors = derive_adjustment_factors(
            profit_factor, average_rr if average_rr is not None else cfg.BASELINE_AVERAGE_RR
        )

    result = BacktestPerformance(
        win_rate=win_rate if win_rate is not None else 0.0,
        profit_factor=profit_factor if profit_factor is not None else 0.0,
        average_rr=average_rr if average_rr is not None else 0.0,
        sample_size=sample_size,
        total_trades=int(df["total_trades"].sum()),
        effective_trades=effective_trades,
        average_similarity=float(weights.mean()),
        confidence_level=confidence,
        factors=factors,
    )
    logger.info(
        "Aggregated %d backtests: wr=%.1f%% pf=%.2f rr=%.2f eff_trades=%.1f confidence=%s",
        sample_size, result.win_rate, result.profit_factor, result.average_rr,
        effective_trades, confidence.value,
    )
    return result


def performance_score(
    perf: BacktestPerformance,
    win_rate_weight: float = cfg.PERF_WIN_RATE_WEIGHT,
    profit_factor_weight: float = cfg.PERF_PROFIT_FACTOR_WEIGHT,
    rr_weight: float = cfg.PERF_AVERAGE_RR_WEIGHT,
    full_weight_samples: int = cfg.PERF_FULL_WEIGHT_SAMPLES,
    min_reliability: float = cfg.PERF_MIN_RELIABILITY,
) -> float:
    """
    Score historical performance on 0-100 for template selection.

    Each metric is scaled to 0-100 (win rate x1.5, profit factor x33,
    RR x40, all capped), weighted, then discounted by a reliability factor
    that reaches 1.0 only at `full_weight_samples` records.
    """
    if perf.sample_size <= 0:
        return 0.0

    wr_score = min(perf.win_rate * 1.5, 100.0)
    pf_score = min(perf.profit_factor * 33.0, 100.0)
    rr_score = min(perf.average_rr * 40.0, 100.0)
    raw = wr_score * win_rate_weight + pf_score * profit_factor_weight + rr_score * rr_weight

    reliability = min_reliability + (1.0 - min_reliability) * min(perf.sample_size / full_weight_samples, 1.0)
    return float(raw * reliability)
