"""
template_advisor/backtest/trend_analysis.py

Multi-period performance trend over recent backtests.

Records are bucketed into calendar weeks. The last (up to) three periods are
compared: the relative change in mean profit factor from the oldest to the
newest kept period classifies the trajectory. The blender uses the result
as a small bias on target-type fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List

import pandas as pd

from template_advisor.adaptive import config_adaptive as cfg
from template_advisor.backtest.records import BacktestRecord

logger = logging.getLogger("advisor.trend_analysis")


class PerformanceTrend(Enum):
    STRONG_IMPROVING = "strong_improving"
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    STRONG_DECLINING = "strong_declining"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class PeriodSummary:
    """Average metrics of one time bucket."""
    period: str
    win_rate: float
    profit_factor: float
    average_rr: float
    sample_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "win_rate": round(self.win_rate, 2),
            "profit_factor": round(self.profit_factor, 3),
            "average_rr": round(self.average_rr, 3),
            "sample_count": self.sample_count,
        }


@dataclass(frozen=True)
class TrendReport:
    trend: PerformanceTrend = PerformanceTrend.INSUFFICIENT_DATA
    profit_factor_change: float = 0.0
    periods: List[PeriodSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trend": self.trend.value,
            "profit_factor_change": round(self.profit_factor_change, 4),
            "periods": [p.to_dict() for p in self.periods],
        }


def classify_change(
    change: float,
    weak: float = cfg.TREND_WEAK_CHANGE,
    strong: float = cfg.TREND_STRONG_CHANGE,
) -> PerformanceTrend:
    if change >= strong:
        return PerformanceTrend.STRONG_IMPROVING
    if change >= weak:
        return PerformanceTrend.IMPROVING
    if change <= -strong:
        return PerformanceTrend.STRONG_DECLINING
    if change <= -weak:
        return PerformanceTrend.DECLINING
    return PerformanceTrend.STABLE


def analyze_performance_trend(
    records: Iterable[BacktestRecord],
    max_periods: int = cfg.TREND_MAX_PERIODS,
    freq: str = cfg.TREND_PERIOD_FREQ,
) -> TrendReport:
    """
    Classify the profit-factor trajectory across recent periods.

    Records without a timestamp or profit factor are ignored. Fewer than two
    periods yields INSUFFICIENT_DATA, which the blender treats as no signal.
    """
    rows = [
        {
            "created_at": r.created_at,
            "win_rate": r.performance.win_rate,
            "profit_factor": r.performance.profit_factor,
            "average_rr": r.performance.average_rr,
        }
        for r in records or ()
        if r.created_at is not None and r.performance.profit_factor is not None
    ]
    if not rows:
        return TrendReport()

    df = pd.DataFrame(rows)
    # to_period drops tz info; normalize to naive UTC first
    created = pd.to_datetime(df["created_at"], utc=True).dt.tz_localize(None)
    df["period"] = created.dt.to_period(freq)

    grouped = (
        df.groupby("period")
        .agg(
            win_rate=("win_rate", "mean"),
            profit_factor=("profit_factor", "mean"),
            average_rr=("average_rr", "mean"),
            sample_count=("profit_factor", "size"),
        )
        .sort_index()
        .tail(max_periods)
    )

    periods = [
        PeriodSummary(
            period=str(idx),
            win_rate=float(row.win_rate) if pd.notna(row.win_rate) else 0.0,
            profit_factor=float(row.profit_factor),
            average_rr=float(row.average_rr) if pd.notna(row.average_rr) else 0.0,
            sample_count=int(row.sample_count),
        )
        for idx, row in grouped.iterrows()
    ]

    if len(periods) < 2:
        return TrendReport(periods=periods)

    first = periods[0].profit_factor
    last = periods[-1].profit_factor
    if first <= 0:
        logger.debug("Oldest period profit factor is %.3f, trend undefined", first)
        return TrendReport(periods=periods)

    change = (last - first) / first
    trend = classify_change(change)
    logger.info("Performance trend over %d periods: %s (pf change %+.1f%%)", len(periods), trend.value, change * 100)
    return TrendReport(trend=trend, profit_factor_change=change, periods=periods)
