"""
template_advisor/adaptive/regime_parameters.py

Baseline adjustment multipliers by market condition.

This module provides the condition-based half of the adjustment blend:
multipliers for stop loss, target and trailing stop that depend only on the
current volatility score and the time-of-day bucket of the session. Key
features:

1. Volatility table: wider stops/targets in high volatility, tighter in low
2. Time-of-day table: wider in the morning, neutral afternoon, tighter evening
3. AdjustmentFactors value type shared by the backtest aggregator and blender

Example usage:
    tables = RegimeParameters.from_config()
    baseline = tables.baseline_adjustments(condition)
    baseline.volatility.stop_loss   # 1.3 under HIGH volatility
    baseline.session.target         # 1.1 during the US open
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from template_advisor.adaptive import config_adaptive as cfg
from template_advisor.adaptive.market_regime import MarketCondition

logger = logging.getLogger("advisor.regime_parameters")


@dataclass(frozen=True)
class AdjustmentFactors:
    """Per-field multipliers applied to a template."""
    stop_loss: float = 1.0
    target: float = 1.0
    trailing_stop: float = 1.0

    @classmethod
    def neutral(cls) -> "AdjustmentFactors":
        return cls(1.0, 1.0, 1.0)

    @classmethod
    def from_tuple(cls, values: Tuple[float, float, float]) -> "AdjustmentFactors":
        stop_loss, target, trailing_stop = values
        return cls(float(stop_loss), float(target), float(trailing_stop))

    def clamped(self, bounds: Tuple[float, float] = cfg.MULTIPLIER_BOUNDS) -> "AdjustmentFactors":
        lo, hi = bounds
        return AdjustmentFactors(
            stop_loss=_clamp(self.stop_loss, lo, hi),
            target=_clamp(self.target, lo, hi),
            trailing_stop=_clamp(self.trailing_stop, lo, hi),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "stop_loss": round(self.stop_loss, 4),
            "target": round(self.target, 4),
            "trailing_stop": round(self.trailing_stop, 4),
        }


@dataclass(frozen=True)
class BaselineAdjustments:
    """Independent volatility-derived and session-derived multipliers."""
    volatility: AdjustmentFactors
    session: AdjustmentFactors
    time_of_day: str = "Afternoon"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "volatility": self.volatility.to_dict(),
            "session": self.session.to_dict(),
            "time_of_day": self.time_of_day,
        }


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


@dataclass
class RegimeParameters:
    """
    Lookup tables for condition-based baseline multipliers.

    Attributes
    ----------
    volatility_table : Dict[str, Tuple[float, float, float]]
        HIGH/MEDIUM/LOW -> (stop_loss, target, trailing_stop)
    time_of_day_table : Dict[str, Tuple[float, float, float]]
        Morning/Afternoon/Evening -> (stop_loss, target, trailing_stop)
    high_score : float
        volatility_score at or above which the HIGH row applies
    medium_score : float
        volatility_score at or above which the MEDIUM row applies
    """

    volatility_table: Dict[str, Tuple[float, float, float]] = field(
        default_factory=lambda: dict(cfg.VOLATILITY_ADJUSTMENTS)
    )
    time_of_day_table: Dict[str, Tuple[float, float, float]] = field(
        default_factory=lambda: dict(cfg.TIME_OF_DAY_ADJUSTMENTS)
    )
    high_score: float = cfg.VOL_SCORE_HIGH_TABLE
    medium_score: float = cfg.VOL_SCORE_MEDIUM_TABLE

    def __post_init__(self) -> None:
        for name, table, keys in (
            ("volatility", self.volatility_table, ("HIGH", "MEDIUM", "LOW")),
            ("time-of-day", self.time_of_day_table, ("Morning", "Afternoon", "Evening")),
        ):
            missing = [k for k in keys if k not in table]
            if missing:
                raise ValueError(f"{name} adjustment table missing rows: {missing}")
            if any(v <= 0 for row in table.values() for v in row):
                raise ValueError(f"{name} adjustment table must hold positive multipliers")
        if self.medium_score > self.high_score:
            raise ValueError("medium_score must not exceed high_score")

    @classmethod
    def from_config(cls) -> "RegimeParameters":
        """Create tables from config_adaptive settings."""
        return cls(
            volatility_table=dict(getattr(cfg, "VOLATILITY_ADJUSTMENTS", cfg.VOLATILITY_ADJUSTMENTS)),
            time_of_day_table=dict(getattr(cfg, "TIME_OF_DAY_ADJUSTMENTS", cfg.TIME_OF_DAY_ADJUSTMENTS)),
            high_score=float(getattr(cfg, "VOL_SCORE_HIGH_TABLE", 7.0)),
            medium_score=float(getattr(cfg, "VOL_SCORE_MEDIUM_TABLE", 4.0)),
        )

    def volatility_adjustments(self, volatility_score: float) -> AdjustmentFactors:
        """
        Step function of the volatility score.

        Every row in the default table is non-decreasing in stop loss from
        LOW to HIGH, so a higher score never yields a tighter stop.
        """
        if volatility_score >= self.high_score:
            row = "HIGH"
        elif volatility_score >= self.medium_score:
            row = "MEDIUM"
        else:
            row = "LOW"
        return AdjustmentFactors.from_tuple(self.volatility_table[row])

    def session_adjustments(self, time_of_day: str) -> AdjustmentFactors:
        row = self.time_of_day_table.get(time_of_day)
        if row is None:
            logger.warning("Unknown time of day %r, using neutral session adjustments", time_of_day)
            return AdjustmentFactors.neutral()
        return AdjustmentFactors.from_tuple(row)

    def baseline_adjustments(self, condition: MarketCondition) -> BaselineAdjustments:
        tod = condition.time_of_day
        return BaselineAdjustments(
            volatility=self.volatility_adjustments(condition.volatility_score),
            session=self.session_adjustments(tod),
            time_of_day=tod,
        )

