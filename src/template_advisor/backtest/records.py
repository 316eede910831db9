"""
template_advisor/backtest/records.py

Backtest record value types.

Records come from the backtest store as dictionaries. They are parsed once
into immutable BacktestRecord values; the engine never mutates them.

Example usage:
    record = BacktestRecord.from_dict({
        "timeOfDay": "Morning",
        "sessionType": "High Volatility",
        "marketConditions": {"session": "US_OPEN", "volatility": "HIGH"},
        "performance": {"wins": 12, "losses": 8, "totalTrades": 20,
                        "profitFactor": 1.8, "averageRR": 1.6},
        "createdAt": "2025-02-03T14:00:00Z",
    })
    record.performance.win_rate   # 60.0
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

import pandas as pd

from template_advisor.adaptive.similarity import InferredCondition


@dataclass(frozen=True)
class TradeOutcome:
    """Performance block of a single backtest run."""
    wins: int = 0
    losses: int = 0
    total_trades: int = 0
    profit_factor: Optional[float] = None
    average_rr: Optional[float] = None

    @property
    def win_rate(self) -> Optional[float]:
        """Win rate in percent, None when the run had no trades."""
        if self.total_trades > 0:
            return 100.0 * self.wins / self.total_trades
        decided = self.wins + self.losses
        if decided > 0:
            return 100.0 * self.wins / decided
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wins": self.wins,
            "losses": self.losses,
            "total_trades": self.total_trades,
            "profit_factor": self.profit_factor,
            "average_rr": self.average_rr,
        }


@dataclass(frozen=True)
class BacktestRecord:
    """
    One historical backtest run.

    Attributes:
        time_of_day: Morning / Afternoon / Evening
        session_type: High Volatility / Regular / Low Volatility
        market_conditions: Snapshot of the conditions the run covered
        performance: Trade outcome summary
        created_at: When the run was recorded (UTC), if known
        template_name: Template the run exercised, if recorded
        parameters: Raw parameter dict the run used, if recorded
    """
    time_of_day: Optional[str]
    session_type: Optional[str]
    market_conditions: InferredCondition
    performance: TradeOutcome
    created_at: Optional[datetime] = None
    template_name: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BacktestRecord":
        perf = data.get("performance")
        if not isinstance(perf, Mapping):
            perf = {}
        params = data.get("parameters") or {}
        template_name = data.get("templateName") or data.get("template_name")
        if template_name is None and isinstance(params, Mapping):
            template_name = params.get("name")

        return cls(
            time_of_day=data.get("timeOfDay") or data.get("time_of_day"),
            session_type=data.get("sessionType") or data.get("session_type"),
            market_conditions=InferredCondition.from_mapping(
                data.get("marketConditions") or data.get("market_conditions")
            ),
            performance=TradeOutcome(
                wins=_as_int(perf.get("wins")),
                losses=_as_int(perf.get("losses")),
                total_trades=_as_int(perf.get("totalTrades", perf.get("total_trades"))),
                profit_factor=_as_float(perf.get("profitFactor", perf.get("profit_factor"))),
                average_rr=_as_float(perf.get("averageRR", perf.get("average_rr"))),
            ),
            created_at=_parse_ts(data.get("createdAt") or data.get("created_at")),
            template_name=template_name,
            parameters=dict(params) if isinstance(params, Mapping) else {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_of_day": self.time_of_day,
            "session_type": self.session_type,
            "market_conditions": self.market_conditions.to_dict(),
            "performance": self.performance.to_dict(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "template_name": self.template_name,
        }


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _as_int(value: Any) -> int:
    result = _as_float(value)
    return max(int(result), 0) if result is not None else 0


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError):
        return None
    if ts is pd.NaT:
        return None
    ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
    return ts.to_pydatetime()
