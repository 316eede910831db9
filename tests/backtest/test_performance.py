from __future__ import annotations

import pytest

from conftest import make_record
from template_advisor.adaptive.confidence import ConfidenceLevel
from template_advisor.adaptive.market_regime import MarketCondition
from template_advisor.adaptive.regime_parameters import AdjustmentFactors
from template_advisor.backtest.performance import (
    BacktestPerformance,
    aggregate,
    derive_adjustment_factors,
    performance_score,
    records_for_template,
)
from template_advisor.backtest.records import BacktestRecord


def _records(*dicts):
    return [BacktestRecord.from_dict(d) for d in dicts]


def test_aggregate_empty_is_neutral(us_open_high):
    perf = aggregate(us_open_high, [])

    assert perf.sample_size == 0
    assert perf.confidence_level == ConfidenceLevel.LOW
    assert perf.factors == AdjustmentFactors(1.0, 1.0, 1.0)
    assert aggregate(us_open_high, None) == perf


def test_similarity_weighted_profit_factor(fixed_now):
    current = MarketCondition.from_labels("US_OPEN", "HIGH", timestamp=fixed_now, volume="NORMAL")
    records = _records(
        # session + volatility match, day and volume miss: 80 / 100
        make_record("US_OPEN", "HIGH", profit_factor=3.0, dayOfWeek="MONDAY", volume="HIGH"),
        # session-only evidence: flat 20
        make_record("ASIA", None, profit_factor=1.0),
    )
    perf = aggregate(current, records)

    assert perf.sample_size == 2
    assert perf.average_similarity == pytest.approx(50.0)
    assert perf.profit_factor == pytest.approx((80 * 3.0 + 20 * 1.0) / 100)
    assert abs(perf.profit_factor - 3.0) < abs(perf.profit_factor - 1.0)


def test_dissimilar_records_are_ineligible(us_open_high):
    records = _records(make_record("US_AFTERNOON", "LOW", profit_factor=5.0))
    assert aggregate(us_open_high, records).sample_size == 0


@pytest.mark.parametrize(
    "n_records, trades_each, expected",
    [
        (5, 10, ConfidenceLevel.HIGH),
        (4, 10, ConfidenceLevel.MEDIUM),
        (2, 5, ConfidenceLevel.MEDIUM),
        (2, 2, ConfidenceLevel.LOW),
        (1, 50, ConfidenceLevel.LOW),
    ],
)
def test_confidence_tiers(us_open_high, n_records, trades_each, expected):
    records = _records(*[make_record(wins=trades_each, losses=0) for _ in range(n_records)])
    assert aggregate(us_open_high, records).confidence_level == expected


def test_weighted_win_rate_and_trade_counts(us_open_high):
    records = _records(
        make_record(wins=6, losses=4),
        make_record(wins=2, losses=8),
    )
    perf = aggregate(us_open_high, records)

    assert perf.win_rate == pytest.approx(40.0)
    assert perf.total_trades == 20
    assert perf.effective_trades == pytest.approx(20.0)


def test_derive_factors_baseline_is_neutral():
    assert derive_adjustment_factors(1.5, 1.5) == AdjustmentFactors(1.0, 1.0, 1.0)


def test_derive_factors_direction_and_bounds():
    better = derive_adjustment_factors(3.0, 1.5)
    worse = derive_adjustment_factors(0.75, 1.5)

    assert better == AdjustmentFactors(pytest.approx(1.2), pytest.approx(1.3), pytest.approx(1.15))
    assert all(1.0 < v <= 1.5 for v in (better.stop_loss, better.target, better.trailing_stop))
    assert all(0.7 <= v < 1.0 for v in (worse.stop_loss, worse.target, worse.trailing_stop))
    assert worse.stop_loss == pytest.approx(0.9)


def test_derive_factors_monotone_in_profit_factor():
    stops = [derive_adjustment_factors(pf, 1.5).stop_loss for pf in (0.0, 0.5, 1.0, 1.5, 2.0, 3.0, 10.0)]
    assert stops == sorted(stops)
    assert min(stops) >= 0.7
    assert max(stops) <= 1.5


def test_performance_score():
    perf = BacktestPerformance(win_rate=60.0, profit_factor=2.0, average_rr=1.5, sample_size=20)
    assert performance_score(perf) == pytest.approx(90 * 0.4 + 66 * 0.4 + 60 * 0.2)

    thin = BacktestPerformance(win_rate=60.0, profit_factor=2.0, average_rr=1.5, sample_size=10)
    assert performance_score(thin) == pytest.approx((90 * 0.4 + 66 * 0.4 + 60 * 0.2) * 0.7)

    assert performance_score(BacktestPerformance.empty()) == 0.0


def test_records_for_template_prefers_own_records():
    records = _records(
        make_record(template_name="ATM_MO_HIGH", profit_factor=2.5),
        make_record(template_name="ATM_EA_LOW", profit_factor=0.8),
        make_record(profit_factor=1.2),
    )
    assert [r.performance.profit_factor for r in records_for_template(records, "ATM_MO_HIGH")] == [2.5]
    assert len(records_for_template(records, "ATM_UNKNOWN")) == 3


def test_record_from_dict_parses_both_key_styles():
    camel = BacktestRecord.from_dict(make_record(wins=7, losses=3, profit_factor=1.9))
    snake = BacktestRecord.from_dict({
        "time_of_day": "Morning",
        "session_type": "High Volatility",
        "market_conditions": {"session": "US_OPEN", "volatility_category": "HIGH"},
        "performance": {"wins": 7, "losses": 3, "total_trades": 10, "profit_factor": 1.9, "average_rr": 1.5},
        "created_at": "2025-02-03T14:00:00Z",
    })

    assert camel == snake
    assert camel.performance.win_rate == pytest.approx(70.0)
    assert camel.created_at.isoformat().startswith("2025-02-03T14:00:00")


def test_malformed_performance_does_not_raise(us_open_high):
    record = BacktestRecord.from_dict({
        "marketConditions": {"session": "US_OPEN", "volatility": "HIGH"},
        "performance": {"wins": "x", "totalTrades": None, "profitFactor": "nan"},
        "createdAt": "not a date",
    })
    perf = aggregate(us_open_high, [record])

    assert record.created_at is None
    assert perf.sample_size == 1
    assert perf.factors == AdjustmentFactors.neutral()
