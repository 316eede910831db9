from __future__ import annotations

import pytest

from conftest import make_record
from template_advisor.backtest.records import BacktestRecord
from template_advisor.backtest.trend_analysis import PerformanceTrend, analyze_performance_trend, classify_change

# Mondays of consecutive calendar weeks
WEEKS = ["2025-02-03T14:00:00Z", "2025-02-10T14:00:00Z", "2025-02-17T14:00:00Z", "2025-02-24T14:00:00Z"]


def _weekly(*profit_factors):
    return [
        BacktestRecord.from_dict(make_record(profit_factor=pf, created_at=WEEKS[i]))
        for i, pf in enumerate(profit_factors)
    ]


def test_strong_improvement_over_three_weeks():
    report = analyze_performance_trend(_weekly(1.0, 1.2, 1.5))

    assert report.trend == PerformanceTrend.STRONG_IMPROVING
    assert report.profit_factor_change == pytest.approx(0.5)
    assert len(report.periods) == 3
    assert [p.sample_count for p in report.periods] == [1, 1, 1]


def test_only_last_three_periods_are_compared():
    report = analyze_performance_trend(_weekly(5.0, 1.0, 1.02, 1.04))

    assert len(report.periods) == 3
    assert report.periods[0].profit_factor == pytest.approx(1.0)
    assert report.trend == PerformanceTrend.STABLE


def test_weak_decline():
    assert analyze_performance_trend(_weekly(2.0, 1.8)).trend == PerformanceTrend.DECLINING


def test_records_in_one_week_are_averaged():
    records = [
        BacktestRecord.from_dict(make_record(profit_factor=1.0, created_at="2025-02-03T10:00:00Z")),
        BacktestRecord.from_dict(make_record(profit_factor=2.0, created_at="2025-02-05T10:00:00Z")),
        BacktestRecord.from_dict(make_record(profit_factor=1.1, created_at="2025-02-11T10:00:00Z")),
    ]
    report = analyze_performance_trend(records)

    assert report.periods[0].profit_factor == pytest.approx(1.5)
    assert report.periods[0].sample_count == 2
    assert report.trend == PerformanceTrend.STRONG_DECLINING


def test_insufficient_data():
    assert analyze_performance_trend([]).trend == PerformanceTrend.INSUFFICIENT_DATA
    assert analyze_performance_trend(_weekly(1.5)).trend == PerformanceTrend.INSUFFICIENT_DATA
    undated = [BacktestRecord.from_dict(make_record(created_at=None)) for _ in range(3)]
    assert analyze_performance_trend(undated).trend == PerformanceTrend.INSUFFICIENT_DATA


@pytest.mark.parametrize(
    "change, expected",
    [
        (0.25, PerformanceTrend.STRONG_IMPROVING),
        (0.1, PerformanceTrend.IMPROVING),
        (0.0, PerformanceTrend.STABLE),
        (-0.1, PerformanceTrend.DECLINING),
        (-0.3, PerformanceTrend.STRONG_DECLINING),
    ],
)
def test_classify_change(change, expected):
    assert classify_change(change) == expected
