from __future__ import annotations

import asyncio

import pytest

from conftest import FakeBacktestStore, FakeMarketData, FakeNewsProvider, FakeTemplateStore, make_record
from template_advisor.adaptive.confidence import ConfidenceLevel
from template_advisor.adaptive.market_regime import DataQuality, Session, VolatilityCategory
from template_advisor.engine.orchestrator import (
    BACKTESTS_UNAVAILABLE,
    BELOW_MIN_SCORE,
    MARKET_DATA_UNAVAILABLE,
    NEWS_UNAVAILABLE,
    NO_CANDIDATES,
    TEMPLATES_UNAVAILABLE,
    RecommendationEngine,
)
from template_advisor.news.sentiment import NewsItem
from template_advisor.templates.models import BracketTemplate, FilterTemplate, TemplateKind


@pytest.fixture
def make_engine(fixed_now, high_vol_telemetry, template_store):
    def _make(market_data=None, templates=None, backtests=None, news=None):
        return RecommendationEngine.from_config(
            market_data or FakeMarketData(high_vol_telemetry),
            templates or template_store,
            backtests or FakeBacktestStore(),
            news or FakeNewsProvider(),
            clock=lambda: fixed_now,
        )
    return _make


def test_recommend_selects_best_matching_template(make_engine):
    backtests = FakeBacktestStore()
    rec = asyncio.run(make_engine(backtests=backtests).recommend(TemplateKind.BRACKET))

    assert rec.original_template.name == "ATM_MO_HIGH"
    assert rec.similarity_score == 100
    assert rec.market_condition.session == Session.US_OPEN
    assert rec.market_condition.volatility_category == VolatilityCategory.HIGH
    assert rec.data_flags == ()
    assert not rec.is_fallback
    assert backtests.queries == [("Morning", "High Volatility")]
    assert "US Opening" in rec.rationale
    assert "high volatility" in rec.rationale
    # HIGH volatility + morning baseline widens the stop, within the clamp
    assert 20 < rec.template.stop_loss <= 30


def test_filter_recommendation(make_engine):
    rec = asyncio.run(make_engine().recommend("Flazh"))

    assert isinstance(rec.template, FilterTemplate)
    assert rec.original_template.name == "Flazh_MO_HIGH"
    # HIGH volatility widens ranges, never narrows them
    assert rec.template.fast_range >= rec.original_template.fast_range
    assert rec.template.slow_range >= rec.original_template.slow_range


def test_backtest_evidence_is_used(make_engine):
    records = [
        make_record(profit_factor=2.4, average_rr=1.8, wins=14, losses=6, template_name="ATM_MO_HIGH")
        for _ in range(6)
    ]
    rec = asyncio.run(make_engine(backtests=FakeBacktestStore(records)).recommend("ATM"))

    assert rec.performance.sample_size == 6
    assert rec.performance.confidence_level == ConfidenceLevel.HIGH
    assert rec.performance.profit_factor == pytest.approx(2.4)
    assert "Historical performance was the dominant factor" in rec.rationale


def test_medium_tier_backtests_are_not_dominant(make_engine):
    records = [make_record() for _ in range(3)]
    rec = asyncio.run(make_engine(backtests=FakeBacktestStore(records)).recommend("ATM"))

    assert rec.performance.confidence_level == ConfidenceLevel.MEDIUM
    assert "dominant factor" not in rec.rationale


def test_malformed_store_documents_are_skipped(make_engine, bracket_templates):
    records = [
        {"marketConditions": "HIGH", "performance": {"profitFactor": 2}},
        {"marketConditions": {"session": "US_OPEN"}, "performance": "n/a"},
        "not a record",
        make_record(),
    ]
    templates = FakeTemplateStore({TemplateKind.BRACKET: [
        "not a template",
        {"name": "ATM_BROKEN", "brackets": [{"stopLoss": 12, "target": 24, "stopStrategy": "manual"}]},
        *bracket_templates,
    ]})
    news = FakeNewsProvider([
        42,
        {"title": "Nasdaq slides", "category": ["equities"], "sentiment": {"score": -3}},
    ])
    engine = make_engine(backtests=FakeBacktestStore(records), templates=templates, news=news)

    rec = asyncio.run(engine.recommend(TemplateKind.BRACKET))

    assert rec.original_template.name == "ATM_MO_HIGH"
    assert rec.performance.sample_size >= 1
    assert rec.news.relevant_count == 1
    assert rec.data_flags == ()


def test_no_candidates_uses_fallback(make_engine):
    rec = asyncio.run(make_engine(templates=FakeTemplateStore({})).recommend(TemplateKind.BRACKET))

    assert rec.is_fallback
    assert rec.original_template.name == "ATM_FALLBACK_HIGH"
    assert NO_CANDIDATES in rec.data_flags
    assert rec.template.stop_loss > 0


def test_template_store_failure_uses_fallback(make_engine):
    store = FakeTemplateStore(error=ConnectionError("store down"))
    rec = asyncio.run(make_engine(templates=store).recommend(TemplateKind.FILTER))

    assert rec.is_fallback
    assert TEMPLATES_UNAVAILABLE in rec.data_flags
    assert NO_CANDIDATES in rec.data_flags


def test_market_data_failure_assumes_medium(make_engine):
    rec = asyncio.run(make_engine(market_data=FakeMarketData(error=TimeoutError("feed"))).recommend("ATM"))

    assert rec.market_condition.volatility_category == VolatilityCategory.MEDIUM
    assert rec.market_condition.data_quality == DataQuality.MISSING
    assert MARKET_DATA_UNAVAILABLE in rec.data_flags
    assert "medium volatility was assumed" in rec.rationale


def test_empty_market_data_is_flagged(make_engine):
    rec = asyncio.run(make_engine(market_data=FakeMarketData(None)).recommend("ATM"))
    assert MARKET_DATA_UNAVAILABLE in rec.data_flags


def test_news_and_backtest_failures_degrade(make_engine):
    engine = make_engine(
        backtests=FakeBacktestStore(error=RuntimeError("db")),
        news=FakeNewsProvider(error=RuntimeError("rss")),
    )
    rec = asyncio.run(engine.recommend("ATM"))

    assert BACKTESTS_UNAVAILABLE in rec.data_flags
    assert NEWS_UNAVAILABLE in rec.data_flags
    assert rec.news.confidence == ConfidenceLevel.LOW
    assert rec.performance.sample_size == 0


def test_low_similarity_falls_back_to_first_candidate(make_engine):
    store = FakeTemplateStore({TemplateKind.BRACKET: [
        BracketTemplate(name="alpha", stop_loss=10, target=20),
        BracketTemplate(name="beta", stop_loss=12, target=24),
    ]})
    rec = asyncio.run(make_engine(templates=store).recommend("ATM"))

    assert rec.original_template.name == "alpha"
    assert rec.similarity_score == 20
    assert BELOW_MIN_SCORE in rec.data_flags
    assert not rec.is_fallback


def test_store_documents_are_parsed(make_engine):
    store = FakeTemplateStore({TemplateKind.BRACKET: [
        {"name": "ATM_MO_HIGH", "brackets": [{"stopLoss": 20, "target": 40,
                                              "stopStrategy": {"autoBreakEvenProfitTrigger": 16,
                                                               "autoBreakEvenPlus": 6}}]},
        FilterTemplate(name="Flazh_MO_HIGH", fast_period=14),
    ]})
    rec = asyncio.run(make_engine(templates=store).recommend("ATM"))

    assert isinstance(rec.template, BracketTemplate)
    assert rec.original_template.break_even_trigger == 16


def test_condition_override(make_engine):
    rec = asyncio.run(make_engine().recommend(
        "ATM", conditions={"session": "US_AFTERNOON", "volatilityCategory": "LOW_VOLATILITY"},
    ))

    assert rec.original_template.name == "ATM_EA_LOW"
    assert rec.market_condition.volatility_score == pytest.approx(2.0)
    assert rec.template.stop_loss <= rec.original_template.stop_loss


def test_recommendations_are_idempotent(make_engine):
    news = FakeNewsProvider([NewsItem(title="Nasdaq futures slide on rate worries")])
    records = [make_record(profit_factor=1.9, created_at=f"2025-02-{d:02d}T14:00:00Z") for d in (3, 10, 17)]
    engine = make_engine(backtests=FakeBacktestStore(records), news=news)

    first = asyncio.run(engine.recommend("ATM"))
    second = asyncio.run(engine.recommend("ATM"))

    assert first == second
    assert first.to_dict() == second.to_dict()


def test_recommend_all(make_engine):
    results = asyncio.run(make_engine().recommend_all(["ATM", "Flazh"]))

    assert set(results) == {TemplateKind.BRACKET, TemplateKind.FILTER}
    assert isinstance(results[TemplateKind.BRACKET].template, BracketTemplate)
    assert isinstance(results[TemplateKind.FILTER].template, FilterTemplate)


def test_engine_never_persists(make_engine, template_store):
    asyncio.run(make_engine().recommend("ATM"))
    assert template_store.persisted == []


def test_unknown_kind_raises(make_engine):
    with pytest.raises(ValueError):
        asyncio.run(make_engine().recommend("IRON_CONDOR"))


def test_to_dict_is_plain_data(make_engine):
    data = asyncio.run(make_engine().recommend("ATM")).to_dict()

    assert data["kind"] == "ATM"
    assert data["confidence"] in ("low", "medium", "high")
    assert data["market_condition"]["session"] == "US_OPEN"
    assert isinstance(data["generated_at"], str)
    assert data["data_flags"] == []
