from __future__ import annotations

import pytest

from template_advisor.adaptive.confidence import ConfidenceLevel
from template_advisor.news.sentiment import NewsItem, Sentiment, deduplicate, infer_category, score_impact


def test_no_items_is_no_signal():
    impact = score_impact([], "NQ")

    assert impact.confidence == ConfidenceLevel.LOW
    assert impact.sentiment == Sentiment.NEUTRAL
    assert impact.relevant_count == 0
    assert score_impact(None, "NQ") == impact


def test_irrelevant_items_are_ignored():
    items = [NewsItem(title="Local team wins championship", summary="Fans celebrate the record season")]
    assert score_impact(items, "NQ").confidence == ConfidenceLevel.LOW


def test_labels_drive_sentiment():
    items = [
        NewsItem(title=f"Nasdaq headline {i}", sentiment_label="negative") for i in range(3)
    ]
    impact = score_impact(items, "NQ")

    assert impact.sentiment == Sentiment.NEGATIVE
    assert impact.trend_impact == pytest.approx(-1.0)
    assert impact.confidence == ConfidenceLevel.HIGH
    assert impact.relevant_count == 3


def test_keyword_heuristic():
    impact = score_impact([NewsItem(title="Nasdaq rally continues as tech stocks gain")], "NQ")

    assert impact.trend_impact == pytest.approx(0.4)
    assert impact.sentiment == Sentiment.POSITIVE
    assert impact.confidence == ConfidenceLevel.MEDIUM


def test_weak_polarity_is_neutral():
    impact = score_impact([NewsItem(title="NQ futures edge higher")], "NQ")

    assert impact.trend_impact == pytest.approx(0.2)
    assert impact.sentiment == Sentiment.NEUTRAL


def test_numeric_sentiment_score():
    impact = score_impact([NewsItem(title="S&P 500 outlook", sentiment_score=-6)], "ES")

    assert impact.trend_impact == pytest.approx(-0.6)
    assert impact.sentiment == Sentiment.NEGATIVE


def test_duplicates_scored_once():
    items = [
        NewsItem(title="Fed holds interest rate steady"),
        NewsItem(title="FED HOLDS INTEREST RATE STEADY"),
    ]
    assert len(deduplicate(items)) == 1
    assert score_impact(items, "NQ").relevant_count == 1


def test_macro_category_inferred_from_keywords():
    item = NewsItem(title="Fed signals interest rate cut next month")

    assert infer_category(item) == "central-bank"
    assert score_impact([item], "GC").relevant_count == 1


def test_volatility_impact_from_shock_words():
    calm = score_impact([NewsItem(title="Nasdaq closes flat")], "NQ")
    shock = score_impact(
        [NewsItem(title="Nasdaq in turmoil", summary="Uncertainty and panic spread after surprise data")],
        "NQ",
    )

    assert calm.volatility_impact == 0.0
    assert shock.volatility_impact == pytest.approx(1.0)


def test_outputs_stay_in_range():
    items = [
        NewsItem(title="Nasdaq rally gain rise growth strong record", sentiment_score=50),
        NewsItem(title="Nasdaq crash panic fear crisis shock turmoil plunge"),
    ]
    impact = score_impact(items, "NQ")

    assert -1.0 <= impact.trend_impact <= 1.0
    assert 0.0 <= impact.volatility_impact <= 1.0


def test_item_from_dict():
    item = NewsItem.from_dict({
        "title": "CPI comes in hot",
        "description": "Inflation surprise",
        "sentiment": "negative",
        "publishedAt": "2025-03-04T12:00:00Z",
        "link": "https://example.com/cpi",
    })

    assert item.sentiment_label == "negative"
    assert item.summary == "Inflation surprise"
    assert item.url == "https://example.com/cpi"
    assert item.published_at.isoformat().startswith("2025-03-04T12:00:00")
    assert infer_category(item) == "economic-data"
