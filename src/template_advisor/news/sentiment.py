"""
template_advisor/news/sentiment.py

News relevance, sentiment and volatility impact for one instrument.

Items are relevant when they mention the instrument (or one of its aliases)
or belong to a macro category (volatility, futures, central-bank,
economic-data). Categories are inferred from keywords when the provider
did not set one.

Per-item polarity comes from, in order of preference:
1. A provided sentiment label (positive / negative / neutral)
2. A numeric sentiment score on the -10..10 scale
3. A bag-of-keywords heuristic, +/-0.2 per hit

Polarities are averaged over relevant items and clamped to [-1, 1].
Volatility impact is the density of uncertainty/shock keywords, capped at 1.

When confidence is LOW the impact is a non-signal and callers must ignore it.

Example usage:
    items = [NewsItem.from_dict(d) for d in provider_payload]
    impact = score_impact(items, "NQ")
    impact.sentiment        # Sentiment.NEGATIVE
    impact.volatility_impact
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from template_advisor.adaptive import config_adaptive as cfg
from template_advisor.adaptive.confidence import ConfidenceLevel

logger = logging.getLogger("advisor.news")


class Sentiment(Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


@dataclass(frozen=True)
class NewsItem:
    title: str
    summary: str = ""
    source: Optional[str] = None
    url: Optional[str] = None
    published_at: Optional[datetime] = None
    sentiment_label: Optional[str] = None
    sentiment_score: Optional[float] = None
    category: Optional[str] = None

    @property
    def text(self) -> str:
        return f"{self.title} {self.summary}".lower()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NewsItem":
        sentiment = data.get("sentiment")
        label = data.get("sentimentLabel") or data.get("sentiment_label")
        score = data.get("sentimentScore", data.get("sentiment_score"))
        if isinstance(sentiment, str) and label is None:
            label = sentiment
        elif isinstance(sentiment, (int, float)) and score is None:
            score = sentiment

        published = data.get("publishedAt") or data.get("published_at") or data.get("date")
        category = data.get("category")
        return cls(
            title=str(data.get("title") or ""),
            summary=str(data.get("summary") or data.get("description") or data.get("content") or ""),
            source=data.get("source"),
            url=data.get("url") or data.get("link"),
            published_at=_parse_ts(published),
            sentiment_label=label if isinstance(label, str) else None,
            sentiment_score=_as_float(score),
            category=category if isinstance(category, str) else None,
        )


@dataclass(frozen=True)
class NewsImpact:
    """
    Numeric news signal consumed by the blender.

    Attributes:
        sentiment: Direction label (neutral unless |trend_impact| > threshold)
        volatility_impact: 0..1 density of uncertainty/shock keywords
        trend_impact: -1..1 averaged polarity
        confidence: LOW means ignore this signal entirely
        relevant_count: Relevant items after de-duplication
    """
    sentiment: Sentiment = Sentiment.NEUTRAL
    volatility_impact: float = 0.0
    trend_impact: float = 0.0
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    relevant_count: int = 0

    @classmethod
    def no_signal(cls) -> "NewsImpact":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sentiment": self.sentiment.value,
            "volatility_impact": round(self.volatility_impact, 4),
            "trend_impact": round(self.trend_impact, 4),
            "confidence": self.confidence.value,
            "relevant_count": self.relevant_count,
        }


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError):
        return None
    if ts is pd.NaT:
        return None
    ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
    return ts.to_pydatetime()


def _count_hits(text: str, words: Sequence[str]) -> int:
    return sum(1 for w in words if re.search(r"\b" + re.escape(w) + r"\b", text))


def deduplicate(items: Iterable[NewsItem]) -> List[NewsItem]:
    """Keep the first item per case-insensitive title."""
    seen = set()
    unique = []
    for item in items:
        key = item.title.strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def infer_category(item: NewsItem) -> Optional[str]:
    if item.category:
        return item.category.lower()
    text = item.text
    for category, keywords in cfg.NEWS_CATEGORY_KEYWORDS.items():
        if _count_hits(text, keywords):
            return category
    return None


def is_relevant(item: NewsItem, instrument: str) -> bool:
    text = item.text
    names = (instrument.lower(),) + tuple(cfg.INSTRUMENT_ALIASES.get(instrument.upper(), ()))
    if _count_hits(text, names):
        return True
    return infer_category(item) in cfg.NEWS_MACRO_CATEGORIES


def item_polarity(item: NewsItem) -> float:
    label = (item.sentiment_label or "").strip().lower()
    if label in ("positive", "bullish"):
        return cfg.NEWS_LABEL_POLARITY
    if label in ("negative", "bearish"):
        return -cfg.NEWS_LABEL_POLARITY
    if label == "neutral":
        return 0.0
    if item.sentiment_score is not None:
        return float(np.clip(item.sentiment_score / 10.0, -1.0, 1.0))

    text = item.text
    hits = _count_hits(text, cfg.POSITIVE_WORDS) - _count_hits(text, cfg.NEGATIVE_WORDS)
    return float(np.clip(hits * cfg.NEWS_KEYWORD_POLARITY, -1.0, 1.0))


def score_impact(items: Optional[Iterable[NewsItem]], instrument: str = cfg.DEFAULT_INSTRUMENT) -> NewsImpact:
    """
    Score the combined impact of `items` on `instrument`.

    Returns NewsImpact.no_signal() for empty input or no relevant items.
    """
    relevant = [i for i in deduplicate(items or ()) if is_relevant(i, instrument)]
    if not relevant:
        logger.debug("No relevant news for %s", instrument)
        return NewsImpact.no_signal()

    polarity = float(np.clip(np.mean([item_polarity(i) for i in relevant]), -1.0, 1.0))
    if polarity > cfg.NEWS_SENTIMENT_THRESHOLD:
        sentiment = Sentiment.POSITIVE
    elif polarity < -cfg.NEWS_SENTIMENT_THRESHOLD:
        sentiment = Sentiment.NEGATIVE
    else:
        sentiment = Sentiment.NEUTRAL

    shock_hits = sum(_count_hits(i.text, cfg.SHOCK_WORDS) for i in relevant)
    volatility_impact = min(1.0, shock_hits / (cfg.NEWS_SHOCK_HITS_FOR_FULL_IMPACT * len(relevant)))

    if len(relevant) >= cfg.NEWS_HIGH_CONFIDENCE_ITEMS:
        confidence = ConfidenceLevel.HIGH
    elif len(relevant) >= cfg.NEWS_MEDIUM_CONFIDENCE_ITEMS:
        confidence = ConfidenceLevel.MEDIUM
    else:
        confidence = ConfidenceLevel.LOW

    impact = NewsImpact(
        sentiment=sentiment,
        volatility_impact=volatility_impact,
        trend_impact=polarity,
        confidence=confidence,
        relevant_count=len(relevant),
    )
    logger.info(
        "News impact for %s: %s (trend=%.2f, vol=%.2f, n=%d, confidence=%s)",
        instrument, sentiment.value, polarity, volatility_impact, len(relevant), confidence.value,
    )
    return impact
