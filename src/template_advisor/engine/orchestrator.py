"""
template_advisor/engine/orchestrator.py

Recommendation orchestrator - sequences classification, scoring, blending,
adjustment and confidence into one Recommendation per template kind.

Per request:
1. Classify the market (telemetry from MarketDataProvider, or an override)
2. Fetch candidates, backtests and news concurrently
3. Score each candidate: 0.7 x similarity + 0.3 x performance score
4. Pick the best candidate (first candidate if none clears the minimum score)
5. Blend backtest, baseline, trend and news signals into multipliers
6. Apply multipliers to the selected template under the per-field clamp
7. Combine component confidences and write the rationale

The engine holds only configuration and collaborator references. Collaborator
failures are logged and replaced by neutral values; each substitution is
recorded in Recommendation.data_flags.

Example usage:
    engine = RecommendationEngine.from_config(market_data, store, backtests, news)
    rec = asyncio.run(engine.recommend(TemplateKind.BRACKET))
    rec.template.stop_loss
    rec.confidence.value
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from template_advisor.adaptive import config_adaptive as cfg
from template_advisor.adaptive.blender import AdjustmentBlender
from template_advisor.adaptive.confidence import ConfidenceCalculator, ConfidenceLevel, similarity_confidence
from template_advisor.adaptive.market_regime import DataQuality, MarketCondition, MarketConditionClassifier
from template_advisor.adaptive.regime_parameters import AdjustmentFactors, RegimeParameters
from template_advisor.adaptive.similarity import infer_from_template, similarity_score
from template_advisor.backtest.performance import (
    BacktestPerformance,
    aggregate,
    performance_score,
    records_for_template,
)
from template_advisor.backtest.records import BacktestRecord
from template_advisor.backtest.trend_analysis import PerformanceTrend, analyze_performance_trend
from template_advisor.engine.providers import BacktestStore, MarketDataProvider, NewsProvider, TemplateStore
from template_advisor.news.sentiment import NewsImpact, NewsItem, score_impact
from template_advisor.templates.models import Template, TemplateKind, fallback_template, template_from_dict
from template_advisor.templates.parameter_adjuster import apply

logger = logging.getLogger("advisor.orchestrator")

MARKET_DATA_UNAVAILABLE = "market_data_unavailable"
TEMPLATES_UNAVAILABLE = "templates_unavailable"
NO_CANDIDATES = "no_candidates"
BACKTESTS_UNAVAILABLE = "backtests_unavailable"
NEWS_UNAVAILABLE = "news_unavailable"
BELOW_MIN_SCORE = "below_min_score"


@dataclass(frozen=True)
class CandidateScore:
    """Selection scores of one candidate template."""
    template: Template
    similarity: int
    performance: BacktestPerformance
    performance_score: float
    combined: float
    records: Tuple[BacktestRecord, ...] = field(default=(), repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template": self.template.name,
            "similarity": self.similarity,
            "performance_score": round(self.performance_score, 2),
            "combined": round(self.combined, 2),
        }


@dataclass(frozen=True)
class Recommendation:
    """
    Final output for one template kind.

    Attributes:
        template: Adjusted template (new instance)
        original_template: Selected template before adjustment
        performance: Backtest evidence behind the selected template
        confidence: Overall confidence label
        similarity_score: Similarity of the selected template (0-100)
        rationale: Human-readable explanation
        generated_at: Timestamp of the market condition the result is for
        market_condition: Classified (or overridden) condition
        factors: Final blended multipliers
        news: News impact used by the blend
        trend: Multi-period performance trend used by the blend
        data_flags: Every fallback taken while building the result
    """
    template: Template
    original_template: Template
    performance: BacktestPerformance
    confidence: ConfidenceLevel
    similarity_score: int
    rationale: str
    generated_at: datetime
    market_condition: MarketCondition
    factors: AdjustmentFactors
    news: NewsImpact = field(default_factory=NewsImpact.no_signal)
    trend: PerformanceTrend = PerformanceTrend.INSUFFICIENT_DATA
    data_flags: Tuple[str, ...] = ()

    @property
    def kind(self) -> TemplateKind:
        return self.template.kind

    @property
    def is_fallback(self) -> bool:
        return self.template.is_fallback

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "template": self.template.to_dict(),
            "original_template": self.original_template.to_dict(),
            "performance": self.performance.to_dict(),
            "confidence": self.confidence.value,
            "similarity_score": self.similarity_score,
            "rationale": self.rationale,
            "generated_at": self.generated_at.isoformat(),
            "is_fallback": self.is_fallback,
            "market_condition": self.market_condition.to_dict(),
            "factors": self.factors.to_dict(),
            "news": self.news.to_dict(),
            "trend": self.trend.value,
            "data_flags": list(self.data_flags),
        }


def _utc_now() -> datetime:
    return pd.Timestamp.now(tz="UTC").to_pydatetime()


async def _call(flag: str, func: Callable[..., Any], *args: Any) -> Tuple[Any, Optional[str]]:
    """Invoke a collaborator; on failure return (None, flag) instead of raising."""
    try:
        result = func(*args)
        if inspect.isawaitable(result):
            result = await result
        return result, None
    except Exception as exc:
        logger.warning("Collaborator call %s failed (%s): %s", getattr(func, "__qualname__", func), flag, exc)
        return None, flag


class RecommendationEngine:
    """
    Stateless recommendation engine over caller-supplied collaborators.

    Concurrent recommend() calls share nothing mutable and may run in any
    order.
    """

    def __init__(
        self,
        market_data: MarketDataProvider,
        templates: TemplateStore,
        backtests: BacktestStore,
        news: NewsProvider,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        classifier: Optional[MarketConditionClassifier] = None,
        regime_parameters: Optional[RegimeParameters] = None,
        blender: Optional[AdjustmentBlender] = None,
        confidence: Optional[ConfidenceCalculator] = None,
        instrument: Optional[str] = None,
        similarity_weight: float = cfg.SELECTION_SIMILARITY_WEIGHT,
        performance_weight: float = cfg.SELECTION_PERFORMANCE_WEIGHT,
        min_combined_score: float = cfg.SELECTION_MIN_COMBINED_SCORE,
    ) -> None:
        if similarity_weight < 0 or performance_weight < 0:
            raise ValueError("Selection weights must be non-negative")
        self.market_data = market_data
        self.templates = templates
        self.backtests = backtests
        self.news = news
        self.clock = clock or _utc_now
        self.classifier = classifier or MarketConditionClassifier()
        self.regime_parameters = regime_parameters or RegimeParameters()
        self.blender = blender or AdjustmentBlender()
        self.confidence = confidence or ConfidenceCalculator()
        self.instrument = instrument or cfg.DEFAULT_INSTRUMENT
        self.similarity_weight = similarity_weight
        self.performance_weight = performance_weight
        self.min_combined_score = min_combined_score

    @classmethod
    def from_config(
        cls,
        market_data: MarketDataProvider,
        templates: TemplateStore,
        backtests: BacktestStore,
        news: NewsProvider,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "RecommendationEngine":
        return cls(
            market_data,
            templates,
            backtests,
            news,
            clock=clock,
            classifier=MarketConditionClassifier.from_config(),
            regime_parameters=RegimeParameters.from_config(),
            blender=AdjustmentBlender.from_config(),
            confidence=ConfidenceCalculator.from_config(),
            instrument=getattr(cfg, "DEFAULT_INSTRUMENT", "NQ"),
            similarity_weight=float(getattr(cfg, "SELECTION_SIMILARITY_WEIGHT", 0.7)),
            performance_weight=float(getattr(cfg, "SELECTION_PERFORMANCE_WEIGHT", 0.3)),
            min_combined_score=float(getattr(cfg, "SELECTION_MIN_COMBINED_SCORE", 40.0)),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def recommend(
        self,
        kind: Union[TemplateKind, str],
        instrument: Optional[str] = None,
        conditions: Union[MarketCondition, Mapping[str, Any], None] = None,
    ) -> Recommendation:
        """
        Build one recommendation for `kind`.

        Parameters
        ----------
        kind : TemplateKind or str
            BRACKET/"ATM" or FILTER/"Flazh". Unknown kinds raise ValueError.
        instrument : str, optional
            Instrument used for news relevance (default from config).
        conditions : MarketCondition or mapping, optional
            Override of the classified market condition.

        Returns
        -------
        Recommendation
        """
        kind = TemplateKind.parse(kind)
        instrument = instrument or self.instrument
        flags: List[str] = []

        condition = await self._market_condition(conditions, flags)

        (raw_templates, t_flag), (raw_records, b_flag), (raw_news, n_flag) = await asyncio.gather(
            _call(TEMPLATES_UNAVAILABLE, self.templates.list_by_kind, kind),
            _call(BACKTESTS_UNAVAILABLE, self.backtests.query, condition.time_of_day, condition.session_type),
            _call(NEWS_UNAVAILABLE, self.news.get_relevant, instrument),
        )
        flags.extend(f for f in (t_flag, b_flag, n_flag) if f)

        candidates = self._parse_templates(kind, raw_templates)
        records = self._parse_records(raw_records)
        news_items = self._parse_news(raw_news)

        if not candidates:
            logger.info("No %s candidates, using %s fallback template", kind.value, condition.volatility_category.value)
            flags.append(NO_CANDIDATES)
            candidates = [fallback_template(kind, condition.volatility_category)]

        scored = [self.score_candidate(condition, t, records) for t in candidates]
        selected = self.select(scored)
        if not selected.template.is_fallback and max(c.combined for c in scored) <= self.min_combined_score:
            flags.append(BELOW_MIN_SCORE)

        trend = analyze_performance_trend(selected.records).trend
        news_impact = score_impact(news_items, instrument)
        baseline = self.regime_parameters.baseline_adjustments(condition)
        factors = self.blender.blend(baseline, selected.performance, news_impact, trend)
        adjusted = apply(selected.template, factors, condition.volatility_category)

        confidence = self.confidence.combine(
            parameter=similarity_confidence(selected.similarity),
            news=news_impact.confidence,
            backtest=selected.performance.confidence_level,
        )

        rationale = self._rationale(kind, condition, selected, factors, flags)
        logger.info(
            "Recommended %s template %s (similarity=%d, combined=%.1f, confidence=%s, flags=%s)",
            kind.value, selected.template.name, selected.similarity, selected.combined,
            confidence.value, ",".join(flags) or "none",
        )

        return Recommendation(
            template=adjusted,
            original_template=selected.template,
            performance=selected.performance,
            confidence=confidence,
            similarity_score=selected.similarity,
            rationale=rationale,
            generated_at=condition.timestamp,
            market_condition=condition,
            factors=factors,
            news=news_impact,
            trend=trend,
            data_flags=tuple(flags),
        )

    async def recommend_all(
        self,
        kinds: Iterable[Union[TemplateKind, str]] = tuple(TemplateKind),
        instrument: Optional[str] = None,
        conditions: Union[MarketCondition, Mapping[str, Any], None] = None,
    ) -> Dict[TemplateKind, Recommendation]:
        """Run one independent recommendation per kind concurrently."""
        parsed = [TemplateKind.parse(k) for k in kinds]
        results = await asyncio.gather(*(self.recommend(k, instrument, conditions) for k in parsed))
        return dict(zip(parsed, results))

    # ------------------------------------------------------------------
    # Scoring / selection
    # ------------------------------------------------------------------

    def score_candidate(
        self,
        condition: MarketCondition,
        template: Template,
        records: List[BacktestRecord],
    ) -> CandidateScore:
        similarity = similarity_score(condition, infer_from_template(template))
        own_records = records_for_template(records, template.name)
        perf = aggregate(condition, own_records)
        p_score = performance_score(perf)
        combined = self.similarity_weight * similarity + self.performance_weight * p_score
        logger.debug(
            "Candidate %s: similarity=%d perf_score=%.1f combined=%.1f",
            template.name, similarity, p_score, combined,
        )
        return CandidateScore(
            template=template,
            similarity=similarity,
            performance=perf,
            performance_score=p_score,
            combined=combined,
            records=tuple(own_records),
        )

    def select(self, scored: List[CandidateScore]) -> CandidateScore:
        """Highest combined score above the minimum bar, else the first candidate."""
        best = max(scored, key=lambda c: c.combined)
        if best.combined > self.min_combined_score:
            return best
        logger.info(
            "No candidate above minimum score %.0f (best %.1f), using first candidate %s",
            self.min_combined_score, best.combined, scored[0].template.name,
        )
        return scored[0]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _market_condition(
        self,
        conditions: Union[MarketCondition, Mapping[str, Any], None],
        flags: List[str],
    ) -> MarketCondition:
        if isinstance(conditions, MarketCondition):
            return conditions
        if conditions is not None:
            return MarketCondition.from_labels(
                session=conditions.get("session") or conditions.get("currentSession"),
                volatility_category=conditions.get("volatilityCategory")
                or conditions.get("volatility_category")
                or conditions.get("volatility"),
                timestamp=conditions.get("timestamp") or self.clock(),
                trend=conditions.get("trend") or "neutral",
                day_of_week=conditions.get("dayOfWeek") or conditions.get("day_of_week"),
                volume=conditions.get("volume"),
            )

        telemetry, flag = await _call(MARKET_DATA_UNAVAILABLE, self.market_data.get_latest)
        condition = self.classifier.classify(self.clock(), telemetry)
        if flag or condition.data_quality is DataQuality.MISSING:
            flags.append(MARKET_DATA_UNAVAILABLE)
        return condition

    @staticmethod
    def _parse_templates(kind: TemplateKind, raw: Optional[Iterable[Any]]) -> List[Template]:
        templates: List[Template] = []
        for item in raw or ():
            if isinstance(item, Mapping):
                templates.append(template_from_dict(kind, item))
            elif getattr(item, "kind", None) is kind:
                templates.append(item)
            else:
                logger.warning("Ignoring candidate %r: not a %s template", getattr(item, "name", item), kind.value)
        return templates

    @staticmethod
    def _parse_records(raw: Optional[Iterable[Any]]) -> List[BacktestRecord]:
        records: List[BacktestRecord] = []
        for item in raw or ():
            if isinstance(item, BacktestRecord):
                records.append(item)
            elif isinstance(item, Mapping):
                records.append(BacktestRecord.from_dict(item))
            else:
                logger.warning("Ignoring malformed backtest record %r", item)
        return records

    @staticmethod
    def _parse_news(raw: Optional[Iterable[Any]]) -> List[NewsItem]:
        items: List[NewsItem] = []
        for item in raw or ():
            if isinstance(item, NewsItem):
                items.append(item)
            elif isinstance(item, Mapping):
                items.append(NewsItem.from_dict(item))
            else:
                logger.warning("Ignoring malformed news item %r", item)
        return items

    def _rationale(
        self,
        kind: TemplateKind,
        condition: MarketCondition,
        selected: CandidateScore,
        factors: AdjustmentFactors,
        flags: List[str],
    ) -> str:
        info = cfg.SESSION_INFO.get(condition.session.value, {})
        session_name = info.get("name", condition.session.value)
        parts = [
            f"{kind.value} parameters optimized for the {session_name} trading session "
            f"with {condition.volatility_category.value.lower()} volatility."
        ]

        if selected.template.is_fallback:
            parts.append("No stored templates were available, so a default safe template was used.")
        elif selected.similarity >= cfg.SIMILARITY_HIGH_CONFIDENCE:
            parts.append(f"Template {selected.template.name} closely matches current conditions.")
        elif selected.similarity >= cfg.SIMILARITY_MEDIUM_CONFIDENCE:
            parts.append(f"Template {selected.template.name} partially matches current conditions.")
        else:
            parts.append(f"Template {selected.template.name} was the best available match.")

        perf = selected.performance
        if perf.sample_size > 0 and self.blender.weights_for(perf).backtest > 0.5:
            parts.append(
                f"Historical performance was the dominant factor ({perf.sample_size} similar backtests, "
                f"profit factor {perf.profit_factor:.2f}, win rate {perf.win_rate:.0f}%)."
            )
        else:
            parts.append("Adjustments are driven mainly by current market conditions; historical evidence was limited.")

        features = info.get("features")
        if features:
            parts.append(f"This session typically features {', '.join(features)}.")

        if factors.stop_loss > 1.0:
            parts.append("Stops and targets were widened for current conditions.")
        elif factors.stop_loss < 1.0:
            parts.append("Stops and targets were tightened for current conditions.")

        if MARKET_DATA_UNAVAILABLE in flags:
            parts.append("Market data was unavailable, so medium volatility was assumed.")
        return " ".join(parts)
