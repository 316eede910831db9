from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from template_advisor.adaptive.market_regime import MarketCondition
from template_advisor.engine.providers import BacktestStore, MarketDataProvider, NewsProvider, TemplateStore
from template_advisor.templates.models import BracketTemplate, FilterTemplate, TemplateKind


class FakeMarketData(MarketDataProvider):
    def __init__(self, payload: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.payload = payload
        self.error = error

    async def get_latest(self):
        if self.error:
            raise self.error
        return self.payload


class FakeTemplateStore(TemplateStore):
    def __init__(self, templates: Optional[Dict[TemplateKind, list]] = None, error: Optional[Exception] = None):
        self.templates = templates or {}
        self.error = error
        self.persisted: List[Any] = []

    async def list_by_kind(self, kind):
        if self.error:
            raise self.error
        return list(self.templates.get(kind, []))

    async def persist(self, template):
        self.persisted.append(template)
        return True


class FakeBacktestStore(BacktestStore):
    def __init__(self, records: Optional[list] = None, error: Optional[Exception] = None):
        self.records = records or []
        self.error = error
        self.queries: List[tuple] = []

    async def query(self, time_of_day, session_type):
        self.queries.append((time_of_day, session_type))
        if self.error:
            raise self.error
        return list(self.records)


class FakeNewsProvider(NewsProvider):
    def __init__(self, items: Optional[list] = None, error: Optional[Exception] = None):
        self.items = items or []
        self.error = error

    async def get_relevant(self, instrument):
        if self.error:
            raise self.error
        return list(self.items)


def make_record(
    session: Optional[str] = "US_OPEN",
    volatility: Optional[str] = "HIGH",
    profit_factor: float = 1.5,
    average_rr: float = 1.5,
    wins: int = 6,
    losses: int = 4,
    created_at: Optional[str] = "2025-02-03T14:00:00Z",
    template_name: Optional[str] = None,
    **snapshot: Any,
) -> Dict[str, Any]:
    conditions = {"session": session, "volatility": volatility}
    conditions.update(snapshot)
    record = {
        "timeOfDay": "Morning",
        "sessionType": "High Volatility",
        "marketConditions": {k: v for k, v in conditions.items() if v is not None},
        "performance": {
            "wins": wins,
            "losses": losses,
            "totalTrades": wins + losses,
            "profitFactor": profit_factor,
            "averageRR": average_rr,
        },
        "createdAt": created_at,
    }
    if template_name:
        record["templateName"] = template_name
    return record


@pytest.fixture
def fixed_now() -> datetime:
    # Tuesday, inside the US open window
    return datetime(2025, 3, 4, 13, 30, tzinfo=timezone.utc)


@pytest.fixture
def high_vol_telemetry() -> Dict[str, float]:
    return {"atr": 40.0, "atrAverage": 25.0, "volume": 9000.0, "volumeAverage": 6000.0}


@pytest.fixture
def us_open_high(fixed_now) -> MarketCondition:
    return MarketCondition.from_labels("US_OPEN", "HIGH", timestamp=fixed_now)


@pytest.fixture
def bracket_templates() -> List[BracketTemplate]:
    return [
        BracketTemplate(name="ATM_EA_LOW", stop_loss=12, target=24, break_even_trigger=10, break_even_plus=4),
        BracketTemplate(name="ATM_MO_HIGH", stop_loss=20, target=40, break_even_trigger=16, break_even_plus=6),
        BracketTemplate(name="ATM_MI_MED", stop_loss=15, target=30, break_even_trigger=12, break_even_plus=5),
    ]


@pytest.fixture
def filter_templates() -> List[FilterTemplate]:
    return [
        FilterTemplate(name="Flazh_MO_HIGH", fast_period=14, fast_range=4, medium_period=30, medium_range=5,
                       slow_period=60, slow_range=6, filter_multiplier=12),
        FilterTemplate(name="Flazh_EA_MED", fast_period=24, fast_range=3, medium_period=45, medium_range=4,
                       slow_period=75, slow_range=5, filter_multiplier=9),
    ]


@pytest.fixture
def template_store(bracket_templates, filter_templates) -> FakeTemplateStore:
    return FakeTemplateStore({
        TemplateKind.BRACKET: bracket_templates,
        TemplateKind.FILTER: filter_templates,
    })
