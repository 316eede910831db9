"""
Collaborator interfaces for the recommendation engine.

The engine performs no I/O of its own. Market data, templates, backtests and
news come from these providers, whose methods are awaited. Implementations
may return plain dictionaries; the engine parses them into its own types.

Subclasses must implement:
- MarketDataProvider.get_latest(): latest ATR/volume telemetry or None
- TemplateStore.list_by_kind(): candidate templates for a kind
- BacktestStore.query(): backtest records for a time of day / session type
- NewsProvider.get_relevant(): news items for an instrument
"""

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Union

from template_advisor.backtest.records import BacktestRecord
from template_advisor.news.sentiment import NewsItem
from template_advisor.templates.models import Template, TemplateKind


class MarketDataProvider(ABC):
    @abstractmethod
    async def get_latest(self) -> Optional[Mapping[str, Any]]:
        """Return {atr, atrAverage, volume, volumeAverage[, close, closeAverage]} or None."""


class TemplateStore(ABC):
    @abstractmethod
    async def list_by_kind(self, kind: TemplateKind) -> List[Union[Template, Mapping[str, Any]]]:
        """Return candidate templates (typed or store documents) for `kind`."""

    @abstractmethod
    async def persist(self, template: Template) -> bool:
        """Persist an adjusted template. Used by callers, never by the engine."""


class BacktestStore(ABC):
    @abstractmethod
    async def query(self, time_of_day: str, session_type: str) -> List[Union[BacktestRecord, Mapping[str, Any]]]:
        """Return backtest records matching the time-of-day bucket and session type."""


class NewsProvider(ABC):
    @abstractmethod
    async def get_relevant(self, instrument: str) -> List[Union[NewsItem, Mapping[str, Any]]]:
        """Return recent news items for `instrument`."""
