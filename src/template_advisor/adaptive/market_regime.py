"""
template_advisor/adaptive/market_regime.py

Market condition classification for template recommendation.

Classifies the current market along independent dimensions:
1. Trading session (fixed session table in the reference time zone)
2. Volatility category (LOW/MEDIUM/HIGH) from ATR and volume vs. their trailing averages
3. Trend label from last price vs. its trailing average
4. Volume label (LOW/NORMAL/HIGH) from the volume ratio

The result is an immutable MarketCondition built fresh for every request.
Missing or malformed telemetry never raises: volatility falls back to MEDIUM
and the condition carries a data-quality flag the caller can inspect.

Example usage:
    classifier = MarketConditionClassifier.from_config()
    condition = classifier.classify(
        datetime(2025, 3, 4, 13, 30, tzinfo=timezone.utc),
        {"atr": 42.0, "atrAverage": 25.0, "volume": 9000, "volumeAverage": 6000},
    )
    condition.session               # Session.US_OPEN
    condition.volatility_category   # VolatilityCategory.HIGH
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, time
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from template_advisor.adaptive import config_adaptive as cfg

logger = logging.getLogger("advisor.market_regime")


class Session(Enum):
    """Named trading-hours window."""
    ASIA = "ASIA"
    EUROPE = "EUROPE"
    US_OPEN = "US_OPEN"
    US_MIDDAY = "US_MIDDAY"
    US_AFTERNOON = "US_AFTERNOON"
    OVERNIGHT = "OVERNIGHT"

    @classmethod
    def parse(cls, value: Union[str, "Session", None]) -> Optional["Session"]:
        if value is None or isinstance(value, Session):
            return value
        key = str(value).strip().upper()
        return cls.__members__.get(key)


class VolatilityCategory(Enum):
    """Volatility classification, ordered LOW < MEDIUM < HIGH."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def level(self) -> int:
        return _VOL_LEVELS[self]

    @classmethod
    def parse(cls, value: Union[str, "VolatilityCategory", None]) -> Optional["VolatilityCategory"]:
        """Accept "HIGH", "high", "HIGH_VOLATILITY", "MED", "NORMAL"..."""
        if value is None or isinstance(value, VolatilityCategory):
            return value
        key = str(value).strip().upper().replace("_VOLATILITY", "")
        if key in ("MED", "NORMAL", "NORM", "REGULAR"):
            key = "MEDIUM"
        return cls.__members__.get(key)


_VOL_LEVELS = {
    VolatilityCategory.LOW: 0,
    VolatilityCategory.MEDIUM: 1,
    VolatilityCategory.HIGH: 2,
}


class MarketTrend(Enum):
    """Directional trend label."""
    STRONG_BULLISH = "strong_bullish"
    BULLISH = "bullish"
    NEUTRAL = "neutral"
    BEARISH = "bearish"
    STRONG_BEARISH = "strong_bearish"


class VolumeLevel(Enum):
    """Volume relative to its trailing average."""
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"

    @classmethod
    def parse(cls, value: Union[str, "VolumeLevel", None]) -> Optional["VolumeLevel"]:
        if value is None or isinstance(value, VolumeLevel):
            return value
        return cls.__members__.get(str(value).strip().upper())


class DayOfWeek(Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @classmethod
    def parse(cls, value: Union[str, "DayOfWeek", None]) -> Optional["DayOfWeek"]:
        if value is None or isinstance(value, DayOfWeek):
            return value
        return cls.__members__.get(str(value).strip().upper())


class DataQuality(Enum):
    """How much usable telemetry backed the volatility classification."""
    OK = "ok"
    PARTIAL = "partial"
    MISSING = "missing"


@dataclass(frozen=True)
class VolatilityTelemetry:
    """
    Raw telemetry from the market data provider.

    Attributes:
        atr: Current average true range
        atr_average: Trailing average of ATR
        volume: Current volume
        volume_average: Trailing average of volume
        close: Last price (optional, used for the trend label)
        close_average: Trailing average of price (optional)
    """
    atr: Optional[float] = None
    atr_average: Optional[float] = None
    volume: Optional[float] = None
    volume_average: Optional[float] = None
    close: Optional[float] = None
    close_average: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "VolatilityTelemetry":
        """Build from a provider payload using camelCase or snake_case keys."""
        def pick(*keys: str) -> Optional[float]:
            for key in keys:
                if key in data and data[key] is not None:
                    return _as_float(data[key])
            return None

        return cls(
            atr=pick("atr"),
            atr_average=pick("atrAverage", "atr_average"),
            volume=pick("volume"),
            volume_average=pick("volumeAverage", "volume_average"),
            close=pick("close", "price", "last"),
            close_average=pick("closeAverage", "close_average", "priceAverage"),
        )


@dataclass(frozen=True)
class MarketCondition:
    """
    Complete market condition snapshot for one recommendation request.

    Attributes:
        session: Trading session at `timestamp`
        volatility_category: LOW / MEDIUM / HIGH
        volatility_score: 0-10 score (5 = average conditions)
        trend: Directional trend label
        day_of_week: Day in the reference time zone
        timestamp: Instant the condition describes (tz-aware)
        volume: Volume label, None when volume telemetry was unusable
        data_quality: Telemetry quality behind the volatility classification
    """
    session: Session
    volatility_category: VolatilityCategory
    volatility_score: float
    trend: MarketTrend
    day_of_week: DayOfWeek
    timestamp: datetime
    volume: Optional[VolumeLevel] = None
    data_quality: DataQuality = DataQuality.OK

    def __post_init__(self) -> None:
        if self.volatility_score < 0:
            raise ValueError(f"volatility_score must be >= 0, got {self.volatility_score}")

    @classmethod
    def from_labels(
        cls,
        session: Union[str, Session],
        volatility_category: Union[str, VolatilityCategory],
        timestamp: Optional[datetime] = None,
        trend: Union[str, MarketTrend] = MarketTrend.NEUTRAL,
        day_of_week: Union[str, DayOfWeek, None] = None,
        volume: Union[str, VolumeLevel, None] = None,
        volatility_score: Optional[float] = None,
    ) -> "MarketCondition":
        """
        Build a condition from explicit labels (session override requests).

        Unknown session/volatility labels are programming errors and raise
        ValueError.
        """
        parsed_session = Session.parse(session)
        parsed_vol = VolatilityCategory.parse(volatility_category)
        if parsed_session is None:
            raise ValueError(f"Unknown session: {session!r}")
        if parsed_vol is None:
            raise ValueError(f"Unknown volatility category: {volatility_category!r}")

        ts = to_reference_time(timestamp if timestamp is not None else pd.Timestamp.now(tz="UTC"))
        if volatility_score is None:
            volatility_score = cfg.CATEGORY_VOL_SCORE[parsed_vol.value]

        return cls(
            session=parsed_session,
            volatility_category=parsed_vol,
            volatility_score=float(volatility_score),
            trend=trend if isinstance(trend, MarketTrend) else MarketTrend(str(trend).lower()),
            day_of_week=DayOfWeek.parse(day_of_week) or DayOfWeek(ts.day_name().upper()),
            timestamp=ts.to_pydatetime(),
            volume=VolumeLevel.parse(volume),
        )

    @property
    def time_of_day(self) -> str:
        """Backtest-store time-of-day bucket (Morning/Afternoon/Evening)."""
        return cfg.SESSION_TIME_OF_DAY.get(self.session.value, "Afternoon")

    @property
    def session_type(self) -> str:
        """Backtest-store session type derived from volatility."""
        return cfg.VOLATILITY_SESSION_TYPE.get(self.volatility_category.value, "Regular")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.value,
            "volatility_category": self.volatility_category.value,
            "volatility_score": self.volatility_score,
            "trend": self.trend.value,
            "day_of_week": self.day_of_week.value,
            "timestamp": self.timestamp.isoformat(),
            "volume": self.volume.value if self.volume else None,
            "data_quality": self.data_quality.value,
        }

    def __str__(self) -> str:
        return (
            f"MarketCondition(session={self.session.value}, vol={self.volatility_category.value}, "
            f"vol_score={self.volatility_score:.1f}, trend={self.trend.value}, "
            f"day={self.day_of_week.value}, quality={self.data_quality.value})"
        )


def _as_float(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def to_reference_time(clock_time: Union[datetime, pd.Timestamp, str], tz: str = cfg.REFERENCE_TIMEZONE) -> pd.Timestamp:
    """Normalize a clock reading into the reference time zone (naive = already reference)."""
    ts = pd.Timestamp(clock_time)
    if ts.tzinfo is None:
        return ts.tz_localize(tz)
    return ts.tz_convert(tz)


def _parse_hhmm(value: Union[str, time]) -> time:
    if isinstance(value, time):
        return value
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def in_time_range(t: time, start: time, end: time) -> bool:
    """Half-open membership; ranges with start > end wrap midnight."""
    if start > end:
        return t >= start or t < end
    return start <= t < end


def session_for_time(
    t: time,
    session_table: Sequence[Tuple[str, str, str]] = cfg.SESSION_TABLE,
    default: str = cfg.OFF_HOURS_SESSION,
) -> Session:
    """Look up the session containing time-of-day `t`."""
    for session_id, start, end in session_table:
        if in_time_range(t, _parse_hhmm(start), _parse_hhmm(end)):
            return Session(session_id)
    return Session(default)


def ratio_points(
    value: Optional[float],
    average: Optional[float],
    strong: float = cfg.VOL_RATIO_STRONG,
    mild: float = cfg.VOL_RATIO_MILD,
) -> Optional[int]:
    """
    Score a value against its trailing average.

    +2 above strong x average, +1 above mild x average, symmetric negative
    points below average. Returns None when there is no usable evidence
    (missing values or a non-positive average).
    """
    if value is None or average is None or average <= 0:
        return None
    ratio = value / average
    if ratio > strong:
        return 2
    if ratio > mild:
        return 1
    if ratio < 2.0 - strong:
        return -2
    if ratio < 2.0 - mild:
        return -1
    return 0


def classify_volatility(
    points: int,
    high_points: int = cfg.VOL_POINTS_HIGH,
    low_points: int = cfg.VOL_POINTS_LOW,
) -> VolatilityCategory:
    """Classify volatility category from summed ATR/volume points."""
    if points >= high_points:
        return VolatilityCategory.HIGH
    if points <= low_points:
        return VolatilityCategory.LOW
    return VolatilityCategory.MEDIUM


def classify_trend(
    close: Optional[float],
    close_average: Optional[float],
    weak_pct: float = cfg.TREND_WEAK_PCT,
    strong_pct: float = cfg.TREND_STRONG_PCT,
) -> MarketTrend:
    """Classify trend from last price vs. its trailing average."""
    if close is None or close_average is None or close_average <= 0:
        return MarketTrend.NEUTRAL
    change = (close - close_average) / close_average
    if change >= strong_pct:
        return MarketTrend.STRONG_BULLISH
    if change >= weak_pct:
        return MarketTrend.BULLISH
    if change <= -strong_pct:
        return MarketTrend.STRONG_BEARISH
    if change <= -weak_pct:
        return MarketTrend.BEARISH
    return MarketTrend.NEUTRAL


def classify_volume(
    volume: Optional[float],
    volume_average: Optional[float],
    low_ratio: float = cfg.VOLUME_LOW_RATIO,
    high_ratio: float = cfg.VOLUME_HIGH_RATIO,
) -> Optional[VolumeLevel]:
    if volume is None or volume_average is None or volume_average <= 0:
        return None
    ratio = volume / volume_average
    if ratio > high_ratio:
        return VolumeLevel.HIGH
    if ratio < low_ratio:
        return VolumeLevel.LOW
    return VolumeLevel.NORMAL


@dataclass(frozen=True)
class MarketConditionClassifier:
    """
    Pure classifier: clock time + telemetry -> MarketCondition.

    Holds only static configuration (session table, thresholds); nothing is
    mutated between calls.
    """

    session_table: Tuple[Tuple[str, str, str], ...] = cfg.SESSION_TABLE
    off_hours_session: str = cfg.OFF_HOURS_SESSION
    timezone: str = cfg.REFERENCE_TIMEZONE
    ratio_strong: float = cfg.VOL_RATIO_STRONG
    ratio_mild: float = cfg.VOL_RATIO_MILD
    high_points: int = cfg.VOL_POINTS_HIGH
    low_points: int = cfg.VOL_POINTS_LOW
    score_center: float = cfg.VOL_SCORE_CENTER
    score_max: float = cfg.VOL_SCORE_MAX

    @classmethod
    def from_config(cls) -> "MarketConditionClassifier":
        """Create a classifier using configuration parameters."""
        return cls(
            session_table=tuple(getattr(cfg, "SESSION_TABLE", cls.session_table)),
            off_hours_session=getattr(cfg, "OFF_HOURS_SESSION", "OVERNIGHT"),
            timezone=getattr(cfg, "REFERENCE_TIMEZONE", "UTC"),
            ratio_strong=getattr(cfg, "VOL_RATIO_STRONG", 1.5),
            ratio_mild=getattr(cfg, "VOL_RATIO_MILD", 1.1),
            high_points=getattr(cfg, "VOL_POINTS_HIGH", 2),
            low_points=getattr(cfg, "VOL_POINTS_LOW", -2),
            score_center=getattr(cfg, "VOL_SCORE_CENTER", 5.0),
            score_max=getattr(cfg, "VOL_SCORE_MAX", 10.0),
        )

    def classify(
        self,
        clock_time: Union[datetime, pd.Timestamp, str],
        telemetry: Union[VolatilityTelemetry, Mapping[str, Any], None],
    ) -> MarketCondition:
        """
        Classify current market state.

        Parameters
        ----------
        clock_time : datetime-like
            Current instant. Naive values are taken to be in the reference zone.
        telemetry : VolatilityTelemetry, mapping or None
            Latest provider payload; None means the provider returned nothing.

        Returns
        -------
        MarketCondition
        """
        ts = to_reference_time(clock_time, self.timezone)
        session = session_for_time(ts.time(), self.session_table, self.off_hours_session)

        if telemetry is not None and not isinstance(telemetry, VolatilityTelemetry):
            telemetry = VolatilityTelemetry.from_mapping(telemetry)
        if telemetry is None:
            telemetry = VolatilityTelemetry()

        atr_pts = ratio_points(telemetry.atr, telemetry.atr_average, self.ratio_strong, self.ratio_mild)
        vol_pts = ratio_points(telemetry.volume, telemetry.volume_average, self.ratio_strong, self.ratio_mild)
        available = [p for p in (atr_pts, vol_pts) if p is not None]

        if not available:
            quality = DataQuality.MISSING
            category = VolatilityCategory.MEDIUM
            score = self.score_center
            logger.warning("No usable volatility telemetry, defaulting to MEDIUM volatility")
        else:
            quality = DataQuality.OK if len(available) == 2 else DataQuality.PARTIAL
            points = sum(available)
            category = classify_volatility(points, self.high_points, self.low_points)
            score = min(max(self.score_center + points, 0.0), self.score_max)

        condition = MarketCondition(
            session=session,
            volatility_category=category,
            volatility_score=float(score),
            trend=classify_trend(telemetry.close, telemetry.close_average),
            day_of_week=DayOfWeek(ts.day_name().upper()),
            timestamp=ts.to_pydatetime(),
            volume=classify_volume(telemetry.volume, telemetry.volume_average),
            data_quality=quality,
        )
        logger.info("Classified: %s", condition)
        return condition


def classify(
    clock_time: Union[datetime, pd.Timestamp, str],
    telemetry: Union[VolatilityTelemetry, Mapping[str, Any], None],
) -> MarketCondition:
    """Convenience wrapper around the config-driven classifier."""
    return MarketConditionClassifier.from_config().classify(clock_time, telemetry)
