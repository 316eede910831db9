"""
template_advisor/adaptive/similarity.py

Template / backtest similarity scoring against the current market condition.

A template name such as "NQ_EA_HIGH" carries the conditions it was tuned
for. Names are split into tokens and matched against session and volatility
code dictionaries to build an InferredCondition. The same scorer is reused
against the market snapshot stored with each backtest record.

Score composition (weights from config_adaptive):
    session     40  exact, or half if both fall in the same morning/afternoon bucket
    volatility  40  exact, or half for adjacent levels
    day of week 10  exact only
    volume      10  exact only

Only factors where both sides have data count toward the available weight.
Below 50 available weight the scorer returns a flat 20 instead of
extrapolating from sparse evidence.

Example usage:
    inferred = infer_from_name("NQ_EA_HIGH")
    similarity_score(condition, inferred)   # 0..100
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from template_advisor.adaptive import config_adaptive as cfg
from template_advisor.adaptive.market_regime import DayOfWeek, MarketCondition, Session, VolatilityCategory, VolumeLevel

logger = logging.getLogger("advisor.similarity")


@dataclass(frozen=True)
class InferredCondition:
    """
    Conditions a template (or backtest) was built for.

    A None field means "no evidence", never "matches anything".
    """
    session: Optional[Session] = None
    volatility: Optional[VolatilityCategory] = None
    day_of_week: Optional[DayOfWeek] = None
    volume: Optional[VolumeLevel] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "InferredCondition":
        """Build from a stored snapshot dict (camelCase or snake_case keys)."""
        if not isinstance(data, Mapping) or not data:
            if data:
                logger.warning("Ignoring malformed condition snapshot %r", data)
            return cls()

        def pick(*keys: str) -> Any:
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        return cls(
            session=Session.parse(pick("session")),
            volatility=VolatilityCategory.parse(
                pick("volatility_category", "volatilityCategory", "volatility")
            ),
            day_of_week=DayOfWeek.parse(pick("day_of_week", "dayOfWeek")),
            volume=VolumeLevel.parse(pick("volume", "volumeLevel", "volume_level")),
        )

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "session": self.session.value if self.session else None,
            "volatility": self.volatility.value if self.volatility else None,
            "day_of_week": self.day_of_week.value if self.day_of_week else None,
            "volume": self.volume.value if self.volume else None,
        }


def infer_from_name(
    name: Optional[str],
    session_codes: Mapping[str, str] = cfg.SESSION_CODES,
    volatility_codes: Mapping[str, str] = cfg.VOLATILITY_CODES,
) -> InferredCondition:
    """Extract session and volatility evidence from a template name."""
    if not name:
        return InferredCondition()

    session = None
    volatility = None
    for token in re.split(cfg.TEMPLATE_NAME_DELIMITERS, name.upper()):
        if session is None and token in session_codes:
            session = Session(session_codes[token])
        elif volatility is None and token in volatility_codes:
            volatility = VolatilityCategory(volatility_codes[token])

    return InferredCondition(session=session, volatility=volatility)


def infer_from_template(template: Any) -> InferredCondition:
    """Explicit session/volatility metadata on the template wins over name tokens."""
    from_name = infer_from_name(getattr(template, "name", None))
    session = Session.parse(getattr(template, "session", None)) or from_name.session
    volatility = VolatilityCategory.parse(getattr(template, "volatility", None)) or from_name.volatility
    return InferredCondition(session=session, volatility=volatility)


def inferred_from_condition(condition: MarketCondition) -> InferredCondition:
    return InferredCondition(
        session=condition.session,
        volatility=condition.volatility_category,
        day_of_week=condition.day_of_week,
        volume=condition.volume,
    )


def _session_bucket(session: Session) -> Optional[str]:
    if session.value in cfg.MORNING_SESSIONS:
        return "morning"
    if session.value in cfg.AFTERNOON_SESSIONS:
        return "afternoon"
    return None


def similarity_score(
    current: MarketCondition,
    inferred: InferredCondition,
    session_weight: float = cfg.SIMILARITY_SESSION_WEIGHT,
    volatility_weight: float = cfg.SIMILARITY_VOLATILITY_WEIGHT,
    day_weight: float = cfg.SIMILARITY_DAY_WEIGHT,
    volume_weight: float = cfg.SIMILARITY_VOLUME_WEIGHT,
    min_available: float = cfg.SIMILARITY_MIN_AVAILABLE_WEIGHT,
    sparse_score: int = cfg.SIMILARITY_SPARSE_SCORE,
) -> int:
    """
    Score how well `inferred` matches `current`.

    Returns:
        Integer in [0, 100]
    """
    earned = 0.0
    available = 0.0

    if inferred.session is not None:
        available += session_weight
        if inferred.session == current.session:
            earned += session_weight
        else:
            bucket = _session_bucket(current.session)
            if bucket is not None and bucket == _session_bucket(inferred.session):
                earned += session_weight / 2

    if inferred.volatility is not None:
        available += volatility_weight
        distance = abs(inferred.volatility.level - current.volatility_category.level)
        if distance == 0:
            earned += volatility_weight
        elif distance == 1:
            earned += volatility_weight / 2

    if inferred.day_of_week is not None:
        available += day_weight
        if inferred.day_of_week == current.day_of_week:
            earned += day_weight

    if inferred.volume is not None and current.volume is not None:
        available += volume_weight
        if inferred.volume == current.volume:
            earned += volume_weight

    if available < min_available:
        logger.debug("Sparse evidence (available weight %.0f), flat score %d", available, sparse_score)
        return sparse_score

    score = int(math.floor(earned / available * 100 + 0.5))
    return max(0, min(100, score))
