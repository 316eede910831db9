"""
template_advisor/templates/parameter_adjuster.py

Apply adjustment multipliers to a template's numeric fields.

Field mapping by kind:
    BRACKET  stop_loss x stop_loss, target x target,
             break_even_trigger / break_even_plus x trailing_stop
    FILTER   filter_multiplier x stop_loss (volatility proxy)
             HIGH volatility: widen ranges x1.2 / 1.15 / 1.1 (never narrower)
             LOW volatility: lengthen periods x1.1 / 1.05 / 1.05 (never shorter)

Every adjusted field is rounded to integer ticks and clamped to
[0.7, 1.5] x its original value. Missing or non-positive fields are skipped.
The input template is never modified.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Dict, Optional, Tuple, Union

from template_advisor.adaptive import config_adaptive as cfg
from template_advisor.adaptive.market_regime import VolatilityCategory
from template_advisor.adaptive.regime_parameters import AdjustmentFactors
from template_advisor.templates.models import (
    BracketTemplate,
    FilterTemplate,
    Number,
    Template,
    TemplateKind,
)

logger = logging.getLogger("advisor.parameter_adjuster")

# template field -> AdjustmentFactors attribute
FIELD_MAP: Dict[TemplateKind, Dict[str, str]] = {
    TemplateKind.BRACKET: {
        "stop_loss": "stop_loss",
        "target": "target",
        "break_even_trigger": "trailing_stop",
        "break_even_plus": "trailing_stop",
    },
    TemplateKind.FILTER: {
        "filter_multiplier": "stop_loss",
    },
}

# FILTER-only monotonic widening by volatility category
FILTER_WIDENING: Dict[VolatilityCategory, Dict[str, float]] = {
    VolatilityCategory.HIGH: {"fast_range": 1.2, "medium_range": 1.15, "slow_range": 1.1},
    VolatilityCategory.LOW: {"fast_period": 1.1, "medium_period": 1.05, "slow_period": 1.05},
}

_EPS = 1e-9


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def field_bounds(original: Number, bounds: Tuple[float, float] = cfg.MULTIPLIER_BOUNDS) -> Tuple[float, float]:
    """Allowed range for an adjusted field, in the field's native resolution."""
    lo, hi = bounds
    if isinstance(original, int):
        low = max(math.ceil(original * lo - _EPS), 1)
        high = max(math.floor(original * hi + _EPS), low)
        return low, high
    return original * lo, original * hi


def _finalize(original: Number, value: float, bounds: Tuple[float, float]) -> Number:
    low, high = field_bounds(original, bounds)
    if isinstance(original, int):
        return int(min(max(_round_half_up(value), low), high))
    return min(max(round(value, 4), low), high)


def _is_valid(name: str, value: Optional[Number], template_name: str) -> bool:
    if value is None:
        logger.warning("Template %s has no %s, skipping adjustment", template_name, name)
        return False
    if value <= 0:
        logger.warning("Template %s has non-positive %s=%s, skipping adjustment", template_name, name, value)
        return False
    return True


def apply(
    template: Template,
    factors: AdjustmentFactors,
    volatility: Union[VolatilityCategory, str, None] = None,
    bounds: Tuple[float, float] = cfg.MULTIPLIER_BOUNDS,
) -> Template:
    """
    Return a new template with `factors` applied.

    Parameters
    ----------
    template : BracketTemplate or FilterTemplate
    factors : AdjustmentFactors
    volatility : VolatilityCategory, optional
        Enables FILTER range/period widening under HIGH/LOW volatility.
    bounds : (float, float)
        Per-field clamp relative to the original value.

    Raises
    ------
    TypeError
        If `template` is not a known template type.
    """
    if not isinstance(template, (BracketTemplate, FilterTemplate)):
        raise TypeError(f"Cannot adjust object of type {type(template).__name__}")

    updates: Dict[str, Number] = {}
    for field_name, factor_name in FIELD_MAP[template.kind].items():
        original = getattr(template, field_name)
        if not _is_valid(field_name, original, template.name):
            continue
        updates[field_name] = _finalize(original, original * getattr(factors, factor_name), bounds)

    category = VolatilityCategory.parse(volatility)
    if template.kind is TemplateKind.FILTER and category in FILTER_WIDENING:
        for field_name, mult in FILTER_WIDENING[category].items():
            original = getattr(template, field_name)
            if not _is_valid(field_name, original, template.name):
                continue
            widened = max(original, _round_half_up(original * mult)) if isinstance(original, int) else original * mult
            updates[field_name] = _finalize(original, widened, bounds)

    logger.debug("Adjusted %s: %s", template.name, updates)
    return replace(template, **updates)
