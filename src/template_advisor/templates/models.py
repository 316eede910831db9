"""
template_advisor/templates/models.py

Template types for the two strategy families.

BRACKET ("ATM") templates hold stop/target/break-even distances in ticks.
FILTER ("Flazh") templates hold three period/range pairs and a filter
multiplier. Both are immutable; adjustment always builds a new instance.

Numeric fields are optional so partial templates from the store survive
parsing. Missing or non-positive fields are left for the adjuster to skip.

Example usage:
    kind = TemplateKind.parse("ATM")
    template = template_from_dict(kind, store_doc)
    fallback = fallback_template(kind, VolatilityCategory.HIGH)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Union

from template_advisor.adaptive import config_adaptive as cfg
from template_advisor.adaptive.market_regime import VolatilityCategory

Number = Union[int, float]


class TemplateKind(Enum):
    BRACKET = "ATM"
    FILTER = "Flazh"

    @classmethod
    def parse(cls, value: Union[str, "TemplateKind"]) -> "TemplateKind":
        if isinstance(value, TemplateKind):
            return value
        key = str(value).strip().upper()
        for kind in cls:
            if key in (kind.name, kind.value.upper()):
                return kind
        raise ValueError(f"Unknown template kind: {value!r}")


@dataclass(frozen=True)
class BracketTemplate:
    """Stop/target bracket with break-even management (ticks)."""
    kind: ClassVar[TemplateKind] = TemplateKind.BRACKET
    numeric_fields: ClassVar[Tuple[str, ...]] = (
        "stop_loss", "target", "break_even_trigger", "break_even_plus",
    )

    name: str
    stop_loss: Optional[Number] = None
    target: Optional[Number] = None
    break_even_trigger: Optional[Number] = None
    break_even_plus: Optional[Number] = None
    session: Optional[str] = None
    volatility: Optional[str] = None
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)


@dataclass(frozen=True)
class FilterTemplate:
    """Multi-period trend filter."""
    kind: ClassVar[TemplateKind] = TemplateKind.FILTER
    numeric_fields: ClassVar[Tuple[str, ...]] = (
        "fast_period", "fast_range", "medium_period", "medium_range",
        "slow_period", "slow_range", "filter_multiplier",
    )

    name: str
    fast_period: Optional[Number] = None
    fast_range: Optional[Number] = None
    medium_period: Optional[Number] = None
    medium_range: Optional[Number] = None
    slow_period: Optional[Number] = None
    slow_range: Optional[Number] = None
    filter_multiplier: Optional[Number] = None
    session: Optional[str] = None
    volatility: Optional[str] = None
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)


Template = Union[BracketTemplate, FilterTemplate]

TEMPLATE_CLASSES = {
    TemplateKind.BRACKET: BracketTemplate,
    TemplateKind.FILTER: FilterTemplate,
}


def _to_dict(template: Template) -> Dict[str, Any]:
    data = {"kind": template.kind.value}
    data.update({f.name: getattr(template, f.name) for f in fields(template)})
    return data


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.capitalize() for p in rest)


def _number(value: Any) -> Optional[Number]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return int(result) if result.is_integer() else result


def _bracket_values(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten the nested `brackets[0]` store shape."""
    brackets = data.get("brackets")
    if not isinstance(brackets, (list, tuple)) or not brackets or not isinstance(brackets[0], Mapping):
        return {}
    first = brackets[0]
    strategy = first.get("stopStrategy") or first.get("stop_strategy")
    if not isinstance(strategy, Mapping):
        strategy = {}
    return {
        "stop_loss": first.get("stopLoss", first.get("stop_loss")),
        "target": first.get("target"),
        "break_even_trigger": strategy.get("autoBreakEvenProfitTrigger"),
        "break_even_plus": strategy.get("autoBreakEvenPlus"),
    }


def template_from_dict(kind: Union[str, TemplateKind], data: Mapping[str, Any]) -> Template:
    """
    Parse a template-store document.

    Accepts snake_case and camelCase keys, and for BRACKET templates the
    nested `brackets[0].stopStrategy` shape. Unknown keys are ignored.
    """
    kind = TemplateKind.parse(kind)
    cls = TEMPLATE_CLASSES[kind]
    nested = _bracket_values(data) if kind is TemplateKind.BRACKET else {}

    values: Dict[str, Any] = {}
    for name in cls.numeric_fields:
        raw = data.get(name, data.get(_camel(name)))
        if raw is None:
            raw = nested.get(name)
        values[name] = _number(raw)

    return cls(
        name=str(data.get("name") or f"{kind.value}_UNNAMED"),
        session=data.get("session"),
        volatility=data.get("volatility") or data.get("volatilityCategory"),
        is_fallback=bool(data.get("isFallback", data.get("is_fallback", False))),
        **values,
    )


def fallback_template(
    kind: Union[str, TemplateKind],
    volatility: Union[str, VolatilityCategory, None] = VolatilityCategory.MEDIUM,
) -> Template:
    """Minimal safe template for when the store has no candidates."""
    kind = TemplateKind.parse(kind)
    category = VolatilityCategory.parse(volatility) or VolatilityCategory.MEDIUM
    table = cfg.FALLBACK_BRACKET if kind is TemplateKind.BRACKET else cfg.FALLBACK_FILTER
    return TEMPLATE_CLASSES[kind](
        name=f"{kind.value}_FALLBACK_{category.value}",
        volatility=category.value,
        is_fallback=True,
        **table[category.value],
    )
