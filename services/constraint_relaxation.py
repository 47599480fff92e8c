# services/constraint_relaxation.py
"""
Slot constraint relaxation.

Pure data transformation: returns a widened copy of a SlotPlan and never
mutates its input, so passes compose (relax(relax(x)) is wider still).
"""
import math
from typing import Iterable, List, Optional

from contracts.models import SlotPlan

import config


def _union(base: Iterable[str], extra: Iterable[str]) -> List[str]:
    """Order-preserving, case-insensitive union"""
    out = []
    seen = set()
    for value in list(base) + list(extra):
        key = value.strip().lower()
        if key and key not in seen:
            seen.add(key)
            out.append(value.strip())
    return out


def widen_price_band(min_price: float, max_price: float, factor: float):
    """floor/ceil keep the band from ever narrowing after rounding"""
    # round() first so float noise (160 * 1.1 == 176.00000000000003) cannot add a unit
    low = max(0.0, float(math.floor(round(min_price * (1 - factor), 6))))
    high = float(math.ceil(round(max_price * (1 + factor), 6)))
    return min(low, min_price), max(high, max_price)


def relax_slot_plan(
    slot_plan: SlotPlan,
    factor: Optional[float] = None,
    neutral_colors: Optional[List[str]] = None,
    generic_keywords: Optional[List[str]] = None
) -> SlotPlan:
    """
    Widened copy of *slot_plan*:
    - price band +/- factor
    - allowed colours plus safe neutrals
    - keywords plus the slot's category, slot name and generic descriptors
    """
    factor = config.RELAXATION_PRICE_FACTOR if factor is None else factor
    neutrals = config.SAFE_NEUTRAL_COLORS if neutral_colors is None else neutral_colors
    generic = config.GENERIC_RELAXATION_KEYWORDS if generic_keywords is None else generic_keywords

    low, high = widen_price_band(slot_plan.min_price, slot_plan.max_price, factor)
    return slot_plan.model_copy(update={
        "min_price": low,
        "max_price": high,
        "allowed_colors": _union(slot_plan.allowed_colors, neutrals),
        "keywords": _union(slot_plan.keywords, [slot_plan.category, slot_plan.slot, *generic]),
    })
