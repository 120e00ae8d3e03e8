"""Pricing rules shared by catalog products and business services."""

import math
from typing import Iterable, Mapping, Optional, Protocol, TypeVar

from coffee_export.core.config import DEFAULT_INCOTERM_ADJUSTMENTS


class _Tier(Protocol):
    threshold: float
    discount_percentage: float


T = TypeVar("T", bound=_Tier)

RUSH_SPEEDUP_FACTOR = 0.5


def select_discount_tier(tiers: Optional[Iterable[T]], quantity: float) -> Optional[T]:
    """Return the tier with the largest threshold not exceeding ``quantity``."""
    if not tiers:
        return None
    eligible = [tier for tier in tiers if quantity >= tier.threshold]
    if not eligible:
        return None
    return max(eligible, key=lambda tier: tier.threshold)


def apply_discount(amount: float, discount_percentage: float) -> float:
    return amount * (1 - discount_percentage / 100)


def incoterm_factor(
    incoterm: Optional[str],
    default_incoterm: str,
    adjustments: Optional[Mapping[str, float]] = None,
) -> float:
    """Multiplier for quoting under ``incoterm`` instead of the record default.

    Same or missing incoterm gives 1.0; incoterms absent from the table give 1.0.
    """
    incoterm = getattr(incoterm, "value", incoterm)
    default_incoterm = getattr(default_incoterm, "value", default_incoterm)
    if not incoterm or incoterm == default_incoterm:
        return 1.0
    table = adjustments if adjustments is not None else DEFAULT_INCOTERM_ADJUSTMENTS
    return table.get(incoterm, 1.0)


def rush_days(days: int) -> int:
    return math.ceil(days * RUSH_SPEEDUP_FACTOR)
