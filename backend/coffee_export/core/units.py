"""Quantity unit conversions.

Metric tons are the canonical unit for cross-entity quantity comparisons.
Bags follow the 60 kg green-coffee convention.
"""

from enum import Enum
from typing import Union

KG_PER_MT = 1000.0
LB_PER_MT = 2204.62
KG_PER_BAG = 60.0


class QuantityUnit(str, Enum):
    """Unit of an RFQ quantity or an order line."""

    MT = "MT"
    KG = "KG"
    LB = "LB"
    BAGS = "BAGS"


# Convert TO metric tons
MT_CONVERSIONS = {
    "MT": lambda q: q,
    "KG": lambda q: q / KG_PER_MT,
    "LB": lambda q: q / LB_PER_MT,
    "BAGS": lambda q: q * KG_PER_BAG / KG_PER_MT,
    "BAG": lambda q: q * KG_PER_BAG / KG_PER_MT,  # catalog pricing unit spelling
}


def to_metric_tons(quantity: float, unit: Union[str, Enum]) -> float:
    """Convert ``quantity`` expressed in ``unit`` to metric tons.

    Unknown units are treated as already being metric tons.
    """
    key = unit.value if isinstance(unit, Enum) else str(unit)
    convert = MT_CONVERSIONS.get(key.upper())
    if convert is None:
        return quantity
    return convert(quantity)
