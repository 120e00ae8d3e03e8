"""SQLAlchemy models."""

from coffee_export.models.records import (
    BusinessServiceRow,
    ClientCompanyRow,
    CoffeeProductRow,
    OrderRow,
    RFQRow,
)

__all__ = [
    "BusinessServiceRow",
    "ClientCompanyRow",
    "CoffeeProductRow",
    "OrderRow",
    "RFQRow",
]
