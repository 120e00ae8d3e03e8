"""Stored rows for each entity.

The full record lives in ``payload`` (its JSON form); the remaining columns
are copies of the fields searches filter and sort on.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from coffee_export.db.base import Base, SoftDeleteMixin, TimestampMixin, VersionMixin


class RecordRowMixin(TimestampMixin, VersionMixin, SoftDeleteMixin):
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    # lower-cased concatenation of the human-searchable fields
    search_text: Mapped[str] = mapped_column(Text, default="", nullable=False)


class CoffeeProductRow(Base, RecordRowMixin):
    """A catalog coffee lot."""

    __tablename__ = "coffee_products"

    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # ACTIVE / INACTIVE
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # coffee type
    grade: Mapped[str] = mapped_column(String(20), nullable=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    base_price: Mapped[float] = mapped_column(Float, nullable=False)
    sort_order: Mapped[int] = mapped_column(default=0, nullable=False)


class BusinessServiceRow(Base, RecordRowMixin):
    """A catalog service offering."""

    __tablename__ = "business_services"

    service_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(40), nullable=False, index=True)  # service type
    category: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    sort_order: Mapped[int] = mapped_column(default=0, nullable=False)


class ClientCompanyRow(Base, RecordRowMixin):
    """A buyer account."""

    __tablename__ = "client_companies"

    company_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # company type
    relationship_status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    risk_level: Mapped[str] = mapped_column(String(10), nullable=False)
    next_follow_up_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class RFQRow(Base, RecordRowMixin):
    """An inbound request for quote."""

    __tablename__ = "rfqs"

    rfq_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # coffee type requested
    priority: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    client_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)


class OrderRow(Base, RecordRowMixin):
    """An export order."""

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # order type
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    client_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    rfq_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    requested_delivery_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
