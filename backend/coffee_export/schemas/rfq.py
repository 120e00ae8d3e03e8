"""Request-for-quote record and its lifecycle.

Status flow::

    PENDING -> IN_REVIEW -> QUOTED -> NEGOTIATING -> ACCEPTED | REJECTED
                                  ^______________|   (revised quote)

Any active RFQ may also be REJECTED or EXPIRED. ``update_status`` itself is
permissive; ``can_transition_to`` exposes the table and the workflow service
refuses moves outside it.
"""

from __future__ import annotations

import math
from datetime import timedelta
from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Optional

from pydantic import EmailStr, Field, model_validator

from coffee_export.core.clock import Clock, IdGenerator, resolve_clock, resolve_ids
from coffee_export.core.exceptions import EntityValidationError
from coffee_export.core.config import DEFAULT_COFFEE_TYPE_PRICES, DEFAULT_FALLBACK_PRICE_PER_MT
from coffee_export.core.units import QuantityUnit, to_metric_tons
from coffee_export.schemas.base import (
    Address,
    CoffeeType,
    Currency,
    EntityRecord,
    Incoterm,
    PackagingType,
    PaymentMethod,
    RecordId,
    RecurringFrequency,
    Timestamp,
    ValueModel,
)
from coffee_export.schemas.client_company import CompanySize, CompanyType
from coffee_export.schemas.coffee_product import Certification


class RFQStatus(str, Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    QUOTED = "QUOTED"
    NEGOTIATING = "NEGOTIATING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class RFQPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class RFQDocumentType(str, Enum):
    COMPANY_PROFILE = "COMPANY_PROFILE"
    BUSINESS_LICENSE = "BUSINESS_LICENSE"
    IMPORT_LICENSE = "IMPORT_LICENSE"
    SPECIFICATION_SHEET = "SPECIFICATION_SHEET"
    OTHER = "OTHER"


class CommunicationType(str, Enum):
    NOTE = "NOTE"
    EMAIL = "EMAIL"
    PHONE_CALL = "PHONE_CALL"
    MEETING = "MEETING"
    QUOTE_SENT = "QUOTE_SENT"
    SAMPLE_SENT = "SAMPLE_SENT"


TERMINAL_STATUSES: FrozenSet[RFQStatus] = frozenset(
    {RFQStatus.ACCEPTED, RFQStatus.REJECTED, RFQStatus.EXPIRED}
)
INACTIVE_STATUSES: FrozenSet[RFQStatus] = frozenset({RFQStatus.EXPIRED, RFQStatus.REJECTED})
QUOTABLE_STATUSES: FrozenSet[RFQStatus] = frozenset({RFQStatus.PENDING, RFQStatus.IN_REVIEW})

ALLOWED_TRANSITIONS: Dict[RFQStatus, FrozenSet[RFQStatus]] = {
    RFQStatus.PENDING: frozenset({RFQStatus.IN_REVIEW, RFQStatus.REJECTED, RFQStatus.EXPIRED}),
    RFQStatus.IN_REVIEW: frozenset({RFQStatus.QUOTED, RFQStatus.REJECTED, RFQStatus.EXPIRED}),
    RFQStatus.QUOTED: frozenset(
        {RFQStatus.NEGOTIATING, RFQStatus.ACCEPTED, RFQStatus.REJECTED, RFQStatus.EXPIRED}
    ),
    RFQStatus.NEGOTIATING: frozenset(
        {RFQStatus.QUOTED, RFQStatus.ACCEPTED, RFQStatus.REJECTED, RFQStatus.EXPIRED}
    ),
    RFQStatus.ACCEPTED: frozenset(),
    RFQStatus.REJECTED: frozenset(),
    RFQStatus.EXPIRED: frozenset(),
}

FREQUENCY_MULTIPLIERS = {
    RecurringFrequency.MONTHLY: 12,
    RecurringFrequency.QUARTERLY: 4,
    RecurringFrequency.SEMI_ANNUAL: 2,
    RecurringFrequency.ANNUAL: 1,
}


class ProductRequirements(ValueModel):
    coffee_type: CoffeeType
    grade: Optional[str] = None
    processing_method: Optional[str] = None
    screen_size: Optional[str] = None
    moisture_max: Optional[float] = Field(default=None, ge=0, le=20)
    defect_rate_max: Optional[float] = Field(default=None, ge=0, le=100)
    cupping_score_min: Optional[float] = Field(default=None, ge=0, le=100)
    certifications: Optional[List[Certification]] = None
    origin: Optional[str] = None
    harvest_year: Optional[str] = None


class QuantityRequirements(ValueModel):
    quantity: float = Field(gt=0)
    unit: QuantityUnit
    tolerance: Optional[float] = Field(default=None, ge=0, le=100)  # percent
    is_recurring_order: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    contract_duration: Optional[int] = Field(default=None, gt=0)  # months


class DeliveryRequirements(ValueModel):
    incoterms: Incoterm
    destination_port: str
    destination_country: str
    destination_city: Optional[str] = None
    preferred_delivery_date: Timestamp
    latest_delivery_date: Timestamp
    packaging: PackagingType
    custom_packaging_specs: Optional[str] = None
    shipping_instructions: Optional[str] = None

    @model_validator(mode="after")
    def check_delivery_window(self) -> "DeliveryRequirements":
        if self.preferred_delivery_date > self.latest_delivery_date:
            raise ValueError("preferred_delivery_date must not be after latest_delivery_date")
        return self


class BudgetRange(ValueModel):
    min: Optional[float] = Field(default=None, gt=0)
    max: Optional[float] = Field(default=None, gt=0)


class RFQPaymentTerms(ValueModel):
    preferred_currency: Currency
    payment_method: PaymentMethod
    payment_terms: str  # e.g. "30% advance, 70% against shipping documents"
    credit_period: Optional[int] = Field(default=None, ge=0)  # days
    budget_range: Optional[BudgetRange] = None


class CompanyInfo(ValueModel):
    """Buyer details as submitted, before any client account exists."""

    company_name: str = Field(min_length=1)
    contact_person: str = Field(min_length=1)
    position: Optional[str] = None
    email: EmailStr
    phone: str = Field(min_length=1)
    website: Optional[str] = None
    address: Address
    business_type: CompanyType
    company_size: Optional[CompanySize] = None
    annual_volume: Optional[str] = None  # e.g. "100-500 MT"
    tax_id: Optional[str] = None


class RFQDocument(ValueModel):
    id: RecordId
    type: RFQDocumentType
    file_name: str
    file_url: str
    file_size: int = Field(gt=0)
    uploaded_at: Timestamp


class RFQCommunication(ValueModel):
    id: RecordId
    type: CommunicationType
    subject: Optional[str] = None
    content: str
    is_internal: bool = False
    created_by: RecordId
    created_at: Timestamp


class RFQ(EntityRecord):
    entity_name = "rfq"
    owned_fields = frozenset({"status", "assigned_to", "quote_sent_at", "quote_valid_until", "communications"})

    rfq_number: str = Field(min_length=1)
    status: RFQStatus = RFQStatus.PENDING
    priority: RFQPriority = RFQPriority.MEDIUM

    product_requirements: ProductRequirements
    quantity_requirements: QuantityRequirements
    delivery_requirements: DeliveryRequirements
    payment_terms: RFQPaymentTerms
    company_info: CompanyInfo

    client_id: Optional[RecordId] = None
    additional_requirements: Optional[str] = None
    sample_required: bool = False
    urgency_reason: Optional[str] = None

    assigned_to: Optional[RecordId] = None
    estimated_value: Optional[float] = Field(default=None, gt=0)
    probability: Optional[float] = Field(default=None, ge=0, le=100)

    documents: List[RFQDocument] = Field(default_factory=list)
    communications: List[RFQCommunication] = Field(default_factory=list)

    quote_sent_at: Optional[Timestamp] = None
    quote_valid_until: Optional[Timestamp] = None
    follow_up_date: Optional[Timestamp] = None

    submitted_at: Timestamp
    last_activity_at: Timestamp
    expires_at: Optional[Timestamp] = None

    @model_validator(mode="after")
    def check_activity_order(self) -> "RFQ":
        if self.submitted_at > self.last_activity_at:
            raise ValueError("submitted_at must not be after last_activity_at")
        return self

    # Predicates

    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, clock: Optional[Clock] = None) -> bool:
        if self.expires_at is None:
            return False
        return resolve_clock(clock).now() > self.expires_at

    def can_be_quoted(self, clock: Optional[Clock] = None) -> bool:
        return self.is_active() and not self.is_expired(clock) and self.status in QUOTABLE_STATUSES

    def can_transition_to(self, status: RFQStatus) -> bool:
        return RFQStatus(status) in ALLOWED_TRANSITIONS[self.status]

    def requires_urgent_attention(self, clock: Optional[Clock] = None) -> bool:
        if self.priority == RFQPriority.URGENT:
            return True
        return self.follow_up_date is not None and resolve_clock(clock).now() >= self.follow_up_date

    def is_recurring_business(self) -> bool:
        return self.quantity_requirements.is_recurring_order

    # Derived values

    def get_quantity_in_mt(self) -> float:
        qty = self.quantity_requirements
        return to_metric_tons(qty.quantity, qty.unit)

    def calculate_estimated_value(
        self,
        prices_per_mt: Optional[Mapping[str, float]] = None,
        fallback_price_per_mt: Optional[float] = None,
    ) -> float:
        """Best available deal value: explicit estimate, then budget, then list price x volume."""
        if self.estimated_value is not None:
            return self.estimated_value
        budget = self.payment_terms.budget_range
        if budget is not None:
            if budget.max is not None:
                return budget.max
            if budget.min is not None:
                return budget.min

        table = prices_per_mt if prices_per_mt is not None else DEFAULT_COFFEE_TYPE_PRICES
        fallback = fallback_price_per_mt if fallback_price_per_mt is not None else DEFAULT_FALLBACK_PRICE_PER_MT
        price = table.get(self.product_requirements.coffee_type.value, fallback)
        return self.get_quantity_in_mt() * price

    def get_annual_volume_potential(self) -> Optional[float]:
        qty = self.quantity_requirements
        if not qty.is_recurring_order or qty.recurring_frequency is None:
            return None
        return qty.quantity * FREQUENCY_MULTIPLIERS[qty.recurring_frequency]

    def get_days_until_delivery(self, clock: Optional[Clock] = None) -> int:
        delta = self.delivery_requirements.preferred_delivery_date - resolve_clock(clock).now()
        return math.ceil(delta.total_seconds() / 86400)

    # Mutations (each one counts as activity)

    def _with_activity(self, clock: Optional[Clock], updated_by: Optional[str], **changes) -> "RFQ":
        now = resolve_clock(clock).now()
        changes["last_activity_at"] = now
        changes["updated_at"] = now
        if updated_by is not None:
            changes["updated_by"] = updated_by
        return self.evolve(**changes)

    def update_status(self, status: RFQStatus, updated_by: str, clock: Optional[Clock] = None) -> "RFQ":
        status = RFQStatus(status)
        clock = resolve_clock(clock)
        changes = {"status": status}
        if status == RFQStatus.QUOTED and self.quote_sent_at is None:
            changes["quote_sent_at"] = clock.now()
        return self._with_activity(clock, updated_by, **changes)

    def assign_to(self, user_id: str, updated_by: str, clock: Optional[Clock] = None) -> "RFQ":
        return self._with_activity(clock, updated_by, assigned_to=user_id)

    def set_follow_up_date(self, when, updated_by: str, clock: Optional[Clock] = None) -> "RFQ":
        return self._with_activity(clock, updated_by, follow_up_date=when)

    def link_client(self, client_id: str, updated_by: str, clock: Optional[Clock] = None) -> "RFQ":
        return self._with_activity(clock, updated_by, client_id=client_id)

    def add_communication(
        self,
        communication: dict,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> "RFQ":
        clock = resolve_clock(clock)
        entry = {**communication, "id": resolve_ids(ids).new_id(), "created_at": clock.now()}
        communications = [c.model_dump() for c in self.communications] + [entry]
        return self._with_activity(clock, None, communications=communications)

    # Factory

    @staticmethod
    def generate_rfq_number(clock: Optional[Clock] = None) -> str:
        now = resolve_clock(clock).now()
        millis = int(now.timestamp() * 1000)
        return f"RFQ-{now:%Y%m%d}-{str(millis)[-6:]}"

    @classmethod
    def create(
        cls,
        data: dict,
        *,
        updated_by: str,
        created_by: Optional[str] = None,
        validity_days: Optional[int] = None,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> "RFQ":
        """Build a new PENDING RFQ stamped as submitted now.

        ``validity_days`` sets ``expires_at`` unless the payload carries one.
        """
        errors = cls.owned_field_errors(data)
        if errors:
            raise EntityValidationError(cls.entity_name, errors)
        clock = resolve_clock(clock)
        now = clock.now()
        payload = {
            **data,
            "status": RFQStatus.PENDING,
            "id": resolve_ids(ids).new_id(),
            "rfq_number": cls.generate_rfq_number(clock),
            "submitted_at": now,
            "last_activity_at": now,
            "created_at": now,
            "updated_at": now,
            "created_by": created_by,
            "updated_by": updated_by,
        }
        if validity_days is not None and payload.get("expires_at") is None:
            payload["expires_at"] = now + timedelta(days=validity_days)
        return cls.validate_payload(payload)
