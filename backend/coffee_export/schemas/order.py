"""Export order record: line items, payment schedule, shipment and QC state.

Status flow::

    DRAFT -> PENDING_APPROVAL -> CONFIRMED -> IN_PRODUCTION -> QUALITY_CHECK
          -> READY_FOR_SHIPMENT -> SHIPPED -> IN_TRANSIT -> DELIVERED -> COMPLETED

ON_HOLD may be entered from any pre-shipment state and resumed back into
one. CANCELLED is reachable until shipment, RETURNED after it.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import EmailStr, Field, ValidationError

from coffee_export.core.clock import Clock, IdGenerator, resolve_clock, resolve_ids
from coffee_export.core.exceptions import EntityValidationError
from coffee_export.core.units import QuantityUnit, to_metric_tons
from coffee_export.schemas.base import (
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


class OrderStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    CONFIRMED = "CONFIRMED"
    IN_PRODUCTION = "IN_PRODUCTION"
    QUALITY_CHECK = "QUALITY_CHECK"
    READY_FOR_SHIPMENT = "READY_FOR_SHIPMENT"
    SHIPPED = "SHIPPED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"
    RETURNED = "RETURNED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class ShipmentStatus(str, Enum):
    NOT_SHIPPED = "NOT_SHIPPED"
    PREPARING = "PREPARING"
    READY_TO_SHIP = "READY_TO_SHIP"
    SHIPPED = "SHIPPED"
    IN_TRANSIT = "IN_TRANSIT"
    CUSTOMS_CLEARANCE = "CUSTOMS_CLEARANCE"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    EXCEPTION = "EXCEPTION"
    RETURNED = "RETURNED"


class OrderPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"
    RUSH = "RUSH"


class OrderType(str, Enum):
    STANDARD = "STANDARD"
    RUSH = "RUSH"
    SAMPLE = "SAMPLE"
    TRIAL = "TRIAL"
    RECURRING = "RECURRING"


class ContainerType(str, Enum):
    FT20 = "20FT"
    FT40 = "40FT"
    FT40_HC = "40FT_HC"
    BULK = "BULK"


class OrderDocumentType(str, Enum):
    PURCHASE_ORDER = "PURCHASE_ORDER"
    PROFORMA_INVOICE = "PROFORMA_INVOICE"
    COMMERCIAL_INVOICE = "COMMERCIAL_INVOICE"
    PACKING_LIST = "PACKING_LIST"
    BILL_OF_LADING = "BILL_OF_LADING"
    CERTIFICATE_OF_ORIGIN = "CERTIFICATE_OF_ORIGIN"
    QUALITY_CERTIFICATE = "QUALITY_CERTIFICATE"
    INSURANCE_CERTIFICATE = "INSURANCE_CERTIFICATE"
    CUSTOMS_DECLARATION = "CUSTOMS_DECLARATION"
    SHIPPING_INSTRUCTION = "SHIPPING_INSTRUCTION"
    PAYMENT_RECEIPT = "PAYMENT_RECEIPT"
    LETTER_OF_CREDIT = "LETTER_OF_CREDIT"
    OTHER = "OTHER"


class OrderCommunicationType(str, Enum):
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    MEETING = "MEETING"
    NOTE = "NOTE"
    SYSTEM_UPDATE = "SYSTEM_UPDATE"


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.RETURNED}
)
PRODUCTION_STATUSES = frozenset(
    {OrderStatus.IN_PRODUCTION, OrderStatus.QUALITY_CHECK, OrderStatus.READY_FOR_SHIPMENT}
)
SHIPPED_STATUSES = frozenset(
    {OrderStatus.SHIPPED, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED, OrderStatus.COMPLETED}
)
OUTSTANDING_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.PARTIAL, PaymentStatus.OVERDUE}
)

_PRE_SHIPMENT = (
    OrderStatus.DRAFT,
    OrderStatus.PENDING_APPROVAL,
    OrderStatus.CONFIRMED,
    OrderStatus.IN_PRODUCTION,
    OrderStatus.QUALITY_CHECK,
    OrderStatus.READY_FOR_SHIPMENT,
)
_HOLD_OR_CANCEL = frozenset({OrderStatus.ON_HOLD, OrderStatus.CANCELLED})

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.DRAFT: frozenset({OrderStatus.PENDING_APPROVAL, OrderStatus.CONFIRMED}) | _HOLD_OR_CANCEL,
    OrderStatus.PENDING_APPROVAL: frozenset({OrderStatus.DRAFT, OrderStatus.CONFIRMED}) | _HOLD_OR_CANCEL,
    OrderStatus.CONFIRMED: frozenset({OrderStatus.IN_PRODUCTION}) | _HOLD_OR_CANCEL,
    OrderStatus.IN_PRODUCTION: frozenset({OrderStatus.QUALITY_CHECK, OrderStatus.READY_FOR_SHIPMENT})
    | _HOLD_OR_CANCEL,
    OrderStatus.QUALITY_CHECK: frozenset({OrderStatus.IN_PRODUCTION, OrderStatus.READY_FOR_SHIPMENT})
    | _HOLD_OR_CANCEL,
    OrderStatus.READY_FOR_SHIPMENT: frozenset({OrderStatus.QUALITY_CHECK, OrderStatus.SHIPPED})
    | _HOLD_OR_CANCEL,
    OrderStatus.SHIPPED: frozenset({OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED, OrderStatus.RETURNED}),
    OrderStatus.IN_TRANSIT: frozenset({OrderStatus.DELIVERED, OrderStatus.RETURNED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED, OrderStatus.RETURNED}),
    OrderStatus.ON_HOLD: frozenset(_PRE_SHIPMENT) | {OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

SCHEDULE_PERCENTAGE_TOLERANCE = 0.5

# Written by payment and shipment recording only
PAYMENT_OWNED_FIELDS = frozenset({"status", "paid_date", "paid_amount"})
SHIPMENT_OWNED_FIELDS = frozenset({"status", "actual_shipment_date", "actual_arrival_date"})


class QualityRequirements(ValueModel):
    moisture: Optional[float] = Field(default=None, ge=0, le=20)
    screen_size: Optional[str] = None
    defect_rate: Optional[float] = Field(default=None, ge=0, le=100)
    cupping_score: Optional[float] = Field(default=None, ge=0, le=100)

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class ItemPackaging(ValueModel):
    type: PackagingType
    units_per_package: float = Field(gt=0)
    total_packages: int = Field(gt=0)
    custom_specs: Optional[str] = None


class OrderItem(ValueModel):
    id: RecordId
    product_id: RecordId
    product_sku: str
    product_name: str
    product_type: CoffeeType
    grade: str
    processing_method: Optional[str] = None

    quantity: float = Field(gt=0)
    unit: QuantityUnit
    unit_price: float = Field(gt=0)
    total_price: float = Field(gt=0)
    currency: Currency

    quality_requirements: Optional[QualityRequirements] = None
    packaging: ItemPackaging

    requested_delivery_date: Timestamp
    confirmed_delivery_date: Optional[Timestamp] = None
    status: OrderStatus = OrderStatus.DRAFT
    special_instructions: Optional[str] = None

    def weight_in_mt(self) -> float:
        return to_metric_tons(self.quantity, self.unit)

    def has_quality_requirements(self) -> bool:
        return self.quality_requirements is not None and not self.quality_requirements.is_empty()


class ScheduledPayment(ValueModel):
    id: RecordId
    description: str
    percentage: float = Field(ge=0, le=100)
    amount: float = Field(gt=0)
    due_date: Timestamp
    status: PaymentStatus = PaymentStatus.PENDING
    paid_date: Optional[Timestamp] = None
    paid_amount: Optional[float] = Field(default=None, ge=0)
    reference: Optional[str] = None

    def is_late(self) -> bool:
        """Paid after its due date."""
        return self.paid_date is not None and self.paid_date > self.due_date


class BankingDetails(ValueModel):
    beneficiary_name: str
    bank_name: str
    account_number: str
    swift_code: str
    iban: Optional[str] = None
    bank_address: str


class OrderPaymentTerms(ValueModel):
    method: PaymentMethod
    terms: str  # e.g. "30% advance, 70% against shipping documents"
    currency: Currency
    credit_period: Optional[int] = Field(default=None, ge=0)  # days
    schedule: List[ScheduledPayment] = Field(default_factory=list)
    banking_details: Optional[BankingDetails] = None


class OriginAddress(ValueModel):
    company: str
    street: str
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str


class DestinationAddress(OriginAddress):
    contact_person: str
    phone: str
    email: EmailStr


class ShippingDetails(ValueModel):
    incoterms: Incoterm
    origin_port: str
    origin_address: OriginAddress
    destination_port: str
    destination_address: DestinationAddress

    shipping_line: Optional[str] = None
    vessel: Optional[str] = None
    container_type: Optional[ContainerType] = None
    container_number: Optional[str] = None
    bill_of_lading_number: Optional[str] = None

    estimated_shipment_date: Timestamp
    actual_shipment_date: Optional[Timestamp] = None
    estimated_arrival_date: Timestamp
    actual_arrival_date: Optional[Timestamp] = None

    tracking_number: Optional[str] = None
    status: ShipmentStatus = ShipmentStatus.NOT_SHIPPED

    insurance_required: bool = False
    insurance_value: Optional[float] = Field(default=None, gt=0)
    shipping_instructions: Optional[str] = None
    customs_instructions: Optional[str] = None


class QualityCertificate(ValueModel):
    certificate_number: str
    issued_date: Timestamp
    issued_by: str
    file_url: str


class QualityControl(ValueModel):
    inspector: RecordId
    inspection_date: Timestamp
    inspection_location: str
    moisture_content: float = Field(ge=0, le=20)
    screen_analysis: Dict[str, float] = Field(default_factory=dict)
    defect_count: int = Field(ge=0)
    cupping_score: Optional[float] = Field(default=None, ge=0, le=100)
    quality_certificate: Optional[QualityCertificate] = None
    passed: bool
    notes: Optional[str] = None
    correction_required: bool = False
    correction_notes: Optional[str] = None


class OrderDocument(ValueModel):
    id: RecordId
    type: OrderDocumentType
    file_name: str
    file_url: str
    file_size: int = Field(gt=0)
    uploaded_by: RecordId
    uploaded_at: Timestamp
    is_required: bool = False
    is_verified: bool = False
    verified_by: Optional[RecordId] = None
    verified_at: Optional[Timestamp] = None
    notes: Optional[str] = None


class OrderCommunication(ValueModel):
    id: RecordId
    type: OrderCommunicationType
    subject: Optional[str] = None
    content: str
    is_internal: bool = False
    priority: OrderPriority = OrderPriority.MEDIUM
    created_by: RecordId
    created_at: Timestamp


class Order(EntityRecord):
    """A confirmed (or draft) export contract and its fulfillment state."""

    entity_name = "order"
    owned_fields = frozenset({
        "status",
        "payment_status",
        "quality_control",
        "confirmed_date",
        "actual_delivery_date",
        "documents",
        "communications",
    })

    order_number: str = Field(min_length=1)
    rfq_id: Optional[RecordId] = None
    client_id: RecordId

    status: OrderStatus = OrderStatus.DRAFT
    priority: OrderPriority = OrderPriority.MEDIUM
    type: OrderType = OrderType.STANDARD

    items: List[OrderItem] = Field(min_length=1)
    subtotal: float = Field(gt=0)
    taxes: float = Field(default=0, ge=0)
    shipping_cost: float = Field(default=0, ge=0)
    insurance_cost: float = Field(default=0, ge=0)
    other_charges: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    total_amount: float = Field(gt=0)
    currency: Currency

    payment_terms: OrderPaymentTerms
    payment_status: PaymentStatus = PaymentStatus.PENDING
    shipping_details: ShippingDetails
    quality_control: Optional[QualityControl] = None

    documents: List[OrderDocument] = Field(default_factory=list)
    communications: List[OrderCommunication] = Field(default_factory=list)

    order_date: Timestamp
    confirmed_date: Optional[Timestamp] = None
    requested_delivery_date: Timestamp
    promised_delivery_date: Optional[Timestamp] = None
    actual_delivery_date: Optional[Timestamp] = None

    assigned_to: Optional[RecordId] = None
    sales_rep: RecordId
    account_manager: Optional[RecordId] = None

    contract_number: Optional[str] = None
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    special_instructions: Optional[str] = None
    internal_notes: Optional[str] = None

    # Status predicates

    def is_active(self) -> bool:
        return self.status not in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_in_production(self) -> bool:
        return self.status in PRODUCTION_STATUSES

    def is_shipped(self) -> bool:
        return self.status in SHIPPED_STATUSES

    def is_completed(self) -> bool:
        return self.status == OrderStatus.COMPLETED

    def is_overdue(self, clock: Optional[Clock] = None) -> bool:
        if self.is_completed():
            return False
        return self.requested_delivery_date < resolve_clock(clock).now()

    def is_rush_order(self) -> bool:
        return self.priority == OrderPriority.RUSH or self.type == OrderType.RUSH

    def can_transition_to(self, status: OrderStatus) -> bool:
        return OrderStatus(status) in ALLOWED_TRANSITIONS[self.status]

    # Payment

    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    def has_outstanding_payment(self) -> bool:
        return self.payment_status in OUTSTANDING_PAYMENT_STATUSES

    def get_paid_amount(self) -> float:
        return sum(p.paid_amount or 0.0 for p in self.payment_terms.schedule)

    def get_outstanding_amount(self) -> float:
        return self.total_amount - self.get_paid_amount()

    def get_payment_progress(self) -> float:
        """Percentage of ``total_amount`` received so far."""
        return self.get_paid_amount() / self.total_amount * 100

    def schedule_percentage_total(self) -> float:
        return sum(p.percentage for p in self.payment_terms.schedule)

    def is_schedule_balanced(self, tolerance: float = SCHEDULE_PERCENTAGE_TOLERANCE) -> bool:
        return abs(self.schedule_percentage_total() - 100) <= tolerance

    # Quantities

    def get_total_weight(self) -> float:
        """Total line quantity in metric tons."""
        return sum(item.weight_in_mt() for item in self.items)

    def get_total_packages(self) -> int:
        return sum(item.packaging.total_packages for item in self.items)

    def get_days_until_delivery(self, clock: Optional[Clock] = None) -> int:
        target = self.promised_delivery_date or self.requested_delivery_date
        delta = target - resolve_clock(clock).now()
        return math.ceil(delta.total_seconds() / 86400)

    # Shipment gating

    def requires_quality_check(self) -> bool:
        return any(item.has_quality_requirements() for item in self.items)

    def has_required_documents(self) -> bool:
        return all(doc.is_verified for doc in self.documents if doc.is_required)

    def missing_documents(self) -> List[OrderDocument]:
        return [doc for doc in self.documents if doc.is_required and not doc.is_verified]

    def can_be_shipped(self) -> bool:
        if self.status != OrderStatus.READY_FOR_SHIPMENT or not self.has_required_documents():
            return False
        if not self.requires_quality_check():
            return True
        return self.quality_control is not None and self.quality_control.passed

    # Mutations

    def update_status(self, status: OrderStatus, updated_by: str, clock: Optional[Clock] = None) -> "Order":
        status = OrderStatus(status)
        clock = resolve_clock(clock)
        changes = {"status": status}
        if status == OrderStatus.CONFIRMED and self.confirmed_date is None:
            changes["confirmed_date"] = clock.now()
        if status == OrderStatus.DELIVERED and self.actual_delivery_date is None:
            changes["actual_delivery_date"] = clock.now()
        return self.touched(clock, updated_by, **changes)

    def update_payment_status(
        self, payment_status: PaymentStatus, updated_by: str, clock: Optional[Clock] = None
    ) -> "Order":
        return self.touched(clock, updated_by, payment_status=payment_status)

    def record_payment(
        self,
        payment_id: str,
        amount: float,
        reference: Optional[str] = None,
        clock: Optional[Clock] = None,
        updated_by: Optional[str] = None,
    ) -> "Order":
        """Mark a schedule entry paid and recompute the overall payment status.

        An unknown ``payment_id`` leaves the schedule as is.
        """
        now = resolve_clock(clock).now()
        schedule = []
        for entry in self.payment_terms.schedule:
            data = entry.model_dump()
            if entry.id == payment_id:
                data.update(
                    status=PaymentStatus.PAID,
                    paid_date=now,
                    paid_amount=amount,
                    reference=reference,
                )
            schedule.append(data)

        total_paid = sum(p["paid_amount"] or 0.0 for p in schedule)
        if total_paid >= self.total_amount:
            payment_status = PaymentStatus.PAID
        elif total_paid > 0:
            payment_status = PaymentStatus.PARTIAL
        else:
            payment_status = PaymentStatus.PENDING

        terms = {**self.payment_terms.model_dump(), "schedule": schedule}
        return self.touched(clock, updated_by, payment_terms=terms, payment_status=payment_status)

    def set_quality_control(
        self, record: QualityControl | dict, clock: Optional[Clock] = None, updated_by: Optional[str] = None
    ) -> "Order":
        if isinstance(record, dict):
            try:
                record = QualityControl.model_validate(record)
            except ValidationError as exc:
                raise EntityValidationError.from_pydantic("quality_control", exc) from exc
        status = OrderStatus.READY_FOR_SHIPMENT if record.passed else OrderStatus.QUALITY_CHECK
        return self.touched(clock, updated_by, quality_control=record, status=status)

    def record_shipment(
        self,
        updated_by: str,
        clock: Optional[Clock] = None,
        bill_of_lading_number: Optional[str] = None,
        vessel: Optional[str] = None,
        container_number: Optional[str] = None,
    ) -> "Order":
        now = resolve_clock(clock).now()
        shipping = self.shipping_details.model_dump()
        shipping.update(status=ShipmentStatus.SHIPPED, actual_shipment_date=now)
        for key, value in (
            ("bill_of_lading_number", bill_of_lading_number),
            ("vessel", vessel),
            ("container_number", container_number),
        ):
            if value is not None:
                shipping[key] = value
        return self.touched(clock, updated_by, status=OrderStatus.SHIPPED, shipping_details=shipping)

    def add_document(
        self,
        document: dict,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> "Order":
        now = resolve_clock(clock).now()
        entry = {**document, "id": resolve_ids(ids).new_id(), "uploaded_at": now}
        documents = [d.model_dump() for d in self.documents] + [entry]
        return self.evolve(documents=documents, updated_at=now)

    def verify_document(self, document_id: str, verified_by: str, clock: Optional[Clock] = None) -> "Order":
        now = resolve_clock(clock).now()
        documents = []
        for doc in self.documents:
            data = doc.model_dump()
            if doc.id == document_id:
                data.update(is_verified=True, verified_by=verified_by, verified_at=now)
            documents.append(data)
        return self.evolve(documents=documents, updated_at=now, updated_by=verified_by)

    def add_communication(
        self,
        communication: dict,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> "Order":
        now = resolve_clock(clock).now()
        entry = {**communication, "id": resolve_ids(ids).new_id(), "created_at": now}
        communications = [c.model_dump() for c in self.communications] + [entry]
        return self.evolve(communications=communications, updated_at=now)

    # Factory

    @staticmethod
    def generate_order_number(clock: Optional[Clock] = None) -> str:
        now = resolve_clock(clock).now()
        millis = int(now.timestamp() * 1000)
        return f"ORD-{now:%Y%m}-{str(millis)[-6:]}"

    @classmethod
    def create(
        cls,
        data: dict,
        *,
        created_by: str,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> "Order":
        errors = cls.owned_field_errors(data)
        terms = data.get("payment_terms")
        schedule = terms.get("schedule") if isinstance(terms, dict) else None
        for index, entry in enumerate(schedule if isinstance(schedule, list) else []):
            if isinstance(entry, dict):
                errors += cls.owned_field_errors(entry, f"payment_terms.schedule.{index}.", PAYMENT_OWNED_FIELDS)
        shipping = data.get("shipping_details")
        if isinstance(shipping, dict):
            errors += cls.owned_field_errors(shipping, "shipping_details.", SHIPMENT_OWNED_FIELDS)
        if errors:
            raise EntityValidationError(cls.entity_name, errors)
        clock = resolve_clock(clock)
        now = clock.now()
        payload = {
            "order_date": now,
            **data,
            "status": OrderStatus.DRAFT,
            "payment_status": PaymentStatus.PENDING,
            "id": resolve_ids(ids).new_id(),
            "order_number": cls.generate_order_number(clock),
            "created_at": now,
            "updated_at": now,
            "created_by": created_by,
            "updated_by": created_by,
        }
        return cls.validate_payload(payload)
