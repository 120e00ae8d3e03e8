"""Client company (buyer account) record and relationship scoring."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import EmailStr, Field

from coffee_export.core.clock import Clock, IdGenerator, resolve_clock, resolve_ids
from coffee_export.schemas.base import EntityRecord, PaymentMethod, RecordId, Timestamp, ValueModel


class CompanyStatus(str, Enum):
    PROSPECT = "PROSPECT"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    BLACKLISTED = "BLACKLISTED"


class CompanyType(str, Enum):
    IMPORTER = "IMPORTER"
    DISTRIBUTOR = "DISTRIBUTOR"
    ROASTER = "ROASTER"
    RETAILER = "RETAILER"
    MANUFACTURER = "MANUFACTURER"
    TRADER = "TRADER"
    BROKER = "BROKER"
    COOPERATIVE = "COOPERATIVE"
    GOVERNMENT = "GOVERNMENT"
    NGO = "NGO"


class CompanySize(str, Enum):
    STARTUP = "STARTUP"  # < 10 employees
    SMALL = "SMALL"  # 10-50
    MEDIUM = "MEDIUM"  # 50-250
    LARGE = "LARGE"  # 250-1000
    ENTERPRISE = "ENTERPRISE"  # > 1000


class CreditRating(str, Enum):
    AAA = "AAA"
    AA = "AA"
    A = "A"
    BBB = "BBB"
    BB = "BB"
    B = "B"
    CCC = "CCC"
    CC = "CC"
    C = "C"
    D = "D"
    NR = "NR"  # not rated


class RelationshipStatus(str, Enum):
    NEW = "NEW"
    DEVELOPING = "DEVELOPING"
    ESTABLISHED = "ESTABLISHED"
    STRATEGIC_PARTNER = "STRATEGIC_PARTNER"
    KEY_ACCOUNT = "KEY_ACCOUNT"
    AT_RISK = "AT_RISK"
    DORMANT = "DORMANT"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AddressType(str, Enum):
    HEADQUARTERS = "HEADQUARTERS"
    BRANCH = "BRANCH"
    WAREHOUSE = "WAREHOUSE"
    FACTORY = "FACTORY"
    OFFICE = "OFFICE"


class CompanyDocumentType(str, Enum):
    BUSINESS_LICENSE = "BUSINESS_LICENSE"
    IMPORT_LICENSE = "IMPORT_LICENSE"
    EXPORT_LICENSE = "EXPORT_LICENSE"
    TAX_CERTIFICATE = "TAX_CERTIFICATE"
    BANK_REFERENCE = "BANK_REFERENCE"
    CREDIT_REPORT = "CREDIT_REPORT"
    INSURANCE_CERTIFICATE = "INSURANCE_CERTIFICATE"
    QUALITY_CERTIFICATE = "QUALITY_CERTIFICATE"
    COMPANY_PROFILE = "COMPANY_PROFILE"
    FINANCIAL_STATEMENT = "FINANCIAL_STATEMENT"
    TRADE_REFERENCE = "TRADE_REFERENCE"
    OTHER = "OTHER"


class NoteType(str, Enum):
    GENERAL = "GENERAL"
    SALES = "SALES"
    CREDIT = "CREDIT"
    QUALITY = "QUALITY"
    LOGISTICS = "LOGISTICS"
    COMPLIANCE = "COMPLIANCE"


class LeadSource(str, Enum):
    WEBSITE = "WEBSITE"
    TRADE_SHOW = "TRADE_SHOW"
    REFERRAL = "REFERRAL"
    COLD_OUTREACH = "COLD_OUTREACH"
    SOCIAL_MEDIA = "SOCIAL_MEDIA"
    PARTNER = "PARTNER"
    OTHER = "OTHER"


RELATIONSHIP_BASE_SCORES = {
    RelationshipStatus.NEW: 10,
    RelationshipStatus.DEVELOPING: 30,
    RelationshipStatus.ESTABLISHED: 60,
    RelationshipStatus.STRATEGIC_PARTNER: 90,
    RelationshipStatus.KEY_ACCOUNT: 100,
    RelationshipStatus.AT_RISK: 20,
    RelationshipStatus.DORMANT: 5,
}

RISK_PENALTIES = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 5,
    RiskLevel.HIGH: 15,
    RiskLevel.CRITICAL: 30,
}

ORDER_POINTS_PER_ORDER = 2
ORDER_POINTS_CAP = 20
VALUE_POINTS_DIVISOR = 10_000
VALUE_POINTS_CAP = 30
PAYMENT_RELIABILITY_POINTS = 20

TRADING_STATUSES = frozenset({CompanyStatus.ACTIVE, CompanyStatus.PROSPECT})
STRATEGIC_STATUSES = frozenset({RelationshipStatus.STRATEGIC_PARTNER, RelationshipStatus.KEY_ACCOUNT})


class ContactPerson(ValueModel):
    id: RecordId
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    position: str
    department: Optional[str] = None
    email: EmailStr
    phone: str
    mobile: Optional[str] = None
    is_primary: bool = False
    is_decision_maker: bool = False
    languages: Optional[List[str]] = None
    notes: Optional[str] = None
    created_at: Timestamp
    updated_at: Timestamp

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class CompanyAddress(ValueModel):
    id: RecordId
    type: AddressType
    street: str
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str
    country_code: str = Field(min_length=2, max_length=2)  # ISO 3166-1 alpha-2
    is_primary: bool = False
    time_zone: Optional[str] = None
    created_at: Timestamp
    updated_at: Timestamp


class FinancialInfo(ValueModel):
    annual_revenue: Optional[float] = Field(default=None, gt=0)
    currency: str = Field(min_length=3, max_length=3)  # ISO 4217
    credit_limit: Optional[float] = Field(default=None, gt=0)
    credit_rating: Optional[CreditRating] = None
    payment_terms: Optional[str] = None  # e.g. "NET 30", "LC at sight"
    preferred_payment_method: Optional[PaymentMethod] = None
    tax_id: Optional[str] = None
    vat_number: Optional[str] = None
    last_credit_check: Optional[Timestamp] = None
    credit_check_score: Optional[float] = Field(default=None, ge=0, le=100)


class BusinessProfile(ValueModel):
    founded_year: int = Field(ge=1800)
    employee_count: Optional[int] = Field(default=None, gt=0)
    annual_coffee_volume: Optional[float] = Field(default=None, gt=0)  # MT
    primary_markets: List[str] = Field(default_factory=list)
    specializations: Optional[List[str]] = None


class PaymentHistory(ValueModel):
    on_time_payments: int = Field(default=0, ge=0)
    late_payments: int = Field(default=0, ge=0)
    average_payment_days: Optional[float] = Field(default=None, ge=0)
    outstanding_amount: float = Field(default=0, ge=0)

    @property
    def total_payments(self) -> int:
        return self.on_time_payments + self.late_payments

    def on_time_rate(self) -> Optional[float]:
        if self.total_payments == 0:
            return None
        return self.on_time_payments / self.total_payments


class TradingHistory(ValueModel):
    first_order_date: Optional[Timestamp] = None
    last_order_date: Optional[Timestamp] = None
    total_orders: int = Field(default=0, ge=0)
    total_volume: float = Field(default=0, ge=0)  # MT
    total_value: float = Field(default=0, ge=0)  # USD
    average_order_value: float = Field(default=0, ge=0)
    average_order_volume: float = Field(default=0, ge=0)
    preferred_products: Optional[List[str]] = None
    payment_history: Optional[PaymentHistory] = None


class CompanyDocument(ValueModel):
    id: RecordId
    type: CompanyDocumentType
    file_name: str
    file_url: str
    file_size: int = Field(gt=0)
    expiry_date: Optional[Timestamp] = None
    is_verified: bool = False
    verified_by: Optional[RecordId] = None
    verified_at: Optional[Timestamp] = None
    notes: Optional[str] = None
    uploaded_at: Timestamp
    uploaded_by: RecordId


class CompanyNote(ValueModel):
    id: RecordId
    type: NoteType = NoteType.GENERAL
    subject: str
    content: str
    is_private: bool = False
    priority: RiskLevel = RiskLevel.MEDIUM
    tags: Optional[List[str]] = None
    created_by: RecordId
    created_at: Timestamp
    updated_at: Timestamp


class ClientCompany(EntityRecord):
    """A buyer account with its contacts, credit exposure and trading record."""

    entity_name = "client_company"

    company_code: str = Field(min_length=1)
    legal_name: str = Field(min_length=1)
    trading_name: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None

    status: CompanyStatus
    type: CompanyType
    size: Optional[CompanySize] = None
    relationship_status: RelationshipStatus

    contacts: List[ContactPerson] = Field(default_factory=list)
    addresses: List[CompanyAddress] = Field(default_factory=list)

    business_profile: Optional[BusinessProfile] = None
    financial_info: Optional[FinancialInfo] = None
    trading_history: Optional[TradingHistory] = None

    preferred_languages: Optional[List[str]] = None
    assigned_sales_rep: Optional[RecordId] = None
    account_manager: Optional[RecordId] = None
    risk_level: RiskLevel = RiskLevel.MEDIUM

    documents: List[CompanyDocument] = Field(default_factory=list)
    notes: List[CompanyNote] = Field(default_factory=list)

    marketing_consent: bool = False
    source: Optional[LeadSource] = None
    tags: Optional[List[str]] = None
    last_contact_date: Optional[Timestamp] = None
    next_follow_up_date: Optional[Timestamp] = None

    # Status predicates

    def is_active(self) -> bool:
        return self.status == CompanyStatus.ACTIVE

    def can_trade(self) -> bool:
        return self.status in TRADING_STATUSES

    def is_high_risk(self) -> bool:
        return self.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)

    def is_strategic_account(self) -> bool:
        return self.relationship_status in STRATEGIC_STATUSES

    def needs_follow_up(self, clock: Optional[Clock] = None) -> bool:
        if self.next_follow_up_date is None:
            return False
        return resolve_clock(clock).now() >= self.next_follow_up_date

    def has_valid_documents(self, clock: Optional[Clock] = None) -> bool:
        now = resolve_clock(clock).now()
        return any(
            doc.is_verified and (doc.expiry_date is None or doc.expiry_date > now)
            for doc in self.documents
        )

    # Contacts / addresses
    # Primary flags are not exclusive; the first flagged entry wins.

    def get_primary_contact(self) -> Optional[ContactPerson]:
        return next((c for c in self.contacts if c.is_primary), None) or (
            self.contacts[0] if self.contacts else None
        )

    def get_primary_address(self) -> Optional[CompanyAddress]:
        return next((a for a in self.addresses if a.is_primary), None) or (
            self.addresses[0] if self.addresses else None
        )

    def get_decision_makers(self) -> List[ContactPerson]:
        return [c for c in self.contacts if c.is_decision_maker]

    # Credit

    def get_credit_limit(self) -> float:
        if self.financial_info is None or self.financial_info.credit_limit is None:
            return 0.0
        return self.financial_info.credit_limit

    def get_outstanding_amount(self) -> float:
        history = self.trading_history
        if history is None or history.payment_history is None:
            return 0.0
        return history.payment_history.outstanding_amount

    def get_available_credit(self) -> float:
        return self.get_credit_limit() - self.get_outstanding_amount()

    def get_annual_volume_potential(self) -> float:
        profile = self.business_profile
        if profile is None or profile.annual_coffee_volume is None:
            return 0.0
        return profile.annual_coffee_volume

    def calculate_relationship_score(self) -> float:
        """Composite 0-100 score from status, trading volume, payment record and risk."""
        score = float(RELATIONSHIP_BASE_SCORES[self.relationship_status])

        history = self.trading_history
        if history is not None:
            score += min(history.total_orders * ORDER_POINTS_PER_ORDER, ORDER_POINTS_CAP)
            score += min(history.total_value / VALUE_POINTS_DIVISOR, VALUE_POINTS_CAP)
            if history.payment_history is not None:
                rate = history.payment_history.on_time_rate()
                if rate is not None:
                    score += rate * PAYMENT_RELIABILITY_POINTS

        score -= RISK_PENALTIES[self.risk_level]
        return max(0.0, min(100.0, score))

    # Mutations

    def add_contact(
        self,
        contact: Dict[str, Any],
        updated_by: str,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> "ClientCompany":
        now = resolve_clock(clock).now()
        entry = {**contact, "id": resolve_ids(ids).new_id(), "created_at": now, "updated_at": now}
        contacts = [c.model_dump() for c in self.contacts] + [entry]
        return self.evolve(contacts=contacts, updated_at=now, updated_by=updated_by)

    def add_note(
        self,
        note: Dict[str, Any],
        updated_by: str,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> "ClientCompany":
        now = resolve_clock(clock).now()
        entry = {
            "created_by": updated_by,
            **note,
            "id": resolve_ids(ids).new_id(),
            "created_at": now,
            "updated_at": now,
        }
        notes = [n.model_dump() for n in self.notes] + [entry]
        return self.evolve(notes=notes, updated_at=now, updated_by=updated_by)

    def update_status(self, status: CompanyStatus, updated_by: str, clock: Optional[Clock] = None) -> "ClientCompany":
        return self.touched(clock, updated_by, status=status)

    def update_relationship_status(
        self, relationship_status: RelationshipStatus, updated_by: str, clock: Optional[Clock] = None
    ) -> "ClientCompany":
        return self.touched(clock, updated_by, relationship_status=relationship_status)

    def set_next_follow_up(self, when, updated_by: str, clock: Optional[Clock] = None) -> "ClientCompany":
        return self.touched(clock, updated_by, next_follow_up_date=when)

    def update_trading_history(
        self, history: TradingHistory | dict, updated_by: str, clock: Optional[Clock] = None
    ) -> "ClientCompany":
        return self.touched(clock, updated_by, trading_history=history)

    # Factory

    @staticmethod
    def generate_company_code(legal_name: str, clock: Optional[Clock] = None) -> str:
        """Four alphanumerics of the name plus the last six digits of the epoch millis."""
        prefix = re.sub(r"[^A-Za-z0-9]", "", legal_name)[:4].upper()
        millis = int(resolve_clock(clock).now().timestamp() * 1000)
        return f"{prefix}{str(millis)[-6:]}"

    @classmethod
    def create(
        cls,
        data: dict,
        *,
        created_by: str,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> "ClientCompany":
        clock = resolve_clock(clock)
        now = clock.now()
        payload = {
            **data,
            "id": resolve_ids(ids).new_id(),
            "company_code": cls.generate_company_code(data.get("legal_name", ""), clock),
            "created_at": now,
            "updated_at": now,
            "created_by": created_by,
            "updated_by": created_by,
        }
        return cls.validate_payload(payload)
