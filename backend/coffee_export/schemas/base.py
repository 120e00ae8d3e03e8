"""Immutable record base and value types shared across entities.

Every entity is a frozen pydantic model. Construction goes through
``validate_payload`` which reports all field errors at once, and every
mutation goes through ``evolve`` which re-validates the merged data, so no
caller can ever hold a partially valid record.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, FrozenSet, List, Optional, Type, TypeVar

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, ValidationError

from coffee_export.core.clock import Clock, resolve_clock
from coffee_export.core.exceptions import EntityValidationError, FieldError

UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

RecordId = Annotated[str, Field(pattern=UUID_PATTERN)]
Timestamp = AwareDatetime

# Actor used for records touched by the public site rather than a staff user
SYSTEM_ACTOR_ID = "00000000-0000-0000-0000-000000000000"

R = TypeVar("R", bound="EntityRecord")


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    JPY = "JPY"
    GBP = "GBP"


class Incoterm(str, Enum):
    EXW = "EXW"  # Ex Works
    FCA = "FCA"  # Free Carrier
    CPT = "CPT"  # Carriage Paid To
    CIP = "CIP"  # Carriage and Insurance Paid To
    DAP = "DAP"  # Delivered at Place
    DPU = "DPU"  # Delivered at Place Unloaded
    DDP = "DDP"  # Delivered Duty Paid
    FAS = "FAS"  # Free Alongside Ship
    FOB = "FOB"  # Free on Board
    CFR = "CFR"  # Cost and Freight
    CIF = "CIF"  # Cost, Insurance and Freight


class CoffeeType(str, Enum):
    ROBUSTA = "ROBUSTA"
    ARABICA = "ARABICA"
    BLEND = "BLEND"
    INSTANT = "INSTANT"


class PaymentMethod(str, Enum):
    LC = "LC"  # Letter of Credit
    TT = "TT"  # Telegraphic Transfer
    CAD = "CAD"  # Cash Against Documents
    DP = "DP"  # Documents against Payment
    DA = "DA"  # Documents against Acceptance


class RecurringFrequency(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    SEMI_ANNUAL = "SEMI_ANNUAL"
    ANNUAL = "ANNUAL"


class PackagingType(str, Enum):
    JUTE_BAGS_60KG = "JUTE_BAGS_60KG"
    JUTE_BAGS_69KG = "JUTE_BAGS_69KG"
    PP_BAGS_60KG = "PP_BAGS_60KG"
    BULK_CONTAINER = "BULK_CONTAINER"
    VACUUM_BAGS = "VACUUM_BAGS"
    CUSTOM_PACKAGING = "CUSTOM_PACKAGING"


class ValueModel(BaseModel):
    """Frozen nested value (pricing block, address, tier...)."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class MultilingualContent(ValueModel):
    """Localized text; English is mandatory and is the fallback."""

    en: str
    de: Optional[str] = None
    ja: Optional[str] = None
    fr: Optional[str] = None
    it: Optional[str] = None
    es: Optional[str] = None
    nl: Optional[str] = None
    ko: Optional[str] = None

    def localized(self, locale: str) -> str:
        key = locale.split("-")[0].lower()
        value = getattr(self, key, None) if key in type(self).model_fields else None
        return value or self.en


class DiscountTier(ValueModel):
    """Quantity threshold at and above which ``discount_percentage`` applies."""

    threshold: float = Field(gt=0)
    discount_percentage: float = Field(ge=0, le=100)


class Address(ValueModel):
    street: str
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str


class EntityRecord(BaseModel):
    """Base class for all top-level entities."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    entity_name: ClassVar[str] = "record"
    # Set only by lifecycle operations, never by the payload of a new record
    owned_fields: ClassVar[FrozenSet[str]] = frozenset()

    id: RecordId
    created_at: Timestamp
    updated_at: Timestamp
    created_by: Optional[RecordId] = None
    updated_by: RecordId

    # Validation

    @classmethod
    def validate_payload(cls: Type[R], data: Any) -> R:
        """Build a record, raising ``EntityValidationError`` with every failing field."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise EntityValidationError.from_pydantic(cls.entity_name, exc) from exc

    @classmethod
    def owned_field_errors(
        cls, data: Dict[str, Any], prefix: str = "", fields: Optional[FrozenSet[str]] = None
    ) -> List[FieldError]:
        """Errors for every lifecycle-owned key present in ``data``."""
        names = cls.owned_fields if fields is None else fields
        return [
            FieldError(field=f"{prefix}{name}", message="cannot be set when creating a record", error_type="forbidden")
            for name in sorted(names)
            if name in data
        ]

    @classmethod
    def is_valid(cls, data: Any) -> bool:
        try:
            cls.model_validate(data)
        except ValidationError:
            return False
        return True

    @classmethod
    def from_dict(cls: Type[R], data: Dict[str, Any]) -> R:
        return cls.validate_payload(data)

    def to_dict(self) -> Dict[str, Any]:
        """Plain JSON-compatible form; ``from_dict(to_dict())`` yields an equal record."""
        return self.model_dump(mode="json")

    # Copy-on-write

    def evolve(self: R, **changes: Any) -> R:
        """Return a re-validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return type(self).validate_payload(data)

    def touched(self: R, clock: Optional[Clock] = None, updated_by: Optional[str] = None, **changes: Any) -> R:
        """``evolve`` that also refreshes ``updated_at`` (and ``updated_by`` when given)."""
        changes["updated_at"] = resolve_clock(clock).now()
        if updated_by is not None:
            changes["updated_by"] = updated_by
        return self.evolve(**changes)