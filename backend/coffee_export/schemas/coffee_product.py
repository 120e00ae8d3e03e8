"""Coffee product catalog record and its pricing/availability rules."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum
from typing import FrozenSet, List, Mapping, Optional

from pydantic import Field, model_validator

from coffee_export.core.clock import Clock, IdGenerator, resolve_clock, resolve_ids
from coffee_export.core.pricing import apply_discount, incoterm_factor, select_discount_tier
from coffee_export.schemas.base import (
    CoffeeType,
    Currency,
    DiscountTier,
    EntityRecord,
    MultilingualContent,
    Timestamp,
    ValueModel,
)


class CoffeeGrade(str, Enum):
    GRADE_1 = "GRADE_1"
    GRADE_2 = "GRADE_2"
    GRADE_3 = "GRADE_3"
    SCREEN_18 = "SCREEN_18"
    SCREEN_16 = "SCREEN_16"
    SCREEN_13 = "SCREEN_13"
    SPECIALTY = "SPECIALTY"
    COMMERCIAL = "COMMERCIAL"


class ProcessingMethod(str, Enum):
    NATURAL = "NATURAL"
    WASHED = "WASHED"
    HONEY = "HONEY"
    WET_HULLED = "WET_HULLED"
    SEMI_WASHED = "SEMI_WASHED"


class Certification(str, Enum):
    ORGANIC = "ORGANIC"
    FAIR_TRADE = "FAIR_TRADE"
    RAINFOREST_ALLIANCE = "RAINFOREST_ALLIANCE"
    UTZ = "UTZ"
    C_CAFE = "C_CAFE"
    ISO_22000 = "ISO_22000"
    HACCP = "HACCP"
    KOSHER = "KOSHER"
    HALAL = "HALAL"


class CatalogIncoterm(str, Enum):
    """Incoterms a catalog price may be quoted under."""

    FOB = "FOB"
    CIF = "CIF"
    CFR = "CFR"
    EXW = "EXW"
    FCA = "FCA"


class PricingUnit(str, Enum):
    MT = "MT"
    KG = "KG"
    LB = "LB"
    BAG = "BAG"


SPECIALTY_CUPPING_THRESHOLD = 80


class CoffeeSpecifications(ValueModel):
    moisture: float = Field(ge=0, le=20)  # percent
    screen_size: str  # e.g. "18+", "16-18"
    defect_rate: float = Field(ge=0, le=100)  # percent
    cupping_score: Optional[float] = Field(default=None, ge=0, le=100)
    density: Optional[float] = Field(default=None, gt=0)  # g/ml
    acidity: Optional[str] = None
    body: Optional[str] = None
    flavor: Optional[str] = None


class ProductPricing(ValueModel):
    base_price: float = Field(gt=0)
    currency: Currency
    unit: PricingUnit
    incoterm: CatalogIncoterm
    minimum_order: float = Field(gt=0)
    price_valid_until: date
    discount_tiers: Optional[List[DiscountTier]] = None

    @model_validator(mode="after")
    def check_tiers_ascending(self) -> "ProductPricing":
        if self.discount_tiers:
            thresholds = [tier.threshold for tier in self.discount_tiers]
            if thresholds != sorted(thresholds):
                raise ValueError("discount_tiers must be ordered by ascending threshold")
        return self


class ProductAvailability(ValueModel):
    in_stock: bool
    stock_quantity: float = Field(ge=0)
    harvest_season: str  # e.g. "2024/2025"
    available_from: Timestamp
    available_until: Optional[Timestamp] = None
    lead_time: int = Field(gt=0)  # days
    production_capacity: float = Field(gt=0)  # MT per month

    @model_validator(mode="after")
    def check_window(self) -> "ProductAvailability":
        if self.available_until is not None and self.available_from > self.available_until:
            raise ValueError("available_from must not be after available_until")
        return self


class OriginInfo(ValueModel):
    region: str  # e.g. "Dak Lak"
    province: str
    altitude: Optional[float] = Field(default=None, gt=0)  # meters
    farm_size: Optional[str] = None
    cooperative_name: Optional[str] = None


class CoffeeProduct(EntityRecord):
    """A green/instant coffee lot offered for export."""

    entity_name = "coffee_product"

    sku: str = Field(min_length=1)
    name: MultilingualContent
    description: MultilingualContent
    type: CoffeeType
    grade: CoffeeGrade
    processing_method: ProcessingMethod
    specifications: CoffeeSpecifications
    pricing: ProductPricing
    availability: ProductAvailability
    certifications: FrozenSet[Certification] = frozenset()
    origin: OriginInfo
    traceability_code: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    is_active: bool = True
    is_featured: bool = False
    sort_order: int = 0

    # Availability

    def is_available(self, clock: Optional[Clock] = None) -> bool:
        now = resolve_clock(clock).now()
        window = self.availability
        return (
            self.is_active
            and window.in_stock
            and window.available_from <= now
            and (window.available_until is None or now <= window.available_until)
        )

    def can_fulfill_order(self, quantity: float, clock: Optional[Clock] = None) -> bool:
        return (
            self.is_available(clock)
            and quantity >= self.pricing.minimum_order
            and quantity <= self.availability.stock_quantity
        )

    # Pricing

    def calculate_price(
        self,
        quantity: float,
        incoterm: Optional[str] = None,
        adjustments: Optional[Mapping[str, float]] = None,
    ) -> float:
        """Total price for ``quantity`` units, quoted under ``incoterm``."""
        unit_price = self.pricing.base_price
        tier = select_discount_tier(self.pricing.discount_tiers, quantity)
        if tier is not None:
            unit_price = apply_discount(unit_price, tier.discount_percentage)
        unit_price *= incoterm_factor(incoterm, self.pricing.incoterm, adjustments)
        return unit_price * quantity

    def is_price_valid(self, clock: Optional[Clock] = None) -> bool:
        return resolve_clock(clock).now().date() <= self.pricing.price_valid_until

    # Classification

    def is_specialty_grade(self) -> bool:
        score = self.specifications.cupping_score
        return self.grade == CoffeeGrade.SPECIALTY or (
            score is not None and score >= SPECIALTY_CUPPING_THRESHOLD
        )

    def has_certification(self, certification: Certification) -> bool:
        return certification in self.certifications

    def get_localized_name(self, locale: str) -> str:
        return self.name.localized(locale)

    def get_localized_description(self, locale: str) -> str:
        return self.description.localized(locale)

    def get_estimated_delivery_date(self, clock: Optional[Clock] = None) -> datetime:
        return resolve_clock(clock).now() + timedelta(days=self.availability.lead_time)

    # Factory / updates

    @classmethod
    def create(
        cls,
        data: dict,
        *,
        created_by: str,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> "CoffeeProduct":
        now = resolve_clock(clock).now()
        payload = {
            **data,
            "id": resolve_ids(ids).new_id(),
            "created_at": now,
            "updated_at": now,
            "created_by": created_by,
            "updated_by": created_by,
        }
        return cls.validate_payload(payload)

    def update_pricing(self, pricing: ProductPricing | dict, updated_by: str, clock: Optional[Clock] = None) -> "CoffeeProduct":
        return self.touched(clock, updated_by, pricing=pricing)

    def update_availability(
        self, availability: ProductAvailability | dict, updated_by: str, clock: Optional[Clock] = None
    ) -> "CoffeeProduct":
        return self.touched(clock, updated_by, availability=availability)

    def deactivate(self, updated_by: str, clock: Optional[Clock] = None) -> "CoffeeProduct":
        return self.touched(clock, updated_by, is_active=False)
