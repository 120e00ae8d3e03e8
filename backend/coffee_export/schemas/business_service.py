"""Business service catalog record (OEM, sourcing, logistics...)."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from coffee_export.core.clock import Clock, IdGenerator, resolve_clock, resolve_ids
from coffee_export.core.pricing import apply_discount, rush_days, select_discount_tier
from coffee_export.schemas.base import Currency, DiscountTier, EntityRecord, MultilingualContent, ValueModel

GLOBAL_COVERAGE = "GLOBAL"


class ServiceType(str, Enum):
    OEM_MANUFACTURING = "OEM_MANUFACTURING"
    PRIVATE_LABEL = "PRIVATE_LABEL"
    COFFEE_SOURCING = "COFFEE_SOURCING"
    LOGISTICS_SHIPPING = "LOGISTICS_SHIPPING"
    QUALITY_CONTROL = "QUALITY_CONTROL"
    MARKET_CONSULTING = "MARKET_CONSULTING"
    CUSTOM_BLENDING = "CUSTOM_BLENDING"
    PACKAGING_DESIGN = "PACKAGING_DESIGN"
    CERTIFICATION_SUPPORT = "CERTIFICATION_SUPPORT"
    SUPPLY_CHAIN_MANAGEMENT = "SUPPLY_CHAIN_MANAGEMENT"


class ServiceCategory(str, Enum):
    MANUFACTURING = "MANUFACTURING"
    SOURCING = "SOURCING"
    LOGISTICS = "LOGISTICS"
    CONSULTING = "CONSULTING"
    QUALITY_ASSURANCE = "QUALITY_ASSURANCE"
    BRANDING = "BRANDING"


class PricingModel(str, Enum):
    FIXED_RATE = "FIXED_RATE"
    PERCENTAGE_BASED = "PERCENTAGE_BASED"
    VOLUME_BASED = "VOLUME_BASED"
    HOURLY_RATE = "HOURLY_RATE"
    PROJECT_BASED = "PROJECT_BASED"
    CUSTOM_QUOTE = "CUSTOM_QUOTE"


class DeliveryTimeline(ValueModel):
    minimum_days: int = Field(gt=0)
    maximum_days: int = Field(gt=0)
    average_days: int = Field(gt=0)
    rush_available: bool = False
    rush_surcharge: Optional[float] = Field(default=None, ge=0)  # percent

    @model_validator(mode="after")
    def check_day_order(self) -> "DeliveryTimeline":
        if not (self.minimum_days <= self.average_days <= self.maximum_days):
            raise ValueError("expected minimum_days <= average_days <= maximum_days")
        return self


class ServicePricing(ValueModel):
    model: PricingModel
    base_price: Optional[float] = Field(default=None, gt=0)
    currency: Currency
    minimum_order: Optional[float] = Field(default=None, gt=0)
    maximum_order: Optional[float] = Field(default=None, gt=0)
    volume_discounts: Optional[List[DiscountTier]] = None
    custom_quote_required: bool = False


class ServiceRequirements(ValueModel):
    minimum_quantity: Optional[float] = Field(default=None, gt=0)
    lead_time_required: int = Field(gt=0)  # days
    documents_required: List[str] = Field(default_factory=list)
    certifications_required: Optional[List[str]] = None
    technical_specs: Optional[Dict[str, Any]] = None


class ServiceCapabilities(ValueModel):
    max_capacity_per_month: Optional[float] = Field(default=None, gt=0)
    supported_packaging: List[str] = Field(default_factory=list)
    supported_certifications: List[str] = Field(default_factory=list)
    quality_standards: List[str] = Field(default_factory=list)
    geographic_coverage: List[str] = Field(default_factory=list)
    language_support: List[str] = Field(default_factory=list)


class ProcessStep(ValueModel):
    step_number: int = Field(gt=0)
    name: MultilingualContent
    description: MultilingualContent
    estimated_duration: int = Field(gt=0)  # days
    deliverables: List[str] = Field(default_factory=list)
    client_involvement_required: bool = False


class DeliveryEstimate(ValueModel):
    min: int
    average: int
    max: int


class BusinessService(EntityRecord):
    entity_name = "business_service"

    service_code: str = Field(min_length=1)
    name: MultilingualContent
    description: MultilingualContent
    type: ServiceType
    category: ServiceCategory
    sub_category: Optional[str] = None
    pricing: ServicePricing
    timeline: DeliveryTimeline
    requirements: ServiceRequirements
    capabilities: ServiceCapabilities
    process_steps: List[ProcessStep] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    is_active: bool = True
    is_featured: bool = False
    requires_consultation: bool = False
    available_for_quote: bool = True
    sort_order: int = 0

    def is_available_for_quote(self) -> bool:
        return self.is_active and self.available_for_quote

    def requires_custom_quote(self) -> bool:
        return self.pricing.custom_quote_required or self.requires_consultation

    def can_handle_volume(self, quantity: float) -> bool:
        pricing = self.pricing
        capacity = self.capabilities.max_capacity_per_month
        return (
            (pricing.minimum_order is None or quantity >= pricing.minimum_order)
            and (pricing.maximum_order is None or quantity <= pricing.maximum_order)
            and (capacity is None or quantity <= capacity)
        )

    def calculate_estimated_price(self, quantity: Optional[float] = None, rush: bool = False) -> Optional[float]:
        """Indicative price, or ``None`` when the service must be quoted by hand.

        Without a quantity the base price is treated as a flat fee.
        """
        if self.pricing.custom_quote_required or self.pricing.base_price is None:
            return None

        total = self.pricing.base_price
        if quantity:
            total *= quantity
            tier = select_discount_tier(self.pricing.volume_discounts, quantity)
            if tier is not None:
                total = apply_discount(total, tier.discount_percentage)

        timeline = self.timeline
        if rush and timeline.rush_available and timeline.rush_surcharge:
            total *= 1 + timeline.rush_surcharge / 100
        return total

    def get_estimated_delivery_time(self, rush: bool = False) -> DeliveryEstimate:
        t = self.timeline
        if rush and t.rush_available:
            return DeliveryEstimate(
                min=rush_days(t.minimum_days),
                average=rush_days(t.average_days),
                max=rush_days(t.maximum_days),
            )
        return DeliveryEstimate(min=t.minimum_days, average=t.average_days, max=t.maximum_days)

    def supports_geography(self, country: str) -> bool:
        coverage = self.capabilities.geographic_coverage
        return country in coverage or GLOBAL_COVERAGE in coverage

    def supports_certification(self, certification: str) -> bool:
        return certification in self.capabilities.supported_certifications

    def get_localized_name(self, locale: str) -> str:
        return self.name.localized(locale)

    def get_localized_description(self, locale: str) -> str:
        return self.description.localized(locale)

    def get_process_steps(self, locale: str) -> List[Dict[str, Any]]:
        return [
            {
                "step_number": step.step_number,
                "name": step.name.localized(locale),
                "description": step.description.localized(locale),
                "estimated_duration": step.estimated_duration,
                "deliverables": list(step.deliverables),
                "client_involvement_required": step.client_involvement_required,
            }
            for step in sorted(self.process_steps, key=lambda s: s.step_number)
        ]

    @classmethod
    def create(
        cls,
        data: dict,
        *,
        created_by: str,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> "BusinessService":
        now = resolve_clock(clock).now()
        return cls.validate_payload(
            {
                **data,
                "id": resolve_ids(ids).new_id(),
                "created_at": now,
                "updated_at": now,
                "created_by": created_by,
                "updated_by": created_by,
            }
        )

    def update_pricing(self, pricing: ServicePricing | dict, updated_by: str, clock: Optional[Clock] = None) -> "BusinessService":
        return self.touched(clock, updated_by, pricing=pricing)

    def update_timeline(
        self, timeline: DeliveryTimeline | dict, updated_by: str, clock: Optional[Clock] = None
    ) -> "BusinessService":
        return self.touched(clock, updated_by, timeline=timeline)
