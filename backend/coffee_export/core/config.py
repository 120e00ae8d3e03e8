"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. Pricing tables live here too so that
stakeholders can override them per deployment without touching the engine.
"""

from functools import lru_cache
from typing import Dict, List, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_INCOTERM_ADJUSTMENTS: Dict[str, float] = {
    "EXW": 0.95,  # buyer handles all shipping
    "FCA": 0.97,
    "FOB": 1.00,  # baseline
    "CFR": 1.03,  # seller pays freight
    "CIF": 1.05,  # seller pays freight + insurance
}

# USD per metric ton, used when an RFQ carries no estimate and no budget
DEFAULT_COFFEE_TYPE_PRICES: Dict[str, float] = {
    "ROBUSTA": 2500.0,
    "ARABICA": 4000.0,
    "BLEND": 3500.0,
    "INSTANT": 6000.0,
}
DEFAULT_FALLBACK_PRICE_PER_MT = 3000.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database
    database_url: str = "sqlite:///./data/coffee_export.db"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # Rate limiting (public RFQ intake)
    rate_limit_enabled: bool = True
    rfq_submit_rate_limit: str = "10/minute"

    # RFQ handling
    rfq_default_validity_days: int = 30
    admin_email: str = "sales@coffee-export.local"
    default_currency: Literal["USD", "EUR", "JPY", "GBP"] = "USD"

    # Pricing tables
    incoterm_adjustments: Dict[str, float] = dict(DEFAULT_INCOTERM_ADJUSTMENTS)
    coffee_type_prices_per_mt: Dict[str, float] = dict(DEFAULT_COFFEE_TYPE_PRICES)
    fallback_price_per_mt: float = DEFAULT_FALLBACK_PRICE_PER_MT

    @field_validator("incoterm_adjustments", "coffee_type_prices_per_mt")
    @classmethod
    def validate_positive_factors(cls, v: Dict[str, float]) -> Dict[str, float]:
        for key, value in v.items():
            if value <= 0:
                raise ValueError(f"{key} must be positive, got {value}")
        return {key.upper(): value for key, value in v.items()}

    @field_validator("rfq_default_validity_days")
    @classmethod
    def validate_validity_days(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rfq_default_validity_days must be at least 1")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
