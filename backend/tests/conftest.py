"""Pytest configuration and fixtures."""

import copy
import os
import pytest
from datetime import datetime, timezone
from typing import Generator

# Keep the app lifespan away from the on-disk dev database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DEBUG", "true")

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from coffee_export.api.deps import get_clock, get_dispatcher, get_ids
from coffee_export.core.clock import FixedClock, SequentialIdGenerator
from coffee_export.db.base import Base
from coffee_export.db.session import get_db, make_engine
from coffee_export.main import app
# Import all models to ensure they're registered with Base.metadata
from coffee_export.models import *
from coffee_export.services.notifications import NotificationDispatcher, RecordingNotifier

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

NOW = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

STAFF_ID = "11111111-1111-1111-1111-111111111111"
INSPECTOR_ID = "33333333-3333-3333-3333-333333333333"
CONTACT_ID = "22222222-2222-2222-2222-222222222222"
ADDRESS_ID = "44444444-4444-4444-4444-444444444444"
PRODUCT_ID = "55555555-5555-5555-5555-555555555555"
ITEM_1_ID = "66666666-6666-6666-6666-666666666661"
ITEM_2_ID = "66666666-6666-6666-6666-666666666662"
PAYMENT_1_ID = "77777777-7777-7777-7777-777777777771"
PAYMENT_2_ID = "77777777-7777-7777-7777-777777777772"


# ============== Payload builders ==============

def build_product_payload(**overrides) -> dict:
    payload = {
        "sku": "VN-ROB-S18-001",
        "name": {"en": "Robusta Screen 18", "de": "Robusta Siebgroesse 18"},
        "description": {"en": "Wet-polished Dak Lak robusta"},
        "type": "ROBUSTA",
        "grade": "SCREEN_18",
        "processing_method": "NATURAL",
        "specifications": {
            "moisture": 12.5,
            "screen_size": "18",
            "defect_rate": 2.0,
            "cupping_score": 78,
        },
        "pricing": {
            "base_price": 3000,
            "currency": "USD",
            "unit": "MT",
            "incoterm": "FOB",
            "minimum_order": 10,
            "price_valid_until": "2025-06-30",
            "discount_tiers": [
                {"threshold": 50, "discount_percentage": 5},
                {"threshold": 100, "discount_percentage": 10},
            ],
        },
        "availability": {
            "in_stock": True,
            "stock_quantity": 500,
            "harvest_season": "2024/2025",
            "available_from": "2024-11-01T00:00:00Z",
            "lead_time": 21,
            "production_capacity": 200,
        },
        "certifications": ["UTZ"],
        "origin": {"region": "Dak Lak", "province": "Dak Lak", "altitude": 500},
        "keywords": ["robusta", "vietnam"],
    }
    payload.update(overrides)
    return payload


def build_service_payload(**overrides) -> dict:
    payload = {
        "service_code": "SVC-OEM-01",
        "name": {"en": "OEM Manufacturing", "ja": "OEM製造"},
        "description": {"en": "Roasting and packing under the client's brand"},
        "type": "OEM_MANUFACTURING",
        "category": "MANUFACTURING",
        "pricing": {
            "model": "VOLUME_BASED",
            "base_price": 100,
            "currency": "USD",
            "minimum_order": 5,
            "maximum_order": 500,
            "volume_discounts": [{"threshold": 100, "discount_percentage": 10}],
        },
        "timeline": {
            "minimum_days": 10,
            "maximum_days": 30,
            "average_days": 21,
            "rush_available": True,
            "rush_surcharge": 25,
        },
        "requirements": {"lead_time_required": 14, "documents_required": ["PURCHASE_ORDER"]},
        "capabilities": {
            "max_capacity_per_month": 300,
            "supported_certifications": ["ORGANIC"],
            "geographic_coverage": ["DE", "JP"],
        },
        "process_steps": [
            {
                "step_number": 2,
                "name": {"en": "Production"},
                "description": {"en": "Roast and pack"},
                "estimated_duration": 10,
            },
            {
                "step_number": 1,
                "name": {"en": "Sampling", "ja": "サンプリング"},
                "description": {"en": "Approve a pre-shipment sample"},
                "estimated_duration": 5,
                "client_involvement_required": True,
            },
        ],
        "keywords": ["oem", "private label"],
    }
    payload.update(overrides)
    return payload


def build_company_payload(**overrides) -> dict:
    payload = {
        "legal_name": "Hamburg Kaffee GmbH",
        "trading_name": "HH Kaffee",
        "status": "ACTIVE",
        "type": "IMPORTER",
        "size": "MEDIUM",
        "relationship_status": "DEVELOPING",
        "contacts": [
            {
                "id": CONTACT_ID,
                "first_name": "Jonas",
                "last_name": "Weber",
                "position": "Head of Sourcing",
                "email": "jonas@hamburg-kaffee.de",
                "phone": "+49 40 123456",
                "is_primary": True,
                "is_decision_maker": True,
                "created_at": "2024-12-01T00:00:00Z",
                "updated_at": "2024-12-01T00:00:00Z",
            }
        ],
        "addresses": [
            {
                "id": ADDRESS_ID,
                "type": "HEADQUARTERS",
                "street": "Am Sandtorkai 1",
                "city": "Hamburg",
                "postal_code": "20457",
                "country": "Germany",
                "country_code": "DE",
                "is_primary": True,
                "created_at": "2024-12-01T00:00:00Z",
                "updated_at": "2024-12-01T00:00:00Z",
            }
        ],
        "financial_info": {"currency": "EUR", "credit_limit": 100000, "credit_rating": "A"},
        "business_profile": {"founded_year": 1998, "annual_coffee_volume": 400, "primary_markets": ["DE"]},
        "risk_level": "LOW",
    }
    payload.update(overrides)
    return payload


def build_rfq_payload(**overrides) -> dict:
    payload = {
        "product_requirements": {"coffee_type": "ARABICA", "grade": "SCREEN_16", "certifications": ["ORGANIC"]},
        "quantity_requirements": {"quantity": 10, "unit": "MT"},
        "delivery_requirements": {
            "incoterms": "FOB",
            "destination_port": "Hamburg",
            "destination_country": "DE",
            "preferred_delivery_date": "2025-04-01T00:00:00Z",
            "latest_delivery_date": "2025-04-30T00:00:00Z",
            "packaging": "JUTE_BAGS_60KG",
        },
        "payment_terms": {"preferred_currency": "EUR", "payment_method": "LC", "payment_terms": "LC at sight"},
        "company_info": {
            "company_name": "Hamburg Kaffee GmbH",
            "contact_person": "Jonas Weber",
            "email": "jonas@hamburg-kaffee.de",
            "phone": "+49 40 123456",
            "address": {
                "street": "Am Sandtorkai 1",
                "city": "Hamburg",
                "postal_code": "20457",
                "country": "Germany",
            },
            "business_type": "IMPORTER",
        },
    }
    payload.update(overrides)
    return payload


def build_order_payload(client_id: str, **overrides) -> dict:
    def item(item_id, quantity, unit, total, **extra):
        line = {
            "id": item_id,
            "product_id": PRODUCT_ID,
            "product_sku": "VN-ROB-S18-001",
            "product_name": "Robusta Screen 18",
            "product_type": "ROBUSTA",
            "grade": "SCREEN_18",
            "quantity": quantity,
            "unit": unit,
            "unit_price": total / quantity,
            "total_price": total,
            "currency": "USD",
            "packaging": {"type": "JUTE_BAGS_60KG", "units_per_package": 60, "total_packages": 34},
            "requested_delivery_date": "2025-04-01T00:00:00Z",
        }
        line.update(extra)
        return line

    payload = {
        "client_id": client_id,
        "currency": "USD",
        "items": [
            item(ITEM_1_ID, 2, "MT", 5000),
            item(ITEM_2_ID, 2000, "KG", 5000),
        ],
        "subtotal": 10000,
        "total_amount": 10000,
        "payment_terms": {
            "method": "TT",
            "terms": "40% advance, 60% against documents",
            "currency": "USD",
            "schedule": [
                {
                    "id": PAYMENT_1_ID,
                    "description": "Advance",
                    "percentage": 40,
                    "amount": 4000,
                    "due_date": "2025-02-01T00:00:00Z",
                },
                {
                    "id": PAYMENT_2_ID,
                    "description": "Balance against documents",
                    "percentage": 60,
                    "amount": 6000,
                    "due_date": "2025-03-15T00:00:00Z",
                },
            ],
        },
        "shipping_details": {
            "incoterms": "FOB",
            "origin_port": "Ho Chi Minh City",
            "origin_address": {
                "company": "Saigon Coffee Export",
                "street": "1 Nguyen Hue",
                "city": "Ho Chi Minh City",
                "postal_code": "700000",
                "country": "Vietnam",
            },
            "destination_port": "Hamburg",
            "destination_address": {
                "company": "Hamburg Kaffee GmbH",
                "street": "Am Sandtorkai 1",
                "city": "Hamburg",
                "postal_code": "20457",
                "country": "Germany",
                "contact_person": "Jonas Weber",
                "phone": "+49 40 123456",
                "email": "jonas@hamburg-kaffee.de",
            },
            "estimated_shipment_date": "2025-03-01T00:00:00Z",
            "estimated_arrival_date": "2025-04-01T00:00:00Z",
        },
        "requested_delivery_date": "2025-04-01T00:00:00Z",
        "sales_rep": STAFF_ID,
    }
    payload.update(overrides)
    return payload


def with_quality_requirements(payload: dict) -> dict:
    """Copy of an order payload whose first line carries quality requirements."""
    payload = copy.deepcopy(payload)
    payload["items"][0]["quality_requirements"] = {"moisture": 12.5, "defect_rate": 3}
    return payload


def build_quality_control(passed: bool = True, **overrides) -> dict:
    record = {
        "inspector": INSPECTOR_ID,
        "inspection_date": "2025-02-20T08:00:00Z",
        "inspection_location": "Binh Duong warehouse",
        "moisture_content": 12.2,
        "screen_analysis": {"18": 92.0, "16": 8.0},
        "defect_count": 4 if passed else 40,
        "passed": passed,
    }
    record.update(overrides)
    return record


# ============== Fixtures ==============

@pytest.fixture
def clock() -> FixedClock:
    """Deterministic clock; advance it between creates that derive numbers from time."""
    return FixedClock(NOW)


@pytest.fixture
def ids() -> SequentialIdGenerator:
    return SequentialIdGenerator(start=1000)


@pytest.fixture
def recorder() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(recorder: RecordingNotifier) -> NotificationDispatcher:
    return NotificationDispatcher([recorder])


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = make_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session, clock, ids, dispatcher) -> Generator[TestClient, None, None]:
    """Create a test client with database, clock and id overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_ids] = lambda: ids
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    # Disable rate limiters during tests to avoid flaky failures
    from coffee_export.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def staff_headers() -> dict:
    return {"X-Actor-Id": STAFF_ID}


@pytest.fixture
def product_payload() -> dict:
    return build_product_payload()


@pytest.fixture
def service_payload() -> dict:
    return build_service_payload()


@pytest.fixture
def company_payload() -> dict:
    return build_company_payload()


@pytest.fixture
def rfq_payload() -> dict:
    return build_rfq_payload()
