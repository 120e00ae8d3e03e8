"""Tests for payload validation and serialization at the entity boundary."""

import json
import pytest

from coffee_export.core.exceptions import EntityValidationError, FieldError
from coffee_export.schemas.business_service import BusinessService
from coffee_export.schemas.client_company import ClientCompany
from coffee_export.schemas.coffee_product import CoffeeProduct
from coffee_export.schemas.order import Order
from coffee_export.schemas.rfq import RFQ

from conftest import STAFF_ID, build_company_payload, build_order_payload, build_product_payload


class TestEntityValidationError:
    def test_collects_every_failing_field(self, clock, ids):
        payload = build_product_payload(sku="", type="LIBERICA")
        payload["pricing"] = {**payload["pricing"], "base_price": 0, "currency": "VND"}
        with pytest.raises(EntityValidationError) as exc_info:
            CoffeeProduct.create(payload, created_by=STAFF_ID, clock=clock, ids=ids)

        error = exc_info.value
        assert error.entity == "coffee_product"
        fields = {e.field for e in error.errors}
        assert {"sku", "type", "pricing.base_price", "pricing.currency"} <= fields
        assert str(len(error.errors)) in str(error)

    def test_to_dict_is_json_ready(self, clock, ids):
        with pytest.raises(EntityValidationError) as exc_info:
            ClientCompany.create(build_company_payload(status="PARTNER"), created_by=STAFF_ID, clock=clock, ids=ids)
        body = json.loads(json.dumps(exc_info.value.to_dict()))
        assert body["entity"] == "client_company"
        assert body["errors"][0]["field"] == "status"
        assert body["errors"][0]["type"] == "enum"

    def test_unknown_fields_are_rejected(self, clock, ids):
        with pytest.raises(EntityValidationError) as exc_info:
            CoffeeProduct.create(build_product_payload(colour="green"), created_by=STAFF_ID, clock=clock, ids=ids)
        assert [e.field for e in exc_info.value.errors] == ["colour"]

    def test_non_uuid_actor_is_rejected(self, clock, ids):
        with pytest.raises(EntityValidationError) as exc_info:
            CoffeeProduct.create(build_product_payload(), created_by="admin", clock=clock, ids=ids)
        assert {e.field for e in exc_info.value.errors} == {"created_by", "updated_by"}

    def test_naive_timestamps_are_rejected(self, clock, ids):
        payload = build_product_payload()
        payload["availability"] = {**payload["availability"], "available_from": "2024-11-01T00:00:00"}
        with pytest.raises(EntityValidationError):
            CoffeeProduct.create(payload, created_by=STAFF_ID, clock=clock, ids=ids)

    def test_field_error_to_dict(self):
        assert FieldError("sku", "too short").to_dict() == {
            "field": "sku",
            "message": "too short",
            "type": "value_error",
        }


class TestIsValid:
    def test_valid_and_invalid_payloads(self, clock, ids):
        product = CoffeeProduct.create(build_product_payload(), created_by=STAFF_ID, clock=clock, ids=ids)
        assert CoffeeProduct.is_valid(product.to_dict()) is True
        assert CoffeeProduct.is_valid({**product.to_dict(), "sort_order": "first"}) is False
        assert BusinessService.is_valid({}) is False


class TestSerialization:
    def test_product_round_trip(self, clock, ids):
        product = CoffeeProduct.create(build_product_payload(), created_by=STAFF_ID, clock=clock, ids=ids)
        data = product.to_dict()
        assert data["certifications"] == ["UTZ"]
        assert data["created_at"].startswith("2025-01-15T10:00:00")
        assert CoffeeProduct.from_dict(json.loads(json.dumps(data))) == product

    def test_order_round_trip_after_mutation(self, clock, ids):
        order = Order.create(build_order_payload(STAFF_ID), created_by=STAFF_ID, clock=clock, ids=ids)
        paid = order.record_payment(order.payment_terms.schedule[0].id, 4000, "TT-1", clock, STAFF_ID)
        assert Order.from_dict(json.loads(json.dumps(paid.to_dict()))) == paid

    def test_rfq_from_dict_revalidates(self, clock, ids):
        from conftest import build_rfq_payload

        rfq = RFQ.create(build_rfq_payload(), updated_by=STAFF_ID, clock=clock, ids=ids)
        data = rfq.to_dict()
        data["last_activity_at"] = "2020-01-01T00:00:00Z"
        with pytest.raises(EntityValidationError):
            RFQ.from_dict(data)
