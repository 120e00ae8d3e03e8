"""Tests for the order fulfillment service: gates, payments, documents."""

import pytest

from coffee_export.core.exceptions import VersionConflictError
from coffee_export.schemas.order import OrderStatus, PaymentStatus, ShipmentStatus
from coffee_export.services.order_fulfillment import OrderFulfillmentService

from conftest import (
    INSPECTOR_ID,
    PAYMENT_1_ID,
    PAYMENT_2_ID,
    STAFF_ID,
    build_order_payload,
    build_quality_control,
    with_quality_requirements,
)

CLIENT_ID = "99999999-9999-9999-9999-999999999999"


@pytest.fixture
def service(db_session, clock, ids, dispatcher) -> OrderFulfillmentService:
    return OrderFulfillmentService(db_session, clock=clock, ids=ids, dispatcher=dispatcher)


@pytest.fixture
def order(service):
    return service.create_order(build_order_payload(CLIENT_ID), STAFF_ID)


def _drive(service, order_id, *statuses):
    result = None
    for status in statuses:
        result = service.transition(order_id, status, STAFF_ID)
        assert result.success, result.reason
    return result


def _bill_of_lading(required=True) -> dict:
    return {
        "type": "BILL_OF_LADING",
        "file_name": "bl-778812.pdf",
        "file_url": "https://files.example.org/bl-778812.pdf",
        "file_size": 8192,
        "uploaded_by": STAFF_ID,
        "is_required": required,
    }


class TestCreateAndTransition:
    def test_create_publishes_event(self, service, order, recorder):
        assert service.orders.find_by_id(order.id) == order
        assert recorder.names() == ["OrderCreated"]
        assert recorder.events[0].total_amount == 10_000
        assert recorder.events[0].rfq_id is None

    def test_allowed_move(self, service, order, recorder, clock):
        clock.advance(hours=2)
        result = service.transition(order.id, OrderStatus.CONFIRMED, STAFF_ID)
        assert result.success is True
        assert result.record.confirmed_date == clock.now()
        event = recorder.events[-1]
        assert (event.name, event.old_status, event.new_status) == ("OrderStatusChanged", "DRAFT", "CONFIRMED")

    def test_move_outside_table_is_refused(self, service, order, recorder):
        result = service.transition(order.id, OrderStatus.SHIPPED, STAFF_ID)
        assert result.not_allowed is True
        assert service.orders.find_by_id(order.id).status == OrderStatus.DRAFT
        assert recorder.names() == ["OrderCreated"]

    def test_missing_order(self, service):
        result = service.transition("00000000-0000-0000-0000-00000000beef", OrderStatus.CONFIRMED, STAFF_ID)
        assert result.not_found is True

    def test_hold_and_resume(self, service, order):
        _drive(service, order.id, OrderStatus.CONFIRMED, OrderStatus.ON_HOLD, OrderStatus.IN_PRODUCTION)
        assert service.orders.find_by_id(order.id).status == OrderStatus.IN_PRODUCTION

    def test_stale_version_raises(self, service, order):
        service.transition(order.id, OrderStatus.CONFIRMED, STAFF_ID, expected_version=1)
        with pytest.raises(VersionConflictError):
            service.transition(order.id, OrderStatus.IN_PRODUCTION, STAFF_ID, expected_version=1)


class TestQualityGate:
    @pytest.fixture
    def inspected_order(self, service):
        order = service.create_order(with_quality_requirements(build_order_payload(CLIENT_ID)), STAFF_ID)
        _drive(service, order.id, OrderStatus.CONFIRMED, OrderStatus.IN_PRODUCTION)
        return order

    def test_ready_for_shipment_needs_passing_inspection(self, service, inspected_order):
        result = service.transition(inspected_order.id, OrderStatus.READY_FOR_SHIPMENT, STAFF_ID)
        assert result.not_allowed is True
        assert "inspection" in result.reason

    def test_failed_then_passed_inspection(self, service, inspected_order, recorder):
        failed = service.record_quality_control(inspected_order.id, build_quality_control(passed=False), INSPECTOR_ID)
        assert failed.record.status == OrderStatus.QUALITY_CHECK
        assert service.transition(inspected_order.id, OrderStatus.READY_FOR_SHIPMENT, STAFF_ID).not_allowed is True

        passed = service.record_quality_control(inspected_order.id, build_quality_control(passed=True), INSPECTOR_ID)
        assert passed.record.status == OrderStatus.READY_FOR_SHIPMENT
        assert passed.record.quality_control.passed is True
        assert recorder.events[-1].new_status == "READY_FOR_SHIPMENT"

    def test_inspection_refused_before_production(self, service, order):
        result = service.record_quality_control(order.id, build_quality_control(), INSPECTOR_ID)
        assert result.not_allowed is True
        assert service.orders.find_by_id(order.id).quality_control is None

    def test_order_without_requirements_skips_inspection(self, service, order):
        result = _drive(
            service, order.id, OrderStatus.CONFIRMED, OrderStatus.IN_PRODUCTION, OrderStatus.READY_FOR_SHIPMENT
        )
        assert result.record.status == OrderStatus.READY_FOR_SHIPMENT


class TestShipment:
    @pytest.fixture
    def ready_order(self, service, order):
        _drive(service, order.id, OrderStatus.CONFIRMED, OrderStatus.IN_PRODUCTION, OrderStatus.READY_FOR_SHIPMENT)
        return order

    def test_unverified_document_blocks_shipment(self, service, ready_order):
        added = service.add_document(ready_order.id, _bill_of_lading())
        document_id = added.record.documents[0].id

        refused = service.ship(ready_order.id, STAFF_ID, bill_of_lading_number="BL-778812")
        assert refused.not_allowed is True
        assert "BILL_OF_LADING" in refused.reason

        verified = service.verify_document(ready_order.id, document_id, STAFF_ID)
        assert verified.record.documents[0].verified_at is not None

        shipped = service.ship(ready_order.id, STAFF_ID, bill_of_lading_number="BL-778812", vessel="MSC Aurora")
        assert shipped.success is True
        assert shipped.record.status == OrderStatus.SHIPPED
        assert shipped.record.shipping_details.status == ShipmentStatus.SHIPPED
        assert shipped.record.shipping_details.vessel == "MSC Aurora"

    def test_ship_via_transition(self, service, ready_order):
        assert service.transition(ready_order.id, OrderStatus.SHIPPED, STAFF_ID).success is True

    def test_ship_before_ready_is_refused(self, service, order):
        assert service.ship(order.id, STAFF_ID).not_allowed is True

    def test_verify_unknown_document(self, service, order):
        result = service.verify_document(order.id, "00000000-0000-0000-0000-00000000d0c5", STAFF_ID)
        assert result.not_allowed is True

    def test_completion_requires_full_payment(self, service, ready_order, clock):
        _drive(service, ready_order.id, OrderStatus.SHIPPED, OrderStatus.DELIVERED)
        refused = service.transition(ready_order.id, OrderStatus.COMPLETED, STAFF_ID)
        assert refused.not_allowed is True
        assert "10000.00 outstanding" in refused.reason

        service.record_payment(ready_order.id, PAYMENT_1_ID, 4000, STAFF_ID)
        service.record_payment(ready_order.id, PAYMENT_2_ID, 6000, STAFF_ID)
        completed = service.transition(ready_order.id, OrderStatus.COMPLETED, STAFF_ID)
        assert completed.success is True
        assert completed.record.is_completed() is True


class TestPayments:
    def test_record_payment(self, service, order, recorder, clock):
        result = service.record_payment(order.id, PAYMENT_1_ID, 4000, STAFF_ID, reference="TT-001")
        assert result.record.payment_status == PaymentStatus.PARTIAL
        assert service.orders.find_by_id(order.id).get_outstanding_amount() == 6000

        event = recorder.events[-1]
        assert event.name == "PaymentRecorded"
        assert (event.payment_id, event.amount, event.payment_status) == (PAYMENT_1_ID, 4000, "PARTIAL")

    def test_unknown_installment_is_refused(self, service, order, recorder):
        result = service.record_payment(order.id, "00000000-0000-0000-0000-0000000000aa", 4000, STAFF_ID)
        assert result.not_allowed is True
        assert recorder.names() == ["OrderCreated"]

    def test_cancelled_order_is_refused(self, service, order):
        _drive(service, order.id, OrderStatus.CANCELLED)
        assert service.record_payment(order.id, PAYMENT_1_ID, 4000, STAFF_ID).not_allowed is True

    def test_missing_order(self, service):
        result = service.record_payment("00000000-0000-0000-0000-00000000beef", PAYMENT_1_ID, 1, STAFF_ID)
        assert result.not_found is True


class TestFlagOverduePayments:
    def test_unpaid_installment_past_due(self, service, order, clock):
        assert service.flag_overdue_payments() == []
        clock.advance(days=20)
        flagged = service.flag_overdue_payments()
        assert [o.id for o in flagged] == [order.id]
        assert service.orders.find_by_id(order.id).payment_status == PaymentStatus.OVERDUE
        assert service.flag_overdue_payments() == []

    def test_paid_and_cancelled_orders_are_skipped(self, service, order, clock):
        service.record_payment(order.id, PAYMENT_1_ID, 4000, STAFF_ID)
        clock.advance(seconds=1)
        cancelled = service.create_order(build_order_payload(CLIENT_ID), STAFF_ID)
        _drive(service, cancelled.id, OrderStatus.CANCELLED)

        clock.advance(days=20)
        assert service.flag_overdue_payments() == []

        clock.advance(days=50)
        assert [o.id for o in service.flag_overdue_payments()] == [order.id]
