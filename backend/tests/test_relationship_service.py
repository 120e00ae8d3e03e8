"""Tests for trading history aggregation and relationship status suggestions."""

import pytest
from datetime import timedelta

from coffee_export.schemas.client_company import ClientCompany, RelationshipStatus, TradingHistory
from coffee_export.schemas.order import Order, OrderStatus
from coffee_export.services.relationship_service import (
    RelationshipService,
    build_trading_history,
    suggest_relationship_status,
)
from coffee_export.services.repository import ClientCompanyRepository, OrderRepository

from conftest import PAYMENT_1_ID, PAYMENT_2_ID, STAFF_ID, build_company_payload, build_order_payload


def _order(clock, ids, client_id=STAFF_ID, **overrides) -> Order:
    order = Order.create(build_order_payload(client_id, **overrides), created_by=STAFF_ID, clock=clock, ids=ids)
    clock.advance(seconds=1)
    return order


def _company(clock, ids, **overrides) -> ClientCompany:
    return ClientCompany.create(build_company_payload(**overrides), created_by=STAFF_ID, clock=clock, ids=ids)


class TestBuildTradingHistory:
    def test_no_orders(self):
        history = build_trading_history([])
        assert history.total_orders == 0
        assert history.first_order_date is None
        assert history.preferred_products == []

    def test_totals_skip_cancelled_orders(self, clock, ids):
        kept = _order(clock, ids)
        cancelled = _order(clock, ids).update_status(OrderStatus.CANCELLED, STAFF_ID, clock)
        history = build_trading_history([kept, cancelled])

        assert history.total_orders == 1
        assert history.total_value == 10_000
        assert history.total_volume == pytest.approx(4.0)
        assert history.average_order_value == 10_000
        assert history.first_order_date == kept.order_date
        assert history.last_order_date == kept.order_date

    def test_payment_punctuality(self, clock, ids):
        order = _order(clock, ids)
        order = order.record_payment(PAYMENT_1_ID, 4000, None, clock, STAFF_ID)
        clock.advance(days=70)  # after the 2025-03-15 due date
        order = order.record_payment(PAYMENT_2_ID, 6000, None, clock, STAFF_ID)

        payments = build_trading_history([order]).payment_history
        assert payments.on_time_payments == 1
        assert payments.late_payments == 1
        assert payments.outstanding_amount == 0
        assert payments.average_payment_days == pytest.approx(35, abs=0.01)

    def test_outstanding_exposure(self, clock, ids):
        order = _order(clock, ids).record_payment(PAYMENT_1_ID, 4000, None, clock, STAFF_ID)
        history = build_trading_history([order, _order(clock, ids)])
        assert history.payment_history.outstanding_amount == 16_000
        assert history.payment_history.average_payment_days == pytest.approx(0, abs=0.01)

    def test_preferred_products_by_volume(self, clock, ids):
        robusta = _order(clock, ids)
        payload = build_order_payload(STAFF_ID)
        for line in payload["items"]:
            line["product_sku"] = "VN-ARA-S16-001"
        payload["items"][1]["quantity"] = 20_000  # KG
        arabica = Order.create(payload, created_by=STAFF_ID, clock=clock, ids=ids)

        assert build_trading_history([robusta, arabica]).preferred_products == ["VN-ARA-S16-001", "VN-ROB-S18-001"]


class TestSuggestRelationshipStatus:
    def _history(self, clock, orders, days_ago=10, on_time=0, late=0) -> TradingHistory:
        return TradingHistory(
            total_orders=orders,
            last_order_date=clock.now() - timedelta(days=days_ago),
            payment_history={"on_time_payments": on_time, "late_payments": late},
        )

    def test_no_orders_is_new(self, clock, ids):
        assert suggest_relationship_status(_company(clock, ids), TradingHistory(), clock) == RelationshipStatus.NEW

    def test_manual_tier_survives_without_orders(self, clock, ids):
        company = _company(clock, ids, relationship_status="KEY_ACCOUNT")
        assert suggest_relationship_status(company, TradingHistory(), clock) == RelationshipStatus.KEY_ACCOUNT

    def test_dormant_after_a_year(self, clock, ids):
        company = _company(clock, ids, relationship_status="STRATEGIC_PARTNER")
        history = self._history(clock, 12, days_ago=400)
        assert suggest_relationship_status(company, history, clock) == RelationshipStatus.DORMANT

    def test_mostly_late_payer_is_at_risk(self, clock, ids):
        history = self._history(clock, 12, on_time=2, late=3)
        assert suggest_relationship_status(_company(clock, ids), history, clock) == RelationshipStatus.AT_RISK

    def test_half_late_is_not_at_risk(self, clock, ids):
        history = self._history(clock, 12, on_time=2, late=2)
        assert suggest_relationship_status(_company(clock, ids), history, clock) == RelationshipStatus.ESTABLISHED

    def test_high_risk_over_credit_is_at_risk(self, clock, ids):
        company = _company(
            clock,
            ids,
            risk_level="HIGH",
            trading_history={"total_orders": 3, "payment_history": {"outstanding_amount": 150_000}},
        )
        history = self._history(clock, 3)
        assert suggest_relationship_status(company, history, clock) == RelationshipStatus.AT_RISK

    @pytest.mark.parametrize(
        "orders, expected",
        [
            (1, RelationshipStatus.NEW),
            (3, RelationshipStatus.DEVELOPING),
            (9, RelationshipStatus.DEVELOPING),
            (10, RelationshipStatus.ESTABLISHED),
        ],
    )
    def test_volume_tiers(self, clock, ids, orders, expected):
        assert suggest_relationship_status(_company(clock, ids), self._history(clock, orders), clock) == expected

    def test_manual_tier_kept_with_orders(self, clock, ids):
        company = _company(clock, ids, relationship_status="STRATEGIC_PARTNER")
        history = self._history(clock, 1)
        assert suggest_relationship_status(company, history, clock) == RelationshipStatus.STRATEGIC_PARTNER


class TestRelationshipService:
    @pytest.fixture
    def stored(self, db_session, clock, ids):
        company = _company(clock, ids)
        ClientCompanyRepository(db_session, clock).create(company)
        orders = OrderRepository(db_session, clock)
        orders.create(_order(clock, ids, client_id=company.id))
        orders.create(_order(clock, ids, client_id="abababab-abab-abab-abab-abababababab"))
        return company

    def test_recompute_refreshes_history_only(self, db_session, clock, stored):
        service = RelationshipService(db_session, clock)
        result = service.recompute(stored.id, STAFF_ID)

        assert result.success is True
        saved = service.clients.find_by_id(stored.id)
        assert saved.trading_history.total_orders == 1
        assert saved.trading_history.total_value == 10_000
        assert saved.relationship_status == RelationshipStatus.DEVELOPING
        assert service.clients.get_version(stored.id) == 2

    def test_recompute_can_apply_suggested_status(self, db_session, clock, stored):
        service = RelationshipService(db_session, clock)
        result = service.recompute(stored.id, STAFF_ID, apply_status=True)
        assert result.record.relationship_status == RelationshipStatus.NEW
        assert service.clients.find_by_id(stored.id).relationship_status == RelationshipStatus.NEW

    def test_recompute_missing_company(self, db_session, clock):
        result = RelationshipService(db_session, clock).recompute("00000000-0000-0000-0000-00000000beef", STAFF_ID)
        assert result.not_found is True

    def test_summary(self, db_session, clock, stored):
        summary = RelationshipService(db_session, clock).summarize(stored)
        assert summary.company_code == stored.company_code
        assert summary.relationship_status == "DEVELOPING"
        assert summary.suggested_status == "NEW"
        assert summary.available_credit == 100_000
        assert summary.score == pytest.approx(stored.calculate_relationship_score())
        assert summary.is_strategic_account is False
