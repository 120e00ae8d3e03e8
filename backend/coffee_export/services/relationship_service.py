"""Relationship Service - rebuilds client trading history from orders.

The relationship score itself lives on ``ClientCompany``; this service keeps
its inputs current and suggests a relationship status from the order record.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from coffee_export.core.clock import Clock, resolve_clock
from coffee_export.schemas.client_company import (
    ClientCompany,
    PaymentHistory,
    RelationshipStatus,
    TradingHistory,
)
from coffee_export.schemas.order import Order, OrderStatus, PaymentStatus
from coffee_export.services.repository import ClientCompanyRepository, OrderRepository
from coffee_export.services.workflow import TransitionResult

logger = logging.getLogger(__name__)

DORMANT_AFTER_DAYS = 365
LATE_PAYMENT_RATIO_AT_RISK = 0.5
ESTABLISHED_MIN_ORDERS = 10
DEVELOPING_MIN_ORDERS = 3
PREFERRED_PRODUCTS_TOP_N = 3

# Manually granted tiers that order volume alone never downgrades
MANUAL_TIERS = frozenset({RelationshipStatus.STRATEGIC_PARTNER, RelationshipStatus.KEY_ACCOUNT})


@dataclass
class RelationshipSummary:
    company_id: str
    company_code: str
    score: float
    relationship_status: str
    suggested_status: str
    available_credit: float
    is_high_risk: bool
    needs_follow_up: bool
    is_strategic_account: bool


def build_trading_history(orders: Iterable[Order]) -> TradingHistory:
    """Aggregate totals, payment punctuality and exposure over ``orders``.

    Cancelled orders are ignored.
    """
    counted = [o for o in orders if o.status != OrderStatus.CANCELLED]
    if not counted:
        return TradingHistory(preferred_products=[])

    total_value = sum(o.total_amount for o in counted)
    total_volume = sum(o.get_total_weight() for o in counted)

    on_time = late = 0
    payment_days: List[float] = []
    for order in counted:
        for installment in order.payment_terms.schedule:
            if installment.status != PaymentStatus.PAID or installment.paid_date is None:
                continue
            if installment.is_late():
                late += 1
            else:
                on_time += 1
            payment_days.append((installment.paid_date - order.order_date).total_seconds() / 86400)

    outstanding = sum(max(o.get_outstanding_amount(), 0.0) for o in counted if o.status != OrderStatus.RETURNED)

    volume_by_sku: Counter = Counter()
    for order in counted:
        for item in order.items:
            volume_by_sku[item.product_sku] += item.weight_in_mt()

    return TradingHistory(
        first_order_date=min(o.order_date for o in counted),
        last_order_date=max(o.order_date for o in counted),
        total_orders=len(counted),
        total_volume=total_volume,
        total_value=total_value,
        average_order_value=total_value / len(counted),
        average_order_volume=total_volume / len(counted),
        preferred_products=[sku for sku, _ in volume_by_sku.most_common(PREFERRED_PRODUCTS_TOP_N)],
        payment_history=PaymentHistory(
            on_time_payments=on_time,
            late_payments=late,
            average_payment_days=max(sum(payment_days) / len(payment_days), 0.0) if payment_days else None,
            outstanding_amount=outstanding,
        ),
    )


def suggest_relationship_status(
    company: ClientCompany, history: TradingHistory, clock: Optional[Clock] = None
) -> RelationshipStatus:
    now = resolve_clock(clock).now()
    if history.total_orders == 0:
        return company.relationship_status if company.relationship_status in MANUAL_TIERS else RelationshipStatus.NEW

    if history.last_order_date is not None and now - history.last_order_date > timedelta(days=DORMANT_AFTER_DAYS):
        return RelationshipStatus.DORMANT

    payments = history.payment_history
    if payments is not None and payments.total_payments:
        if payments.late_payments / payments.total_payments > LATE_PAYMENT_RATIO_AT_RISK:
            return RelationshipStatus.AT_RISK
    if company.is_high_risk() and company.get_available_credit() < 0:
        return RelationshipStatus.AT_RISK

    if company.relationship_status in MANUAL_TIERS:
        return company.relationship_status
    if history.total_orders >= ESTABLISHED_MIN_ORDERS:
        return RelationshipStatus.ESTABLISHED
    if history.total_orders >= DEVELOPING_MIN_ORDERS:
        return RelationshipStatus.DEVELOPING
    return RelationshipStatus.NEW


class RelationshipService:
    """Keeps client trading history and relationship status in step with orders."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = resolve_clock(clock)
        self.clients = ClientCompanyRepository(db, self.clock)
        self.orders = OrderRepository(db, self.clock)

    def summarize(self, company: ClientCompany) -> RelationshipSummary:
        history = company.trading_history or TradingHistory()
        return RelationshipSummary(
            company_id=company.id,
            company_code=company.company_code,
            score=company.calculate_relationship_score(),
            relationship_status=company.relationship_status.value,
            suggested_status=suggest_relationship_status(company, history, self.clock).value,
            available_credit=company.get_available_credit(),
            is_high_risk=company.is_high_risk(),
            needs_follow_up=company.needs_follow_up(self.clock),
            is_strategic_account=company.is_strategic_account(),
        )

    def recompute(
        self,
        company_id: str,
        updated_by: str,
        apply_status: bool = False,
        expected_version: Optional[int] = None,
    ) -> TransitionResult[ClientCompany]:
        """Rebuild ``trading_history`` from stored orders.

        With ``apply_status`` the suggested relationship status is written too.
        """
        company = self.clients.find_by_id(company_id)
        if company is None:
            return TransitionResult.missing("Client company", company_id)

        history = build_trading_history(self.orders.find_by_client(company_id))
        updated = company.update_trading_history(history, updated_by, self.clock)
        if apply_status:
            suggested = suggest_relationship_status(updated, history, self.clock)
            if suggested != company.relationship_status:
                logger.info(
                    f"Client {company.company_code}: relationship "
                    f"{company.relationship_status.value} -> {suggested.value}"
                )
                updated = updated.update_relationship_status(suggested, updated_by, self.clock)

        self.clients.save(updated, expected_version)
        logger.info(
            f"Client {company.company_code}: {history.total_orders} order(s), "
            f"score {updated.calculate_relationship_score():.1f}"
        )
        return TransitionResult(record=updated)
