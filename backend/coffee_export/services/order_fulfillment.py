"""Order Fulfillment Service - production, quality, shipment and payment.

Gates enforced on top of the transition table:
- READY_FOR_SHIPMENT only when no line carries quality requirements or
  the recorded inspection passed.
- SHIPPED only when ``Order.can_be_shipped()`` holds.
- COMPLETED only once the order is fully paid.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from coffee_export.core.clock import Clock, IdGenerator, resolve_clock, resolve_ids
from coffee_export.schemas.base import SYSTEM_ACTOR_ID
from coffee_export.schemas.order import Order, OrderStatus, PaymentStatus, QualityControl
from coffee_export.services.notifications import (
    NotificationDispatcher,
    OrderCreated,
    OrderStatusChanged,
    PaymentRecorded,
    default_dispatcher,
)
from coffee_export.services.repository import OrderRepository
from coffee_export.services.workflow import TransitionResult

logger = logging.getLogger(__name__)

QC_STATUSES = frozenset({OrderStatus.IN_PRODUCTION, OrderStatus.QUALITY_CHECK, OrderStatus.READY_FOR_SHIPMENT})


class OrderFulfillmentService:
    """Service applying fulfillment commands to stored orders."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.clock = resolve_clock(clock)
        self.ids = resolve_ids(ids)
        self.dispatcher = dispatcher or default_dispatcher
        self.orders = OrderRepository(db, self.clock)

    def _status_changed(self, before: Order, after: Order):
        if before.status == after.status:
            return []
        logger.info(f"Order {after.order_number}: {before.status.value} -> {after.status.value}")
        return self.dispatcher.publish(
            OrderStatusChanged(
                record_id=after.id,
                occurred_at=self.clock.now(),
                order_number=after.order_number,
                old_status=before.status.value,
                new_status=after.status.value,
            )
        )

    # ===== CREATION =====

    def create_order(self, data: Dict[str, Any], created_by: str) -> Order:
        """Create a DRAFT order not backed by an RFQ."""
        order = Order.create(data, created_by=created_by, clock=self.clock, ids=self.ids)
        self.orders.create(order)
        self.dispatcher.publish(
            OrderCreated(
                record_id=order.id,
                occurred_at=self.clock.now(),
                order_number=order.order_number,
                client_id=order.client_id,
                rfq_id=order.rfq_id,
                total_amount=order.total_amount,
            )
        )
        return order

    # ===== LIFECYCLE =====

    def _gate(self, order: Order, status: OrderStatus) -> Optional[str]:
        """Reason the move to ``status`` is refused, or None."""
        if not order.can_transition_to(status):
            return f"cannot move order from {order.status.value} to {status.value}"
        if (
            status == OrderStatus.READY_FOR_SHIPMENT
            and order.requires_quality_check()
            and not (order.quality_control and order.quality_control.passed)
        ):
            return "order lines carry quality requirements; record a passing inspection first"
        if status == OrderStatus.SHIPPED and not order.can_be_shipped():
            missing = ", ".join(d.type.value for d in order.missing_documents())
            detail = f" (unverified: {missing})" if missing else ""
            return f"order {order.order_number} is not ready to ship{detail}"
        if status == OrderStatus.COMPLETED and not order.is_paid():
            return f"order {order.order_number} still has {order.get_outstanding_amount():.2f} outstanding"
        return None

    def transition(
        self,
        order_id: str,
        status: OrderStatus,
        updated_by: str,
        expected_version: Optional[int] = None,
    ) -> TransitionResult[Order]:
        order = self.orders.find_by_id(order_id)
        if order is None:
            return TransitionResult.missing("Order", order_id)
        status = OrderStatus(status)
        reason = self._gate(order, status)
        if reason is not None:
            logger.warning(f"Order {order.order_number}: {reason}")
            return TransitionResult.refused(order, reason)

        updated = order.update_status(status, updated_by, self.clock)
        self.orders.save(updated, expected_version)
        return TransitionResult(record=updated, notifications=self._status_changed(order, updated))

    def ship(
        self,
        order_id: str,
        updated_by: str,
        bill_of_lading_number: Optional[str] = None,
        vessel: Optional[str] = None,
        container_number: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> TransitionResult[Order]:
        order = self.orders.find_by_id(order_id)
        if order is None:
            return TransitionResult.missing("Order", order_id)
        reason = self._gate(order, OrderStatus.SHIPPED)
        if reason is not None:
            logger.warning(f"Order {order.order_number}: {reason}")
            return TransitionResult.refused(order, reason)

        updated = order.record_shipment(
            updated_by,
            self.clock,
            bill_of_lading_number=bill_of_lading_number,
            vessel=vessel,
            container_number=container_number,
        )
        self.orders.save(updated, expected_version)
        return TransitionResult(record=updated, notifications=self._status_changed(order, updated))

    def record_quality_control(
        self,
        order_id: str,
        record: Union[QualityControl, Dict[str, Any]],
        updated_by: str,
        expected_version: Optional[int] = None,
    ) -> TransitionResult[Order]:
        order = self.orders.find_by_id(order_id)
        if order is None:
            return TransitionResult.missing("Order", order_id)
        if order.status not in QC_STATUSES:
            return TransitionResult.refused(
                order, f"quality inspection not expected while order is {order.status.value}"
            )

        updated = order.set_quality_control(record, self.clock, updated_by)
        self.orders.save(updated, expected_version)
        verdict = "passed" if updated.quality_control.passed else "failed"
        logger.info(f"Order {order.order_number}: quality inspection {verdict}")
        return TransitionResult(record=updated, notifications=self._status_changed(order, updated))

    # ===== PAYMENTS =====

    def record_payment(
        self,
        order_id: str,
        payment_id: str,
        amount: float,
        updated_by: str,
        reference: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> TransitionResult[Order]:
        order = self.orders.find_by_id(order_id)
        if order is None:
            return TransitionResult.missing("Order", order_id)
        if order.status == OrderStatus.CANCELLED:
            return TransitionResult.refused(order, f"order {order.order_number} is cancelled")
        if not any(p.id == payment_id for p in order.payment_terms.schedule):
            return TransitionResult.refused(order, f"no scheduled payment {payment_id} on {order.order_number}")

        updated = order.record_payment(payment_id, amount, reference, self.clock, updated_by)
        self.orders.save(updated, expected_version)
        logger.info(
            f"Order {order.order_number}: payment {payment_id} of {amount} recorded, "
            f"status {updated.payment_status.value}, outstanding {updated.get_outstanding_amount():.2f}"
        )
        notifications = self.dispatcher.publish(
            PaymentRecorded(
                record_id=order.id,
                occurred_at=self.clock.now(),
                order_number=order.order_number,
                payment_id=payment_id,
                amount=amount,
                payment_status=updated.payment_status.value,
            )
        )
        return TransitionResult(record=updated, notifications=notifications)

    def flag_overdue_payments(self, updated_by: str = SYSTEM_ACTOR_ID) -> List[Order]:
        """Mark orders OVERDUE when a scheduled installment is past due and unpaid."""
        now: datetime = self.clock.now()
        flagged = []
        for order in self.orders.find_all():
            if order.is_terminal() or order.payment_status not in (PaymentStatus.PENDING, PaymentStatus.PARTIAL):
                continue
            late = [p for p in order.payment_terms.schedule if p.status != PaymentStatus.PAID and p.due_date < now]
            if late:
                updated = order.update_payment_status(PaymentStatus.OVERDUE, updated_by, self.clock)
                self.orders.save(updated)
                flagged.append(updated)
                logger.warning(f"Order {order.order_number}: {len(late)} installment(s) overdue")
        return flagged

    # ===== DOCUMENTS =====

    def add_document(
        self, order_id: str, document: Dict[str, Any], expected_version: Optional[int] = None
    ) -> TransitionResult[Order]:
        order = self.orders.find_by_id(order_id)
        if order is None:
            return TransitionResult.missing("Order", order_id)
        updated = order.add_document(document, self.clock, self.ids)
        self.orders.save(updated, expected_version)
        return TransitionResult(record=updated)

    def verify_document(
        self, order_id: str, document_id: str, verified_by: str, expected_version: Optional[int] = None
    ) -> TransitionResult[Order]:
        order = self.orders.find_by_id(order_id)
        if order is None:
            return TransitionResult.missing("Order", order_id)
        if not any(d.id == document_id for d in order.documents):
            return TransitionResult.refused(order, f"no document {document_id} on {order.order_number}")
        updated = order.verify_document(document_id, verified_by, self.clock)
        self.orders.save(updated, expected_version)
        return TransitionResult(record=updated)
