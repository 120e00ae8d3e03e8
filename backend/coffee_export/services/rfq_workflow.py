"""RFQ Workflow Service - intake, review, quoting and hand-off to an order.

Flow:
1. Public submission creates a PENDING RFQ (expires after the configured
   validity window) and links it to a known client by contact email.
2. Staff move it through IN_REVIEW -> QUOTED -> NEGOTIATING along the
   transition table; moves outside the table are refused, not raised.
3. An ACCEPTED RFQ is converted into a DRAFT order carrying ``rfq_id``.
4. ``expire_overdue`` sweeps RFQs whose ``expires_at`` has passed.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from coffee_export.core.clock import Clock, IdGenerator, resolve_clock, resolve_ids
from coffee_export.core.config import Settings, get_settings
from coffee_export.schemas.base import SYSTEM_ACTOR_ID
from coffee_export.schemas.client_company import ClientCompany
from coffee_export.schemas.order import Order
from coffee_export.schemas.pagination import SearchCriteria
from coffee_export.schemas.rfq import RFQ, RFQStatus
from coffee_export.services.notifications import (
    NotificationDispatcher,
    OrderCreated,
    RFQStatusChanged,
    RFQSubmitted,
    default_dispatcher,
)
from coffee_export.services.repository import ClientCompanyRepository, OrderRepository, RFQRepository
from coffee_export.services.workflow import TransitionResult

logger = logging.getLogger(__name__)


class RFQWorkflowService:
    """Service driving RFQs through their lifecycle."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.clock = resolve_clock(clock)
        self.ids = resolve_ids(ids)
        self.dispatcher = dispatcher or default_dispatcher
        self.config = config or get_settings()
        self.rfqs = RFQRepository(db, self.clock)
        self.orders = OrderRepository(db, self.clock)
        self.clients = ClientCompanyRepository(db, self.clock)

    # ===== INTAKE =====

    def estimate_value(self, rfq: RFQ) -> float:
        return rfq.calculate_estimated_value(
            self.config.coffee_type_prices_per_mt, self.config.fallback_price_per_mt
        )

    def find_client_for(self, email: str) -> Optional[ClientCompany]:
        """Known client whose contacts include ``email`` (case-insensitive)."""
        email = email.lower()
        hits = self.clients.search(SearchCriteria(text=email, limit=50))
        for company in hits.items:
            if any(contact.email.lower() == email for contact in company.contacts):
                return company
        return None

    def submit(self, payload: Dict[str, Any], created_by: Optional[str] = None) -> RFQ:
        """Create a PENDING RFQ from an inbound request.

        Raises ``EntityValidationError`` when the payload is malformed.
        """
        data = dict(payload)
        if not data.get("client_id"):
            email = (data.get("company_info") or {}).get("email")
            client = self.find_client_for(email) if email else None
            if client is not None:
                data["client_id"] = client.id

        rfq = RFQ.create(
            data,
            updated_by=created_by or SYSTEM_ACTOR_ID,
            created_by=created_by,
            validity_days=self.config.rfq_default_validity_days,
            clock=self.clock,
            ids=self.ids,
        )
        self.rfqs.create(rfq)
        estimate = self.estimate_value(rfq)
        logger.info(
            f"RFQ {rfq.rfq_number} submitted by {rfq.company_info.company_name} "
            f"(client={rfq.client_id}, est. {estimate:.2f})"
        )
        self.dispatcher.publish(
            RFQSubmitted(
                record_id=rfq.id,
                occurred_at=self.clock.now(),
                rfq_number=rfq.rfq_number,
                company_name=rfq.company_info.company_name,
                contact_email=rfq.company_info.email,
                estimated_value=estimate,
            )
        )
        return rfq

    # ===== LIFECYCLE =====

    def transition(
        self,
        rfq_id: str,
        status: RFQStatus,
        updated_by: str,
        expected_version: Optional[int] = None,
    ) -> TransitionResult[RFQ]:
        rfq = self.rfqs.find_by_id(rfq_id)
        if rfq is None:
            return TransitionResult.missing("RFQ", rfq_id)

        status = RFQStatus(status)
        if not rfq.can_transition_to(status):
            logger.warning(f"RFQ {rfq.rfq_number}: transition {rfq.status.value} -> {status.value} refused")
            return TransitionResult.refused(rfq, f"cannot move RFQ from {rfq.status.value} to {status.value}")
        if status != RFQStatus.EXPIRED and rfq.is_expired(self.clock):
            return TransitionResult.refused(rfq, f"RFQ {rfq.rfq_number} has expired")
        if status == RFQStatus.QUOTED and rfq.status != RFQStatus.NEGOTIATING and not rfq.can_be_quoted(self.clock):
            return TransitionResult.refused(rfq, f"RFQ {rfq.rfq_number} cannot be quoted")

        updated = rfq.update_status(status, updated_by, self.clock)
        self.rfqs.save(updated, expected_version)
        logger.info(f"RFQ {rfq.rfq_number}: {rfq.status.value} -> {status.value} by {updated_by}")
        notifications = self.dispatcher.publish(
            RFQStatusChanged(
                record_id=rfq.id,
                occurred_at=self.clock.now(),
                rfq_number=rfq.rfq_number,
                old_status=rfq.status.value,
                new_status=status.value,
                contact_email=rfq.company_info.email,
            )
        )
        return TransitionResult(record=updated, notifications=notifications)

    def assign(
        self, rfq_id: str, user_id: str, updated_by: str, expected_version: Optional[int] = None
    ) -> TransitionResult[RFQ]:
        rfq = self.rfqs.find_by_id(rfq_id)
        if rfq is None:
            return TransitionResult.missing("RFQ", rfq_id)
        if rfq.is_terminal():
            return TransitionResult.refused(rfq, f"RFQ {rfq.rfq_number} is closed ({rfq.status.value})")
        updated = rfq.assign_to(user_id, updated_by, self.clock)
        self.rfqs.save(updated, expected_version)
        logger.info(f"RFQ {rfq.rfq_number} assigned to {user_id}")
        return TransitionResult(record=updated)

    def set_follow_up(
        self, rfq_id: str, when, updated_by: str, expected_version: Optional[int] = None
    ) -> TransitionResult[RFQ]:
        rfq = self.rfqs.find_by_id(rfq_id)
        if rfq is None:
            return TransitionResult.missing("RFQ", rfq_id)
        updated = rfq.set_follow_up_date(when, updated_by, self.clock)
        self.rfqs.save(updated, expected_version)
        return TransitionResult(record=updated)

    def add_communication(
        self, rfq_id: str, communication: Dict[str, Any], expected_version: Optional[int] = None
    ) -> TransitionResult[RFQ]:
        rfq = self.rfqs.find_by_id(rfq_id)
        if rfq is None:
            return TransitionResult.missing("RFQ", rfq_id)
        updated = rfq.add_communication(communication, self.clock, self.ids)
        self.rfqs.save(updated, expected_version)
        return TransitionResult(record=updated)

    def expire_overdue(self, updated_by: str = SYSTEM_ACTOR_ID) -> List[RFQ]:
        """Move every open RFQ past its ``expires_at`` to EXPIRED."""
        expired = []
        for rfq in self.rfqs.find_expirable(self.clock.now()):
            result = self.transition(rfq.id, RFQStatus.EXPIRED, updated_by)
            if result.success:
                expired.append(result.record)
        if expired:
            logger.info(f"Expired {len(expired)} RFQ(s)")
        return expired

    # ===== HAND-OFF =====

    def convert_to_order(
        self, rfq_id: str, order_data: Dict[str, Any], created_by: str
    ) -> TransitionResult[Order]:
        """Seed a DRAFT order from an ACCEPTED RFQ.

        ``order_data`` carries what the RFQ cannot know (items, prices,
        schedule, shipping). Currency, client and delivery date default from
        the RFQ.
        """
        rfq = self.rfqs.find_by_id(rfq_id)
        if rfq is None:
            return TransitionResult.missing("RFQ", rfq_id)
        if rfq.status != RFQStatus.ACCEPTED:
            return TransitionResult.refused(None, f"RFQ {rfq.rfq_number} is {rfq.status.value}, not ACCEPTED")
        existing = self.orders.find_by_rfq(rfq.id)
        if existing is not None:
            return TransitionResult.refused(existing, f"RFQ {rfq.rfq_number} already converted to {existing.order_number}")

        client_id = order_data.get("client_id") or rfq.client_id
        if client_id is None:
            return TransitionResult.refused(None, f"RFQ {rfq.rfq_number} has no client account")

        data = {
            "currency": rfq.payment_terms.preferred_currency,
            "requested_delivery_date": rfq.delivery_requirements.preferred_delivery_date,
            "sales_rep": rfq.assigned_to or created_by,
            **order_data,
            "rfq_id": rfq.id,
            "client_id": client_id,
        }
        order = Order.create(data, created_by=created_by, clock=self.clock, ids=self.ids)
        self.orders.create(order)
        logger.info(f"RFQ {rfq.rfq_number} converted to order {order.order_number}")
        notifications = self.dispatcher.publish(
            OrderCreated(
                record_id=order.id,
                occurred_at=self.clock.now(),
                order_number=order.order_number,
                client_id=order.client_id,
                rfq_id=rfq.id,
                total_amount=order.total_amount,
            )
        )
        return TransitionResult(record=order, notifications=notifications)
