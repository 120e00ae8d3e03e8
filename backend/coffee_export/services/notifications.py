"""Domain events and fire-and-forget notification fan-out.

Workflow services publish an event after a transition has been persisted.
Notifier failures are logged and reported in the result list, never raised
back into the workflow.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from coffee_export.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    record_id: str
    occurred_at: datetime

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class RFQSubmitted(DomainEvent):
    rfq_number: str = ""
    company_name: str = ""
    contact_email: str = ""
    estimated_value: float = 0.0


@dataclass(frozen=True)
class RFQStatusChanged(DomainEvent):
    rfq_number: str = ""
    old_status: str = ""
    new_status: str = ""
    contact_email: str = ""


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    order_number: str = ""
    client_id: str = ""
    rfq_id: Optional[str] = None
    total_amount: float = 0.0


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    order_number: str = ""
    old_status: str = ""
    new_status: str = ""


@dataclass(frozen=True)
class PaymentRecorded(DomainEvent):
    order_number: str = ""
    payment_id: str = ""
    amount: float = 0.0
    payment_status: str = ""


@dataclass
class NotificationResult:
    """Result of handing one event to one notifier."""
    success: bool
    notifier: str
    event: str
    error: Optional[str] = None


class Notifier(Protocol):
    def notify(self, event: DomainEvent) -> None:
        ...  # pragma: no cover


class LoggingNotifier:
    """Default notifier: writes a line per event to the application log."""

    def __init__(self, recipient: Optional[str] = None):
        self.recipient = recipient or settings.admin_email

    def notify(self, event: DomainEvent) -> None:
        logger.info(f"[notify {self.recipient}] {event.name} for {event.record_id}")


@dataclass
class RecordingNotifier:
    """Keeps every event in memory; used by tests and local tooling."""

    events: List[DomainEvent] = field(default_factory=list)

    def notify(self, event: DomainEvent) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [e.name for e in self.events]


class NotificationDispatcher:
    """Fans an event out to every registered notifier."""

    def __init__(self, notifiers: Optional[Sequence[Notifier]] = None):
        self.notifiers: List[Notifier] = list(notifiers) if notifiers is not None else [LoggingNotifier()]

    def register(self, notifier: Notifier) -> None:
        self.notifiers.append(notifier)

    def publish(self, event: DomainEvent) -> List[NotificationResult]:
        results = []
        for notifier in self.notifiers:
            notifier_name = type(notifier).__name__
            try:
                notifier.notify(event)
                results.append(NotificationResult(success=True, notifier=notifier_name, event=event.name))
            except Exception as e:
                logger.error(f"Notifier {notifier_name} failed on {event.name} for {event.record_id}: {e}")
                results.append(
                    NotificationResult(success=False, notifier=notifier_name, event=event.name, error=str(e))
                )
        return results


default_dispatcher = NotificationDispatcher()
