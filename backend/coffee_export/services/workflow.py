"""Shared pieces for the RFQ and order workflow services."""

from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

from coffee_export.services.notifications import NotificationResult

T = TypeVar("T")


@dataclass
class TransitionResult(Generic[T]):
    """Outcome of a workflow command.

    ``not_found`` and ``not_allowed`` are the two refusal flags; on refusal
    ``record`` holds the unchanged stored record (or None when not found).
    """

    record: Optional[T]
    success: bool = True
    not_found: bool = False
    not_allowed: bool = False
    reason: Optional[str] = None
    notifications: List[NotificationResult] = field(default_factory=list)

    @classmethod
    def missing(cls, what: str, record_id: str) -> "TransitionResult[T]":
        return cls(record=None, success=False, not_found=True, reason=f"{what} {record_id} not found")

    @classmethod
    def refused(cls, record: T, reason: str) -> "TransitionResult[T]":
        return cls(record=record, success=False, not_allowed=True, reason=reason)
