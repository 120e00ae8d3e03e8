"""Request bodies for workflow commands exposed over HTTP."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from coffee_export.schemas.base import RecordId
from coffee_export.schemas.order import OrderStatus
from coffee_export.schemas.rfq import RFQStatus


class VersionedCommand(BaseModel):
    expected_version: Optional[int] = Field(default=None, ge=1)


class RFQStatusChange(VersionedCommand):
    status: RFQStatus


class RFQAssignment(VersionedCommand):
    user_id: RecordId


class FollowUpRequest(VersionedCommand):
    follow_up_date: datetime


class OrderStatusChange(VersionedCommand):
    status: OrderStatus


class PaymentRequest(VersionedCommand):
    payment_id: RecordId
    amount: float = Field(gt=0)
    reference: Optional[str] = Field(default=None, max_length=100)


class ShipmentRequest(VersionedCommand):
    bill_of_lading_number: Optional[str] = None
    vessel: Optional[str] = None
    container_number: Optional[str] = None
