"""Order fulfillment routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request, status

from coffee_export.api.deps import ActorId, ClockDep, Criteria, DispatcherDep, IdsDep, unwrap
from coffee_export.core.rate_limit import limiter
from coffee_export.core.responses import list_response, search_response
from coffee_export.db.session import DbSession
from coffee_export.schemas.commands import OrderStatusChange, PaymentRequest, ShipmentRequest
from coffee_export.services.order_fulfillment import OrderFulfillmentService

router = APIRouter()


def _service(db, clock, ids, dispatcher) -> OrderFulfillmentService:
    return OrderFulfillmentService(db, clock=clock, ids=ids, dispatcher=dispatcher)


@router.get("/")
@limiter.limit("60/minute")
def search_orders(request: Request, db: DbSession, criteria: Criteria, clock: ClockDep, ids: IdsDep, dispatcher: DispatcherDep):
    """Search orders (kind = order type, dates bound ``order_date``)."""
    return search_response(_service(db, clock, ids, dispatcher).orders.search(criteria))


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_order(
    request: Request,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
    payload: Dict[str, Any] = Body(...),
):
    return _service(db, clock, ids, dispatcher).create_order(payload, actor).to_dict()


@router.post("/flag-overdue")
@limiter.limit("10/minute")
def flag_overdue(request: Request, db: DbSession, actor: ActorId, clock: ClockDep, ids: IdsDep, dispatcher: DispatcherDep):
    """Mark orders with past-due unpaid installments as OVERDUE."""
    flagged = _service(db, clock, ids, dispatcher).flag_overdue_payments(actor)
    return list_response([order.to_dict() for order in flagged])


@router.get("/{order_id}")
@limiter.limit("60/minute")
def get_order(request: Request, order_id: str, db: DbSession, clock: ClockDep, ids: IdsDep, dispatcher: DispatcherDep):
    service = _service(db, clock, ids, dispatcher)
    order = service.orders.find_by_id(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    data = order.to_dict()
    data["version"] = service.orders.get_version(order_id)
    data["derived"] = {
        "total_weight_mt": order.get_total_weight(),
        "total_packages": order.get_total_packages(),
        "paid_amount": order.get_paid_amount(),
        "outstanding_amount": order.get_outstanding_amount(),
        "payment_progress": order.get_payment_progress(),
        "is_overdue": order.is_overdue(clock),
        "days_until_delivery": order.get_days_until_delivery(clock),
        "can_be_shipped": order.can_be_shipped(),
        "missing_documents": [d.type.value for d in order.missing_documents()],
    }
    return data


@router.post("/{order_id}/status")
@limiter.limit("30/minute")
def change_order_status(
    request: Request,
    order_id: str,
    body: OrderStatusChange,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
):
    result = _service(db, clock, ids, dispatcher).transition(order_id, body.status, actor, body.expected_version)
    return unwrap(result)


@router.post("/{order_id}/payments")
@limiter.limit("30/minute")
def record_payment(
    request: Request,
    order_id: str,
    body: PaymentRequest,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
):
    """Mark a scheduled installment paid and recompute the payment status."""
    result = _service(db, clock, ids, dispatcher).record_payment(
        order_id,
        body.payment_id,
        body.amount,
        actor,
        reference=body.reference,
        expected_version=body.expected_version,
    )
    return unwrap(result)


@router.post("/{order_id}/quality-control")
@limiter.limit("30/minute")
def record_quality_control(
    request: Request,
    order_id: str,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
    record: Dict[str, Any] = Body(...),
    expected_version: Optional[int] = Query(None, ge=1),
):
    service = _service(db, clock, ids, dispatcher)
    return unwrap(service.record_quality_control(order_id, record, actor, expected_version))


@router.post("/{order_id}/ship")
@limiter.limit("30/minute")
def ship_order(
    request: Request,
    order_id: str,
    body: ShipmentRequest,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
):
    result = _service(db, clock, ids, dispatcher).ship(
        order_id,
        actor,
        bill_of_lading_number=body.bill_of_lading_number,
        vessel=body.vessel,
        container_number=body.container_number,
        expected_version=body.expected_version,
    )
    return unwrap(result)


@router.post("/{order_id}/documents", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def add_document(
    request: Request,
    order_id: str,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
    document: Dict[str, Any] = Body(...),
    expected_version: Optional[int] = Query(None, ge=1),
):
    document = {"uploaded_by": actor, **document}
    return unwrap(_service(db, clock, ids, dispatcher).add_document(order_id, document, expected_version))


@router.post("/{order_id}/documents/{document_id}/verify")
@limiter.limit("30/minute")
def verify_document(
    request: Request,
    order_id: str,
    document_id: str,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
    expected_version: Optional[int] = Query(None, ge=1),
):
    result = _service(db, clock, ids, dispatcher).verify_document(order_id, document_id, actor, expected_version)
    return unwrap(result)
