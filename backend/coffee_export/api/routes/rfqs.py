"""RFQ routes: public intake plus the staff workflow."""

from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException, Request, status

from coffee_export.api.deps import ActorId, ClockDep, Criteria, DispatcherDep, IdsDep, unwrap
from coffee_export.core.config import settings
from coffee_export.core.rate_limit import limiter
from coffee_export.core.responses import list_response, search_response
from coffee_export.db.session import DbSession
from coffee_export.schemas.base import SYSTEM_ACTOR_ID
from coffee_export.schemas.commands import FollowUpRequest, RFQAssignment, RFQStatusChange
from coffee_export.services.rfq_workflow import RFQWorkflowService

router = APIRouter()


def _service(db, clock, ids, dispatcher) -> RFQWorkflowService:
    return RFQWorkflowService(db, clock=clock, ids=ids, dispatcher=dispatcher)


def _rfq_view(service: RFQWorkflowService, rfq) -> Dict[str, Any]:
    data = rfq.to_dict()
    data["derived"] = {
        "estimated_value": service.estimate_value(rfq),
        "annual_volume_potential": rfq.get_annual_volume_potential(),
        "is_expired": rfq.is_expired(service.clock),
        "can_be_quoted": rfq.can_be_quoted(service.clock),
        "requires_urgent_attention": rfq.requires_urgent_attention(service.clock),
        "days_until_delivery": rfq.get_days_until_delivery(service.clock),
    }
    return data


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rfq_submit_rate_limit)
def submit_rfq(
    request: Request,
    db: DbSession,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
    actor: ActorId,
    payload: Dict[str, Any] = Body(...),
):
    """Public RFQ intake; anonymous submissions carry no ``created_by``."""
    service = _service(db, clock, ids, dispatcher)
    created_by = None if actor == SYSTEM_ACTOR_ID else actor
    rfq = service.submit(payload, created_by=created_by)
    return _rfq_view(service, rfq)


@router.get("/")
@limiter.limit("60/minute")
def search_rfqs(request: Request, db: DbSession, criteria: Criteria, clock: ClockDep, ids: IdsDep, dispatcher: DispatcherDep):
    """Search RFQs (kind = requested coffee type, dates bound ``submitted_at``)."""
    return search_response(_service(db, clock, ids, dispatcher).rfqs.search(criteria))


@router.post("/expire")
@limiter.limit("10/minute")
def expire_rfqs(request: Request, db: DbSession, actor: ActorId, clock: ClockDep, ids: IdsDep, dispatcher: DispatcherDep):
    """Move every open RFQ past its expiry date to EXPIRED."""
    expired = _service(db, clock, ids, dispatcher).expire_overdue(actor)
    return list_response([rfq.to_dict() for rfq in expired])


@router.get("/{rfq_id}")
@limiter.limit("60/minute")
def get_rfq(request: Request, rfq_id: str, db: DbSession, clock: ClockDep, ids: IdsDep, dispatcher: DispatcherDep):
    service = _service(db, clock, ids, dispatcher)
    rfq = service.rfqs.find_by_id(rfq_id)
    if rfq is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="RFQ not found")
    data = _rfq_view(service, rfq)
    data["version"] = service.rfqs.get_version(rfq_id)
    return data


@router.post("/{rfq_id}/status")
@limiter.limit("30/minute")
def change_rfq_status(
    request: Request,
    rfq_id: str,
    body: RFQStatusChange,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
):
    result = _service(db, clock, ids, dispatcher).transition(rfq_id, body.status, actor, body.expected_version)
    return unwrap(result)


@router.post("/{rfq_id}/assign")
@limiter.limit("30/minute")
def assign_rfq(
    request: Request,
    rfq_id: str,
    body: RFQAssignment,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
):
    result = _service(db, clock, ids, dispatcher).assign(rfq_id, body.user_id, actor, body.expected_version)
    return unwrap(result)


@router.post("/{rfq_id}/follow-up")
@limiter.limit("30/minute")
def set_rfq_follow_up(
    request: Request,
    rfq_id: str,
    body: FollowUpRequest,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
):
    service = _service(db, clock, ids, dispatcher)
    return unwrap(service.set_follow_up(rfq_id, body.follow_up_date, actor, body.expected_version))


@router.post("/{rfq_id}/convert", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def convert_rfq(
    request: Request,
    rfq_id: str,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
    order_data: Dict[str, Any] = Body(...),
):
    """Turn an ACCEPTED RFQ into a DRAFT order."""
    return unwrap(_service(db, clock, ids, dispatcher).convert_to_order(rfq_id, order_data, actor))


@router.post("/{rfq_id}/communications")
@limiter.limit("30/minute")
def add_rfq_communication(
    request: Request,
    rfq_id: str,
    db: DbSession,
    clock: ClockDep,
    ids: IdsDep,
    dispatcher: DispatcherDep,
    communication: Dict[str, Any] = Body(...),
):
    """Append an email, call or meeting note to the RFQ log."""
    return unwrap(_service(db, clock, ids, dispatcher).add_communication(rfq_id, communication))
