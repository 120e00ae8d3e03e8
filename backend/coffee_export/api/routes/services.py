"""Business service catalog routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request, status

from coffee_export.api.deps import ActorId, ClockDep, Criteria, IdsDep
from coffee_export.core.rate_limit import limiter
from coffee_export.core.responses import search_response
from coffee_export.db.session import DbSession
from coffee_export.schemas.business_service import BusinessService
from coffee_export.services.repository import BusinessServiceRepository

router = APIRouter()


def _get_or_404(db, service_id: str) -> BusinessService:
    service = BusinessServiceRepository(db).find_by_id(service_id)
    if service is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")
    return service


@router.get("/")
@limiter.limit("60/minute")
def search_services(request: Request, db: DbSession, criteria: Criteria):
    return search_response(BusinessServiceRepository(db).search(criteria))


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_service(
    request: Request,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    payload: Dict[str, Any] = Body(...),
):
    service = BusinessService.create(payload, created_by=actor, clock=clock, ids=ids)
    return BusinessServiceRepository(db, clock).create(service).to_dict()


@router.get("/{service_id}")
@limiter.limit("60/minute")
def get_service(request: Request, service_id: str, db: DbSession):
    return _get_or_404(db, service_id).to_dict()


@router.get("/{service_id}/estimate")
@limiter.limit("60/minute")
def estimate_service(
    request: Request,
    service_id: str,
    db: DbSession,
    quantity: Optional[float] = Query(None, gt=0),
    rush: bool = Query(False),
    country: Optional[str] = Query(None, description="Destination country to check coverage for"),
):
    """Indicative price and timeline; ``estimated_price`` is null when a custom quote is needed."""
    service = _get_or_404(db, service_id)
    timeline = service.get_estimated_delivery_time(rush)
    return {
        "service_id": service.id,
        "estimated_price": service.calculate_estimated_price(quantity, rush),
        "currency": service.pricing.currency.value,
        "requires_custom_quote": service.requires_custom_quote(),
        "available_for_quote": service.is_available_for_quote(),
        "can_handle_volume": service.can_handle_volume(quantity) if quantity is not None else None,
        "supports_destination": service.supports_geography(country) if country else None,
        "delivery_days": timeline.model_dump(),
    }
