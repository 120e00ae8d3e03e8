"""Client company routes."""

from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request, status

from coffee_export.api.deps import ActorId, ClockDep, Criteria, IdsDep, unwrap
from coffee_export.core.rate_limit import limiter
from coffee_export.core.responses import search_response
from coffee_export.db.session import DbSession
from coffee_export.schemas.client_company import ClientCompany
from coffee_export.services.relationship_service import RelationshipService
from coffee_export.services.repository import ClientCompanyRepository

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def search_companies(request: Request, db: DbSession, criteria: Criteria):
    """Search client accounts (status = company status, kind = company type)."""
    return search_response(ClientCompanyRepository(db).search(criteria))


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_company(
    request: Request,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    payload: Dict[str, Any] = Body(...),
):
    company = ClientCompany.create(payload, created_by=actor, clock=clock, ids=ids)
    return ClientCompanyRepository(db, clock).create(company).to_dict()


@router.get("/{company_id}")
@limiter.limit("60/minute")
def get_company(request: Request, company_id: str, db: DbSession):
    company = ClientCompanyRepository(db).find_by_id(company_id)
    if company is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return company.to_dict()


@router.get("/{company_id}/relationship")
@limiter.limit("60/minute")
def relationship_summary(request: Request, company_id: str, db: DbSession, clock: ClockDep):
    """Relationship score, credit headroom and follow-up flags."""
    service = RelationshipService(db, clock)
    company = service.clients.find_by_id(company_id)
    if company is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return asdict(service.summarize(company))


@router.post("/{company_id}/recompute")
@limiter.limit("10/minute")
def recompute_relationship(
    request: Request,
    company_id: str,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    apply_status: bool = Query(False, description="Also write the suggested relationship status"),
    expected_version: Optional[int] = Query(None, ge=1),
):
    """Rebuild trading history from the client's orders."""
    result = RelationshipService(db, clock).recompute(company_id, actor, apply_status, expected_version)
    return unwrap(result)
