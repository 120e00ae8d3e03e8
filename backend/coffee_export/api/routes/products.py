"""Coffee product catalog routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request, status

from coffee_export.api.deps import ActorId, ClockDep, Criteria, IdsDep
from coffee_export.core.config import settings
from coffee_export.core.rate_limit import limiter
from coffee_export.core.responses import search_response
from coffee_export.db.session import DbSession
from coffee_export.schemas.base import Incoterm
from coffee_export.schemas.coffee_product import CoffeeProduct
from coffee_export.services.repository import CoffeeProductRepository

router = APIRouter()


def _get_or_404(repo: CoffeeProductRepository, product_id: str) -> CoffeeProduct:
    product = repo.find_by_id(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


@router.get("/")
@limiter.limit("60/minute")
def search_products(request: Request, db: DbSession, criteria: Criteria):
    """Search the catalog (status ACTIVE/INACTIVE, kind = coffee type)."""
    return search_response(CoffeeProductRepository(db).search(criteria))


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_product(
    request: Request,
    db: DbSession,
    actor: ActorId,
    clock: ClockDep,
    ids: IdsDep,
    payload: Dict[str, Any] = Body(...),
):
    product = CoffeeProduct.create(payload, created_by=actor, clock=clock, ids=ids)
    return CoffeeProductRepository(db, clock).create(product).to_dict()


@router.get("/by-sku/{sku}")
@limiter.limit("60/minute")
def get_product_by_sku(request: Request, sku: str, db: DbSession):
    product = CoffeeProductRepository(db).find_by_code(sku)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product.to_dict()


@router.get("/{product_id}")
@limiter.limit("60/minute")
def get_product(request: Request, product_id: str, db: DbSession):
    return _get_or_404(CoffeeProductRepository(db), product_id).to_dict()


@router.get("/{product_id}/price")
@limiter.limit("60/minute")
def quote_price(
    request: Request,
    product_id: str,
    db: DbSession,
    clock: ClockDep,
    quantity: float = Query(..., gt=0, description="Quantity in the product's pricing unit"),
    incoterm: Optional[Incoterm] = Query(None, description="Quote under a different incoterm"),
):
    """Price for a quantity, with tier discount and incoterm adjustment applied."""
    product = _get_or_404(CoffeeProductRepository(db), product_id)
    total = product.calculate_price(quantity, incoterm, settings.incoterm_adjustments)
    return {
        "product_id": product.id,
        "quantity": quantity,
        "unit": product.pricing.unit.value,
        "incoterm": (incoterm or product.pricing.incoterm).value,
        "currency": product.pricing.currency.value,
        "total_price": total,
        "unit_price": total / quantity,
        "price_valid": product.is_price_valid(clock),
        "can_fulfill": product.can_fulfill_order(quantity, clock),
    }


@router.get("/{product_id}/availability")
@limiter.limit("60/minute")
def check_availability(
    request: Request,
    product_id: str,
    db: DbSession,
    clock: ClockDep,
    quantity: Optional[float] = Query(None, gt=0),
):
    product = _get_or_404(CoffeeProductRepository(db), product_id)
    return {
        "product_id": product.id,
        "is_available": product.is_available(clock),
        "can_fulfill": product.can_fulfill_order(quantity, clock) if quantity is not None else None,
        "minimum_order": product.pricing.minimum_order,
        "stock_quantity": product.availability.stock_quantity,
        "estimated_delivery_date": product.get_estimated_delivery_date(clock).isoformat(),
    }


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def delete_product(request: Request, product_id: str, db: DbSession, actor: ActorId, clock: ClockDep):
    """Deactivate and soft-delete a product."""
    repo = CoffeeProductRepository(db, clock)
    product = _get_or_404(repo, product_id)
    repo.save(product.deactivate(actor, clock))
    repo.delete(product_id)


@router.post("/{product_id}/restore")
@limiter.limit("30/minute")
def restore_product(request: Request, product_id: str, db: DbSession, actor: ActorId, clock: ClockDep):
    """Bring back a deleted product. It stays inactive until re-listed."""
    product = CoffeeProductRepository(db, clock).restore(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No deleted product with that id")
    return product.to_dict()
