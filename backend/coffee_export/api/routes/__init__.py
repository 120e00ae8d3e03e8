"""API routes."""

from fastapi import APIRouter

from coffee_export.api.routes import companies, orders, products, rfqs, services

api_router = APIRouter()

# Catalog
api_router.include_router(products.router, prefix="/products", tags=["products"])
api_router.include_router(services.router, prefix="/services", tags=["services"])

# Relationship
api_router.include_router(companies.router, prefix="/companies", tags=["companies"])

# Quote and fulfillment
api_router.include_router(rfqs.router, prefix="/rfqs", tags=["rfqs"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
