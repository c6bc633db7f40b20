from fastapi import APIRouter

from takeoff_ai.api.v1.endpoints import health, plans, takeoff

# Create API router
api_router = APIRouter()

api_router.include_router(health.router, prefix="", tags=["Health"])
api_router.include_router(plans.router, prefix="/plans", tags=["Plans"])
api_router.include_router(takeoff.router, prefix="/takeoff", tags=["Takeoff"])

__all__ = ["api_router"]
