"""Health check API endpoints."""

from fastapi import APIRouter, Request

from takeoff_ai.core.config import settings
from takeoff_ai.core.database import db_client
from takeoff_ai.utils.logging import get_logger
from takeoff_ai.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/health",
    response_model=dict,
    summary="Health check endpoint",
    description="Check if the service and its database are reachable",
    operation_id="get_service_health_status",
)
async def health_check(request: Request) -> dict:
    """Health check endpoint."""
    db_health = await db_client.health_check()
    healthy = db_health["status"] == "healthy"
    if not healthy:
        LOGGER.warning("Health check degraded", extra={"database": db_health})

    return create_api_response(
        data={
            "status": "healthy" if healthy else "degraded",
            "service": settings.app_name,
            "version": settings.app_version,
            "database": db_health,
        },
        message="Service healthy" if healthy else "Service degraded",
        request=request,
    )
