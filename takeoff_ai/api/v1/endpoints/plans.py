"""Plan ingestion and ingestion-output endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from temporalio.client import Client as TemporalClient

from takeoff_ai.api.errors import to_http_exception
from takeoff_ai.core.database import get_async_session
from takeoff_ai.core.exceptions import AppError
from takeoff_ai.core.temporal_client import get_temporal_client
from takeoff_ai.schemas.plans import IngestionOptions
from takeoff_ai.services.plan_service import PlanService
from takeoff_ai.utils.logging import get_logger
from takeoff_ai.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_plan_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
    temporal_client: Annotated[TemporalClient, Depends(get_temporal_client)],
) -> PlanService:
    """Dependency to create PlanService instance."""
    return PlanService(db_session, temporal_client)


async def get_plan_query_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
) -> PlanService:
    """PlanService for read-only endpoints; no Temporal connection needed."""
    return PlanService(db_session)


@router.post(
    "/{plan_id}/ingest",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=dict,
    summary="Start plan ingestion",
    description=(
        "Starts an asynchronous ingestion workflow: download, text and image "
        "extraction, sheet indexing and chunking. Only one ingestion per plan "
        "runs at a time."
    ),
    operation_id="start_plan_ingestion",
)
async def start_ingestion(
    request: Request,
    plan_id: UUID,
    plan_service: Annotated[PlanService, Depends(get_plan_service)],
    options: Annotated[Optional[IngestionOptions], Body()] = None,
    job_id: Optional[str] = Query(None, description="Job the plan belongs to"),
) -> dict:
    try:
        result = await plan_service.start_ingestion(plan_id, options, job_id=job_id)
    except AppError as e:
        raise to_http_exception(e, request)

    return create_api_response(data=result, message="Ingestion workflow started", request=request)


@router.get(
    "/{plan_id}/status",
    response_model=dict,
    summary="Get plan ingestion status",
    operation_id="get_plan_status",
)
async def get_status(
    request: Request,
    plan_id: UUID,
    plan_service: Annotated[PlanService, Depends(get_plan_query_service)],
) -> dict:
    try:
        result = await plan_service.get_status(plan_id)
    except AppError as e:
        raise to_http_exception(e, request)

    return create_api_response(data=result, message="Status retrieved successfully", request=request)


@router.get(
    "/{plan_id}/sheets",
    response_model=dict,
    summary="Get the plan's sheet index",
    operation_id="list_plan_sheets",
)
async def list_sheets(
    request: Request,
    plan_id: UUID,
    plan_service: Annotated[PlanService, Depends(get_plan_query_service)],
) -> dict:
    try:
        sheets = await plan_service.list_sheets(plan_id)
    except AppError as e:
        raise to_http_exception(e, request)

    return create_api_response(
        data={"sheets": sheets, "total": len(sheets)},
        message=f"Retrieved {len(sheets)} sheets",
        request=request,
    )


@router.get(
    "/{plan_id}/chunks",
    response_model=dict,
    summary="Get the plan's chunks",
    operation_id="list_plan_chunks",
)
async def list_chunks(
    request: Request,
    plan_id: UUID,
    plan_service: Annotated[PlanService, Depends(get_plan_query_service)],
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> dict:
    try:
        result = await plan_service.list_chunks(plan_id, limit=limit, offset=offset)
    except AppError as e:
        raise to_http_exception(e, request)

    return create_api_response(
        data=result,
        message=f"Retrieved {len(result['chunks'])} chunks",
        request=request,
    )
