"""Takeoff run endpoints."""

from typing import Annotated
from uuid import uuid4

from fastapi import APIRouter, Depends, Request, status
from temporalio.client import Client as TemporalClient

from takeoff_ai.api.errors import to_http_exception
from takeoff_ai.core.config import settings
from takeoff_ai.core.exceptions import APIClientError
from takeoff_ai.core.temporal_client import get_temporal_client
from takeoff_ai.schemas.takeoff import TakeoffRequest, TakeoffStartResponse
from takeoff_ai.services.takeoff.orchestrator import TakeoffOrchestrator
from takeoff_ai.temporal.workflows import TakeoffWorkflow
from takeoff_ai.utils.logging import get_logger
from takeoff_ai.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_takeoff_orchestrator() -> TakeoffOrchestrator:
    """Dependency to create TakeoffOrchestrator instance."""
    return TakeoffOrchestrator()


@router.post(
    "",
    response_model=dict,
    summary="Run a takeoff",
    description=(
        "Runs scoping and execution synchronously and returns items, analysis, "
        "segment summaries and the run log. Failures are reported in the run "
        "log, so this endpoint answers 200 even for failed runs."
    ),
    operation_id="run_takeoff",
)
async def run_takeoff(
    request: Request,
    body: TakeoffRequest,
    orchestrator: Annotated[TakeoffOrchestrator, Depends(get_takeoff_orchestrator)],
) -> dict:
    output = await orchestrator.run(body)
    failed = any(entry.type == "error" for entry in output.run_log)

    return create_api_response(
        data=output,
        message="Takeoff completed with errors" if failed else "Takeoff completed",
        request=request,
    )


@router.post(
    "/async",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=dict,
    summary="Start a takeoff workflow",
    operation_id="start_takeoff_workflow",
)
async def start_takeoff(
    request: Request,
    body: TakeoffRequest,
    temporal_client: Annotated[TemporalClient, Depends(get_temporal_client)],
) -> dict:
    workflow_id = f"takeoff-{body.plan_id or 'adhoc'}-{uuid4()}"
    try:
        await temporal_client.start_workflow(
            TakeoffWorkflow.run,
            body.model_dump(mode="json"),
            id=workflow_id,
            task_queue=settings.temporal.task_queue,
        )
    except Exception as e:
        raise to_http_exception(
            APIClientError(f"Failed to start takeoff workflow: {str(e)}", original_error=e), request
        )

    LOGGER.info(f"Started takeoff workflow {workflow_id}")
    return create_api_response(
        data=TakeoffStartResponse(workflow_id=workflow_id, plan_id=body.plan_id),
        message="Takeoff workflow started",
        request=request,
    )
