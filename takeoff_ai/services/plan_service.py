"""Plan queries and ingestion workflow start-up used by the API."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from temporalio.client import Client as TemporalClient
from temporalio.common import WorkflowIDReusePolicy
from temporalio.exceptions import WorkflowAlreadyStartedError

from takeoff_ai.core.config import settings
from takeoff_ai.core.exceptions import IngestionInProgressError, PlanNotFoundError
from takeoff_ai.database.models import Plan
from takeoff_ai.repositories.chunk_repository import ChunkRepository
from takeoff_ai.repositories.plan_repository import PlanRepository
from takeoff_ai.repositories.sheet_index_repository import SheetIndexRepository
from takeoff_ai.schemas.plans import IngestionOptions, IngestStartResponse
from takeoff_ai.temporal.workflows import IngestPlanWorkflow, ingest_workflow_id
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class PlanService:
    def __init__(self, session: AsyncSession, temporal_client: Optional[TemporalClient] = None):
        self.plans = PlanRepository(session)
        self.sheet_index = SheetIndexRepository(session)
        self.chunks = ChunkRepository(session)
        self.temporal_client = temporal_client

    async def get_plan(self, plan_id: UUID) -> Plan:
        plan = await self.plans.get_by_id(plan_id)
        if plan is None:
            raise PlanNotFoundError(f"Plan {plan_id} not found")
        return plan

    async def start_ingestion(
        self,
        plan_id: UUID,
        options: Optional[IngestionOptions] = None,
        job_id: Optional[str] = None,
    ) -> IngestStartResponse:
        """Start IngestPlanWorkflow for a plan.

        Raises:
            PlanNotFoundError: If the plan does not exist
            IngestionInProgressError: If an ingestion of this plan is running
        """
        await self.get_plan(plan_id)
        options = options or IngestionOptions()
        workflow_id = ingest_workflow_id(str(plan_id))

        try:
            await self.temporal_client.start_workflow(
                IngestPlanWorkflow.run,
                args=[str(plan_id), options.model_dump(), job_id],
                id=workflow_id,
                task_queue=settings.temporal.task_queue,
                id_reuse_policy=WorkflowIDReusePolicy.ALLOW_DUPLICATE,
            )
        except WorkflowAlreadyStartedError as e:
            raise IngestionInProgressError(
                f"Ingestion already running for plan {plan_id}", original_error=e
            )

        LOGGER.info(f"Started ingestion workflow {workflow_id}", extra={"plan_id": str(plan_id)})
        return IngestStartResponse(
            workflow_id=workflow_id,
            plan_id=str(plan_id),
            message="Ingestion started",
        )

    async def get_status(self, plan_id: UUID) -> Dict[str, Any]:
        plan = await self.get_plan(plan_id)
        status = await self.plans.get_processing_status(plan_id)
        return {
            "plan_id": str(plan_id),
            "plan_status": plan.status,
            "num_pages": plan.num_pages,
            "processing_status": status.to_dict() if status else None,
        }

    async def list_sheets(self, plan_id: UUID) -> List[Dict[str, Any]]:
        await self.get_plan(plan_id)
        return [entry.to_dict() for entry in await self.sheet_index.list_for_plan(plan_id)]

    async def list_chunks(self, plan_id: UUID, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        await self.get_plan(plan_id)
        chunks = await self.chunks.list_for_plan(plan_id, limit=limit, offset=offset)
        total = await self.chunks.count_for_plan(plan_id)
        return {"chunks": chunks, "total": total, "limit": limit, "offset": offset}
