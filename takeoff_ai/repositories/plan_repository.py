from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from takeoff_ai.repositories.base_repository import BaseRepository
from takeoff_ai.database.models import Plan
from takeoff_ai.models.processing_status import PlanStatus, ProcessingStatus
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class PlanRepository(BaseRepository[Plan]):
    """Repository for Plan records and their processing status blob."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Plan)

    async def update_processing_status(self, plan_id: UUID, status: ProcessingStatus) -> bool:
        """Persist the current ProcessingStatus.

        Returns:
            True if updated, False if the plan does not exist
        """
        return await self.update(plan_id, processing_status=status.to_dict()) is not None

    async def get_processing_status(self, plan_id: UUID) -> Optional[ProcessingStatus]:
        plan = await self.get_by_id(plan_id)
        if plan is None or not plan.processing_status:
            return None
        return ProcessingStatus.from_dict(plan.processing_status)

    async def mark_processing(self, plan_id: UUID) -> bool:
        return await self.update(plan_id, status=PlanStatus.PROCESSING.value) is not None

    async def mark_ready(self, plan_id: UUID, num_pages: int) -> bool:
        """Finalize a successfully ingested plan."""
        LOGGER.info(f"Marking plan {plan_id} ready", extra={"num_pages": num_pages})
        return await self.update(
            plan_id, status=PlanStatus.READY.value, num_pages=num_pages
        ) is not None

    async def mark_failed(self, plan_id: UUID) -> bool:
        """Return a plan to draft after a failed ingestion."""
        LOGGER.warning(f"Returning plan {plan_id} to draft after failed ingestion")
        return await self.update(plan_id, status=PlanStatus.DRAFT.value) is not None
