"""Best-effort processing status reporting."""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from takeoff_ai.models.processing_status import ProcessingStatus
from takeoff_ai.repositories.plan_repository import PlanRepository
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class StatusReporter(ABC):
    """Publishes ProcessingStatus snapshots without ever raising.

    Failures go to ``errors`` instead of the caller, so a broken status
    channel cannot mask or replace the real pipeline error.
    """

    def __init__(self):
        self.errors: List[str] = []

    async def report(self, plan_id: UUID, status: ProcessingStatus) -> bool:
        """Publish ``status``; returns False when the write failed."""
        try:
            await self._write(plan_id, status)
            return True
        except Exception as e:
            message = f"Failed to update processing status ({status.stage.value}): {str(e)}"
            self.errors.append(message)
            LOGGER.warning(message, extra={"plan_id": str(plan_id)}, exc_info=True)
            return False

    @abstractmethod
    async def _write(self, plan_id: UUID, status: ProcessingStatus) -> None:
        """Persist or publish one status snapshot."""
        pass


class PlanStatusReporter(StatusReporter):
    """Writes status to ``plans.processing_status`` in its own session."""

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        super().__init__()
        if session_factory is None:
            from takeoff_ai.core.database import async_session_maker

            session_factory = async_session_maker
        self.session_factory = session_factory

    async def _write(self, plan_id: UUID, status: ProcessingStatus) -> None:
        async with self.session_factory() as session:
            updated = await PlanRepository(session).update_processing_status(plan_id, status)
        if not updated:
            raise LookupError(f"Plan {plan_id} not found")
