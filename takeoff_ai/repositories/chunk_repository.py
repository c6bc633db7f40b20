from typing import Any, Dict, List, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from takeoff_ai.repositories.base_repository import BaseRepository
from takeoff_ai.database.models import PlanChunk
from takeoff_ai.models.chunk import Chunk
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ChunkRepository(BaseRepository[PlanChunk]):
    """Repository for plan chunk rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PlanChunk)

    async def replace_for_plan(self, plan_id: UUID, chunks: Sequence[Chunk]) -> int:
        """Replace all chunks of a plan in one transaction."""
        LOGGER.info(f"Replacing chunks for plan {plan_id} with {len(chunks)} chunks")
        try:
            await self.session.execute(delete(PlanChunk).where(PlanChunk.plan_id == plan_id))
            self.session.add_all([
                PlanChunk(
                    plan_id=plan_id,
                    chunk_id=chunk.chunk_id,
                    chunk_index=chunk.chunk_index,
                    page_range=chunk.to_dict()["page_range"],
                    sheet_index_subset=[sheet.to_dict() for sheet in chunk.sheet_index_subset],
                    content=chunk.content_dict(),
                    chunk_metadata=chunk.metadata_dict(),
                    safeguards=chunk.to_dict()["safeguards"],
                )
                for chunk in chunks
            ])
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error replacing chunks for plan {plan_id}: {str(e)}",
                exc_info=True
            )
            raise
        return len(chunks)

    async def list_for_plan(self, plan_id: UUID, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        """Chunks of a plan in chunk order, as plain dicts."""
        try:
            result = await self.session.execute(
                select(PlanChunk)
                .where(PlanChunk.plan_id == plan_id)
                .order_by(PlanChunk.chunk_index)
                .offset(offset)
                .limit(limit)
            )
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error listing chunks for plan {plan_id}: {str(e)}",
                exc_info=True
            )
            raise

        return [
            {
                "chunk_id": row.chunk_id,
                "plan_id": str(row.plan_id),
                "chunk_index": row.chunk_index,
                "page_range": row.page_range,
                "sheet_index_subset": row.sheet_index_subset,
                "content": row.content,
                "metadata": row.chunk_metadata,
                "safeguards": row.safeguards,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
            for row in result.scalars().all()
        ]

    async def count_for_plan(self, plan_id: UUID) -> int:
        return await self.count({"plan_id": plan_id})
