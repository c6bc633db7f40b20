from typing import List, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from takeoff_ai.repositories.base_repository import BaseRepository
from takeoff_ai.database.models import PlanSheetIndex
from takeoff_ai.models.sheet_index import SheetIndexEntry
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class SheetIndexRepository(BaseRepository[PlanSheetIndex]):
    """Repository for per-page sheet index rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PlanSheetIndex)

    async def replace_for_plan(self, plan_id: UUID, entries: Sequence[SheetIndexEntry]) -> int:
        """Replace the plan's sheet index in a single transaction.

        Readers never observe the plan without an index: the delete and the
        inserts commit together or not at all.

        Returns:
            Number of rows written
        """
        LOGGER.info(f"Replacing sheet index for plan {plan_id} with {len(entries)} entries")
        try:
            await self.session.execute(delete(PlanSheetIndex).where(PlanSheetIndex.plan_id == plan_id))
            self.session.add_all([self._to_row(plan_id, entry) for entry in entries])
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error replacing sheet index for plan {plan_id}: {str(e)}",
                exc_info=True
            )
            raise
        return len(entries)

    async def list_for_plan(self, plan_id: UUID) -> List[SheetIndexEntry]:
        try:
            result = await self.session.execute(
                select(PlanSheetIndex)
                .where(PlanSheetIndex.plan_id == plan_id)
                .order_by(PlanSheetIndex.page_no)
            )
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error listing sheet index for plan {plan_id}: {str(e)}",
                exc_info=True
            )
            raise
        return [self._to_entry(row) for row in result.scalars().all()]

    @staticmethod
    def _to_row(plan_id: UUID, entry: SheetIndexEntry) -> PlanSheetIndex:
        return PlanSheetIndex(
            plan_id=plan_id,
            page_no=entry.page_no,
            sheet_id=entry.sheet_id,
            title=entry.title,
            discipline=entry.discipline.value,
            scale=entry.scale,
            scale_ratio=entry.scale_ratio,
            units=entry.units.value,
            sheet_type=entry.sheet_type.value,
            rotation=entry.rotation,
            has_text_layer=entry.has_text_layer,
            has_image=entry.has_image,
            text_length=entry.text_length,
            detected_keywords=list(entry.detected_keywords),
        )

    @staticmethod
    def _to_entry(row: PlanSheetIndex) -> SheetIndexEntry:
        return SheetIndexEntry.from_dict({
            "page_no": row.page_no,
            "sheet_id": row.sheet_id,
            "title": row.title,
            "discipline": row.discipline,
            "sheet_type": row.sheet_type,
            "scale": row.scale,
            "scale_ratio": row.scale_ratio,
            "units": row.units,
            "rotation": row.rotation,
            "has_text_layer": row.has_text_layer,
            "has_image": row.has_image,
            "text_length": row.text_length,
            "detected_keywords": row.detected_keywords,
        })
