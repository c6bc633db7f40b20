"""Ingestion coordinator: plan file to persisted sheet index and chunks.

Stages run in order (downloading, extracting, indexing, chunking) and every
transition is published through a best-effort StatusReporter. Text and image
extraction run concurrently; image extraction is optional and degrades to
"no images". Sheet index and chunks are each replaced in one transaction.
"""

import asyncio
import time
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from takeoff_ai.core.exceptions import (
    DownloadError,
    ImageExtractionError,
    PersistenceError,
    PlanNotFoundError,
    TextExtractionError,
)
from takeoff_ai.models.page_data import PageText
from takeoff_ai.models.processing_status import ProcessingStage, ProcessingStatus
from takeoff_ai.repositories.chunk_repository import ChunkRepository
from takeoff_ai.repositories.plan_repository import PlanRepository
from takeoff_ai.repositories.sheet_index_repository import SheetIndexRepository
from takeoff_ai.schemas.plans import ChunkPreview, IngestionOptions, IngestionResult, IngestionStats
from takeoff_ai.services.ingestion.chunking_engine import ChunkingEngine
from takeoff_ai.services.ingestion.document_retriever import DocumentRetriever
from takeoff_ai.services.ingestion.image_extractor import PageImageExtractor, upload_page_images
from takeoff_ai.services.ingestion.project_metadata import build_project_meta, group_plan_sets
from takeoff_ai.services.ingestion.sheet_index_builder import SheetIndexBuilder
from takeoff_ai.services.ingestion.status_reporter import PlanStatusReporter, StatusReporter
from takeoff_ai.services.ingestion.text_extractor import PageTextExtractor
from takeoff_ai.services.storage_service import StorageService
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

NO_TEXT_WARNING = "No text extracted from PDF - may be scanned/image-only"
IMAGE_FAILURE_WARNING = "Image extraction failed - continuing with text only"
IMAGES_DISABLED_WARNING = "Image extraction disabled"
CHUNK_PREVIEW_LIMIT = 10


class IngestionCoordinator:
    """Runs the full ingestion pipeline for one plan."""

    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[StorageService] = None,
        retriever: Optional[DocumentRetriever] = None,
        text_extractor: Optional[PageTextExtractor] = None,
        image_extractor: Optional[PageImageExtractor] = None,
        status_reporter: Optional[StatusReporter] = None,
        sheet_index_builder: Optional[SheetIndexBuilder] = None,
    ):
        self.session = session
        self.plans = PlanRepository(session)
        self.sheet_index_repo = SheetIndexRepository(session)
        self.chunk_repo = ChunkRepository(session)

        self.storage = storage or StorageService()
        self.retriever = retriever or DocumentRetriever(storage=self.storage)
        self.text_extractor = text_extractor or PageTextExtractor()
        self.image_extractor = image_extractor or PageImageExtractor()
        self.status_reporter = status_reporter or PlanStatusReporter()
        self.sheet_index_builder = sheet_index_builder or SheetIndexBuilder()

    async def ingest(
        self,
        plan_id: UUID,
        options: Optional[IngestionOptions] = None,
        job_id: Optional[str] = None,
    ) -> IngestionResult:
        """Ingest a plan and return its stats, sheet index and chunk preview.

        Raises:
            PlanNotFoundError: If the plan does not exist
            PipelineError: On fatal failures (download exhausted, persistence);
                the plan is returned to draft and the status marked failed
        """
        options = options or IngestionOptions()
        engine = ChunkingEngine(options.chunking_options())

        plan = await self.plans.get_by_id(plan_id)
        if plan is None:
            raise PlanNotFoundError(f"Plan {plan_id} not found")

        start_time = time.time()
        status = ProcessingStatus()
        errors: List[str] = []
        warnings: List[str] = []

        LOGGER.info(
            f"Ingestion started for plan {plan_id}",
            extra={"file_name": plan.file_name, "file_path": plan.file_path},
        )
        await self.status_reporter.report(plan_id, status)

        try:
            await self.plans.mark_processing(plan_id)

            status.advance(ProcessingStage.DOWNLOADING, "Fetching PDF from storage")
            await self.status_reporter.report(plan_id, status)

            try:
                pdf_bytes = await self.retriever.download(plan.file_path)
            except DownloadError as e:
                errors.extend(e.attempt_errors)
                raise

            status.advance(ProcessingStage.DOWNLOADING, "PDF downloaded, extracting text and images", progress=10)
            await self.status_reporter.report(plan_id, status)

            status.advance(ProcessingStage.EXTRACTING)
            pages, page_images = await asyncio.gather(
                self._extract_text(pdf_bytes, errors),
                self._extract_images(str(plan_id), pdf_bytes, plan.file_name or "plan.pdf", options, errors, warnings),
            )
            if not pages:
                warnings.append(NO_TEXT_WARNING)

            status.stats.pages_processed = len(pages)
            status.advance(ProcessingStage.EXTRACTING, progress=40)
            await self.status_reporter.report(plan_id, status)
            LOGGER.info(f"Extracted {len(pages)} pages and {len(page_images)} images for plan {plan_id}")

            status.advance(ProcessingStage.INDEXING, "Building sheet index")
            await self.status_reporter.report(plan_id, status)

            sheet_index = self.sheet_index_builder.build(pages, page_images.keys())
            await self._persist(self.sheet_index_repo.replace_for_plan(plan_id, sheet_index), "sheet index")
            status.stats.sheets_indexed = len(sheet_index)
            status.advance(ProcessingStage.INDEXING, progress=60)
            await self.status_reporter.report(plan_id, status)

            status.advance(ProcessingStage.CHUNKING, "Generating chunks")
            await self.status_reporter.report(plan_id, status)

            project_meta = build_project_meta(plan, pages, job_id=job_id)
            chunks = engine.generate_chunks(pages, sheet_index, project_meta, page_images)
            await self._persist(self.chunk_repo.replace_for_plan(plan_id, chunks), "chunks")
            status.stats.chunks_created = len(chunks)
            status.advance(ProcessingStage.CHUNKING, progress=90)
            await self.status_reporter.report(plan_id, status)

            plan_set_groups = group_plan_sets(sheet_index)

            await self._persist(self.plans.mark_ready(plan_id, len(pages)), "plan status")
            status.stats.errors_count = len(errors)
            status.advance(ProcessingStage.COMPLETED, "Ingestion complete")
            await self.status_reporter.report(plan_id, status)

        except Exception as e:
            LOGGER.error(f"Ingestion failed for plan {plan_id}: {str(e)}", exc_info=True)
            status.stats.errors_count = len(errors) + 1
            if not status.stage.is_terminal:
                status.fail(str(e))
            await self.status_reporter.report(plan_id, status)
            await self._return_to_draft(plan_id)
            raise

        if self.status_reporter.errors:
            LOGGER.warning(
                f"{len(self.status_reporter.errors)} status updates failed for plan {plan_id}",
                extra={"status_errors": self.status_reporter.errors},
            )

        processing_time_ms = int((time.time() - start_time) * 1000)
        total_tokens = sum(chunk.token_count for chunk in chunks)
        LOGGER.info(
            f"Ingestion complete for plan {plan_id}",
            extra={
                "pages": len(pages),
                "sheets": len(sheet_index),
                "chunks": len(chunks),
                "processing_time_ms": processing_time_ms,
            },
        )

        return IngestionResult(
            success=True,
            plan_id=str(plan_id),
            stats=IngestionStats(
                total_pages=len(pages),
                total_chunks=len(chunks),
                sheet_index_count=len(sheet_index),
                processing_time_ms=processing_time_ms,
                average_chunk_size_tokens=round(total_tokens / len(chunks)) if chunks else 0,
                images_extracted=len(page_images),
                text_extracted=bool(pages),
            ),
            sheet_index=[entry.to_dict() for entry in sheet_index],
            plan_set_groups=[group.to_dict() for group in plan_set_groups],
            chunk_preview=[
                ChunkPreview(
                    chunk_id=chunk.chunk_id,
                    chunk_index=chunk.chunk_index,
                    page_range={"start": chunk.page_range.start, "end": chunk.page_range.end},
                    token_count=chunk.token_count,
                    sheet_count=len(chunk.sheet_index_subset),
                )
                for chunk in chunks[:CHUNK_PREVIEW_LIMIT]
            ],
            errors=errors,
            warnings=warnings,
        )

    async def _extract_text(self, pdf_bytes: bytes, errors: List[str]) -> List[PageText]:
        try:
            return await self.text_extractor.extract(pdf_bytes)
        except TextExtractionError as e:
            errors.append(f"Text extraction error: {str(e)}")
            return []

    async def _extract_images(
        self,
        plan_id: str,
        pdf_bytes: bytes,
        file_name: str,
        options: IngestionOptions,
        errors: List[str],
        warnings: List[str],
    ) -> Dict[int, str]:
        if not (options.enable_image_extraction and self.image_extractor.enabled):
            warnings.append(IMAGES_DISABLED_WARNING)
            return {}

        try:
            images = await self.image_extractor.to_images(pdf_bytes, file_name, options.image_dpi)
        except ImageExtractionError as e:
            errors.append(f"Image extraction error: {str(e)}")
            warnings.append(IMAGE_FAILURE_WARNING)
            return {}

        urls, upload_errors = await upload_page_images(plan_id, images, self.storage)
        errors.extend(upload_errors)
        return urls

    @staticmethod
    async def _persist(operation, what: str):
        try:
            return await operation
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to persist {what}: {str(e)}", original_error=e)

    async def _return_to_draft(self, plan_id: UUID) -> None:
        try:
            await self.plans.mark_failed(plan_id)
        except SQLAlchemyError:
            LOGGER.error(f"Could not return plan {plan_id} to draft", exc_info=True)
