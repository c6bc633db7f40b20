"""Request and response payloads for plan ingestion."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from takeoff_ai.core.config import settings
from takeoff_ai.models.chunk import ChunkingOptions


class IngestionOptions(BaseModel):
    """Tunable knobs for one ingestion run."""

    target_chunk_size_tokens: int = Field(default_factory=lambda: settings.ingestion.target_chunk_size_tokens, gt=0)
    overlap_percentage: float = Field(default_factory=lambda: settings.ingestion.overlap_percentage, ge=0, lt=50)
    max_chunk_size_tokens: int = Field(default_factory=lambda: settings.ingestion.max_chunk_size_tokens, gt=0)
    min_chunk_size_tokens: int = Field(default_factory=lambda: settings.ingestion.min_chunk_size_tokens, gt=0)
    enable_image_extraction: bool = False
    image_dpi: int = Field(default_factory=lambda: settings.ingestion.image_dpi, gt=0)

    def chunking_options(self) -> ChunkingOptions:
        return ChunkingOptions(
            target_chunk_size_tokens=self.target_chunk_size_tokens,
            overlap_percentage=self.overlap_percentage,
            max_chunk_size_tokens=self.max_chunk_size_tokens,
            min_chunk_size_tokens=self.min_chunk_size_tokens,
        )


class IngestionStats(BaseModel):
    total_pages: int = 0
    total_chunks: int = 0
    sheet_index_count: int = 0
    processing_time_ms: int = 0
    average_chunk_size_tokens: int = 0
    images_extracted: int = 0
    text_extracted: bool = False


class ChunkPreview(BaseModel):
    chunk_id: str
    chunk_index: int
    page_range: Dict[str, Any]
    token_count: int
    sheet_count: int


class IngestionResult(BaseModel):
    """Outcome of one ingestion run."""

    success: bool
    plan_id: str
    stats: IngestionStats = Field(default_factory=IngestionStats)
    sheet_index: List[Dict[str, Any]] = Field(default_factory=list)
    plan_set_groups: List[Dict[str, Any]] = Field(default_factory=list)
    chunk_preview: List[ChunkPreview] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class IngestStartResponse(BaseModel):
    workflow_id: str
    plan_id: str
    message: Optional[str] = None
