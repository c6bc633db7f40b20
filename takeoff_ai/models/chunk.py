"""Chunk records produced by the chunking engine."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from takeoff_ai.models.sheet_index import SheetDiscipline, SheetIndexEntry


@dataclass
class ProjectMeta:
    """Project context snapshot embedded in every chunk."""

    plan_id: str
    project_name: Optional[str] = None
    project_location: Optional[str] = None
    plan_title: Optional[str] = None
    job_id: Optional[str] = None
    plan_file_name: Optional[str] = None
    total_pages: int = 0
    plan_upload_date: Optional[str] = None
    detected_projects: List[str] = field(default_factory=list)
    detected_addresses: List[str] = field(default_factory=list)


@dataclass
class Anchor:
    anchor_id: str
    type: str
    value: str
    description: str
    page_number: int


@dataclass
class PageRange:
    start: int
    end: int
    pages: List[int] = field(default_factory=list)


@dataclass
class ChunkContent:
    text: str
    text_token_count: int
    image_urls: List[str] = field(default_factory=list)

    @property
    def image_count(self) -> int:
        return len(self.image_urls)


@dataclass
class OverlapInfo:
    prev_chunk_id: Optional[str] = None
    next_chunk_id: Optional[str] = None
    overlap_tokens: int = 0


@dataclass
class ChunkMetadata:
    project_meta: ProjectMeta
    sheet_scale_units: str
    discipline: SheetDiscipline
    anchors: List[Anchor] = field(default_factory=list)
    overlap_info: OverlapInfo = field(default_factory=OverlapInfo)


@dataclass
class ChunkSafeguards:
    dedupe_hash: str
    location_keys: List[str] = field(default_factory=list)
    no_multiply_hints: List[str] = field(default_factory=list)
    quantity_signatures: List[str] = field(default_factory=list)


@dataclass
class Chunk:
    """Ordered, page-labelled span of plan text."""

    chunk_id: str
    plan_id: str
    chunk_index: int
    page_range: PageRange
    sheet_index_subset: List[SheetIndexEntry]
    content: ChunkContent
    metadata: ChunkMetadata
    safeguards: ChunkSafeguards
    created_at: str

    @property
    def token_count(self) -> int:
        return self.content.text_token_count

    def content_dict(self) -> Dict[str, Any]:
        return {
            "text": self.content.text,
            "text_token_count": self.content.text_token_count,
            "image_urls": list(self.content.image_urls),
            "image_count": self.content.image_count,
        }

    def metadata_dict(self) -> Dict[str, Any]:
        return {
            "project_meta": asdict(self.metadata.project_meta),
            "sheet_scale_units": self.metadata.sheet_scale_units,
            "discipline": self.metadata.discipline.value,
            "anchors": [asdict(anchor) for anchor in self.metadata.anchors],
            "overlap_info": asdict(self.metadata.overlap_info),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_id": self.chunk_id,
            "plan_id": self.plan_id,
            "chunk_index": self.chunk_index,
            "page_range": asdict(self.page_range),
            "sheet_index_subset": [sheet.to_dict() for sheet in self.sheet_index_subset],
            "content": self.content_dict(),
            "metadata": self.metadata_dict(),
            "safeguards": asdict(self.safeguards),
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ChunkingOptions:
    """Token budget for chunk generation."""

    target_chunk_size_tokens: int = 3000
    overlap_percentage: float = 17.5
    max_chunk_size_tokens: int = 4000
    min_chunk_size_tokens: int = 2000

    @property
    def overlap_tokens(self) -> int:
        return int(self.target_chunk_size_tokens * (self.overlap_percentage / 100))
