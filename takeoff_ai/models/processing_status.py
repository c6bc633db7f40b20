"""Plan lifecycle and ingestion processing status."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class PlanStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    READY = "ready"


class ProcessingStage(str, Enum):
    """Ingestion stages in execution order."""
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    INDEXING = "indexing"
    CHUNKING = "chunking"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStage.COMPLETED, ProcessingStage.FAILED)


_STAGE_ORDER = {
    ProcessingStage.QUEUED: 0,
    ProcessingStage.DOWNLOADING: 1,
    ProcessingStage.EXTRACTING: 2,
    ProcessingStage.INDEXING: 3,
    ProcessingStage.CHUNKING: 4,
    ProcessingStage.COMPLETED: 5,
}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ProcessingStats:
    pages_processed: int = 0
    sheets_indexed: int = 0
    chunks_created: int = 0
    errors_count: int = 0


@dataclass
class ProcessingStatus:
    """Status blob stored on the plan row while it is ingested.

    Stages only move forward; ``failed`` can be entered from any stage that
    is not already terminal.
    """

    stage: ProcessingStage = ProcessingStage.QUEUED
    progress: int = 0
    current_step: str = "Initializing"
    started_at: str = field(default_factory=_utcnow)
    completed_at: Optional[str] = None
    stats: ProcessingStats = field(default_factory=ProcessingStats)
    error: Optional[str] = None

    def advance(self, stage: ProcessingStage, current_step: Optional[str] = None, progress: Optional[int] = None) -> None:
        """Move to ``stage`` (or stay in it) and update progress.

        Raises:
            ValueError: If the transition would move backwards or leave a terminal stage
        """
        if stage == ProcessingStage.FAILED:
            raise ValueError("Use fail() to enter the failed stage")
        if self.stage.is_terminal:
            raise ValueError(f"Cannot leave terminal stage {self.stage.value}")
        if _STAGE_ORDER[stage] < _STAGE_ORDER[self.stage]:
            raise ValueError(f"Cannot move from {self.stage.value} back to {stage.value}")

        self.stage = stage
        if current_step is not None:
            self.current_step = current_step
        if progress is not None:
            self.progress = max(self.progress, min(100, progress))
        if stage == ProcessingStage.COMPLETED:
            self.progress = 100
            self.completed_at = _utcnow()

    def fail(self, error: str) -> None:
        if self.stage.is_terminal:
            raise ValueError(f"Cannot fail from terminal stage {self.stage.value}")
        self.stage = ProcessingStage.FAILED
        self.error = error
        self.completed_at = _utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "stats": {
                "pages_processed": self.stats.pages_processed,
                "sheets_indexed": self.stats.sheets_indexed,
                "chunks_created": self.stats.chunks_created,
                "errors_count": self.stats.errors_count,
            },
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcessingStatus":
        stats = data.get("stats") or {}
        return cls(
            stage=ProcessingStage(data.get("stage", ProcessingStage.QUEUED.value)),
            progress=int(data.get("progress") or 0),
            current_step=data.get("current_step") or "",
            started_at=data.get("started_at") or _utcnow(),
            completed_at=data.get("completed_at"),
            stats=ProcessingStats(
                pages_processed=stats.get("pages_processed", 0),
                sheets_indexed=stats.get("sheets_indexed", 0),
                chunks_created=stats.get("chunks_created", 0),
                errors_count=stats.get("errors_count", 0),
            ),
            error=data.get("error"),
        )
