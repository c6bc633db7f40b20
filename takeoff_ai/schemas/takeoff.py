"""Takeoff request, result and AI payload schemas.

AI responses are untrusted: item and analysis records are normalised on
validation (missing strings become "", unknown units fall back to EA,
confidences are clamped to [0, 1], and a zero bounding box is filled in) so
downstream merge and summary code can rely on every field being present.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from takeoff_ai.core.config import settings


class Unit(str, Enum):
    LF = "LF"
    SF = "SF"
    CF = "CF"
    CY = "CY"
    EA = "EA"
    SQ = "SQ"


class UnitCostSource(str, Enum):
    MODEL_ESTIMATE = "model_estimate"
    LOOKUP_PENDING = "lookup_pending"
    PROVIDED = "provided"


class AnalysisType(str, Enum):
    CODE_ISSUE = "code_issue"
    CONFLICT = "conflict"
    RFI = "rfi"


SEVERITIES = ("low", "medium", "high", "critical")
PRIORITIES = ("low", "medium", "high")


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def _page(value: Any, default: int = 1) -> int:
    number = _number(value, default)
    return int(number) if number >= 1 else default


class BoundingBox(BaseModel):
    """Normalised region on a page image (0..1 coordinates)."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    page: int = 1

    @field_validator("x", "y", "width", "height", mode="before")
    @classmethod
    def coerce_coordinate(cls, v: Any) -> float:
        return _number(v, 0.0)

    @field_validator("page", mode="before")
    @classmethod
    def coerce_page(cls, v: Any) -> int:
        return _page(v)

    @classmethod
    def zero(cls, page: int = 1) -> "BoundingBox":
        return cls(page=page)


class PageRef(BaseModel):
    pdf: str = ""
    page: int = 1

    @field_validator("page", mode="before")
    @classmethod
    def coerce_page(cls, v: Any) -> int:
        return _page(v)


def _page_refs(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [ref for ref in raw if isinstance(ref, dict)]


class TakeoffItem(BaseModel):
    """One bill-of-quantities line."""

    name: str = ""
    description: str = ""
    quantity: float = 0.0
    unit: Unit = Unit.EA
    unit_cost: float = 0.0
    unit_cost_source: UnitCostSource = UnitCostSource.MODEL_ESTIMATE
    unit_cost_notes: Optional[str] = None
    location: str = ""
    industry: str = "other"
    category: str = ""
    subcategory: str = ""
    cost_code: str = ""
    cost_code_description: str = ""
    dimensions: str = ""
    bounding_box: BoundingBox = Field(default_factory=BoundingBox)
    page_refs: List[PageRef] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    notes: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        item = dict(data)

        for key in (
            "name", "description", "location", "category", "subcategory",
            "cost_code", "cost_code_description", "dimensions",
        ):
            value = item.get(key)
            item[key] = "" if value is None else str(value)

        item["industry"] = str(item.get("industry") or "other")
        item["quantity"] = _number(item.get("quantity"), 0.0)
        item["unit_cost"] = _number(item.get("unit_cost"), 0.0)
        item["confidence"] = min(1.0, max(0.0, _number(item.get("confidence"), 0.5)))

        unit = str(item.get("unit") or "").strip().upper()
        item["unit"] = unit if unit in Unit.__members__ else Unit.EA.value

        source = item.get("unit_cost_source")
        valid_sources = {member.value for member in UnitCostSource}
        item["unit_cost_source"] = source if source in valid_sources else UnitCostSource.MODEL_ESTIMATE.value

        item["page_refs"] = _page_refs(item.get("page_refs"))
        if not isinstance(item.get("bounding_box"), dict):
            first_page = item["page_refs"][0].get("page") if item["page_refs"] else 1
            item["bounding_box"] = {"page": _page(first_page)}

        for key in ("unit_cost_notes", "notes"):
            if item.get(key) is not None:
                item[key] = str(item[key])
        return item


class AnalysisItem(BaseModel):
    """Code issue, drawing conflict or RFI found during takeoff."""

    type: AnalysisType = AnalysisType.CONFLICT
    title: Optional[str] = None
    question: Optional[str] = None
    description: str = ""
    sheet: Optional[str] = None
    pages: List[int] = Field(default_factory=lambda: [1])
    bounding_box: BoundingBox = Field(default_factory=BoundingBox)
    severity: Optional[Literal["low", "medium", "high", "critical"]] = None
    priority: Optional[Literal["low", "medium", "high"]] = None
    recommendation: Optional[str] = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        issue = dict(data)

        kind = str(issue.get("type") or "").strip().lower().replace("-", "_")
        issue["type"] = kind if kind in {member.value for member in AnalysisType} else AnalysisType.CONFLICT.value
        issue["description"] = "" if issue.get("description") is None else str(issue["description"])
        issue["confidence"] = min(1.0, max(0.0, _number(issue.get("confidence"), 0.5)))

        box = issue.get("bounding_box") if isinstance(issue.get("bounding_box"), dict) else None
        raw_pages = issue.get("pages")
        pages = [_page(page) for page in raw_pages] if isinstance(raw_pages, list) else []
        issue["pages"] = pages or [_page(box.get("page")) if box else 1]
        issue["bounding_box"] = box if box is not None else {"page": issue["pages"][0]}

        severity = str(issue.get("severity") or "").lower()
        issue["severity"] = severity if severity in SEVERITIES else None
        priority = str(issue.get("priority") or "").lower()
        issue["priority"] = priority if priority in PRIORITIES else None

        for key in ("title", "question", "sheet", "recommendation"):
            if issue.get(key) is not None:
                issue[key] = str(issue[key])
        return issue


class SegmentPlan(BaseModel):
    """Scoped unit of work: one industry and its categories."""

    industry: str
    categories: List[str] = Field(default_factory=list)
    priority: int = 1


class CostCodeTotal(BaseModel):
    cost_code: str
    description: str
    quantity: float
    unit: str
    est_cost: float


class SegmentSummary(BaseModel):
    totals_by_cost_code: List[CostCodeTotal] = Field(default_factory=list)
    top_risks: List[str] = Field(default_factory=list)
    pages_processed: int = 0
    pages_failed: int = 0


class SegmentResult(BaseModel):
    industry: str
    categories: List[str] = Field(default_factory=list)
    summary: SegmentSummary = Field(default_factory=SegmentSummary)
    items_count: int = 0
    analysis_count: int = 0


class RunLogEntry(BaseModel):
    type: Literal["info", "warn", "error"]
    message: str
    pdf: Optional[str] = None
    page_batch: Optional[Tuple[int, int]] = None


class JobContext(BaseModel):
    project_name: str = ""
    location: str = ""
    building_type: str = "residential"
    notes: Optional[str] = None


class PriorSegment(BaseModel):
    industry: str
    categories: List[str] = Field(default_factory=list)


class PlanMetadata(BaseModel):
    file_path: str
    project_name: Optional[str] = None
    project_location: Optional[str] = None
    job_type: Optional[str] = None
    additional_urls: List[str] = Field(default_factory=list)


class TakeoffRequest(BaseModel):
    """Build context for one takeoff run."""

    pdf_urls: List[str] = Field(default_factory=list)
    job_context: JobContext = Field(default_factory=JobContext)
    ask_scoping_questions: bool = True
    page_batch_size: int = Field(default_factory=lambda: settings.takeoff.page_batch_size, gt=0)
    max_parallel_batches: int = Field(default_factory=lambda: settings.takeoff.max_parallel_batches, gt=0)
    currency: str = Field(default_factory=lambda: settings.takeoff.default_currency)
    unit_cost_policy: Literal["estimate", "lookup", "mixed"] = "estimate"
    prior_segments: List[PriorSegment] = Field(default_factory=list)
    plan_id: Optional[str] = None
    plan_metadata: Optional[PlanMetadata] = None

    @property
    def consensus_mode(self) -> bool:
        return bool(self.plan_metadata and self.plan_metadata.file_path)


class SuggestedSegment(BaseModel):
    industry: str
    categories: List[str] = Field(default_factory=list)

    @field_validator("industry")
    @classmethod
    def industry_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("industry must not be blank")
        return v.strip()


class ScopingPayload(BaseModel):
    """Expected scoping response: ``{"suggested_segments": [...]}``."""

    suggested_segments: List[SuggestedSegment] = Field(..., min_length=1)


class ExecutionPayload(BaseModel):
    """Expected execution response: items plus analysis records.

    Records are kept raw here and normalised individually, so one malformed
    record does not discard the rest of the batch.
    """

    items: List[Dict[str, Any]]
    analysis: List[Dict[str, Any]] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_issues_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and "analysis" not in data and isinstance(data.get("issues"), list):
            data = {**data, "analysis": data["issues"]}
        return data

    @field_validator("items", "analysis", mode="before")
    @classmethod
    def records_only(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [record for record in v if isinstance(record, dict)]
        return v


class TakeoffOutput(BaseModel):
    """The four output arrays of a takeoff run; never null."""

    items: List[TakeoffItem] = Field(default_factory=list)
    analysis: List[AnalysisItem] = Field(default_factory=list)
    segments: List[SegmentResult] = Field(default_factory=list)
    run_log: List[RunLogEntry] = Field(default_factory=list)

    def as_arrays(self) -> Tuple[list, list, list, list]:
        data = self.model_dump(mode="json")
        return data["items"], data["analysis"], data["segments"], data["run_log"]


class TakeoffStartResponse(BaseModel):
    workflow_id: str
    plan_id: Optional[str] = None
