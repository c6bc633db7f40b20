"""Sheet index records produced by page classification."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SheetDiscipline(str, Enum):
    """Trade a sheet belongs to."""
    ARCHITECTURAL = "architectural"
    STRUCTURAL = "structural"
    MEP = "mep"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    HVAC = "hvac"
    CIVIL = "civil"
    LANDSCAPE = "landscape"
    UNKNOWN = "unknown"


class SheetType(str, Enum):
    """Drawing type of a sheet."""
    TITLE = "title"
    FLOOR_PLAN = "floor_plan"
    ELEVATION = "elevation"
    SECTION = "section"
    DETAIL = "detail"
    SCHEDULE = "schedule"
    LEGEND = "legend"
    SITE_PLAN = "site_plan"
    ROOF_PLAN = "roof_plan"
    OTHER = "other"


class ScaleUnits(str, Enum):
    IMPERIAL = "imperial"
    METRIC = "metric"
    UNKNOWN = "unknown"


@dataclass
class SheetIndexEntry:
    """Classification of one page of a plan set."""

    page_no: int
    sheet_id: str
    title: str
    discipline: SheetDiscipline = SheetDiscipline.UNKNOWN
    sheet_type: SheetType = SheetType.OTHER
    scale: Optional[str] = None
    scale_ratio: Optional[float] = None
    units: ScaleUnits = ScaleUnits.UNKNOWN
    rotation: int = 0
    has_text_layer: bool = False
    has_image: bool = False
    text_length: int = 0
    detected_keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["discipline"] = self.discipline.value
        data["sheet_type"] = self.sheet_type.value
        data["units"] = self.units.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SheetIndexEntry":
        return cls(
            page_no=data["page_no"],
            sheet_id=data["sheet_id"],
            title=data.get("title") or "",
            discipline=SheetDiscipline(data.get("discipline") or SheetDiscipline.UNKNOWN),
            sheet_type=SheetType(data.get("sheet_type") or SheetType.OTHER),
            scale=data.get("scale"),
            scale_ratio=data.get("scale_ratio"),
            units=ScaleUnits(data.get("units") or ScaleUnits.UNKNOWN),
            rotation=data.get("rotation") or 0,
            has_text_layer=bool(data.get("has_text_layer")),
            has_image=bool(data.get("has_image")),
            text_length=data.get("text_length") or 0,
            detected_keywords=list(data.get("detected_keywords") or []),
        )


@dataclass
class PlanSetGroup:
    """Sheets sharing a sheet type and discipline."""

    group_id: str
    name: str
    sheet_type: SheetType
    discipline: SheetDiscipline
    page_numbers: List[int] = field(default_factory=list)
    sheet_ids: List[str] = field(default_factory=list)
    scale: Optional[str] = None
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sheet_type"] = self.sheet_type.value
        data["discipline"] = self.discipline.value
        return data
