"""Rule-based sheet classifier for construction plan pages.

Every page of a plan set is turned into a ``SheetIndexEntry`` using pattern
rules over the page text only: sheet identifier, drawing type, discipline,
scale, units and a fixed keyword vocabulary. Classification is pure and
deterministic; identical text always produces an identical entry.
"""

import re
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Set, Tuple

from takeoff_ai.models.page_data import PageText
from takeoff_ai.models.sheet_index import (
    ScaleUnits,
    SheetDiscipline,
    SheetIndexEntry,
    SheetType,
)
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _words(*words: str) -> Pattern:
    return re.compile(r"\b(?:" + "|".join(words) + r")\b")


class SheetIndexBuilder:
    """Classifies plan pages into sheet index entries."""

    # Labelled sheet numbers win over loose letter+number tokens
    LABELLED_SHEET_ID_PATTERN = re.compile(
        r"\bSHEET\s*(?:NO\.?|NUMBER|#)?\s*:?\s*([A-Z]{1,2})\s*[-\.]?\s*(\d{1,3}(?:\.\d{1,2})?)\b"
    )
    SHEET_ID_PATTERN = re.compile(r"\b([A-Z]{1,2})\s*[-\.]?\s*(\d{1,3}(?:\.\d{1,2})?)\b")

    # Checked in priority order; page 1 is always a title sheet
    SHEET_TYPE_PATTERNS: List[Tuple[SheetType, Pattern]] = [
        (SheetType.TITLE, _words("TITLE", "COVER", "INDEX")),
        (SheetType.FLOOR_PLAN, _words(r"FLOOR\s+PLAN", "FLOORPLAN")),
        (SheetType.ELEVATION, _words("ELEVATIONS?", r"ELEV\.?")),
        (SheetType.SECTION, _words("SECTIONS?")),
        (SheetType.DETAIL, _words("DETAILS?", "DET", "DTL")),
        (SheetType.SCHEDULE, _words("SCHEDULES?", "SCH")),
        (SheetType.LEGEND, _words("LEGENDS?")),
        (SheetType.SITE_PLAN, _words(r"SITE\s+PLAN", "SITE")),
        (SheetType.ROOF_PLAN, _words(r"ROOF\s+PLAN", "ROOF")),
    ]

    SHEET_PREFIX_DISCIPLINES: Dict[str, SheetDiscipline] = {
        "A": SheetDiscipline.ARCHITECTURAL,
        "S": SheetDiscipline.STRUCTURAL,
        "E": SheetDiscipline.ELECTRICAL,
        "P": SheetDiscipline.PLUMBING,
        "M": SheetDiscipline.HVAC,
        "C": SheetDiscipline.CIVIL,
        "L": SheetDiscipline.LANDSCAPE,
    }

    DISCIPLINE_PATTERNS: List[Tuple[SheetDiscipline, Pattern]] = [
        (SheetDiscipline.MEP, _words("MEP")),
        (SheetDiscipline.ARCHITECTURAL, _words("ARCHITECTURAL", r"ARCH\.?")),
        (SheetDiscipline.STRUCTURAL, _words("STRUCTURAL", r"STRUCT\.?")),
        (SheetDiscipline.ELECTRICAL, _words("ELECTRICAL", r"ELECT\.?")),
        (SheetDiscipline.PLUMBING, _words("PLUMBING", r"PLUMB\.?")),
        (SheetDiscipline.HVAC, _words("MECHANICAL", "HVAC", "HEATING")),
        (SheetDiscipline.CIVIL, _words("CIVIL")),
        (SheetDiscipline.LANDSCAPE, _words("LANDSCAPE", "LANDSCAPING")),
    ]

    SCALE_PATTERN = re.compile(
        r"(\d+\s*/\s*\d+\"?\s*=\s*\d+'\s*-?\s*\d+\"?)"
        r"|(\d+\"\s*=\s*\d+'(?:\s*-?\s*\d+\")?)"
        r"|(1\s*:\s*\d+)"
        r"|(SCALE[\s:]+[\d/\"]+)"
    )
    FRACTIONAL_SCALE_PATTERN = re.compile(r"(\d+)\s*/\s*(\d+)\"?\s*=\s*(\d+)'")
    WHOLE_INCH_SCALE_PATTERN = re.compile(r"(\d+)\"\s*=\s*(\d+)'")
    RATIO_SCALE_PATTERN = re.compile(r"1\s*:\s*(\d+)")

    IMPERIAL_UNIT_PATTERN = re.compile(r"\d+'\s*-?\s*\d+\"|\b(?:FEET|FOOT|FT|INCH|INCHES)\b")
    METRIC_UNIT_PATTERN = re.compile(r"\d\s*(?:MM|CM)\b|\b(?:MM|CM|METERS?|METRES?|MILLIMETERS?)\b")

    TITLE_PATTERN = re.compile(
        r"(FLOOR PLAN|ELEVATION|SECTION|DETAIL|SCHEDULE|TITLE|FOUNDATION|SITE PLAN)[ \t\w]*"
    )
    MAX_TITLE_LENGTH = 80

    KEYWORDS: Sequence[str] = (
        "FOUNDATION", "WALLS", "ROOF", "FLOOR", "CEILING",
        "DOOR", "WINDOW", "DOORS", "WINDOWS",
        "ELECTRICAL", "PLUMBING", "HVAC", "MEP",
        "SCHEDULE", "LEGEND", "NOTES", "SPECIFICATIONS",
        "BEAM", "COLUMN", "FOOTING", "SLAB",
    )

    def build(
        self,
        pages: Sequence[PageText],
        image_pages: Optional[Iterable[int]] = None,
    ) -> List[SheetIndexEntry]:
        """Classify every page, preserving order.

        Args:
            pages: Extracted page texts, 1-indexed and contiguous
            image_pages: Page numbers that have a rendered image

        Returns:
            One entry per input page
        """
        with_images: Set[int] = set(image_pages or ())
        entries = [self.classify_page(page, page.page_number in with_images) for page in pages]

        LOGGER.info(
            f"Built sheet index for {len(entries)} pages",
            extra={"with_images": len(with_images)},
        )
        return entries

    def classify_page(self, page: PageText, has_image: bool = False) -> SheetIndexEntry:
        text = page.text.upper()

        sheet_id = self.extract_sheet_id(text, page.page_number)
        scale = self.extract_scale(text)

        return SheetIndexEntry(
            page_no=page.page_number,
            sheet_id=sheet_id,
            title=self.extract_title(text, page.page_number),
            discipline=self.detect_discipline(text, sheet_id),
            sheet_type=self.detect_sheet_type(text, page.page_number),
            scale=scale,
            scale_ratio=self.parse_scale_ratio(scale) if scale else None,
            units=self.detect_units(text, scale),
            rotation=page.rotation,
            has_text_layer=page.has_text_layer,
            has_image=has_image,
            text_length=len(page.text),
            detected_keywords=self.extract_keywords(text),
        )

    def extract_sheet_id(self, text: str, page_number: int) -> str:
        match = self.LABELLED_SHEET_ID_PATTERN.search(text) or self.SHEET_ID_PATTERN.search(text)
        if match:
            return f"{match.group(1)}-{match.group(2)}"
        return f"PAGE-{page_number}"

    def detect_sheet_type(self, text: str, page_number: int) -> SheetType:
        if page_number == 1:
            return SheetType.TITLE
        for sheet_type, pattern in self.SHEET_TYPE_PATTERNS:
            if pattern.search(text):
                return sheet_type
        return SheetType.OTHER

    def detect_discipline(self, text: str, sheet_id: str) -> SheetDiscipline:
        if not sheet_id.startswith("PAGE-"):
            prefix = sheet_id.split("-", 1)[0]
            if prefix in self.SHEET_PREFIX_DISCIPLINES:
                return self.SHEET_PREFIX_DISCIPLINES[prefix]

        if all(word in text for word in ("MECHANICAL", "ELECTRICAL", "PLUMBING")):
            return SheetDiscipline.MEP
        for discipline, pattern in self.DISCIPLINE_PATTERNS:
            if pattern.search(text):
                return discipline
        return SheetDiscipline.UNKNOWN

    def extract_scale(self, text: str) -> Optional[str]:
        match = self.SCALE_PATTERN.search(text)
        return match.group(0).strip() if match else None

    def parse_scale_ratio(self, scale: str) -> Optional[float]:
        """Convert a scale string to real-world units per drawing unit.

        ``1/8" = 1'-0"`` becomes 96.0 (one drawing inch covers 96 inches);
        ``1:100`` becomes 100.0.
        """
        fractional = self.FRACTIONAL_SCALE_PATTERN.search(scale)
        if fractional:
            numerator, denominator, feet = (int(group) for group in fractional.groups())
            if numerator == 0 or denominator == 0:
                return None
            return (feet * 12) / (numerator / denominator)

        whole_inch = self.WHOLE_INCH_SCALE_PATTERN.search(scale)
        if whole_inch:
            inches, feet = (int(group) for group in whole_inch.groups())
            return (feet * 12) / inches if inches else None

        ratio = self.RATIO_SCALE_PATTERN.search(scale)
        if ratio:
            return float(ratio.group(1))

        return None

    def detect_units(self, text: str, scale: Optional[str]) -> ScaleUnits:
        if scale:
            if "=" in scale:
                return ScaleUnits.IMPERIAL
            if ":" in scale and self.RATIO_SCALE_PATTERN.search(scale):
                return ScaleUnits.METRIC

        if self.IMPERIAL_UNIT_PATTERN.search(text):
            return ScaleUnits.IMPERIAL
        if self.METRIC_UNIT_PATTERN.search(text):
            return ScaleUnits.METRIC
        return ScaleUnits.UNKNOWN

    def extract_title(self, text: str, page_number: int) -> str:
        match = self.TITLE_PATTERN.search(text)
        if not match:
            return f"Sheet {page_number}"
        return match.group(0).strip()[: self.MAX_TITLE_LENGTH].strip()

    def extract_keywords(self, text: str) -> List[str]:
        return [keyword for keyword in self.KEYWORDS if keyword in text]


def build_sheet_index(
    pages: Sequence[PageText], image_pages: Optional[Iterable[int]] = None
) -> List[SheetIndexEntry]:
    """Convenience wrapper around ``SheetIndexBuilder.build``."""
    return SheetIndexBuilder().build(pages, image_pages)
