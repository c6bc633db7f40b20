"""Data models for per-page extraction results."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class TextRun:
    """A positioned run of text on a page.

    Coordinates are PDF points measured from the top-left corner of the page.
    """

    text: str
    x: float
    y: float
    font_size: float = 0.0
    font_name: Optional[str] = None


@dataclass
class PageText:
    """Text extracted from a single page.

    Attributes:
        page_number: Page number (1-indexed)
        text: Concatenated plain text of the page
        runs: Positioned text runs in reading order
        width_points: Page width in PDF points (1 point = 1/72 inch)
        height_points: Page height in PDF points
        rotation: Page rotation in degrees (0, 90, 180, 270)
    """

    page_number: int
    text: str
    runs: List[TextRun] = field(default_factory=list)
    width_points: Optional[float] = None
    height_points: Optional[float] = None
    rotation: int = 0

    @property
    def has_text_layer(self) -> bool:
        return bool(self.text.strip())

    def __len__(self) -> int:
        return len(self.text)

    def __str__(self) -> str:
        return f"PageText(page={self.page_number}, length={len(self)})"


@dataclass
class PageImage:
    """Raster rendering of a single page.

    Either ``image_bytes`` or ``url`` is set. Converters that host their own
    output (PDF.co) return a URL; local renderers return bytes that still need
    to be uploaded.
    """

    page_number: int
    image_bytes: Optional[bytes] = None
    url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    dpi: int = 300

    @property
    def is_hosted(self) -> bool:
        return bool(self.url and self.url.startswith("http"))
