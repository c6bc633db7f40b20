"""Per-page text extraction with pdfplumber."""

import asyncio
import time
from io import BytesIO
from typing import List, Optional

import pdfplumber

from takeoff_ai.core.config import settings
from takeoff_ai.core.exceptions import TextExtractionError
from takeoff_ai.models.page_data import PageText, TextRun
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class PageTextExtractor:
    """Extracts plain text and positioned text runs from every PDF page.

    pdfplumber is synchronous, so the parse runs in a worker thread and is
    bounded by a wall-clock timeout.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds or settings.ingestion.text_extraction_timeout_seconds

    async def extract(self, pdf_bytes: bytes) -> List[PageText]:
        """Extract all pages.

        Raises:
            TextExtractionError: If the PDF cannot be parsed or the timeout expires
        """
        start_time = time.time()
        try:
            pages = await asyncio.wait_for(
                asyncio.to_thread(self._extract_sync, pdf_bytes),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            LOGGER.error(f"Text extraction timed out after {self.timeout_seconds}s")
            raise TextExtractionError(
                f"Text extraction timed out after {self.timeout_seconds} seconds", original_error=e
            )
        except Exception as e:
            LOGGER.error(f"Text extraction failed: {e}", exc_info=True)
            raise TextExtractionError(f"Text extraction failed: {str(e)}", original_error=e)

        LOGGER.info(
            f"Extracted text from {len(pages)} pages in {time.time() - start_time:.2f}s",
            extra={"total_pages": len(pages), "size_bytes": len(pdf_bytes)},
        )
        return pages

    def _extract_sync(self, pdf_bytes: bytes) -> List[PageText]:
        pages: List[PageText] = []
        with pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
            for page_num, page in enumerate(pdf.pages, start=1):
                pages.append(self._extract_page(page, page_num))
        return pages

    def _extract_page(self, page, page_num: int) -> PageText:
        text = page.extract_text() or ""
        words = page.extract_words(extra_attrs=["fontname", "size"])
        runs = [
            TextRun(
                text=word["text"],
                x=float(word["x0"]),
                y=float(word["top"]),
                font_size=float(word.get("size") or 0.0),
                font_name=word.get("fontname"),
            )
            for word in words
        ]
        return PageText(
            page_number=page_num,
            text=text,
            runs=runs,
            width_points=float(page.width),
            height_points=float(page.height),
            rotation=int(getattr(page, "rotation", 0) or 0),
        )
