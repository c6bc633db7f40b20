"""Fetches takeoff source PDFs and turns them into per-page text and images.

Each document is fetched and converted at most once per run; concurrent
callers asking for the same URL wait on the first conversion.
"""

import asyncio
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urlparse

import httpx

from takeoff_ai.core.config import settings
from takeoff_ai.core.exceptions import (
    FileTooLargeError,
    ImageExtractionError,
    TakeoffError,
    TextExtractionError,
)
from takeoff_ai.services.ingestion.image_extractor import PageImageExtractor
from takeoff_ai.services.ingestion.text_extractor import PageTextExtractor
from takeoff_ai.services.storage_service import StorageService
from takeoff_ai.services.takeoff.run_log import RunLog
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class SourcePage:
    page_number: int
    text: str = ""
    image_url: Optional[str] = None


@dataclass
class SourceDocument:
    """One converted PDF: pages in order, 1-indexed."""

    pdf_url: str
    pages: List[SourcePage] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def image_count(self) -> int:
        return sum(1 for page in self.pages if page.image_url)

    def page_range(self, start: int, end: int) -> List[SourcePage]:
        return [page for page in self.pages if start <= page.page_number <= end]

    def select(self, page_numbers: List[int]) -> List[SourcePage]:
        wanted = set(page_numbers)
        return [page for page in self.pages if page.page_number in wanted]


def page_images(pages: List[SourcePage]) -> List[str]:
    return [page.image_url for page in pages if page.image_url]


def page_text(pages: List[SourcePage]) -> str:
    return "\n\n".join(
        f"--- Page {page.page_number} ---\n{page.text}" for page in pages if page.text.strip()
    )


class PageSource:
    """Per-run cache of converted source documents."""

    def __init__(
        self,
        image_extractor: Optional[PageImageExtractor] = None,
        text_extractor: Optional[PageTextExtractor] = None,
        timeout: Optional[int] = None,
        max_bytes: Optional[int] = None,
        dpi: Optional[int] = None,
        storage: Optional[StorageService] = None,
    ):
        self.image_extractor = image_extractor or PageImageExtractor()
        self.text_extractor = text_extractor or PageTextExtractor()
        self.timeout = timeout or settings.http_timeout
        self.max_bytes = max_bytes or settings.storage.max_file_size_bytes
        self.dpi = dpi or settings.ingestion.image_dpi
        self.storage = storage or StorageService(timeout=self.timeout)

        self._documents: Dict[str, SourceDocument] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def load(self, pdf_url: str, run_log: Optional[RunLog] = None) -> SourceDocument:
        """Fetch and convert ``pdf_url`` once.

        Raises:
            TakeoffError: If the URL cannot be fetched, is not a PDF, or
                yields no pages at all
        """
        lock = self._locks.setdefault(pdf_url, asyncio.Lock())
        async with lock:
            if pdf_url not in self._documents:
                self._documents[pdf_url] = await self._convert(pdf_url, run_log)
        return self._documents[pdf_url]

    async def fetch(self, pdf_url: str) -> bytes:
        """Download a PDF, rejecting other content types.

        The size ceiling is enforced while the body streams in.

        Raises:
            TakeoffError: On HTTP failure, wrong content type or oversize body
        """
        try:
            content, content_type = await self.storage.download_with_content_type(pdf_url, self.max_bytes)
        except FileTooLargeError as e:
            raise TakeoffError(f"PDF exceeds {self.max_bytes} bytes: {pdf_url}", original_error=e)
        except httpx.HTTPError as e:
            raise TakeoffError(f"Failed to fetch PDF {pdf_url}: {str(e)}", original_error=e)

        if "pdf" not in content_type and not content.startswith(b"%PDF"):
            raise TakeoffError(f"URL did not return a PDF ({content_type or 'unknown content type'}): {pdf_url}")
        return content

    async def _convert(self, pdf_url: str, run_log: Optional[RunLog]) -> SourceDocument:
        pdf_bytes = await self.fetch(pdf_url)
        file_name = os.path.basename(urlparse(pdf_url).path) or "plan.pdf"

        texts, images = await asyncio.gather(
            self._text(pdf_bytes, pdf_url, run_log),
            self._images(pdf_bytes, file_name, pdf_url, run_log),
        )

        total = max([*texts.keys(), *images.keys()], default=0)
        if total == 0:
            raise TakeoffError(f"No pages could be extracted from {pdf_url}")

        document = SourceDocument(
            pdf_url=pdf_url,
            pages=[
                SourcePage(page_number=n, text=texts.get(n, ""), image_url=images.get(n))
                for n in range(1, total + 1)
            ],
        )
        LOGGER.info(
            f"Prepared {document.page_count} pages from {pdf_url}",
            extra={"images": document.image_count},
        )
        return document

    async def _text(self, pdf_bytes: bytes, pdf_url: str, run_log: Optional[RunLog]) -> Dict[int, str]:
        try:
            pages = await self.text_extractor.extract(pdf_bytes)
        except TextExtractionError as e:
            if run_log is not None:
                run_log.warn(f"Text extraction failed: {str(e)}", pdf=pdf_url)
            return {}
        return {page.page_number: page.text for page in pages}

    async def _images(
        self, pdf_bytes: bytes, file_name: str, pdf_url: str, run_log: Optional[RunLog]
    ) -> Dict[int, str]:
        try:
            images = await self.image_extractor.to_images(pdf_bytes, file_name, self.dpi)
        except ImageExtractionError as e:
            if run_log is not None:
                run_log.warn(f"Image conversion failed: {str(e)}", pdf=pdf_url)
            return {}
        # Completion providers take image URLs, so only hosted renderings are usable
        return {image.page_number: image.url for image in images if image.is_hosted}
