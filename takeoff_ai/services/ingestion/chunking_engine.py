"""Token-budgeted chunking of plan pages.

Consecutive pages are merged into chunks of roughly ``target`` tokens. A chunk
is closed once it reaches the target, or when the next page would push it past
``max``. Each new chunk starts with an overlap tail copied from the end of the
previous one. Pages too large for the remaining budget are split at a line or
sentence boundary and continue in the next chunk under a "(continued)" header.

Output is deterministic: the same pages, sheet index and options always give
the same chunk boundaries, overlap text and chunk ids.
"""

import hashlib
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from takeoff_ai.core.exceptions import ValidationError
from takeoff_ai.models.chunk import (
    Anchor,
    Chunk,
    ChunkContent,
    ChunkMetadata,
    ChunkingOptions,
    ChunkSafeguards,
    OverlapInfo,
    PageRange,
    ProjectMeta,
)
from takeoff_ai.models.page_data import PageText
from takeoff_ai.models.sheet_index import SheetDiscipline, SheetIndexEntry, SheetType
from takeoff_ai.services.ingestion.token_counter import TokenCounter
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

SCHEDULE_HINT = "SCHEDULE_SHEET: Quantities here may be summaries - verify against detail sheets"
DETAIL_HINT = "DETAIL_SHEET: Quantities here may reference parent sheets - verify for double-counting"
NO_SCALE_DETECTED = "Scale not detected"


def validate_chunking_options(options: ChunkingOptions) -> None:
    """Reject budgets the engine cannot honour.

    Raises:
        ValidationError: If sizes are non-positive or out of order, or the overlap is too large
    """
    if min(options.target_chunk_size_tokens, options.max_chunk_size_tokens, options.min_chunk_size_tokens) <= 0:
        raise ValidationError("Chunk sizes must be positive")
    if not options.min_chunk_size_tokens <= options.target_chunk_size_tokens <= options.max_chunk_size_tokens:
        raise ValidationError(
            "Chunk sizes must satisfy min <= target <= max "
            f"(got {options.min_chunk_size_tokens}/{options.target_chunk_size_tokens}/{options.max_chunk_size_tokens})"
        )
    if not 0 <= options.overlap_percentage < 50:
        raise ValidationError(f"Overlap percentage must be in [0, 50), got {options.overlap_percentage}")
    if options.overlap_tokens * 2 >= options.max_chunk_size_tokens:
        raise ValidationError("Overlap must be less than half of the maximum chunk size")


@dataclass
class _ChunkBuffer:
    """Text being accumulated for the chunk that is currently open."""

    text: str = ""
    # (start offset, page number) for every page segment in ``text``
    spans: List[Tuple[int, int]] = field(default_factory=list)
    has_new_content: bool = False

    def append(self, segment: str, page_number: int) -> None:
        if not self.spans or self.spans[-1][1] != page_number:
            self.spans.append((len(self.text), page_number))
        self.text += segment
        self.has_new_content = True

    @property
    def pages(self) -> List[int]:
        seen: List[int] = []
        for _, page_number in self.spans:
            if page_number not in seen:
                seen.append(page_number)
        return seen

    def pages_from(self, offset: int) -> List[Tuple[int, int]]:
        """Spans overlapping ``text[offset:]``, re-based to that offset."""
        rebased: List[Tuple[int, int]] = []
        for idx, (start, page_number) in enumerate(self.spans):
            end = self.spans[idx + 1][0] if idx + 1 < len(self.spans) else len(self.text)
            if end > offset:
                rebased.append((max(start - offset, 0), page_number))
        return rebased


class ChunkingEngine:
    """Builds ordered, overlapping chunks from extracted plan pages."""

    QUANTITY_SIGNATURE_PATTERN = re.compile(r"(?:QTY|QUANTITY|COUNT)[\s:]+(\d+)", re.IGNORECASE)
    BOUNDARY_PATTERN = re.compile(r"[.\n]")
    DEDUPE_TEXT_PREFIX = 500

    def __init__(self, options: Optional[ChunkingOptions] = None, token_counter: Optional[TokenCounter] = None):
        self.options = options or ChunkingOptions()
        validate_chunking_options(self.options)
        self.token_counter = token_counter or TokenCounter()

        self.max_chars = self.token_counter.chars_for_tokens(self.options.max_chunk_size_tokens)
        self.min_chars = self.token_counter.chars_for_tokens(self.options.min_chunk_size_tokens)
        self.overlap_chars = self.token_counter.chars_for_tokens(self.options.overlap_tokens)

    def generate_chunks(
        self,
        pages: Sequence[PageText],
        sheet_index: Sequence[SheetIndexEntry],
        project_meta: ProjectMeta,
        page_images: Optional[Mapping[int, str]] = None,
    ) -> List[Chunk]:
        """Merge pages into linked chunks.

        Args:
            pages: Page texts in page order
            sheet_index: Sheet entries for the same pages
            project_meta: Project snapshot embedded in every chunk
            page_images: Page number -> hosted image URL

        Returns:
            Chunks in order, linked through ``metadata.overlap_info``
        """
        sheets = {sheet.page_no: sheet for sheet in sheet_index}
        images = dict(page_images or {})
        created_at = datetime.now(timezone.utc).isoformat()

        chunks: List[Chunk] = []
        buffer = _ChunkBuffer()

        def close() -> _ChunkBuffer:
            chunks.append(self._build_chunk(len(chunks), buffer, sheets, project_meta, images, created_at))
            return self._seed_from(buffer)

        for page in pages:
            sheet = sheets.get(page.page_number)
            if sheet is None:
                LOGGER.warning(f"No sheet index entry for page {page.page_number}")

            remaining = page.text
            continued = False
            while True:
                header = self.page_header(page.page_number, sheet, continued)
                if self._fits(buffer, header + remaining):
                    buffer.append(header + remaining, page.page_number)
                    if self._tokens(buffer.text) >= self.options.target_chunk_size_tokens:
                        buffer = close()
                    break

                if buffer.has_new_content and self._tokens(buffer.text) >= self.options.min_chunk_size_tokens:
                    buffer = close()
                    continue

                room = self.max_chars - len(buffer.text) - len(header)
                if room <= 0:
                    if buffer.has_new_content:
                        buffer = close()
                        continue
                    raise ValidationError("Chunk budget is too small for the page header and overlap")

                needed = max(self.min_chars - len(buffer.text) - len(header), 1)
                head, remaining = self.split_text(remaining, room, needed)
                buffer.append(header + head, page.page_number)
                continued = True
                buffer = close()

        if buffer.has_new_content:
            chunks.append(self._build_chunk(len(chunks), buffer, sheets, project_meta, images, created_at))

        self._link(chunks)

        LOGGER.info(
            f"Generated {len(chunks)} chunks from {len(pages)} pages",
            extra={
                "plan_id": project_meta.plan_id,
                "target_tokens": self.options.target_chunk_size_tokens,
                "overlap_tokens": self.options.overlap_tokens,
            },
        )
        return chunks

    @staticmethod
    def page_header(page_number: int, sheet: Optional[SheetIndexEntry], continued: bool = False) -> str:
        sheet_id = sheet.sheet_id if sheet else f"PAGE-{page_number}"
        title = sheet.title if sheet else f"Sheet {page_number}"
        suffix = " (continued)" if continued else ""
        return f"\n\n=== PAGE {page_number} ({sheet_id}: {title}){suffix} ===\n\n"

    def extract_overlap_text(self, text: str) -> str:
        """Tail of ``text`` worth ``overlap_tokens``, starting after a boundary.

        The tail is trimmed forward to just past the first '.' or newline so
        the next chunk does not open mid-sentence. When no boundary leaves any
        text, the raw tail is used.
        """
        if self.overlap_chars <= 0 or not text:
            return ""
        if len(text) <= self.overlap_chars:
            return text

        tail = text[-self.overlap_chars:]
        boundary = self.BOUNDARY_PATTERN.search(tail)
        if boundary:
            trimmed = tail[boundary.end():].lstrip()
            if trimmed:
                return trimmed
        return tail

    def split_text(self, text: str, max_chars: int, min_chars: int) -> Tuple[str, str]:
        """Split ``text`` so the head is at most ``max_chars`` long.

        The cut lands just after the last line or sentence boundary in the
        window if that keeps the head at least ``min_chars`` long; otherwise it
        is a hard cut at ``max_chars``.
        """
        if len(text) <= max_chars:
            return text, ""

        window = text[:max_chars]
        newline = window.rfind("\n")
        sentence = window.rfind(". ")
        boundary = max(
            newline + 1 if newline != -1 else 0,
            sentence + 2 if sentence != -1 else 0,
        )
        cut = boundary if boundary >= max(min_chars, 1) else max_chars
        return text[:cut], text[cut:]

    def _tokens(self, text: str) -> int:
        return self.token_counter.tokens_for_length(len(text))

    def _fits(self, buffer: _ChunkBuffer, segment: str) -> bool:
        return self.token_counter.tokens_for_length(len(buffer.text) + len(segment)) <= self.options.max_chunk_size_tokens

    def _seed_from(self, closed: _ChunkBuffer) -> _ChunkBuffer:
        overlap = self.extract_overlap_text(closed.text)
        if not overlap:
            return _ChunkBuffer()
        offset = len(closed.text) - len(overlap)
        return _ChunkBuffer(text=overlap, spans=closed.pages_from(offset), has_new_content=False)

    def _build_chunk(
        self,
        chunk_index: int,
        buffer: _ChunkBuffer,
        sheets: Dict[int, SheetIndexEntry],
        project_meta: ProjectMeta,
        images: Dict[int, str],
        created_at: str,
    ) -> Chunk:
        pages = buffer.pages
        covered = [sheets[page] for page in pages if page in sheets]
        dedupe_hash = self.dedupe_hash(buffer.text, pages)
        chunk_id = str(uuid.uuid5(uuid.NAMESPACE_URL, f"{project_meta.plan_id}:{chunk_index}:{dedupe_hash}"))

        return Chunk(
            chunk_id=chunk_id,
            plan_id=project_meta.plan_id,
            chunk_index=chunk_index,
            page_range=PageRange(start=min(pages), end=max(pages), pages=pages),
            sheet_index_subset=covered,
            content=ChunkContent(
                text=buffer.text,
                text_token_count=self._tokens(buffer.text),
                image_urls=[images[page] for page in pages if page in images],
            ),
            metadata=ChunkMetadata(
                project_meta=project_meta,
                sheet_scale_units=self.summarize_scales(covered),
                discipline=covered[0].discipline if covered else SheetDiscipline.UNKNOWN,
                anchors=self.build_anchors(covered),
                overlap_info=OverlapInfo(overlap_tokens=self.options.overlap_tokens),
            ),
            safeguards=ChunkSafeguards(
                dedupe_hash=dedupe_hash,
                location_keys=[sheet.sheet_id for sheet in covered],
                no_multiply_hints=self.no_multiply_hints(covered),
                quantity_signatures=self.quantity_signatures(buffer.text),
            ),
            created_at=created_at,
        )

    @staticmethod
    def _link(chunks: List[Chunk]) -> None:
        for idx, chunk in enumerate(chunks):
            if idx > 0:
                chunk.metadata.overlap_info.prev_chunk_id = chunks[idx - 1].chunk_id
            if idx < len(chunks) - 1:
                chunk.metadata.overlap_info.next_chunk_id = chunks[idx + 1].chunk_id

    def dedupe_hash(self, text: str, pages: Sequence[int]) -> str:
        signature = f"{','.join(str(page) for page in pages)}:{text[:self.DEDUPE_TEXT_PREFIX]}"
        return hashlib.sha256(signature.encode("utf-8")).hexdigest()[:16]

    def quantity_signatures(self, text: str) -> List[str]:
        signatures: List[str] = []
        for match in self.QUANTITY_SIGNATURE_PATTERN.finditer(text):
            signature = f"qty_{match.group(1)}"
            if signature not in signatures:
                signatures.append(signature)
        return signatures

    @staticmethod
    def no_multiply_hints(sheets: Sequence[SheetIndexEntry]) -> List[str]:
        hints = []
        if any(sheet.sheet_type == SheetType.SCHEDULE for sheet in sheets):
            hints.append(SCHEDULE_HINT)
        if any(sheet.sheet_type == SheetType.DETAIL for sheet in sheets):
            hints.append(DETAIL_HINT)
        return hints

    @staticmethod
    def summarize_scales(sheets: Sequence[SheetIndexEntry]) -> str:
        scales: List[str] = []
        for sheet in sheets:
            if sheet.scale and sheet.scale not in scales:
                scales.append(sheet.scale)
        return ", ".join(scales) if scales else NO_SCALE_DETECTED

    @staticmethod
    def build_anchors(sheets: Sequence[SheetIndexEntry]) -> List[Anchor]:
        return [
            Anchor(
                anchor_id=f"anchor_{sheet.sheet_id}",
                type="sheet_id",
                value=sheet.sheet_id,
                description=f"Sheet {sheet.sheet_id}: {sheet.title}",
                page_number=sheet.page_no,
            )
            for sheet in sheets
        ]


def generate_chunks(
    pages: Sequence[PageText],
    sheet_index: Sequence[SheetIndexEntry],
    project_meta: ProjectMeta,
    page_images: Optional[Mapping[int, str]] = None,
    options: Optional[ChunkingOptions] = None,
) -> List[Chunk]:
    """Convenience wrapper around ``ChunkingEngine.generate_chunks``."""
    return ChunkingEngine(options).generate_chunks(pages, sheet_index, project_meta, page_images)
