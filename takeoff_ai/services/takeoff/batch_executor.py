"""Segment-batch execution with bounded concurrency.

Pages of each source document are split into fixed-size batches. At most
``max_parallel_batches`` batch calls are in flight at once; the rest wait on
a semaphore. A batch that fails is counted as failed pages and logged, it
never fails the segment.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar, Union

from pydantic import ValidationError as SchemaValidationError

from takeoff_ai.core.config import TakeoffSettings, settings
from takeoff_ai.core.exceptions import TakeoffError
from takeoff_ai.core.unified_llm import UnifiedLLMClient
from takeoff_ai.prompts.takeoff_prompts import build_segment_system_prompt, build_segment_user_prompt
from takeoff_ai.schemas.llm import CompletionRequest
from takeoff_ai.schemas.takeoff import (
    AnalysisItem,
    ExecutionPayload,
    SegmentPlan,
    TakeoffItem,
    TakeoffRequest,
)
from takeoff_ai.services.takeoff.page_source import PageSource, page_images, page_text
from takeoff_ai.services.takeoff.run_log import RunLog
from takeoff_ai.utils.json_parser import parse_json_safely
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class PageBatch:
    """Inclusive, 1-indexed page range."""

    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1


@dataclass
class BatchOutcome:
    items: List[TakeoffItem] = field(default_factory=list)
    analysis: List[AnalysisItem] = field(default_factory=list)
    pages_processed: int = 0
    pages_failed: int = 0

    def absorb(self, other: "BatchOutcome") -> None:
        self.items.extend(other.items)
        self.analysis.extend(other.analysis)
        self.pages_processed += other.pages_processed
        self.pages_failed += other.pages_failed


def create_batches(total_pages: int, batch_size: int) -> List[PageBatch]:
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    return [
        PageBatch(start=start, end=min(start + batch_size - 1, total_pages))
        for start in range(1, total_pages + 1, batch_size)
    ]


async def run_bounded(
    inputs: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    max_parallel: int,
) -> List[Union[R, BaseException]]:
    """Run ``worker`` over ``inputs`` with at most ``max_parallel`` in flight.

    Results keep input order; a failing worker yields its exception in place.
    If the caller is cancelled, every unfinished worker is cancelled too.
    """
    if max_parallel <= 0:
        raise ValueError("max_parallel must be positive")
    semaphore = asyncio.Semaphore(max_parallel)

    async def guarded(value: T) -> R:
        async with semaphore:
            return await worker(value)

    tasks = [asyncio.create_task(guarded(value)) for value in inputs]
    try:
        return await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()


def parse_execution_payload(content: str) -> ExecutionPayload:
    """Validate an items+analysis response.

    Raises:
        TakeoffError: If the content is not JSON or lacks an items array
    """
    parsed = parse_json_safely(content)
    if not isinstance(parsed, dict):
        raise TakeoffError("Model response was not a JSON object")
    try:
        return ExecutionPayload.model_validate(parsed)
    except SchemaValidationError as e:
        raise TakeoffError(f"Model response failed validation: {e.error_count()} errors", original_error=e)


def normalize_items(records: Sequence[dict], industry: Optional[str] = None) -> List[TakeoffItem]:
    items: List[TakeoffItem] = []
    for record in records:
        if industry is not None:
            record = {**record, "industry": industry}
        try:
            items.append(TakeoffItem.model_validate(record))
        except SchemaValidationError as e:
            LOGGER.warning(f"Dropping takeoff item that failed validation: {e.error_count()} errors")
    return items


def normalize_analysis(records: Sequence[dict]) -> List[AnalysisItem]:
    analysis: List[AnalysisItem] = []
    for record in records:
        try:
            analysis.append(AnalysisItem.model_validate(record))
        except SchemaValidationError as e:
            LOGGER.warning(f"Dropping analysis item that failed validation: {e.error_count()} errors")
    return analysis


class SegmentBatchExecutor:
    """Runs one segment across every source document in page batches."""

    def __init__(
        self,
        llm_client: UnifiedLLMClient,
        page_source: PageSource,
        takeoff_settings: Optional[TakeoffSettings] = None,
    ):
        self.llm_client = llm_client
        self.page_source = page_source
        self.settings = takeoff_settings or settings.takeoff

    async def execute_segment(
        self, request: TakeoffRequest, segment: SegmentPlan, run_log: RunLog
    ) -> BatchOutcome:
        outcome = BatchOutcome()

        # Source documents are converted one at a time
        for pdf_url in request.pdf_urls:
            try:
                document = await self.page_source.load(pdf_url, run_log)
            except TakeoffError as e:
                run_log.error(f"Failed to load PDF: {str(e)}", pdf=pdf_url)
                continue

            batches = create_batches(document.page_count, request.page_batch_size)
            LOGGER.info(
                f"Processing {segment.industry} over {document.page_count} pages in {len(batches)} batches",
                extra={"pdf": pdf_url, "max_parallel": request.max_parallel_batches},
            )

            async def process(batch: PageBatch) -> BatchOutcome:
                return await self.process_batch(request, segment, pdf_url, batch)

            results = await run_bounded(batches, process, request.max_parallel_batches)
            for batch, result in zip(batches, results):
                if isinstance(result, BaseException):
                    outcome.pages_failed += batch.size
                    run_log.error(
                        f"Batch {batch.start}-{batch.end} failed: {str(result)}",
                        pdf=pdf_url,
                        page_batch=(batch.start, batch.end),
                    )
                    continue
                outcome.absorb(result)

        return outcome

    async def process_batch(
        self, request: TakeoffRequest, segment: SegmentPlan, pdf_url: str, batch: PageBatch
    ) -> BatchOutcome:
        """One completion call for one page batch.

        Raises:
            TakeoffError: If the response cannot be parsed
            APIClientError: If the completion call fails
        """
        document = await self.page_source.load(pdf_url)
        pages = document.page_range(batch.start, batch.end)

        completion = CompletionRequest(
            system_prompt=build_segment_system_prompt(
                segment, batch.start, batch.end, request.currency, request.unit_cost_policy
            ),
            user_prompt=build_segment_user_prompt(
                segment,
                batch.start,
                batch.end,
                page_text(pages),
                max_chars=self.settings.batch_text_sample_chars,
            ),
            images=page_images(pages),
            max_tokens=self.settings.execution_max_tokens,
            temperature=self.settings.execution_temperature,
        )
        result = await self.llm_client.complete(completion)
        payload = parse_execution_payload(result.content)

        return BatchOutcome(
            items=normalize_items(payload.items, industry=segment.industry),
            analysis=normalize_analysis(payload.analysis),
            pages_processed=batch.size,
        )
