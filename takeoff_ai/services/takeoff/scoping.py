"""Scoping stage: decide which segments a takeoff run covers.

Scoping never fails a run. Any problem (unreachable model, no page images,
unparsable response) falls back to the default four-segment plan.
"""

from typing import List, Optional

from pydantic import ValidationError as SchemaValidationError

from takeoff_ai.core.config import TakeoffSettings, settings
from takeoff_ai.core.exceptions import TakeoffError
from takeoff_ai.core.unified_llm import UnifiedLLMClient
from takeoff_ai.prompts.takeoff_prompts import SCOPING_SYSTEM_PROMPT, build_scoping_user_prompt
from takeoff_ai.schemas.llm import CompletionRequest
from takeoff_ai.schemas.takeoff import ScopingPayload, SegmentPlan, TakeoffRequest
from takeoff_ai.services.takeoff.page_source import PageSource, SourcePage, page_images, page_text
from takeoff_ai.services.takeoff.run_log import RunLog
from takeoff_ai.utils.json_parser import parse_json_safely
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


def default_segments() -> List[SegmentPlan]:
    return [
        SegmentPlan(industry="structural", categories=["foundation", "slab on grade", "framing"], priority=1),
        SegmentPlan(industry="mep", categories=["electrical", "plumbing", "hvac"], priority=2),
        SegmentPlan(industry="finishes", categories=["interior", "exterior"], priority=3),
        SegmentPlan(industry="sitework", categories=["earthwork", "utilities", "paving"], priority=4),
    ]


def sample_page_numbers(page_count: int) -> List[int]:
    """First, middle and last page, without repeats."""
    if page_count <= 0:
        return []
    numbers: List[int] = []
    for number in (1, max(1, page_count // 2), page_count):
        if number not in numbers:
            numbers.append(number)
    return numbers


def parse_segment_plan(content: str) -> Optional[List[SegmentPlan]]:
    """Validate a scoping response; priorities follow response order."""
    parsed = parse_json_safely(content)
    if not isinstance(parsed, dict):
        return None
    try:
        payload = ScopingPayload.model_validate(parsed)
    except SchemaValidationError as e:
        LOGGER.warning(f"Scoping response failed validation: {e.error_count()} errors")
        return None
    return [
        SegmentPlan(industry=segment.industry, categories=segment.categories, priority=idx)
        for idx, segment in enumerate(payload.suggested_segments, start=1)
    ]


class ScopingStage:
    """Resolves the segment plan for a takeoff request."""

    def __init__(
        self,
        llm_client: UnifiedLLMClient,
        page_source: PageSource,
        takeoff_settings: Optional[TakeoffSettings] = None,
    ):
        self.llm_client = llm_client
        self.page_source = page_source
        self.settings = takeoff_settings or settings.takeoff

    async def plan(self, request: TakeoffRequest, run_log: RunLog) -> List[SegmentPlan]:
        if request.prior_segments:
            segments = [
                SegmentPlan(industry=prior.industry, categories=prior.categories, priority=idx)
                for idx, prior in enumerate(request.prior_segments, start=1)
            ]
            run_log.info(f"Using {len(segments)} prior segments")
            return segments

        if not request.ask_scoping_questions:
            run_log.info("Scoping skipped; using default segments")
            return default_segments()

        return await self.scope(request, run_log)

    async def scope(self, request: TakeoffRequest, run_log: RunLog) -> List[SegmentPlan]:
        samples: List[SourcePage] = []
        for pdf_url in request.pdf_urls:
            try:
                document = await self.page_source.load(pdf_url, run_log)
            except TakeoffError as e:
                run_log.warn(f"Could not sample pages for scoping: {str(e)}", pdf=pdf_url)
                continue
            samples.extend(document.select(sample_page_numbers(document.page_count)))

        if not samples:
            run_log.warn("No sample pages available for scoping; using default segments")
            return default_segments()

        images = page_images(samples)
        if not images:
            run_log.warn("No page images available for scoping; using default segments")
            return default_segments()

        completion = CompletionRequest(
            system_prompt=SCOPING_SYSTEM_PROMPT,
            user_prompt=build_scoping_user_prompt(
                request.job_context,
                sample_count=len(samples),
                sample_text=page_text(samples),
                max_chars=self.settings.scoping_text_sample_chars,
            ),
            images=images,
            max_tokens=self.settings.scoping_max_tokens,
            temperature=self.settings.scoping_temperature,
        )
        try:
            result = await self.llm_client.complete(completion)
        except Exception as e:
            run_log.warn(f"Scoping call failed: {str(e)}; using default segments")
            return default_segments()

        segments = parse_segment_plan(result.content)
        if not segments:
            run_log.warn("Scoping response could not be parsed; using default segments")
            return default_segments()

        run_log.info(
            f"Scoping proposed {len(segments)} segments: "
            f"{', '.join(segment.industry for segment in segments)}"
        )
        return segments
