"""Consensus mode: one whole-document call, results split into segments after.

Used when full plan metadata is available. All linked documents are
converted once (sequentially) and sent together; returned items are mapped
back to segments by case-insensitive category match.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from takeoff_ai.core.config import TakeoffSettings, settings
from takeoff_ai.core.exceptions import TakeoffError
from takeoff_ai.core.unified_llm import UnifiedLLMClient
from takeoff_ai.prompts.takeoff_prompts import CONSENSUS_SYSTEM_PROMPT, build_consensus_user_prompt
from takeoff_ai.schemas.llm import CompletionRequest
from takeoff_ai.schemas.takeoff import (
    AnalysisItem,
    SegmentPlan,
    SegmentResult,
    TakeoffItem,
    TakeoffRequest,
)
from takeoff_ai.services.takeoff.batch_executor import (
    normalize_analysis,
    normalize_items,
    parse_execution_payload,
)
from takeoff_ai.services.takeoff.page_source import PageSource, SourceDocument, page_images, page_text
from takeoff_ai.services.takeoff.run_log import RunLog
from takeoff_ai.services.takeoff.summary import summarize_segment
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

NO_PAGES_MESSAGE = (
    "No valid PDF pages available after preprocessing. "
    "Check that the plan URLs are reachable and page image conversion is configured."
)


@dataclass
class ConsensusOutcome:
    items: List[TakeoffItem] = field(default_factory=list)
    analysis: List[AnalysisItem] = field(default_factory=list)
    segments: List[SegmentResult] = field(default_factory=list)


def source_urls(request: TakeoffRequest) -> List[str]:
    urls = list(request.pdf_urls)
    if request.plan_metadata:
        urls.extend(request.plan_metadata.additional_urls)
    return list(dict.fromkeys(url for url in urls if url))


def assign_to_segments(
    items: List[TakeoffItem], segments: List[SegmentPlan]
) -> Tuple[List[TakeoffItem], Dict[int, List[TakeoffItem]], int]:
    """Map items onto segments by lowercase category.

    Returns:
        (all items, segment index -> its items, number of unassigned items)
    """
    by_category: Dict[str, Tuple[int, SegmentPlan, str]] = {}
    for idx, segment in enumerate(segments):
        for category in segment.categories:
            by_category.setdefault(category.lower(), (idx, segment, category))

    assigned: Dict[int, List[TakeoffItem]] = {idx: [] for idx in range(len(segments))}
    result: List[TakeoffItem] = []
    unassigned = 0
    for item in items:
        match = by_category.get(item.category.strip().lower())
        if match is None:
            unassigned += 1
            result.append(item)
            continue
        idx, segment, category = match
        item = item.model_copy(update={"industry": segment.industry, "category": category})
        assigned[idx].append(item)
        result.append(item)
    return result, assigned, unassigned


class ConsensusExecutor:
    def __init__(
        self,
        llm_client: UnifiedLLMClient,
        page_source: PageSource,
        takeoff_settings: Optional[TakeoffSettings] = None,
    ):
        self.llm_client = llm_client
        self.page_source = page_source
        self.settings = takeoff_settings or settings.takeoff

    async def execute(
        self, request: TakeoffRequest, segments: List[SegmentPlan], run_log: RunLog
    ) -> ConsensusOutcome:
        """Run the whole-document pass.

        Raises:
            TakeoffError: If no document yields page images, or the response
                cannot be parsed
        """
        documents: List[SourceDocument] = []
        for url in source_urls(request):
            try:
                document = await self.page_source.load(url, run_log)
            except TakeoffError as e:
                run_log.warn(f"Skipping document: {str(e)}", pdf=url)
                continue
            if document.image_count == 0:
                run_log.warn("Skipping document: no page images could be produced", pdf=url)
                continue
            documents.append(document)

        if not documents:
            raise TakeoffError(NO_PAGES_MESSAGE)

        pages = [page for document in documents for page in document.pages]
        total_pages = len(pages)
        run_log.info(f"Consensus run over {total_pages} pages from {len(documents)} documents")

        metadata = request.plan_metadata
        completion = CompletionRequest(
            system_prompt=CONSENSUS_SYSTEM_PROMPT,
            user_prompt=build_consensus_user_prompt(
                request.job_context,
                segments,
                page_count=total_pages,
                document_text=page_text(pages),
                currency=request.currency,
                job_type=metadata.job_type if metadata else None,
                max_chars=self.settings.batch_text_sample_chars,
            ),
            images=page_images(pages),
            max_tokens=self.settings.execution_max_tokens,
            temperature=self.settings.execution_temperature,
        )
        result = await self.llm_client.complete(completion)
        payload = parse_execution_payload(result.content)

        items, assigned, unassigned = assign_to_segments(normalize_items(payload.items), segments)
        analysis = normalize_analysis(payload.analysis)
        if unassigned:
            run_log.warn(f"There are {unassigned} takeoff items without matching segment categories")

        summaries: List[SegmentResult] = []
        for idx, segment in enumerate(segments):
            categories = {category.lower() for category in segment.categories}
            # Analysis types rarely match category labels; kept so summaries stay comparable
            segment_analysis = [finding for finding in analysis if finding.type.value in categories]
            summaries.append(
                summarize_segment(segment, assigned[idx], segment_analysis, total_pages, 0)
            )
            run_log.info(
                f"Segment {segment.industry}: {len(assigned[idx])} items from consensus run"
            )

        return ConsensusOutcome(items=items, analysis=analysis, segments=summaries)
