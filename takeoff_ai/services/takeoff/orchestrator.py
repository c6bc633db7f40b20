"""Takeoff orchestrator: scoping, execution, merge and summaries.

``run`` always returns the four output arrays (items, analysis, segment
summaries, run log). Failures are recorded in the run log instead of being
raised, so callers can render partial results.
"""

import time
from typing import Callable, List, Optional

from takeoff_ai.core.config import TakeoffSettings, settings
from takeoff_ai.core.unified_llm import UnifiedLLMClient, create_llm_client_from_settings
from takeoff_ai.schemas.takeoff import (
    AnalysisItem,
    SegmentPlan,
    SegmentResult,
    TakeoffItem,
    TakeoffOutput,
    TakeoffRequest,
)
from takeoff_ai.services.takeoff.batch_executor import SegmentBatchExecutor
from takeoff_ai.services.takeoff.consensus import ConsensusExecutor
from takeoff_ai.services.takeoff.deduplication import ItemDeduplicator
from takeoff_ai.services.takeoff.page_source import PageSource
from takeoff_ai.services.takeoff.run_log import RunLog
from takeoff_ai.services.takeoff.scoping import ScopingStage
from takeoff_ai.services.takeoff.summary import failed_segment, summarize_segment
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TakeoffOrchestrator:
    """Runs one takeoff per call.

    A fresh PageSource is built for every run so converted documents are
    cached for that run only.
    """

    def __init__(
        self,
        llm_client: Optional[UnifiedLLMClient] = None,
        page_source_factory: Callable[[], PageSource] = PageSource,
        deduplicator: Optional[ItemDeduplicator] = None,
        takeoff_settings: Optional[TakeoffSettings] = None,
    ):
        self.llm_client = llm_client
        self.page_source_factory = page_source_factory
        self.settings = takeoff_settings or settings.takeoff
        self.deduplicator = deduplicator or ItemDeduplicator(takeoff_settings=self.settings)

    async def run(self, request: TakeoffRequest) -> TakeoffOutput:
        start_time = time.time()
        run_log = RunLog()
        items: List[TakeoffItem] = []
        analysis: List[AnalysisItem] = []
        segment_results: List[SegmentResult] = []

        try:
            llm_client = self.llm_client or create_llm_client_from_settings()
            page_source = self.page_source_factory()

            scoping = ScopingStage(llm_client, page_source, self.settings)
            segments = sorted(await scoping.plan(request, run_log), key=lambda s: s.priority)

            if request.consensus_mode:
                run_log.info("Plan metadata available; running consensus mode")
                consensus = ConsensusExecutor(llm_client, page_source, self.settings)
                outcome = await consensus.execute(request, segments, run_log)
                items, analysis, segment_results = outcome.items, outcome.analysis, outcome.segments
            else:
                executor = SegmentBatchExecutor(llm_client, page_source, self.settings)
                for segment in segments:
                    result = await self._run_segment(executor, request, segment, run_log, items, analysis)
                    segment_results.append(result)

            items = self.deduplicator.dedupe_items(items)
            analysis = self.deduplicator.dedupe_analysis(analysis)
            run_log.info(
                f"Takeoff complete: {len(items)} items, {len(analysis)} findings, "
                f"{len(segment_results)} segments in {time.time() - start_time:.1f}s"
            )

        except Exception as e:
            LOGGER.error(f"Takeoff run failed: {str(e)}", exc_info=True)
            run_log.error(f"Pipeline failed: {str(e)}")

        return TakeoffOutput(
            items=items,
            analysis=analysis,
            segments=segment_results,
            run_log=run_log.entries,
        )

    async def _run_segment(
        self,
        executor: SegmentBatchExecutor,
        request: TakeoffRequest,
        segment: SegmentPlan,
        run_log: RunLog,
        items: List[TakeoffItem],
        analysis: List[AnalysisItem],
    ) -> SegmentResult:
        try:
            outcome = await executor.execute_segment(request, segment, run_log)
        except Exception as e:
            LOGGER.error(f"Segment {segment.industry} failed: {str(e)}", exc_info=True)
            run_log.error(f"Segment {segment.industry} failed: {str(e)}")
            return failed_segment(segment)

        segment_items = self.deduplicator.dedupe_items(outcome.items)
        segment_analysis = self.deduplicator.dedupe_analysis(outcome.analysis)
        items.extend(segment_items)
        analysis.extend(segment_analysis)

        run_log.info(
            f"Segment {segment.industry}: {len(segment_items)} items, "
            f"{outcome.pages_processed} pages processed, {outcome.pages_failed} failed"
        )
        return summarize_segment(
            segment, segment_items, segment_analysis, outcome.pages_processed, outcome.pages_failed
        )
