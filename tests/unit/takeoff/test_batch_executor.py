"""Tests for page batching and bounded batch execution."""

import asyncio

import pytest

from takeoff_ai.core.exceptions import APIClientError, TakeoffError
from takeoff_ai.schemas.takeoff import SegmentPlan, TakeoffRequest
from takeoff_ai.services.takeoff.batch_executor import (
    PageBatch,
    SegmentBatchExecutor,
    create_batches,
    normalize_items,
    parse_execution_payload,
    run_bounded,
)
from takeoff_ai.services.takeoff.run_log import RunLog

PDF_URL = "https://files.example.com/plans.pdf"


@pytest.fixture
def segment() -> SegmentPlan:
    return SegmentPlan(industry="structural", categories=["foundation", "framing"], priority=1)


class TestCreateBatches:

    def test_even_split(self):
        assert create_batches(10, 5) == [PageBatch(1, 5), PageBatch(6, 10)]

    def test_last_batch_is_short(self):
        batches = create_batches(12, 5)

        assert batches[-1] == PageBatch(11, 12)
        assert sum(batch.size for batch in batches) == 12

    def test_no_pages(self):
        assert create_batches(0, 5) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            create_batches(10, 0)


class TestRunBounded:

    @pytest.mark.asyncio
    async def test_limits_in_flight_workers(self):
        in_flight = 0
        peak = 0

        async def worker(value: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return value * 2

        results = await run_bounded(list(range(6)), worker, max_parallel=2)

        assert results == [0, 2, 4, 6, 8, 10]
        assert peak == 2

    @pytest.mark.asyncio
    async def test_failures_are_returned_in_place(self):
        async def worker(value: int) -> int:
            if value == 1:
                raise RuntimeError("boom")
            return value

        results = await run_bounded([0, 1, 2], worker, max_parallel=2)

        assert results[0] == 0
        assert isinstance(results[1], RuntimeError)
        assert results[2] == 2

    @pytest.mark.asyncio
    async def test_cancellation_reaches_workers(self):
        started = asyncio.Event()
        cancelled = []

        async def worker(value: int) -> int:
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(value)
                raise
            return value

        task = asyncio.create_task(run_bounded([1, 2, 3], worker, max_parallel=2))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert sorted(cancelled) == [1, 2]


class TestParseExecutionPayload:

    def test_parses_fenced_json(self):
        payload = parse_execution_payload('```json\n{"items": [{"name": "Slab"}], "analysis": []}\n```')

        assert payload.items == [{"name": "Slab"}]

    def test_rejects_non_json(self):
        with pytest.raises(TakeoffError):
            parse_execution_payload("I could not read these pages.")

    def test_rejects_missing_items(self):
        with pytest.raises(TakeoffError):
            parse_execution_payload('{"analysis": []}')


def test_normalize_items_forces_industry_and_repairs_records():
    items = normalize_items(
        [{"name": "Stud wall", "industry": "finishes"}, {"name": "Joist", "bounding_box": "bad"}],
        industry="structural",
    )

    assert [item.industry for item in items] == ["structural", "structural"]
    assert items[1].bounding_box.page == 1


class TestSegmentBatchExecutor:

    @pytest.mark.asyncio
    async def test_failed_batch_counts_pages_and_keeps_others(
        self, llm_client, segment, page_source, make_document, make_completion
    ):
        page_source.documents[PDF_URL] = make_document(PDF_URL, 10)

        async def complete(request):
            if "pages 6-10" in request.user_prompt:
                raise APIClientError("upstream unavailable")
            return make_completion(
                {
                    "items": [{"name": "Footing", "quantity": 3, "unit": "CY", "industry": "mep"}],
                    "analysis": [{"type": "rfi", "description": "Rebar size missing"}],
                }
            )

        llm_client.complete.side_effect = complete
        executor = SegmentBatchExecutor(llm_client, page_source)
        run_log = RunLog()

        outcome = await executor.execute_segment(
            TakeoffRequest(pdf_urls=[PDF_URL], page_batch_size=5, max_parallel_batches=2),
            segment,
            run_log,
        )

        assert outcome.pages_processed == 5
        assert outcome.pages_failed == 5
        assert len(outcome.items) == 1
        assert outcome.items[0].industry == "structural"
        assert len(outcome.analysis) == 1

        errors = run_log.of_type("error")
        assert len(errors) == 1
        assert errors[0].message.startswith("Batch 6-10 failed")
        assert errors[0].pdf == PDF_URL
        assert errors[0].page_batch == (6, 10)

    @pytest.mark.asyncio
    async def test_malformed_response_is_batch_failure(
        self, llm_client, segment, page_source, make_document, make_completion
    ):
        page_source.documents[PDF_URL] = make_document(PDF_URL, 3)
        llm_client.complete.return_value = make_completion("not json at all")
        executor = SegmentBatchExecutor(llm_client, page_source)
        run_log = RunLog()

        outcome = await executor.execute_segment(
            TakeoffRequest(pdf_urls=[PDF_URL], page_batch_size=5), segment, run_log
        )

        assert outcome.items == []
        assert outcome.pages_failed == 3
        assert len(run_log.of_type("error")) == 1

    @pytest.mark.asyncio
    async def test_unloadable_pdf_is_logged_and_skipped(
        self, llm_client, segment, page_source, make_document, make_completion
    ):
        other = "https://files.example.com/other.pdf"
        page_source.documents[other] = make_document(other, 2)
        llm_client.complete.return_value = make_completion({"items": [{"name": "Beam"}]})
        executor = SegmentBatchExecutor(llm_client, page_source)
        run_log = RunLog()

        outcome = await executor.execute_segment(
            TakeoffRequest(pdf_urls=[PDF_URL, other], page_batch_size=5), segment, run_log
        )

        assert len(outcome.items) == 1
        assert outcome.pages_processed == 2
        assert run_log.of_type("error")[0].message.startswith("Failed to load PDF")
        assert run_log.of_type("error")[0].pdf == PDF_URL

    @pytest.mark.asyncio
    async def test_batch_request_carries_page_images(
        self, llm_client, segment, page_source, make_document, make_completion
    ):
        page_source.documents[PDF_URL] = make_document(PDF_URL, 2)
        llm_client.complete.return_value = make_completion({"items": []})
        executor = SegmentBatchExecutor(llm_client, page_source)

        await executor.process_batch(TakeoffRequest(pdf_urls=[PDF_URL]), segment, PDF_URL, PageBatch(1, 2))

        sent = llm_client.complete.call_args.args[0]
        assert sent.images == [
            "https://img.example.com/page-1.png",
            "https://img.example.com/page-2.png",
        ]
        assert "structural" in sent.user_prompt
