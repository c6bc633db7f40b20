"""Tests for the ingestion and takeoff activities."""

from unittest.mock import AsyncMock, MagicMock, Mock, patch
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError
from temporalio.exceptions import ApplicationError
from temporalio.testing import ActivityEnvironment

from takeoff_ai.core.exceptions import PlanNotFoundError
from takeoff_ai.schemas.plans import IngestionResult, IngestionStats
from takeoff_ai.schemas.takeoff import RunLogEntry, TakeoffOutput
from takeoff_ai.temporal.activities import ingest_plan, run_takeoff


@pytest.fixture
def session_maker():
    session = MagicMock()
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)
    return Mock(return_value=context)


class TestIngestPlanActivity:

    @pytest.mark.asyncio
    async def test_returns_result_as_dict(self, session_maker):
        plan_id = str(uuid4())
        result = IngestionResult(
            success=True,
            plan_id=plan_id,
            stats=IngestionStats(total_pages=4, total_chunks=1, sheet_index_count=4),
        )

        with patch("takeoff_ai.core.database.async_session_maker", session_maker), patch(
            "takeoff_ai.services.ingestion.ingestion_coordinator.IngestionCoordinator"
        ) as coordinator_cls:
            coordinator_cls.return_value.ingest = AsyncMock(return_value=result)
            output = await ActivityEnvironment().run(
                ingest_plan, plan_id, {"enable_image_extraction": True}, "job-7"
            )

        assert output["success"] is True
        assert output["stats"]["total_chunks"] == 1
        args = coordinator_cls.return_value.ingest.await_args
        assert str(args.args[0]) == plan_id
        assert args.args[1].enable_image_extraction is True
        assert args.kwargs["job_id"] == "job-7"

    @pytest.mark.asyncio
    async def test_missing_plan_is_not_retried(self, session_maker):
        with patch("takeoff_ai.core.database.async_session_maker", session_maker), patch(
            "takeoff_ai.services.ingestion.ingestion_coordinator.IngestionCoordinator"
        ) as coordinator_cls:
            coordinator_cls.return_value.ingest = AsyncMock(side_effect=PlanNotFoundError("Plan x not found"))
            with pytest.raises(ApplicationError) as exc_info:
                await ActivityEnvironment().run(ingest_plan, str(uuid4()))

        assert exc_info.value.non_retryable is True
        assert exc_info.value.type == "PlanNotFoundError"

    @pytest.mark.asyncio
    async def test_invalid_options_are_not_retried(self, session_maker):
        with patch("takeoff_ai.core.database.async_session_maker", session_maker):
            with pytest.raises(ApplicationError) as exc_info:
                await ActivityEnvironment().run(ingest_plan, str(uuid4()), {"overlap_percentage": 80})

        assert exc_info.value.non_retryable is True

    @pytest.mark.asyncio
    async def test_transient_failure_is_retryable(self, session_maker):
        with patch("takeoff_ai.core.database.async_session_maker", session_maker), patch(
            "takeoff_ai.services.ingestion.ingestion_coordinator.IngestionCoordinator"
        ) as coordinator_cls:
            coordinator_cls.return_value.ingest = AsyncMock(side_effect=ConnectionError("db went away"))
            with pytest.raises(ConnectionError):
                await ActivityEnvironment().run(ingest_plan, str(uuid4()))


class TestRunTakeoffActivity:

    @pytest.mark.asyncio
    async def test_runs_orchestrator(self):
        output = TakeoffOutput(run_log=[RunLogEntry(type="info", message="Takeoff complete")])

        with patch("takeoff_ai.services.takeoff.orchestrator.TakeoffOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.run = AsyncMock(return_value=output)
            result = await ActivityEnvironment().run(
                run_takeoff, {"pdf_urls": ["https://files.example.com/plan.pdf"], "page_batch_size": 3}
            )

        assert result == {
            "items": [],
            "analysis": [],
            "segments": [],
            "run_log": [{"type": "info", "message": "Takeoff complete", "pdf": None, "page_batch": None}],
        }
        sent = orchestrator_cls.return_value.run.await_args.args[0]
        assert sent.page_batch_size == 3

    @pytest.mark.asyncio
    async def test_bad_request_fails(self):
        with pytest.raises(PydanticValidationError):
            await ActivityEnvironment().run(run_takeoff, {"page_batch_size": 0})
