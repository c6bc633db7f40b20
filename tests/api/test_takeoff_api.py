"""Tests for takeoff endpoints."""

from unittest.mock import AsyncMock, Mock

from fastapi.testclient import TestClient

from takeoff_ai.api.v1.endpoints.takeoff import get_takeoff_orchestrator
from takeoff_ai.core.temporal_client import get_temporal_client
from takeoff_ai.main import app
from takeoff_ai.schemas.takeoff import RunLogEntry, TakeoffItem, TakeoffOutput
from takeoff_ai.temporal.workflows import TakeoffWorkflow

PDF_URL = "https://files.example.com/riverside.pdf"


class TestRunTakeoff:
    """Test suite for the synchronous takeoff endpoint."""

    def test_returns_four_arrays(self, test_client: TestClient) -> None:
        """Test a completed run.

        Args:
            test_client: FastAPI test client fixture
        """
        output = TakeoffOutput(
            items=[TakeoffItem(name="Footing F1", quantity=4, unit="EA", industry="structural")],
            run_log=[RunLogEntry(type="info", message="Takeoff complete")],
        )
        orchestrator = Mock(run=AsyncMock(return_value=output))
        app.dependency_overrides[get_takeoff_orchestrator] = lambda: orchestrator

        # Execute
        response = test_client.post("/api/v1/takeoff", json={"pdf_urls": [PDF_URL], "page_batch_size": 4})

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Takeoff completed"
        assert set(body["data"]) == {"items", "analysis", "segments", "run_log"}
        assert body["data"]["items"][0]["name"] == "Footing F1"
        sent = orchestrator.run.await_args.args[0]
        assert sent.pdf_urls == [PDF_URL]
        assert sent.page_batch_size == 4

    def test_failed_run_still_answers_200(self, test_client: TestClient) -> None:
        """Test that pipeline failures are reported in the run log.

        Args:
            test_client: FastAPI test client fixture
        """
        output = TakeoffOutput(run_log=[RunLogEntry(type="error", message="Pipeline failed: no pages")])
        app.dependency_overrides[get_takeoff_orchestrator] = lambda: Mock(run=AsyncMock(return_value=output))

        response = test_client.post("/api/v1/takeoff", json={"pdf_urls": [PDF_URL]})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Takeoff completed with errors"
        assert body["data"]["items"] == []

    def test_invalid_batch_size(self, test_client: TestClient) -> None:
        app.dependency_overrides[get_takeoff_orchestrator] = lambda: Mock(run=AsyncMock())

        response = test_client.post("/api/v1/takeoff", json={"pdf_urls": [PDF_URL], "page_batch_size": 0})

        assert response.status_code == 422


class TestStartTakeoff:
    """Test suite for the workflow-backed takeoff endpoint."""

    def test_starts_workflow(self, test_client: TestClient) -> None:
        temporal_client = Mock(start_workflow=AsyncMock())
        app.dependency_overrides[get_temporal_client] = lambda: temporal_client

        response = test_client.post("/api/v1/takeoff/async", json={"pdf_urls": [PDF_URL], "plan_id": "plan-1"})

        assert response.status_code == 202
        data = response.json()["data"]
        assert data["workflow_id"].startswith("takeoff-plan-1-")
        call = temporal_client.start_workflow.await_args
        assert call.args[0] == TakeoffWorkflow.run
        assert call.args[1]["pdf_urls"] == [PDF_URL]
        assert call.kwargs["id"] == data["workflow_id"]

    def test_temporal_failure_is_500(self, test_client: TestClient) -> None:
        temporal_client = Mock(start_workflow=AsyncMock(side_effect=RuntimeError("temporal unavailable")))
        app.dependency_overrides[get_temporal_client] = lambda: temporal_client

        response = test_client.post("/api/v1/takeoff/async", json={"pdf_urls": [PDF_URL]})

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["title"] == "Internal Error"
        assert "temporal unavailable" in detail["detail"]
