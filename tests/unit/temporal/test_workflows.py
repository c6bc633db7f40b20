"""Tests for workflow ids, status queries and worker registration."""

from takeoff_ai.temporal.activities import ingest_plan, run_takeoff
from takeoff_ai.temporal.worker import ACTIVITIES, WORKFLOWS
from takeoff_ai.temporal.workflows import IngestPlanWorkflow, TakeoffWorkflow, ingest_workflow_id


def test_ingest_workflow_id_is_derived_from_plan():
    assert ingest_workflow_id("3f0c") == "ingest-plan-3f0c"


def test_ingest_status_before_run():
    status = IngestPlanWorkflow().get_status()

    assert status == {"status": "initialized", "total_pages": None, "total_chunks": None, "error": None}


def test_ingest_status_reports_result_stats():
    workflow = IngestPlanWorkflow()
    workflow._status = "completed"
    workflow._result = {"stats": {"total_pages": 12, "total_chunks": 3}}

    status = workflow.get_status()

    assert status["total_pages"] == 12
    assert status["total_chunks"] == 3


def test_takeoff_status_before_run():
    assert TakeoffWorkflow().get_status() == {"status": "initialized"}


def test_worker_registers_everything():
    assert WORKFLOWS == [IngestPlanWorkflow, TakeoffWorkflow]
    assert ACTIVITIES == [ingest_plan, run_takeoff]
