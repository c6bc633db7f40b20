"""Plan ingestion workflow.

Activities are referenced by name so the workflow sandbox never imports the
database or HTTP modules. The workflow id is derived from the plan id, which
keeps ingestion of one plan to a single run at a time.
"""

from datetime import timedelta
from typing import Dict, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy


def ingest_workflow_id(plan_id: str) -> str:
    return f"ingest-plan-{plan_id}"


@workflow.defn
class IngestPlanWorkflow:
    """Runs the ingest_plan activity and exposes its progress."""

    def __init__(self):
        self._status = "initialized"
        self._result: Optional[Dict] = None
        self._error: Optional[str] = None

    @workflow.query
    def get_status(self) -> dict:
        """Query handler for real-time status updates."""
        stats = (self._result or {}).get("stats", {})
        return {
            "status": self._status,
            "total_pages": stats.get("total_pages"),
            "total_chunks": stats.get("total_chunks"),
            "error": self._error,
        }

    @workflow.run
    async def run(self, plan_id: str, options: Optional[Dict] = None, job_id: Optional[str] = None) -> dict:
        workflow.logger.info(f"Starting plan ingestion: {plan_id}")
        self._status = "processing"

        try:
            self._result = await workflow.execute_activity(
                "ingest_plan",
                args=[plan_id, options, job_id],
                start_to_close_timeout=timedelta(minutes=30),
                retry_policy=RetryPolicy(
                    maximum_attempts=2,
                    initial_interval=timedelta(seconds=10),
                    non_retryable_error_types=["PlanNotFoundError", "ValidationError"],
                ),
            )
        except Exception as e:
            self._status = "failed"
            self._error = str(e)
            raise

        self._status = "completed"
        workflow.logger.info(f"Plan ingestion complete: {plan_id}")
        return self._result
