"""Takeoff workflow."""

from datetime import timedelta
from typing import Dict

from temporalio import workflow
from temporalio.common import RetryPolicy


@workflow.defn
class TakeoffWorkflow:
    def __init__(self):
        self._status = "initialized"

    @workflow.query
    def get_status(self) -> dict:
        return {"status": self._status}

    @workflow.run
    async def run(self, request: Dict) -> dict:
        workflow.logger.info(f"Starting takeoff for plan: {request.get('plan_id') or 'n/a'}")
        self._status = "processing"

        # Failures surface in the run log, so a retry would only repeat them
        output = await workflow.execute_activity(
            "run_takeoff",
            args=[request],
            start_to_close_timeout=timedelta(hours=1),
            retry_policy=RetryPolicy(maximum_attempts=1),
        )

        self._status = "completed"
        return output
