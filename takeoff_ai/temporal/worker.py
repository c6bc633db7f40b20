"""Temporal worker for plan ingestion and takeoff runs.

This worker:
- Connects to the configured Temporal server
- Registers the ingestion and takeoff workflows and activities
- Polls the configured task queue
"""

import asyncio

from temporalio.client import Client
from temporalio.worker import Worker

from takeoff_ai.core.config import settings
from takeoff_ai.temporal.activities import ingest_plan, run_takeoff
from takeoff_ai.temporal.workflows import IngestPlanWorkflow, TakeoffWorkflow
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

WORKFLOWS = [IngestPlanWorkflow, TakeoffWorkflow]
ACTIVITIES = [ingest_plan, run_takeoff]

MAX_CONCURRENT_ACTIVITIES = 5
MAX_CONCURRENT_WORKFLOW_TASKS = 10


def build_worker(client: Client) -> Worker:
    return Worker(
        client,
        task_queue=settings.temporal.task_queue,
        workflows=WORKFLOWS,
        activities=ACTIVITIES,
        max_concurrent_activities=MAX_CONCURRENT_ACTIVITIES,
        max_concurrent_workflow_tasks=MAX_CONCURRENT_WORKFLOW_TASKS,
    )


async def main():
    """Start the Temporal worker."""
    LOGGER.info(f"Connecting to Temporal server at {settings.temporal_address}")
    client = await Client.connect(settings.temporal_address, namespace=settings.temporal.namespace)

    worker = build_worker(client)

    LOGGER.info("=" * 60)
    LOGGER.info("Temporal Worker Started Successfully")
    LOGGER.info(f"Task Queue: {settings.temporal.task_queue}")
    LOGGER.info(f"Registered Workflows: {len(WORKFLOWS)}")
    LOGGER.info(f"Registered Activities: {len(ACTIVITIES)}")
    LOGGER.info("=" * 60)

    await worker.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        LOGGER.info("Worker stopped by user")
    except Exception as e:
        LOGGER.error(f"Worker failed: {e}", exc_info=True)
        raise
