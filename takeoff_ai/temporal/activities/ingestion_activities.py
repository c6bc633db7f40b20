"""Ingestion activity wrapping IngestionCoordinator."""

import time
from typing import Dict, Optional
from uuid import UUID

from temporalio import activity
from temporalio.exceptions import ApplicationError


@activity.defn
async def ingest_plan(plan_id: str, options: Optional[Dict] = None, job_id: Optional[str] = None) -> Dict:
    """
    Download, index and chunk one plan, persisting sheet index and chunks.

    Args:
        plan_id: UUID of the plan to ingest
        options: IngestionOptions fields; settings defaults fill the rest
        job_id: Optional job the plan belongs to, copied into chunk metadata

    Returns:
        IngestionResult as a JSON-compatible dict
    """
    start = time.time()

    # Import inside function to keep the workflow sandbox free of I/O modules
    from pydantic import ValidationError as SchemaValidationError

    from takeoff_ai.core.database import async_session_maker
    from takeoff_ai.core.exceptions import PlanNotFoundError, ValidationError
    from takeoff_ai.schemas.plans import IngestionOptions
    from takeoff_ai.services.ingestion.ingestion_coordinator import IngestionCoordinator

    try:
        activity.logger.info(f"Starting ingestion for plan: {plan_id}")
        ingestion_options = IngestionOptions(**(options or {}))
        activity.heartbeat("ingesting")

        async with async_session_maker() as session:
            coordinator = IngestionCoordinator(session)
            result = await coordinator.ingest(UUID(plan_id), ingestion_options, job_id=job_id)

        activity.logger.info(
            f"Ingestion complete for plan {plan_id}: "
            f"{result.stats.total_pages} pages, {result.stats.total_chunks} chunks"
        )
        return result.model_dump(mode="json")

    except (PlanNotFoundError, ValidationError, SchemaValidationError) as e:
        activity.logger.error(f"Ingestion rejected for plan {plan_id}: {e}")
        raise ApplicationError(str(e), type=type(e).__name__, non_retryable=True) from e
    except Exception as e:
        activity.logger.error(f"Ingestion failed for plan {plan_id}: {e}")
        raise
    finally:
        duration = time.time() - start
        activity.logger.info(f"Ingestion duration: {duration:.2f}s")
