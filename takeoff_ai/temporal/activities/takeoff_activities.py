"""Takeoff activity wrapping TakeoffOrchestrator."""

import time
from typing import Dict

from temporalio import activity


@activity.defn
async def run_takeoff(request: Dict) -> Dict:
    """
    Run one takeoff. The orchestrator records failures in the run log
    rather than raising, so this activity only fails on a bad request.

    Returns:
        {"items": [...], "analysis": [...], "segments": [...], "run_log": [...]}
    """
    start = time.time()

    from takeoff_ai.schemas.takeoff import TakeoffRequest
    from takeoff_ai.services.takeoff.orchestrator import TakeoffOrchestrator

    takeoff_request = TakeoffRequest.model_validate(request)
    activity.logger.info(
        f"Starting takeoff over {len(takeoff_request.pdf_urls)} PDFs "
        f"(plan: {takeoff_request.plan_id or 'n/a'})"
    )
    activity.heartbeat("running")

    try:
        output = await TakeoffOrchestrator().run(takeoff_request)
    finally:
        activity.logger.info(f"Takeoff duration: {time.time() - start:.2f}s")

    activity.logger.info(
        f"Takeoff produced {len(output.items)} items and {len(output.analysis)} findings"
    )
    return output.model_dump(mode="json")
