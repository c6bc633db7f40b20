from takeoff_ai.temporal.activities.ingestion_activities import ingest_plan
from takeoff_ai.temporal.activities.takeoff_activities import run_takeoff

__all__ = ["ingest_plan", "run_takeoff"]
