from takeoff_ai.temporal.workflows.ingest_plan import IngestPlanWorkflow, ingest_workflow_id
from takeoff_ai.temporal.workflows.takeoff import TakeoffWorkflow

__all__ = ["IngestPlanWorkflow", "TakeoffWorkflow", "ingest_workflow_id"]
