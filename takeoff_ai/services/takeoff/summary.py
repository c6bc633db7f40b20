"""Per-segment result summaries."""

from collections import OrderedDict
from typing import Dict, List, Sequence

from takeoff_ai.schemas.takeoff import (
    AnalysisItem,
    CostCodeTotal,
    SegmentPlan,
    SegmentResult,
    SegmentSummary,
    TakeoffItem,
)

TOP_RISK_LIMIT = 5
SEGMENT_FAILED_RISK = "Segment processing failed"


def totals_by_cost_code(items: Sequence[TakeoffItem]) -> List[CostCodeTotal]:
    totals: Dict[str, CostCodeTotal] = OrderedDict()
    for item in items:
        code = item.cost_code or "UNKNOWN"
        total = totals.get(code)
        if total is None:
            totals[code] = CostCodeTotal(
                cost_code=code,
                description=item.cost_code_description,
                quantity=item.quantity,
                unit=item.unit.value,
                est_cost=item.quantity * item.unit_cost,
            )
            continue
        total.quantity += item.quantity
        total.est_cost += item.quantity * item.unit_cost
    return list(totals.values())


def top_risks(analysis: Sequence[AnalysisItem], limit: int = TOP_RISK_LIMIT) -> List[str]:
    risky = [
        finding.description
        for finding in analysis
        if finding.severity in ("high", "critical") or finding.priority == "high"
    ]
    return risky[:limit]


def summarize_segment(
    segment: SegmentPlan,
    items: Sequence[TakeoffItem],
    analysis: Sequence[AnalysisItem],
    pages_processed: int,
    pages_failed: int,
) -> SegmentResult:
    return SegmentResult(
        industry=segment.industry,
        categories=list(segment.categories),
        summary=SegmentSummary(
            totals_by_cost_code=totals_by_cost_code(items),
            top_risks=top_risks(analysis),
            pages_processed=pages_processed,
            pages_failed=pages_failed,
        ),
        items_count=len(items),
        analysis_count=len(analysis),
    )


def failed_segment(segment: SegmentPlan) -> SegmentResult:
    return SegmentResult(
        industry=segment.industry,
        categories=list(segment.categories),
        summary=SegmentSummary(top_risks=[SEGMENT_FAILED_RISK]),
    )
