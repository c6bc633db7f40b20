# Prompts for the two-stage takeoff pipeline.
# - Every prompt demands strict JSON so responses can be validated against
#   the schemas in takeoff_ai.schemas.takeoff.
# - Prompts provided:
#   1) SCOPING_SYSTEM_PROMPT / build_scoping_user_prompt
#   2) build_segment_system_prompt / build_segment_user_prompt
#   3) CONSENSUS_SYSTEM_PROMPT / build_consensus_user_prompt

from typing import List, Optional

from takeoff_ai.schemas.takeoff import JobContext, SegmentPlan

AVAILABLE_INDUSTRIES = ("structural", "mep", "finishes", "sitework", "roofing", "glazing", "other")


# =============================================================================
# SCOPING PROMPT (stage 1: propose a segmentation plan)
# =============================================================================
SCOPING_SYSTEM_PROMPT = f"""
You are a senior construction estimator scoping a quantity takeoff.

Review the sample pages of a construction plan set and decide which trades
("industries") the takeoff must cover and which work categories belong to each.

Available industries: {", ".join(AVAILABLE_INDUSTRIES)}

Rules:
- Only propose industries with visible evidence on the sample pages.
- List concrete work categories per industry (e.g. "foundation", "framing", "electrical").
- Order segments by how much of the plan set they cover, most important first.

Return ONLY strict JSON, no commentary:

{{
  "suggested_segments": [
    {{"industry": "structural", "categories": ["foundation", "framing"], "priority": 1}}
  ]
}}
""".strip()


def build_scoping_user_prompt(
    job_context: JobContext,
    sample_count: int,
    sample_text: str,
    max_chars: int = 2000,
) -> str:
    return "\n".join([
        f"Project: {job_context.project_name or 'Unnamed project'}",
        f"Location: {job_context.location or 'Unknown'}",
        f"Building type: {job_context.building_type}",
        f"Notes: {job_context.notes or 'None'}",
        "",
        f"Sample pages provided: {sample_count}",
        "",
        "Extracted text from sample pages:",
        sample_text[:max_chars] or "(no text layer)",
    ])


# =============================================================================
# SEGMENT EXECUTION PROMPT (stage 2, segment-batch mode)
# =============================================================================
_ITEM_SCHEMA = """
{
  "items": [
    {
      "name": "<short item name>",
      "description": "<what was measured>",
      "quantity": <number>,
      "unit": "LF|SF|CF|CY|EA|SQ",
      "unit_cost": <number>,
      "unit_cost_source": "%(unit_cost_source)s",
      "location": "<room, grid line or area>",
      "category": "<one of the segment categories>",
      "subcategory": "<optional>",
      "cost_code": "<CSI-style code>",
      "cost_code_description": "<code description>",
      "dimensions": "<e.g. 12' x 8'>",
      "bounding_box": {"page": <int>, "x": <0-1>, "y": <0-1>, "width": <0-1>, "height": <0-1>},
      "page_refs": [{"pdf": "<url>", "page": <int>}],
      "confidence": <0-1>,
      "notes": "<optional>"
    }
  ],
  "analysis": [
    {
      "type": "code_issue|conflict|rfi",
      "title": "<optional>",
      "question": "<rfi only>",
      "description": "<finding>",
      "sheet": "<sheet id if known>",
      "pages": [<int>],
      "bounding_box": {"page": <int>, "x": <0-1>, "y": <0-1>, "width": <0-1>, "height": <0-1>},
      "severity": "low|medium|high|critical",
      "priority": "low|medium|high",
      "recommendation": "<optional>",
      "confidence": <0-1>
    }
  ]
}
""".strip()


def _unit_cost_source(policy: str) -> str:
    return "model_estimate" if policy == "estimate" else "lookup_pending"


def build_segment_system_prompt(
    segment: SegmentPlan,
    start_page: int,
    end_page: int,
    currency: str,
    unit_cost_policy: str,
) -> str:
    categories = ", ".join(segment.categories) or "all visible work"
    schema = _ITEM_SCHEMA % {"unit_cost_source": _unit_cost_source(unit_cost_policy)}
    return f"""
You are a construction estimator performing a quantity takeoff for the
{segment.industry} trade only.

Scope: {categories}
Pages in this batch: {start_page}-{end_page}
Currency for unit costs: {currency}

Rules:
- Measure only work inside the scope above; ignore every other trade.
- Use only the units LF, SF, CF, CY, EA or SQ.
- Locate every item with a normalised bounding box on its page image.
- Do not count quantities twice when a schedule repeats what a plan already shows.
- Report code issues, drawing conflicts and open questions (RFIs) in "analysis".

Return ONLY strict JSON matching:

{schema}
""".strip()


def build_segment_user_prompt(
    segment: SegmentPlan,
    start_page: int,
    end_page: int,
    page_text: str,
    max_chars: int = 4000,
) -> str:
    categories = ", ".join(segment.categories)
    return (
        f"Analyze pages {start_page}-{end_page} for {segment.industry} work ({categories}).\n\n"
        f"Extracted text:\n{page_text[:max_chars] or '(no text layer)'}"
    )


# =============================================================================
# CONSENSUS PROMPT (stage 2, whole-document mode)
# =============================================================================
CONSENSUS_SYSTEM_PROMPT = (
    """
You are a panel of construction estimators producing one agreed quantity
takeoff for a complete plan set. Cross-check every sheet against the others:
plans, elevations, sections, schedules and details must agree before a
quantity is reported. Where sheets disagree, report the conflict in
"analysis" instead of guessing.

Assign every item a "category" taken from the segment categories listed in
the request so items can be grouped by trade afterwards.

Return ONLY strict JSON matching:

"""
    + (_ITEM_SCHEMA % {"unit_cost_source": "model_estimate"})
).strip()


def build_consensus_user_prompt(
    job_context: JobContext,
    segments: List[SegmentPlan],
    page_count: int,
    document_text: str,
    currency: str,
    job_type: Optional[str] = None,
    max_chars: int = 4000,
) -> str:
    segment_lines = [
        f"- {segment.industry}: {', '.join(segment.categories) or 'all work'}"
        for segment in segments
    ]
    return "\n".join([
        f"Project: {job_context.project_name or 'Unnamed project'}",
        f"Location: {job_context.location or 'Unknown'}",
        f"Building type: {job_type or job_context.building_type}",
        f"Currency: {currency}",
        f"Pages provided: {page_count}",
        "",
        "Segments:",
        *segment_lines,
        "",
        "Extracted text:",
        document_text[:max_chars] or "(no text layer)",
    ])
