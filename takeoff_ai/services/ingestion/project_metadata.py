"""Project-level metadata derived from title sheets and the sheet index."""

import re
from typing import Any, Dict, List, Optional, Sequence

from takeoff_ai.models.chunk import ProjectMeta
from takeoff_ai.models.page_data import PageText
from takeoff_ai.models.sheet_index import PlanSetGroup, SheetIndexEntry

TITLE_PAGE_COUNT = 3

PROJECT_NAME_PATTERN = re.compile(r"PROJECT[ \t:]+([A-Z][^\n]+)", re.IGNORECASE)
ADDRESS_PATTERN = re.compile(
    r"\d+\s+[A-Z][A-Za-z\s]+(?:ST|STREET|AVE|AVENUE|RD|ROAD|BLVD|BOULEVARD|DR|DRIVE|LN|LANE)"
    r"[\s,]*[A-Z]{2}\s+\d{5}",
    re.IGNORECASE,
)


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def extract_project_names(pages: Sequence[PageText]) -> List[str]:
    """Project names declared on the first few (title) pages."""
    names = []
    for page in pages[:TITLE_PAGE_COUNT]:
        match = PROJECT_NAME_PATTERN.search(page.text)
        if match:
            names.append(match.group(1).strip())
    return _unique(names)


def extract_addresses(pages: Sequence[PageText]) -> List[str]:
    """Street addresses found on the first few (title) pages."""
    addresses = []
    for page in pages[:TITLE_PAGE_COUNT]:
        addresses.extend(" ".join(match.group(0).split()) for match in ADDRESS_PATTERN.finditer(page.text))
    return _unique(addresses)


def build_project_meta(plan: Any, pages: Sequence[PageText], job_id: Optional[str] = None) -> ProjectMeta:
    """Snapshot plan attributes plus detected title-sheet details."""
    created_at = getattr(plan, "created_at", None)
    return ProjectMeta(
        plan_id=str(plan.id),
        project_name=getattr(plan, "project_name", None),
        project_location=getattr(plan, "project_location", None),
        plan_title=getattr(plan, "title", None),
        job_id=job_id or (str(plan.job_id) if getattr(plan, "job_id", None) else None),
        plan_file_name=getattr(plan, "file_name", None),
        total_pages=len(pages),
        plan_upload_date=created_at.isoformat() if created_at else None,
        detected_projects=extract_project_names(pages),
        detected_addresses=extract_addresses(pages),
    )


def group_plan_sets(sheet_index: Sequence[SheetIndexEntry]) -> List[PlanSetGroup]:
    """Group sheets by sheet type and discipline, in first-seen order."""
    groups: Dict[str, PlanSetGroup] = {}

    for sheet in sheet_index:
        key = f"{sheet.sheet_type.value}_{sheet.discipline.value}"
        group = groups.get(key)
        if group is None:
            group = PlanSetGroup(
                group_id=key,
                name=f"{sheet.sheet_type.value} - {sheet.discipline.value}",
                sheet_type=sheet.sheet_type,
                discipline=sheet.discipline,
                scale=sheet.scale,
                description=(
                    f"Collection of {sheet.sheet_type.value} sheets for "
                    f"{sheet.discipline.value} discipline"
                ),
            )
            groups[key] = group
        group.page_numbers.append(sheet.page_no)
        group.sheet_ids.append(sheet.sheet_id)

    return list(groups.values())
