"""Merging of duplicate takeoff items and analysis findings.

Items sharing (name, location, cost_code, dimensions) are candidates for a
merge. A candidate merges into an existing entry when the confidence gap is
within ``confidence_delta`` and the dimensions do not differ materially; the
merged entry keeps the fields of the more confident item and the summed
quantity. Otherwise both are kept as distinct entries.

Candidates are visited in a canonical order (highest confidence first), so
the outcome does not depend on the order in which batches finished, and
running the merge over its own output changes nothing.
"""

import re
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple

from takeoff_ai.core.config import TakeoffSettings, settings
from takeoff_ai.schemas.takeoff import AnalysisItem, TakeoffItem

_NUMBER = re.compile(r"\d+\.?\d*")

ItemKey = Tuple[str, str, str, str]


def item_key(item: TakeoffItem) -> ItemKey:
    return (item.name, item.location, item.cost_code, item.dimensions)


def analysis_key(item: AnalysisItem) -> Tuple[str, str, Tuple[int, ...]]:
    return (item.type.value, item.description, tuple(item.pages))


def dimensions_materially_differ(first: str, second: str, tolerance: float = 0.1) -> bool:
    """Compare the numeric tokens of two dimension strings pairwise.

    Missing dimensions on exactly one side count as a material difference.
    Token lists of different length, or any pair further apart than
    ``tolerance`` of their average, also differ materially.
    """
    first, second = first.strip(), second.strip()
    if not first and not second:
        return False
    if not first or not second:
        return True

    first_numbers = [float(token) for token in _NUMBER.findall(first)]
    second_numbers = [float(token) for token in _NUMBER.findall(second)]
    if len(first_numbers) != len(second_numbers):
        return True
    if not first_numbers:
        return first != second

    for a, b in zip(first_numbers, second_numbers):
        average = (a + b) / 2
        if average == 0:
            if a != b:
                return True
            continue
        if abs(a - b) / average > tolerance:
            return True
    return False


def _canonical_order(item: TakeoffItem) -> Tuple[float, str]:
    return (-item.confidence, item.model_dump_json())


class ItemDeduplicator:
    """Applies the merge rules with configurable thresholds."""

    def __init__(
        self,
        confidence_delta: Optional[float] = None,
        dimension_tolerance: Optional[float] = None,
        takeoff_settings: Optional[TakeoffSettings] = None,
    ):
        config = takeoff_settings or settings.takeoff
        self.confidence_delta = (
            confidence_delta if confidence_delta is not None else config.dedupe_confidence_delta
        )
        self.dimension_tolerance = (
            dimension_tolerance if dimension_tolerance is not None else config.dedupe_dimension_tolerance
        )

    def can_merge(self, kept: TakeoffItem, candidate: TakeoffItem) -> bool:
        if round(abs(kept.confidence - candidate.confidence), 9) > self.confidence_delta:
            return False
        return not dimensions_materially_differ(kept.dimensions, candidate.dimensions, self.dimension_tolerance)

    def dedupe_items(self, items: Sequence[TakeoffItem]) -> List[TakeoffItem]:
        # Output groups appear in first-seen key order
        groups: "OrderedDict[ItemKey, List[TakeoffItem]]" = OrderedDict()
        for item in items:
            groups.setdefault(item_key(item), []).append(item)

        merged: List[TakeoffItem] = []
        for candidates in groups.values():
            entries: List[TakeoffItem] = []
            for candidate in sorted(candidates, key=_canonical_order):
                for idx, kept in enumerate(entries):
                    if self.can_merge(kept, candidate):
                        # kept is never less confident than a later candidate
                        entries[idx] = kept.model_copy(
                            update={"quantity": kept.quantity + candidate.quantity}
                        )
                        break
                else:
                    entries.append(candidate)
            merged.extend(entries)
        return merged

    @staticmethod
    def dedupe_analysis(analysis: Sequence[AnalysisItem]) -> List[AnalysisItem]:
        seen: Dict[Tuple[str, str, Tuple[int, ...]], AnalysisItem] = OrderedDict()
        for finding in analysis:
            seen.setdefault(analysis_key(finding), finding)
        return list(seen.values())
