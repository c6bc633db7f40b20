"""Tests for takeoff item and analysis deduplication."""

from itertools import permutations

import pytest

from takeoff_ai.schemas.takeoff import AnalysisItem, TakeoffItem
from takeoff_ai.services.takeoff.deduplication import (
    ItemDeduplicator,
    dimensions_materially_differ,
)


def make_item(**overrides) -> TakeoffItem:
    data = {
        "name": "Interior door",
        "location": "Level 1",
        "cost_code": "08 14 00",
        "dimensions": "3'-0\" x 7'-0\"",
        "quantity": 4,
        "unit": "EA",
        "confidence": 0.8,
    }
    data.update(overrides)
    return TakeoffItem.model_validate(data)


@pytest.fixture
def deduplicator() -> ItemDeduplicator:
    return ItemDeduplicator(confidence_delta=0.2, dimension_tolerance=0.1)


class TestDimensionComparison:

    def test_both_empty_do_not_differ(self):
        assert dimensions_materially_differ("", "  ") is False

    def test_one_side_missing_differs(self):
        assert dimensions_materially_differ("10x12", "") is True
        assert dimensions_materially_differ("", "10x12") is True

    def test_within_tolerance(self):
        assert dimensions_materially_differ("10 x 12", "10.5 x 12") is False

    def test_beyond_tolerance(self):
        assert dimensions_materially_differ("10 x 12", "14 x 12") is True

    def test_different_token_counts_differ(self):
        assert dimensions_materially_differ("10 x 12", "10 x 12 x 8") is True

    def test_non_numeric_compared_as_text(self):
        assert dimensions_materially_differ("varies", "varies") is False
        assert dimensions_materially_differ("varies", "see detail") is True


class TestItemDeduplicator:

    def test_merge_sums_quantity_and_keeps_higher_confidence(self, deduplicator):
        first = make_item(quantity=4, confidence=0.8, description="from batch 1")
        second = make_item(quantity=6, confidence=0.7, description="from batch 2")

        merged = deduplicator.dedupe_items([second, first])

        assert len(merged) == 1
        assert merged[0].quantity == 10
        assert merged[0].confidence == 0.8
        assert merged[0].description == "from batch 1"

    def test_confidence_gap_at_threshold_merges(self, deduplicator):
        merged = deduplicator.dedupe_items([make_item(confidence=0.9), make_item(confidence=0.7)])

        assert len(merged) == 1

    def test_confidence_gap_beyond_threshold_stays_separate(self, deduplicator):
        merged = deduplicator.dedupe_items([make_item(confidence=0.9), make_item(confidence=0.6)])

        assert len(merged) == 2
        assert sorted(item.quantity for item in merged) == [4, 4]

    def test_different_keys_never_merge(self, deduplicator):
        merged = deduplicator.dedupe_items(
            [make_item(location="Level 1"), make_item(location="Level 2")]
        )

        assert [item.location for item in merged] == ["Level 1", "Level 2"]

    def test_idempotent(self, deduplicator):
        items = [
            make_item(quantity=1, confidence=0.95),
            make_item(quantity=2, confidence=0.85),
            make_item(quantity=3, confidence=0.5),
            make_item(name="Window", quantity=8, confidence=0.7),
        ]

        once = deduplicator.dedupe_items(items)
        twice = deduplicator.dedupe_items(once)

        assert [item.model_dump() for item in twice] == [item.model_dump() for item in once]

    def test_order_independent(self, deduplicator):
        items = [
            make_item(quantity=1, confidence=0.9),
            make_item(quantity=2, confidence=0.75),
            make_item(quantity=5, confidence=0.6),
        ]
        expected = sorted(
            (item.quantity, item.confidence) for item in deduplicator.dedupe_items(items)
        )

        for ordering in permutations(items):
            result = deduplicator.dedupe_items(list(ordering))
            assert sorted((item.quantity, item.confidence) for item in result) == expected

    def test_uses_configured_thresholds(self):
        strict = ItemDeduplicator(confidence_delta=0.05, dimension_tolerance=0.1)

        merged = strict.dedupe_items([make_item(confidence=0.9), make_item(confidence=0.8)])

        assert len(merged) == 2

    def test_dedupe_analysis_keeps_first_occurrence(self):
        first = AnalysisItem.model_validate(
            {"type": "rfi", "description": "Door hardware unspecified", "pages": [3], "title": "first"}
        )
        repeat = AnalysisItem.model_validate(
            {"type": "RFI", "description": "Door hardware unspecified", "pages": [3], "title": "second"}
        )
        other_page = AnalysisItem.model_validate(
            {"type": "rfi", "description": "Door hardware unspecified", "pages": [4]}
        )

        result = ItemDeduplicator.dedupe_analysis([first, repeat, other_page])

        assert len(result) == 2
        assert result[0].title == "first"
