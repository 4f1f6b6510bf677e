"""
Unit tests for fallback chart candidates.
"""
import pytest
from insight_weaver.core.config import Settings
from insight_weaver.services.fallback import build_fallback_candidates, candidate_signature
from insight_weaver.services.metadata import ColumnIndex
from insight_weaver.services.pipeline import process_candidate
from insight_weaver.services.profiler import clean_dataset


@pytest.mark.unit
def test_candidates_in_priority_order(order_dataset, order_index):
    candidates = build_fallback_candidates(order_index, order_dataset.row_count)

    assert [(c.chart_type, c.title) for c in candidates] == [
        ("line", "Price over Date"),
        ("bar", "Price by Store"),
        ("bar", "Price by Rating"),
        ("pie", "Distribution of Store"),
        ("pie", "Distribution of Rating"),
        ("scatter", "Price vs Units"),
    ]


@pytest.mark.unit
def test_existing_signatures_are_skipped(order_dataset, order_index):
    existing = {candidate_signature("bar", ["Store", "Price"])}
    candidates = build_fallback_candidates(order_index, order_dataset.row_count, existing)

    assert "Price by Store" not in [c.title for c in candidates]
    assert existing == {("bar", ("Store", "Price"))}


@pytest.mark.unit
def test_identifier_columns_are_not_metrics():
    rows = [["Order ID", "Region", "Amount"]] + [
        [str(100 + i), "North" if i % 2 else "South", f"{12.5 * (i + 1):.2f}"] for i in range(8)
    ]
    dataset = clean_dataset(rows, Settings())
    candidates = build_fallback_candidates(ColumnIndex(dataset.profiles), dataset.row_count)

    assert candidates
    assert all("Order ID" not in c.variables for c in candidates)
    assert not any(c.chart_type == "scatter" for c in candidates)


@pytest.mark.unit
def test_fallback_candidates_survive_the_pipeline(order_dataset, order_index, settings):
    for candidate in build_fallback_candidates(order_index, order_dataset.row_count):
        chart = process_candidate(candidate, order_dataset, order_index, settings, source="fallback")
        assert chart.source == "fallback"
        assert candidate_signature(chart.chart_type, chart.variables) == candidate_signature(
            candidate.chart_type, candidate.variables
        )


@pytest.mark.unit
def test_no_candidates_without_usable_columns():
    rows = [["Comment"]] + [[f"free text number {i}"] for i in range(30)]
    dataset = clean_dataset(rows, Settings())

    assert build_fallback_candidates(ColumnIndex(dataset.profiles), dataset.row_count) == []
