"""
Unit tests for the structural validator (final gate).
"""
import pytest
from insight_weaver.core.errors import StructuralValidationError
from insight_weaver.core.performance import PerformanceMonitor
from insight_weaver.core.schemas import AggregatedPoint, AxisLabels, CandidateChartSpec, GroupedIntent, MetricSpec
from insight_weaver.services.pipeline import process_candidate
from insight_weaver.services.validator import find_structural_problems, intent_variables, validate_structure


@pytest.fixture
def region_chart(sales_dataset, sales_index, settings):
    candidate = CandidateChartSpec.model_validate(
        {"title": "Average Revenue by Region", "chartType": "bar", "variables": ["Region", "Revenue"]}
    )
    return process_candidate(candidate, sales_dataset, sales_index, settings)


@pytest.fixture
def scatter_chart(order_dataset, order_index, settings):
    candidate = CandidateChartSpec.model_validate(
        {"title": "Units vs Price", "chartType": "scatter", "variables": ["Units", "Price"]}
    )
    return process_candidate(candidate, order_dataset, order_index, settings)


@pytest.mark.unit
def test_consistent_charts_pass(region_chart, scatter_chart, sales_index, order_index):
    assert find_structural_problems(region_chart, sales_index) == []
    assert validate_structure(region_chart, sales_index) is region_chart
    assert find_structural_problems(scatter_chart, order_index) == []


@pytest.mark.unit
def test_intent_variables(region_chart, scatter_chart):
    assert intent_variables(region_chart.analytical_intent) == ["Region", "Revenue"]
    assert intent_variables(scatter_chart.analytical_intent) == ["Units", "Price"]


@pytest.mark.unit
def test_title_that_misstates_the_aggregation_fails(region_chart, sales_index):
    tampered = region_chart.model_copy(update={"title": "Total Revenue by Region"})
    problems = find_structural_problems(tampered, sales_index)

    assert any("does not match" in problem for problem in problems)
    assert any("claims sum" in problem for problem in problems)


@pytest.mark.unit
def test_axis_labels_must_come_from_intent(region_chart, sales_index):
    tampered = region_chart.model_copy(update={"axis_labels": AxisLabels(x="Region", y="Revenue")})
    with pytest.raises(StructuralValidationError, match="axis labels"):
        validate_structure(tampered, sales_index)


@pytest.mark.unit
def test_scatter_with_aggregated_points_fails(scatter_chart, order_index):
    point = AggregatedPoint(label="a", full_label="a", value=1.0, sample_count=1)
    tampered = scatter_chart.model_copy(update={"points": [point]})
    with pytest.raises(StructuralValidationError, match="raw points"):
        validate_structure(tampered, order_index)


@pytest.mark.unit
def test_illegal_aggregation_and_grouped_scatter_fail(region_chart, sales_index):
    intent = GroupedIntent(
        analysis_type="comparison",
        metric=MetricSpec(column="Region", aggregation="avg", display_name="Region"),
        group_by=["Region"],
        chart_type="scatter",
    )
    tampered = region_chart.model_copy(update={"analytical_intent": intent, "chart_type": "scatter"})
    problems = find_structural_problems(tampered, sales_index)

    assert any("not allowed for Region" in problem for problem in problems)
    assert any("without relationship variables" in problem for problem in problems)
    assert any("cannot show a comparison" in problem for problem in problems)


@pytest.mark.unit
def test_failures_are_counted(region_chart, sales_index):
    PerformanceMonitor.clear_metrics()
    tampered = region_chart.model_copy(update={"variables": ["Revenue"]})

    with pytest.raises(StructuralValidationError) as exc_info:
        validate_structure(tampered, sales_index)

    assert exc_info.value.stage == "structural_validation"
    assert PerformanceMonitor.get_stats("structural_validation_failure")["count"] == 1
