"""
Unit tests for title and axis label synthesis.
"""
import pytest
from insight_weaver.core.schemas import GroupedIntent, MetricSpec, RelationshipIntent, RelationshipVariables
from insight_weaver.services.titles import (
    AGGREGATION_WORDS,
    clean_display_name,
    derive_axis_labels,
    implied_aggregation,
    join_without_overlap,
    synthesize_title,
)


def _grouped(aggregation="avg", display_name="Revenue", column="Revenue", group="Region"):
    return GroupedIntent(
        analysis_type="comparison",
        metric=MetricSpec(column=column, aggregation=aggregation, display_name=display_name),
        group_by=[group],
        chart_type="bar",
    )


def _relationship():
    return RelationshipIntent(
        analysis_type="relationship",
        metric=MetricSpec(column="Price", aggregation="avg", display_name="Price"),
        relationship_variables=RelationshipVariables(independent="Units", dependent="Price"),
        chart_type="scatter",
    )


@pytest.mark.unit
def test_join_without_overlap():
    assert join_without_overlap("Average", "Average Revenue") == "Average Revenue"
    assert join_without_overlap("Total", "Revenue") == "Total Revenue"
    assert join_without_overlap("Count of", "of Orders") == "Count of Orders"
    assert join_without_overlap("Count of", "Records") == "Count of Records"


@pytest.mark.unit
def test_clean_display_name():
    assert clean_display_name("Total Revenue", "avg") == "Revenue"
    assert clean_display_name("Total Revenue", "sum") == "Total Revenue"
    assert clean_display_name("Sum of Sales", "avg") == "Sales"
    assert clean_display_name("Mean   Score", "median") == "Score"
    assert clean_display_name("Total", "avg") == "Total"
    assert clean_display_name("Minute count", "sum") == "Minute count"


@pytest.mark.unit
def test_synthesize_title():
    assert synthesize_title(_grouped()) == "Average Revenue by Region"
    assert synthesize_title(_grouped("sum", "Total Revenue")) == "Total Revenue by Region"
    assert synthesize_title(_grouped("count", "Records", column="Store", group="Store")) == "Count of Records by Store"
    assert synthesize_title(_relationship()) == "Units vs Price"


@pytest.mark.unit
def test_implied_aggregation():
    assert implied_aggregation("Count of Records by Store") == "count"
    assert implied_aggregation("Median Revenue by Region") == "median"
    assert implied_aggregation("Revenue by Region") is None
    assert implied_aggregation("Units vs Price") is None


@pytest.mark.unit
@pytest.mark.parametrize("aggregation", sorted(AGGREGATION_WORDS))
def test_synthesized_title_announces_its_aggregation(aggregation):
    assert implied_aggregation(synthesize_title(_grouped(aggregation))) == aggregation


@pytest.mark.unit
def test_derive_axis_labels():
    labels = derive_axis_labels(_grouped())
    assert (labels.x, labels.y) == ("Region", "Average Revenue")

    labels = derive_axis_labels(_relationship())
    assert (labels.x, labels.y) == ("Units", "Price")
