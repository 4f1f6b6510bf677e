"""
Structural validator.

Last gate before a chart is render-ready. Nothing here repairs a chart: by
this point every inconsistency is an internal bug, so failures are logged at
ERROR, counted, and the chart is excluded.
"""
import logging
from typing import List, Union

from insight_weaver.core.errors import StructuralValidationError
from insight_weaver.core.performance import PerformanceMonitor
from insight_weaver.core.sanitization import sanitize_for_logging
from insight_weaver.core.schemas import ChartDataset, GroupedIntent, RelationshipIntent
from insight_weaver.services.intent import CHART_COMPATIBILITY
from insight_weaver.services.metadata import ColumnIndex
from insight_weaver.services.titles import derive_axis_labels, implied_aggregation, synthesize_title

logger = logging.getLogger(__name__)

RELATIONSHIP_ONLY_CHART_TYPES = {'scatter'}


def intent_variables(intent: Union[GroupedIntent, RelationshipIntent]) -> List[str]:
    """Chart variables re-derived from the intent: grouping keys then metric, or x then y."""
    if isinstance(intent, RelationshipIntent):
        variables = intent.relationship_variables
        return [variables.independent, variables.dependent]
    names = list(intent.group_by)
    if intent.metric.column not in names:
        names.append(intent.metric.column)
    return names


def find_structural_problems(chart: ChartDataset, index: ColumnIndex) -> List[str]:
    intent = chart.analytical_intent
    problems: List[str] = []

    if chart.chart_type != intent.chart_type:
        problems.append(f"chart type {chart.chart_type} differs from intent chart type {intent.chart_type}")
    if intent.chart_type not in CHART_COMPATIBILITY[intent.analysis_type]:
        problems.append(f"chart type {intent.chart_type} cannot show a {intent.analysis_type} analysis")

    # (a) The title only names what is actually bound.
    if chart.title != synthesize_title(intent):
        problems.append(f"title {chart.title!r} does not match the validated intent")
    if isinstance(intent, GroupedIntent):
        claimed = implied_aggregation(chart.title)
        if claimed is not None and claimed != intent.metric.aggregation:
            problems.append(f"title claims {claimed} but the chart uses {intent.metric.aggregation}")

    # (b) Aggregation is legal for the bound column.
    metric = intent.metric
    if index.resolve(metric.column) != metric.column:
        problems.append(f"metric column {metric.column!r} is not in the dataset")
    elif metric.aggregation not in index.metadata(metric.column).allowed_aggregations:
        problems.append(f"aggregation {metric.aggregation} is not allowed for {metric.column}")

    # (c) Relationship-only chart types carry two raw numeric variables.
    if intent.chart_type in RELATIONSHIP_ONLY_CHART_TYPES:
        if not isinstance(intent, RelationshipIntent):
            problems.append(f"{intent.chart_type} chart without relationship variables")
        else:
            variables = intent.relationship_variables
            if not (index.is_metric(variables.independent) and index.is_metric(variables.dependent)):
                problems.append("relationship variables are not both numeric")
            if chart.points or not chart.raw_points:
                problems.append(f"{intent.chart_type} chart must carry raw points, not aggregated ones")

    if isinstance(intent, GroupedIntent) and not chart.points:
        problems.append("grouped chart without aggregated points")

    # (d) Axis labels and variables come from the intent alone.
    if chart.axis_labels != derive_axis_labels(intent):
        problems.append("axis labels were not derived from the validated intent")
    if chart.variables != intent_variables(intent):
        problems.append("chart variables were not derived from the validated intent")

    return problems


def validate_structure(chart: ChartDataset, index: ColumnIndex) -> ChartDataset:
    """
    Return the chart unchanged when it is internally consistent.

    Raises:
        StructuralValidationError: the chart is excluded from the output.
    """
    problems = find_structural_problems(chart, index)
    if not problems:
        return chart

    logger.error(
        f"Structural validation failed for '{sanitize_for_logging(chart.title)}': {'; '.join(problems)}"
    )
    PerformanceMonitor.record_metric(
        "structural_validation_failure",
        1.0,
        {"chart_type": chart.chart_type, "problems": len(problems)},
    )
    raise StructuralValidationError("; ".join(problems))
