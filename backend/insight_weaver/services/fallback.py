"""
Fallback chart candidates.

When the generator's candidates leave the dashboard short, these rules
propose deterministic candidates from the column metadata alone. They are
ordinary CandidateChartSpecs and go through the same validation, binding and
aggregation as every other candidate.
"""
import logging
import re
from typing import List, Optional, Set, Tuple

from insight_weaver.core.schemas import (
    CandidateChartSpec,
    PartialIntent,
    PartialMetric,
    PartialRelationship,
)
from insight_weaver.services.binding import rank_metric_columns
from insight_weaver.services.metadata import ColumnIndex

logger = logging.getLogger(__name__)

Signature = Tuple[str, Tuple[str, ...]]

ID_NAME = re.compile(r'(?:^|[^a-z])id$')
PIE_MAX_UNIQUE = 5
BAR_MAX_UNIQUE = 20


def candidate_signature(chart_type: Optional[str], variables: List[str]) -> Signature:
    return (chart_type or "", tuple(variables))


def _is_identifier(index: ColumnIndex, name: str, row_count: int) -> bool:
    return bool(ID_NAME.search(name.lower())) and index.profile(name).unique_count == row_count


def _ranked_metrics(index: ColumnIndex, row_count: int) -> List[str]:
    usable = [name for name in index.metric_columns() if not _is_identifier(index, name, row_count)]
    return [name for name, _ in rank_metric_columns(index, usable)]


def build_fallback_candidates(
    index: ColumnIndex,
    row_count: int,
    existing: Optional[Set[Signature]] = None,
) -> List[CandidateChartSpec]:
    """
    Fallback candidates, highest priority first.

    Candidates whose (chart type, variables) signature is in `existing` are skipped.
    """
    seen = set(existing or ())
    scored: List[Tuple[float, CandidateChartSpec]] = []

    metrics = _ranked_metrics(index, row_count)
    best_metric = metrics[0] if metrics else None
    date_cols = [name for name in index.grouping_columns() if index.metadata(name).semantic_type == 'date']
    category_cols = [
        name for name in index.grouping_columns()
        if index.metadata(name).semantic_type in ('categorical', 'ordinal', 'boolean')
        and 2 <= index.profile(name).unique_count <= BAR_MAX_UNIQUE
    ]

    # 1. Date + metric = line
    if best_metric:
        for date_col in date_cols:
            scored.append((0.95, CandidateChartSpec(
                title=f"{best_metric} over {date_col}",
                purpose=f"Trend of {best_metric} across {date_col}",
                chart_type="line",
                variables=[date_col, best_metric],
                analytical_intent=PartialIntent(
                    analysis_type="trend",
                    metric=PartialMetric(column=best_metric),
                    group_by=[date_col],
                    chart_type="line",
                ),
            )))

    # 2. Category + metric = bar
    if best_metric:
        for cat_col in category_cols:
            if cat_col == best_metric:
                continue
            scored.append((0.85, CandidateChartSpec(
                title=f"{best_metric} by {cat_col}",
                purpose=f"Comparison of {best_metric} across {cat_col}",
                chart_type="bar",
                variables=[cat_col, best_metric],
                analytical_intent=PartialIntent(
                    analysis_type="comparison",
                    metric=PartialMetric(column=best_metric),
                    group_by=[cat_col],
                    chart_type="bar",
                ),
            )))

    # 3. Two continuous metrics = scatter
    continuous = [name for name in metrics if index.metadata(name).semantic_type == 'continuous']
    if len(continuous) >= 2:
        independent, dependent = continuous[0], continuous[1]
        scored.append((0.70, CandidateChartSpec(
            title=f"{independent} vs {dependent}",
            purpose=f"Relationship between {independent} and {dependent}",
            chart_type="scatter",
            variables=[independent, dependent],
            analytical_intent=PartialIntent(
                analysis_type="relationship",
                relationship_variables=PartialRelationship(independent=independent, dependent=dependent),
                chart_type="scatter",
            ),
        )))

    # 4. Single category = count per value (pie for small sets)
    for cat_col in category_cols:
        chart_type = "pie" if index.profile(cat_col).unique_count <= PIE_MAX_UNIQUE else "bar"
        scored.append((0.75, CandidateChartSpec(
            title=f"Distribution of {cat_col}",
            purpose=f"Frequency of each {cat_col}",
            chart_type=chart_type,
            variables=[cat_col],
            analytical_intent=PartialIntent(
                analysis_type="distribution",
                group_by=[cat_col],
                chart_type=chart_type,
            ),
        )))

    # Stable sort keeps rule order within a score
    scored.sort(key=lambda item: -item[0])

    candidates = []
    for _, candidate in scored:
        signature = candidate_signature(candidate.chart_type, candidate.variables)
        if signature in seen:
            continue
        seen.add(signature)
        candidates.append(candidate)

    logger.info(f"Prepared {len(candidates)} fallback candidate(s)")
    return candidates
