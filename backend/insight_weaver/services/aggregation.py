"""
Aggregation engine.

Groups, samples and aggregates the cleaned frame according to a validated
intent. Sampling is a uniform row step, never random, so the same dataset
always yields the same points.
"""
import logging
import math
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from insight_weaver.core.config import Settings, get_settings
from insight_weaver.core.errors import DegenerateAggregation
from insight_weaver.core.schemas import AggregatedPoint, GroupedIntent, RawPoint, RelationshipIntent
from insight_weaver.services.profiler import CleanedDataset, parse_number
from insight_weaver.services.statistics import annotate_point

logger = logging.getLogger(__name__)

SENTINEL_LABELS = {'', '?', 'unknown', 'null', 'undefined'}
RANKED_CHART_TYPES = {'bar', 'pie'}
NATURAL_ORDER_CHART_TYPES = {'line', 'area'}


def step_sample(frame: pd.DataFrame, cap: int) -> pd.DataFrame:
    """Every k-th row (k = ceil(n / cap)), at most `cap` rows."""
    if len(frame) <= cap:
        return frame
    step = math.ceil(len(frame) / cap)
    return frame.iloc[::step].head(cap)


def compute_aggregate(aggregation: str, values: List[float], row_count: int) -> float:
    if aggregation == 'count':
        return float(row_count)
    if aggregation == 'sum':
        return float(sum(values))
    if aggregation == 'avg':
        return float(sum(values)) / len(values)
    if aggregation == 'median':
        return float(np.median(values))
    if aggregation == 'min':
        return float(min(values))
    if aggregation == 'max':
        return float(max(values))
    raise ValueError(f"Unsupported aggregation: {aggregation}")


def truncate_label(label: str, max_length: int) -> str:
    if len(label) > max_length:
        return label[:max_length] + "..."
    return label


def is_sentinel_label(label: str) -> bool:
    return label.strip().lower() in SENTINEL_LABELS


def _natural_order(points: List[AggregatedPoint], levels: Optional[List[str]]) -> List[AggregatedPoint]:
    """Scale order, then numeric, then chronological, else first appearance."""
    labels = [point.full_label for point in points]

    if levels:
        rank = {level: position for position, level in enumerate(levels)}
        return sorted(points, key=lambda point: rank.get(point.full_label, len(rank)))

    numbers = [parse_number(label) for label in labels]
    if all(number is not None for number in numbers):
        return [point for _, point in sorted(zip(numbers, points), key=lambda pair: pair[0])]

    dates = pd.to_datetime(pd.Series(labels), errors='coerce', format='mixed')
    if not dates.isna().any():
        order = dates.sort_values(kind='stable').index
        return [points[position] for position in order]

    return points


def order_points(
    points: List[AggregatedPoint],
    chart_type: str,
    levels: Optional[List[str]],
    max_groups: int,
) -> List[AggregatedPoint]:
    if chart_type in NATURAL_ORDER_CHART_TYPES:
        return _natural_order(points, levels)
    # sorted() is stable, so ties keep first appearance
    ranked = sorted(points, key=lambda point: -point.value)
    if chart_type in RANKED_CHART_TYPES:
        return ranked[:max_groups]
    return ranked


def aggregate_groups(
    intent: GroupedIntent,
    dataset: CleanedDataset,
    settings: Optional[Settings] = None,
) -> List[AggregatedPoint]:
    """
    Aggregate the bound metric per value of the first grouping column.

    Raises:
        DegenerateAggregation: fewer than two groups survive filtering.
    """
    settings = settings or get_settings()
    group_column = intent.group_by[0]
    metric = intent.metric
    sampled = step_sample(dataset.frame, settings.grouped_sample_cap)

    labels = sampled[group_column].str.strip()
    keep = ~labels.map(is_sentinel_label)

    if metric.aggregation == 'count':
        values = pd.Series(0.0, index=sampled.index)
    else:
        values = sampled[metric.column].map(parse_number)
        keep &= values.notna()

    groups = pd.DataFrame({'label': labels[keep], 'value': values[keep].astype(float)})
    points: List[AggregatedPoint] = []
    for label, group in groups.groupby('label', sort=False):
        group_values = group['value'].tolist()
        point = AggregatedPoint(
            label=truncate_label(label, settings.label_max_length),
            full_label=label,
            value=round(compute_aggregate(metric.aggregation, group_values, len(group)), 2),
            sample_count=len(group),
        )
        if metric.aggregation == 'avg':
            point = annotate_point(point, group_values, settings)
        points.append(point)

    if len(points) < 2:
        raise DegenerateAggregation(
            f"only {len(points)} valid group(s) for '{group_column}' after cleaning"
        )

    levels = dataset.profile(group_column).ordered_levels
    return order_points(points, intent.chart_type, levels, settings.max_groups)


def extract_relationship_points(
    intent: RelationshipIntent,
    dataset: CleanedDataset,
    settings: Optional[Settings] = None,
) -> List[RawPoint]:
    """
    Raw (x, y) pairs for a relationship chart.

    Raises:
        DegenerateAggregation: fewer than two rows carry two finite numbers.
    """
    settings = settings or get_settings()
    variables = intent.relationship_variables
    sampled = step_sample(dataset.frame, settings.relationship_sample_cap)

    xs = sampled[variables.independent].map(parse_number)
    ys = sampled[variables.dependent].map(parse_number)
    valid = xs.notna() & ys.notna()
    points = [RawPoint(x=x, y=y) for x, y in zip(xs[valid], ys[valid])]

    if len(points) < 2:
        raise DegenerateAggregation(
            f"only {len(points)} numeric pair(s) for {variables.independent} vs {variables.dependent}"
        )
    return points


def build_chart_data(
    intent: Union[GroupedIntent, RelationshipIntent],
    dataset: CleanedDataset,
    settings: Optional[Settings] = None,
) -> Tuple[List[AggregatedPoint], List[RawPoint]]:
    """Aggregated points for grouped intents, raw pairs for relationship intents."""
    if isinstance(intent, GroupedIntent):
        return aggregate_groups(intent, dataset, settings), []
    if isinstance(intent, RelationshipIntent):
        return [], extract_relationship_points(intent, dataset, settings)
    raise TypeError(f"Unsupported intent type: {type(intent).__name__}")
