"""
Metric binder.

Resolves the authoritative {column, aggregation} pair for a grouped chart.
Resolution is a ladder of independent rules, each a pure function from a
BindingContext to an optional MetricBinding; the first rule that answers
wins. The count-hijack guard runs on the winner afterwards.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from insight_weaver.core.schemas import ColumnMetadata
from insight_weaver.services.intent import DraftIntent, match_title
from insight_weaver.services.metadata import ColumnIndex, mentions_column, refers_to_column
from insight_weaver.services.titles import COUNT_DISPLAY_NAME, clean_display_name

logger = logging.getLogger(__name__)

METRIC_KEYWORDS = ('amount', 'revenue', 'sales', 'cost', 'price', 'total', 'count', 'score', 'rate')

# (pattern, aggregation) searched anywhere in the text; the earliest match wins.
AGGREGATION_KEYWORDS = [
    (re.compile(r'\b(?:average|avg|mean)\b', re.IGNORECASE), 'avg'),
    (re.compile(r'\b(?:total|sum)\b', re.IGNORECASE), 'sum'),
    (re.compile(r'\bmedian\b', re.IGNORECASE), 'median'),
    (re.compile(r'\b(?:minimum|lowest)\b', re.IGNORECASE), 'min'),
    (re.compile(r'\b(?:maximum|highest)\b', re.IGNORECASE), 'max'),
    (re.compile(r'\b(?:count|number)\s+of\b', re.IGNORECASE), 'count'),
]
# Only averaging and summation words can undo a count.
HIJACK_KEYWORDS = AGGREGATION_KEYWORDS[:2]


@dataclass(frozen=True)
class MetricBinding:
    column: str
    aggregation: str
    rule: str


@dataclass(frozen=True)
class BindingContext:
    intent: DraftIntent
    title: str
    purpose: str
    variables: Tuple[str, ...]
    index: ColumnIndex

    @property
    def group_by(self) -> List[str]:
        return self.intent.group_by

    @property
    def is_distribution(self) -> bool:
        return self.intent.analysis_type == 'distribution'


BindingRule = Callable[[BindingContext], Optional[MetricBinding]]


def _earliest_keyword(text: str, keywords) -> Optional[str]:
    best = None
    for pattern, aggregation in keywords:
        match = pattern.search(text)
        if match and (best is None or match.start() < best[0]):
            best = (match.start(), aggregation)
    return best[1] if best else None


def keyword_aggregation(text: str) -> Optional[str]:
    return _earliest_keyword(text, AGGREGATION_KEYWORDS)


def default_aggregation(metadata: ColumnMetadata) -> str:
    """Aggregation used when nothing in the candidate asks for one."""
    if metadata.semantic_type == 'continuous':
        return 'sum'
    if 'avg' in metadata.allowed_aggregations:
        return 'avg'
    return metadata.allowed_aggregations[0]


def choose_aggregation(ctx: BindingContext, column: str, title_aggregation: Optional[str] = None) -> str:
    """Requested aggregation if legal, then title wording, then the column-type default."""
    metadata = ctx.index.metadata(column)
    allowed = metadata.allowed_aggregations
    for candidate in (
        ctx.intent.requested_aggregation,
        title_aggregation,
        keyword_aggregation(ctx.title),
        keyword_aggregation(ctx.purpose),
    ):
        if candidate is not None and candidate in allowed:
            return candidate
    return default_aggregation(metadata)


def rank_metric_columns(index: ColumnIndex, columns: Sequence[str]) -> List[Tuple[str, float]]:
    """
    Score metric columns: lexicon keyword + normalized variance + normalized magnitude.

    Returns (column, score) pairs, best first; ties keep column order.
    """
    variances = []
    magnitudes = []
    for name in columns:
        stats = index.profile(name).stats
        variances.append(stats.std_dev ** 2 if stats else 0.0)
        magnitudes.append(math.log10(abs(stats.max) + 1) if stats else 0.0)

    max_variance = max(variances, default=0.0) or 1.0
    max_magnitude = max(magnitudes, default=0.0) or 1.0

    scored = []
    for name, variance, magnitude in zip(columns, variances, magnitudes):
        lowered = name.lower()
        keyword = 1.0 if any(word in lowered for word in METRIC_KEYWORDS) else 0.0
        scored.append((name, keyword + variance / max_variance + magnitude / max_magnitude))

    return sorted(scored, key=lambda item: -item[1])


# --- Ladder -----------------------------------------------------------------

def bind_from_intent(ctx: BindingContext) -> Optional[MetricBinding]:
    """1. Explicit metric column from the candidate's own intent (already validated)."""
    column = ctx.intent.metric_column
    if not ctx.intent.explicit or column is None or not ctx.index.is_metric(column):
        return None
    return MetricBinding(column, choose_aggregation(ctx, column), 'intent')


def bind_from_title(ctx: BindingContext) -> Optional[MetricBinding]:
    """2. Metric named by the title's fixed phrase pattern."""
    match = match_title(ctx.title)
    if match is None:
        return None
    column = ctx.index.find_in_phrase(match.metric_phrase, ctx.index.metric_columns())
    if column is None:
        return None
    return MetricBinding(column, choose_aggregation(ctx, column, match.aggregation), 'title')


def bind_from_variables(ctx: BindingContext) -> Optional[MetricBinding]:
    """3. First metric-capable chart variable that is not a grouping key."""
    if ctx.is_distribution:
        return None
    for name in ctx.variables:
        column = ctx.index.resolve(name)
        if column and ctx.index.is_metric(column) and column not in ctx.group_by:
            return MetricBinding(column, choose_aggregation(ctx, column), 'variables')
    return None


def bind_by_ranking(ctx: BindingContext) -> Optional[MetricBinding]:
    """4. Best-scoring metric column outside the grouping keys."""
    if ctx.is_distribution:
        return None
    ranked = rank_metric_columns(ctx.index, ctx.index.metric_columns(exclude=ctx.group_by))
    if not ranked:
        return None
    column = ranked[0][0]
    return MetricBinding(column, choose_aggregation(ctx, column), 'ranking')


def bind_first_metric(ctx: BindingContext) -> Optional[MetricBinding]:
    """5. First metric-capable column in column order."""
    if ctx.is_distribution:
        return None
    columns = ctx.index.metric_columns()
    if not columns:
        return None
    return MetricBinding(columns[0], choose_aggregation(ctx, columns[0]), 'first_metric')


def bind_count_over_group(ctx: BindingContext) -> Optional[MetricBinding]:
    """6. Row count per group, only for distributions or metric-less datasets."""
    if not ctx.group_by:
        return None
    if ctx.is_distribution or not ctx.index.metric_columns():
        return MetricBinding(ctx.group_by[0], 'count', 'count_over_group')
    return None


BINDING_LADDER: Tuple[BindingRule, ...] = (
    bind_from_intent,
    bind_from_title,
    bind_from_variables,
    bind_by_ranking,
    bind_first_metric,
    bind_count_over_group,
)


def guard_count_hijack(binding: MetricBinding, ctx: BindingContext) -> MetricBinding:
    """
    Undo a count that contradicts an averaging or summation title.

    Never overrides an explicit intent metric.
    """
    if binding.rule == 'intent' or binding.aggregation != 'count':
        return binding

    implied = _earliest_keyword(ctx.title, HIJACK_KEYWORDS)
    if implied is None:
        return binding

    column = binding.column
    if not ctx.index.is_metric(column):
        ranked = rank_metric_columns(ctx.index, ctx.index.metric_columns(exclude=ctx.group_by))
        if not ranked:
            return binding
        column = ranked[0][0]

    if implied not in ctx.index.metadata(column).allowed_aggregations:
        return binding

    logger.info(f"Count hijack prevented: '{column}' bound with '{implied}' instead of 'count'")
    return MetricBinding(column, implied, 'count_guard')


def resolve_metric(ctx: BindingContext) -> Optional[MetricBinding]:
    """Run the ladder, then the count-hijack guard. None means the candidate is unbindable."""
    for rule in BINDING_LADDER:
        binding = rule(ctx)
        if binding is not None:
            logger.debug(f"Metric bound by rule '{binding.rule}': {binding.column} ({binding.aggregation})")
            return guard_count_hijack(binding, ctx)
    return None


def bind_relationship(ctx: BindingContext) -> MetricBinding:
    """Relationship charts plot the dependent variable raw; its aggregation is nominal."""
    dependent = ctx.intent.relationship[1]
    return MetricBinding(dependent, ctx.index.metadata(dependent).allowed_aggregations[0], 'relationship')


def resolve_display_name(ctx: BindingContext, binding: MetricBinding) -> str:
    if binding.rule == 'count_over_group':
        return COUNT_DISPLAY_NAME
    explicit = ctx.intent.display_name
    if not (explicit and ctx.intent.metric_column == binding.column and refers_to_column(explicit, binding.column)):
        return binding.column
    cleaned = clean_display_name(explicit, binding.aggregation)
    # Words that belong to the column name itself ("Max Speed") are never stripped
    if mentions_column(explicit, binding.column) and not mentions_column(cleaned, binding.column):
        return explicit
    return cleaned
