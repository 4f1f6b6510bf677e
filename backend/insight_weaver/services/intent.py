"""
Intent extractor and validator.

Turns an untrusted CandidateChartSpec into a DraftIntent whose columns,
grouping keys, relationship variables and chart type are consistent with
the dataset's column metadata. Each rule either repairs the draft (and
records a correction) or rejects the candidate.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from insight_weaver.core.errors import CandidateRejected
from insight_weaver.core.sanitization import sanitize_for_logging
from insight_weaver.core.schemas import CandidateChartSpec
from insight_weaver.services.metadata import ColumnIndex

logger = logging.getLogger(__name__)

STAGE = "intent_validation"

# First entry is the auto-correction target.
CHART_COMPATIBILITY = {
    'relationship': ['scatter', 'bar'],
    'distribution': ['pie', 'bar'],
    'trend': ['line', 'area'],
    'comparison': ['bar', 'table'],
    'correlation': ['scatter'],
}
RELATIONSHIP_TYPES = {'relationship', 'correlation'}

CHART_TYPE_ALIASES = {
    'bar': 'bar', 'column': 'bar', 'histogram': 'bar', 'horizontal bar': 'bar',
    'stacked bar': 'bar', 'grouped bar': 'bar',
    'line': 'line', 'area': 'area',
    'pie': 'pie', 'donut': 'pie', 'doughnut': 'pie',
    'scatter': 'scatter', 'scatterplot': 'scatter', 'scatter plot': 'scatter', 'bubble': 'scatter',
    'table': 'table',
}
AGGREGATION_ALIASES = {
    'avg': 'avg', 'average': 'avg', 'mean': 'avg',
    'sum': 'sum', 'total': 'sum',
    'count': 'count', 'frequency': 'count', 'distribution': 'count', 'number': 'count',
    'median': 'median',
    'min': 'min', 'minimum': 'min',
    'max': 'max', 'maximum': 'max',
}
ANALYSIS_TYPE_ALIASES = {
    'comparison': 'comparison', 'compare': 'comparison', 'ranking': 'comparison',
    'distribution': 'distribution', 'composition': 'distribution', 'breakdown': 'distribution',
    'relationship': 'relationship',
    'trend': 'trend', 'time series': 'trend', 'timeseries': 'trend',
    'correlation': 'correlation',
}

_BY = r'\s+(?:by|per|across)\s+'
TITLE_PATTERNS = [
    (re.compile(rf'^(?:average|avg|mean)\s+(?:of\s+)?(?P<metric>.+?){_BY}(?P<group>.+)$', re.IGNORECASE), 'avg'),
    (re.compile(rf'^(?:total|sum)\s+(?:of\s+)?(?P<metric>.+?){_BY}(?P<group>.+)$', re.IGNORECASE), 'sum'),
    (re.compile(rf'^median\s+(?:of\s+)?(?P<metric>.+?){_BY}(?P<group>.+)$', re.IGNORECASE), 'median'),
    (re.compile(rf'^(?:minimum|min)\s+(?:of\s+)?(?P<metric>.+?){_BY}(?P<group>.+)$', re.IGNORECASE), 'min'),
    (re.compile(rf'^(?:maximum|max)\s+(?:of\s+)?(?P<metric>.+?){_BY}(?P<group>.+)$', re.IGNORECASE), 'max'),
    (re.compile(rf'^(?:count|number)\s+of\s+(?P<metric>.+?){_BY}(?P<group>.+)$', re.IGNORECASE), 'count'),
    (re.compile(rf'^(?P<metric>.+?){_BY}(?P<group>.+)$', re.IGNORECASE), None),
]
RELATIONSHIP_TITLE = re.compile(r'^(?P<independent>.+?)\s+(?:vs\.?|versus)\s+(?P<dependent>.+)$', re.IGNORECASE)


@dataclass(frozen=True)
class TitleMatch:
    metric_phrase: str
    group_phrase: str
    aggregation: Optional[str]


@dataclass
class DraftIntent:
    """Working copy of an intent while it is being repaired."""
    analysis_type: str
    chart_type: Optional[str]
    metric_column: Optional[str] = None
    display_name: Optional[str] = None
    requested_aggregation: Optional[str] = None
    group_by: List[str] = field(default_factory=list)
    relationship: Optional[Tuple[str, str]] = None
    relationship_declared: bool = False
    explicit: bool = False
    corrections: List[str] = field(default_factory=list)

    @property
    def is_relationship(self) -> bool:
        return self.analysis_type in RELATIONSHIP_TYPES


def _vocabulary_key(value: str) -> str:
    key = re.sub(r'[\s_\-]+', ' ', value.lower()).strip()
    return re.sub(r'\s*chart$', '', key)


def normalize_chart_type(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return CHART_TYPE_ALIASES.get(_vocabulary_key(value))


def normalize_aggregation(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return AGGREGATION_ALIASES.get(_vocabulary_key(value))


def normalize_analysis_type(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return ANALYSIS_TYPE_ALIASES.get(_vocabulary_key(value))


def infer_analysis_type(text: str, chart_type: Optional[str]) -> str:
    """Best guess at the analysis type from title/purpose wording and chart type."""
    lowered = text.lower()
    if re.search(r'\bcorrelat', lowered) and chart_type in (None, 'scatter'):
        return 'correlation'
    if chart_type == 'scatter' or re.search(r'\b(?:vs\.?|versus|relationship)\b', lowered):
        return 'relationship'
    if chart_type == 'pie':
        return 'distribution'
    if chart_type in ('line', 'area'):
        return 'trend'
    if re.search(r'\b(?:distribution|share|breakdown|composition|proportion)\b', lowered):
        return 'distribution'
    if chart_type is None and re.search(r'\b(?:trend|over time|monthly|weekly|daily|yearly)\b', lowered):
        return 'trend'
    return 'comparison'


def match_title(text: str) -> Optional[TitleMatch]:
    """Apply the fixed "Average X by Y" / "Total X by Y" / "X by Y" patterns."""
    cleaned = text.strip().rstrip('.!?:')
    if not cleaned:
        return None
    for pattern, aggregation in TITLE_PATTERNS:
        match = pattern.match(cleaned)
        if match:
            return TitleMatch(
                metric_phrase=match.group('metric').strip(),
                group_phrase=match.group('group').strip(),
                aggregation=aggregation,
            )
    return None


def _relationship_from_title(title: str, index: ColumnIndex) -> Optional[Tuple[str, str]]:
    match = RELATIONSHIP_TITLE.match(title.strip())
    if not match:
        return None
    metrics = index.metric_columns()
    independent = index.find_in_phrase(match.group('independent'), metrics)
    dependent = index.find_in_phrase(match.group('dependent'), metrics)
    if independent and dependent and independent != dependent:
        return independent, dependent
    return None


def _relationship_from_variables(variables: List[str], index: ColumnIndex) -> Optional[Tuple[str, str]]:
    found: List[str] = []
    for name in variables:
        resolved = index.resolve(name)
        if resolved and index.is_metric(resolved) and resolved not in found:
            found.append(resolved)
    if len(found) >= 2:
        return found[0], found[1]
    return None


def extract_intent(candidate: CandidateChartSpec, index: ColumnIndex) -> DraftIntent:
    """Build a draft from the candidate's partial intent, or from its wording."""
    chart_type = normalize_chart_type(candidate.chart_type)
    text = f"{candidate.title} {candidate.purpose}"
    partial = candidate.analytical_intent

    if partial is not None:
        chart_type = normalize_chart_type(partial.chart_type) or chart_type
        metric = partial.metric
        variables = partial.relationship_variables
        relationship = None
        if variables is not None and variables.independent and variables.dependent:
            relationship = (variables.independent, variables.dependent)
        return DraftIntent(
            analysis_type=normalize_analysis_type(partial.analysis_type) or infer_analysis_type(text, chart_type),
            chart_type=chart_type,
            metric_column=metric.column if metric else None,
            display_name=metric.display_name if metric else None,
            requested_aggregation=(metric.aggregation if metric and metric.aggregation else candidate.aggregation),
            group_by=list(partial.group_by),
            relationship=relationship,
            relationship_declared=variables is not None,
            explicit=True,
        )

    draft = DraftIntent(
        analysis_type=infer_analysis_type(text, chart_type),
        chart_type=chart_type,
        requested_aggregation=candidate.aggregation,
    )

    relationship = _relationship_from_title(candidate.title, index)
    if relationship is None and draft.is_relationship:
        relationship = _relationship_from_variables(candidate.variables, index)
    if relationship is not None:
        draft.relationship = relationship
        draft.relationship_declared = True
        if not draft.is_relationship:
            draft.analysis_type = 'relationship'
        return draft

    if draft.is_relationship and chart_type == 'scatter':
        # A scatter without two numeric variables reads as its wording; rule 5 fixes the chart.
        draft.analysis_type = infer_analysis_type(text, None)

    match = match_title(candidate.title) or match_title(candidate.purpose)
    if match:
        group = index.find_in_phrase(match.group_phrase, index.grouping_columns()) or index.find_in_phrase(match.group_phrase)
        if group:
            draft.group_by = [group]
    return draft


def _reject(candidate: CandidateChartSpec, reason: str) -> CandidateRejected:
    logger.warning(f"Rejected candidate '{sanitize_for_logging(candidate.title)}': {reason}")
    return CandidateRejected(reason, stage=STAGE)


def validate_intent(draft: DraftIntent, candidate: CandidateChartSpec, index: ColumnIndex) -> DraftIntent:
    """
    Apply the validation rules in order, repairing the draft in place.

    Raises:
        CandidateRejected: the candidate cannot be repaired.
    """
    corrections = draft.corrections

    # 1. Explicit metric must be an aggregatable column; otherwise the binder decides.
    if draft.metric_column is not None:
        resolved = index.resolve(draft.metric_column)
        if resolved is None or not index.is_metric(resolved):
            corrections.append(
                f"Metric '{draft.metric_column}' is not an aggregatable column; the metric will be re-bound"
            )
            draft.metric_column = None
            draft.display_name = None
        else:
            draft.metric_column = resolved

    # 2. Aggregation must be legal for the metric column.
    if draft.requested_aggregation is not None:
        normalized = normalize_aggregation(draft.requested_aggregation)
        if normalized is None:
            corrections.append(f"Unknown aggregation '{draft.requested_aggregation}' ignored")
        draft.requested_aggregation = normalized
    if draft.metric_column is not None and draft.requested_aggregation is not None:
        allowed = index.metadata(draft.metric_column).allowed_aggregations
        if draft.requested_aggregation not in allowed:
            replacement = allowed[0]
            corrections.append(
                f"Aggregation '{draft.requested_aggregation}' is not valid for {draft.metric_column}; "
                f"using '{replacement}'"
            )
            draft.requested_aggregation = replacement

    # 3. Grouping keys must exist and be groupable; bad entries are dropped individually.
    kept: List[str] = []
    for name in draft.group_by:
        resolved = index.resolve(name)
        if resolved is not None and index.is_grouping(resolved):
            if resolved not in kept:
                kept.append(resolved)
        else:
            corrections.append(f"Grouping column '{name}' dropped: not a valid grouping column")
    draft.group_by = kept

    if draft.relationship_declared and not draft.group_by and draft.chart_type == 'pie':
        raise _reject(candidate, "a pie chart cannot express a two-variable relationship")

    if draft.relationship is not None and draft.group_by:
        if draft.is_relationship:
            corrections.append("Grouping columns ignored for a relationship chart")
            draft.group_by = []
        else:
            corrections.append("Relationship variables ignored for a grouped chart")
            draft.relationship = None
    elif draft.relationship is not None and not draft.is_relationship:
        corrections.append(f"Analysis type '{draft.analysis_type}' changed to 'relationship'")
        draft.analysis_type = 'relationship'

    if not draft.is_relationship and not draft.group_by:
        for name in candidate.variables:
            resolved = index.resolve(name)
            if resolved and index.is_grouping(resolved) and resolved != draft.metric_column:
                draft.group_by = [resolved]
                corrections.append(f"Grouping column '{resolved}' taken from the chart variables")
                break

    # 4. Relationships need two distinct metric-capable variables.
    if draft.is_relationship:
        if draft.relationship is None:
            raise _reject(candidate, "relationship analysis without two relationship variables")
        independent = index.resolve(draft.relationship[0])
        dependent = index.resolve(draft.relationship[1])
        if not (index.is_metric(independent) and index.is_metric(dependent)) or independent == dependent:
            raise _reject(
                candidate,
                f"relationship variables {draft.relationship[0]!r} and {draft.relationship[1]!r} "
                f"are not two distinct numeric columns",
            )
        draft.relationship = (independent, dependent)
    elif not draft.group_by:
        raise _reject(candidate, "no valid grouping column")

    # 5. Chart type must be able to show the analysis type.
    compatible = CHART_COMPATIBILITY[draft.analysis_type]
    if draft.chart_type not in compatible:
        if draft.chart_type is None:
            corrections.append(f"No usable chart type given; using '{compatible[0]}'")
        else:
            corrections.append(
                f"Chart type '{draft.chart_type}' cannot show a {draft.analysis_type} analysis; "
                f"using '{compatible[0]}'"
            )
        draft.chart_type = compatible[0]

    return draft
