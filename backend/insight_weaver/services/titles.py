"""
Title synthesizer.

Chart titles and axis labels are regenerated from the validated intent so a
chart can never claim something other than what it aggregates.
"""
from typing import List, Optional, Union

from insight_weaver.core.schemas import AxisLabels, GroupedIntent, RelationshipIntent

AGGREGATION_WORDS = {
    'sum': 'Total',
    'avg': 'Average',
    'count': 'Count of',
    'median': 'Median',
    'min': 'Minimum',
    'max': 'Maximum',
}

# Leading words of a display name that claim an aggregation of their own.
DISPLAY_NAME_PREFIXES = {
    'total': 'sum', 'sum of': 'sum', 'sum': 'sum',
    'average': 'avg', 'avg': 'avg', 'mean': 'avg',
    'count of': 'count', 'number of': 'count', 'count': 'count',
    'median': 'median',
    'minimum': 'min', 'min': 'min',
    'maximum': 'max', 'max': 'max',
}
_PREFIXES_LONGEST_FIRST = sorted(DISPLAY_NAME_PREFIXES.items(), key=lambda item: -len(item[0]))

COUNT_DISPLAY_NAME = "Records"


def _tokens(text: str) -> List[str]:
    return text.split()


def join_without_overlap(prefix: str, phrase: str) -> str:
    """
    Join two phrases, dropping words of `phrase` that repeat the end of `prefix`.

    >>> join_without_overlap("Average", "Average Revenue")
    'Average Revenue'
    """
    head, tail = _tokens(prefix), _tokens(phrase)
    for size in range(min(len(head), len(tail)), 0, -1):
        if [word.lower() for word in head[-size:]] == [word.lower() for word in tail[:size]]:
            return " ".join(head + tail[size:])
    return " ".join(head + tail)


def clean_display_name(display_name: str, aggregation: str) -> str:
    """Strip a leading aggregation word that contradicts `aggregation`."""
    name = " ".join(display_name.split())
    lowered = name.lower()
    for phrase, implied in _PREFIXES_LONGEST_FIRST:
        if lowered.startswith(phrase + " "):
            if implied != aggregation:
                stripped = name[len(phrase):].strip()
                return stripped or name
            return name
    return name


def synthesize_title(intent: Union[GroupedIntent, RelationshipIntent]) -> str:
    if isinstance(intent, RelationshipIntent):
        variables = intent.relationship_variables
        return f"{variables.independent} vs {variables.dependent}"
    metric = intent.metric
    measured = join_without_overlap(AGGREGATION_WORDS[metric.aggregation], metric.display_name)
    return f"{measured} by {intent.group_by[0]}"


def implied_aggregation(title: str) -> Optional[str]:
    """Aggregation announced by the first words of a synthesized title, if any."""
    lowered = title.lower()
    for aggregation, word in sorted(AGGREGATION_WORDS.items(), key=lambda item: -len(item[1])):
        if lowered.startswith(word.lower() + " "):
            return aggregation
    return None


def derive_axis_labels(intent: Union[GroupedIntent, RelationshipIntent]) -> AxisLabels:
    """Axis labels taken from the validated intent only."""
    if isinstance(intent, RelationshipIntent):
        variables = intent.relationship_variables
        return AxisLabels(x=variables.independent, y=variables.dependent)
    metric = intent.metric
    return AxisLabels(
        x=intent.group_by[0],
        y=join_without_overlap(AGGREGATION_WORDS[metric.aggregation], metric.display_name),
    )
