"""
Column metadata builder.

Derives each column's roles and legal aggregations from its profile, and
provides the case-insensitive column index every later stage resolves
names through.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional

from insight_weaver.core.schemas import ColumnMetadata, ColumnProfile

logger = logging.getLogger(__name__)

# Priority order: the first entry is what an illegal aggregation is replaced with.
FULL_AGGREGATIONS = ['avg', 'sum', 'count', 'median', 'min', 'max']
NUMERIC_ORDINAL_AGGREGATIONS = ['avg', 'median', 'count', 'sum']
COUNT_ONLY = ['count']

GROUPING_TYPES = {'categorical', 'ordinal', 'boolean', 'date'}


def build_column_metadata(profile: ColumnProfile) -> ColumnMetadata:
    """Role and aggregation policy for one column."""
    semantic_type = profile.semantic_type
    if semantic_type == 'continuous':
        allowed = FULL_AGGREGATIONS
        is_metric = True
    elif semantic_type == 'ordinal' and profile.is_numeric:
        allowed = NUMERIC_ORDINAL_AGGREGATIONS
        is_metric = True
    else:
        # Labels are counted, never averaged. Non-numeric ordinals behave like categories.
        allowed = COUNT_ONLY
        is_metric = False

    return ColumnMetadata(
        column=profile.name,
        semantic_type=semantic_type,
        is_metric_variable=is_metric,
        is_grouping_variable=semantic_type in GROUPING_TYPES,
        allowed_aggregations=list(allowed),
    )


def _squash(name: str) -> str:
    return re.sub(r'[^a-z0-9]', '', name.lower())


def refers_to_column(phrase: str, column: str) -> bool:
    """True when one of the two names contains the other, ignoring case and punctuation."""
    left, right = _squash(phrase), _squash(column)
    return bool(left and right) and (left in right or right in left)


def mentions_column(phrase: str, column: str) -> bool:
    """True when `phrase` carries the whole column name."""
    squashed = _squash(column)
    return bool(squashed) and squashed in _squash(phrase)


class ColumnIndex:
    """Ordered, case-insensitive lookup of column metadata and profiles."""

    def __init__(self, profiles: Iterable[ColumnProfile]):
        self._profiles: Dict[str, ColumnProfile] = {}
        self._metadata: Dict[str, ColumnMetadata] = {}
        self._order: List[str] = []
        for profile in profiles:
            self._profiles[profile.name] = profile
            self._metadata[profile.name] = build_column_metadata(profile)
            self._order.append(profile.name)
        self._by_lower = {name.lower(): name for name in self._order}
        self._by_squashed: Dict[str, str] = {}
        for name in self._order:
            self._by_squashed.setdefault(_squash(name), name)

    @property
    def columns(self) -> List[str]:
        return list(self._order)

    def resolve(self, name: Optional[str]) -> Optional[str]:
        """Canonical column name for `name`, matching case- and punctuation-insensitively."""
        if not name:
            return None
        text = name.strip()
        if text in self._metadata:
            return text
        if text.lower() in self._by_lower:
            return self._by_lower[text.lower()]
        squashed = _squash(text)
        if squashed:
            return self._by_squashed.get(squashed)
        return None

    def metadata(self, name: str) -> ColumnMetadata:
        return self._metadata[name]

    def profile(self, name: str) -> ColumnProfile:
        return self._profiles[name]

    def all_metadata(self) -> List[ColumnMetadata]:
        return [self._metadata[name] for name in self._order]

    def is_metric(self, name: Optional[str]) -> bool:
        return name in self._metadata and self._metadata[name].is_metric_variable

    def is_grouping(self, name: Optional[str]) -> bool:
        return name in self._metadata and self._metadata[name].is_grouping_variable

    def metric_columns(self, exclude: Iterable[str] = ()) -> List[str]:
        excluded = set(exclude)
        return [name for name in self._order if self.is_metric(name) and name not in excluded]

    def grouping_columns(self) -> List[str]:
        return [name for name in self._order if self.is_grouping(name)]

    def has_date_column(self) -> bool:
        return any(self._metadata[name].semantic_type == 'date' for name in self._order)

    def find_in_phrase(self, phrase: str, candidates: Optional[Iterable[str]] = None) -> Optional[str]:
        """
        Column named by a free-text phrase.

        Exact resolution wins; otherwise the longest column name that occurs
        in the phrase as whole words, ties broken by column order.
        """
        pool = list(candidates) if candidates is not None else self._order
        exact = self.resolve(phrase)
        if exact is not None and exact in pool:
            return exact

        lowered = f" {re.sub(r'[^a-z0-9]+', ' ', phrase.lower()).strip()} "
        best = None
        for name in pool:
            words = re.sub(r'[^a-z0-9]+', ' ', name.lower()).strip()
            if words and f" {words} " in lowered:
                if best is None or len(words) > len(re.sub(r'[^a-z0-9]+', ' ', best.lower()).strip()):
                    best = name
        return best
