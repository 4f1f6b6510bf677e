"""
Column profiler and cleaner.

Turns a raw header + rows grid into a cleaned, de-duplicated frame, one
immutable ColumnProfile per column and a CleaningReport.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from insight_weaver.core.config import Settings, get_settings
from insight_weaver.core.errors import UnrecoverableInputError
from insight_weaver.core.performance import track_performance
from insight_weaver.core.sanitization import strip_control_characters
from insight_weaver.core.schemas import (
    CleaningReport,
    ColumnProfile,
    ColumnSummary,
    NumericStats,
    OutlierCounts,
)
from insight_weaver.services.statistics import count_iqr_outliers, count_zscore_outliers

logger = logging.getLogger(__name__)

NUMERIC_NOISE = re.compile(r'[$€£¥₹,%\s]')
NUMBER_PATTERN = re.compile(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$')
ACCOUNTING_NEGATIVE = re.compile(r'^\((.+)\)$')
YEAR_NAME = re.compile(r'\byear\b', re.IGNORECASE)

DATE_PATTERNS = (
    re.compile(r'^\d{1,4}[-/.]\d{1,2}[-/.]\d{1,4}$'),
    re.compile(r'^\d{4}-\d{2}-\d{2}[T ]\d{1,2}:\d{2}'),
    re.compile(r'^\d{4}[-/]\d{1,2}$'),
    re.compile(r'^(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?\s+\d{4}$', re.IGNORECASE),
)

BOOLEAN_VALUES = {"true", "false", "yes", "no", "1", "0"}
TRUE_VALUES = {"true", "yes", "1"}

# Ordered from most negative (-2) to most positive (+2)
POLARITY_KEYWORDS = {
    "strongly disagree": -2, "very dissatisfied": -2, "very unlikely": -2,
    "very poor": -2, "never": -2, "not at all": -2,
    "disagree": -1, "dissatisfied": -1, "unlikely": -1, "poor": -1,
    "rarely": -1, "seldom": -1, "bad": -1,
    "neutral": 0, "neither": 0, "sometimes": 0, "undecided": 0, "not sure": 0,
    "agree": 1, "satisfied": 1, "likely": 1, "good": 1, "often": 1, "usually": 1,
    "strongly agree": 2, "very satisfied": 2, "very likely": 2,
    "excellent": 2, "always": 2, "very good": 2,
}
# Longest phrases first so "strongly agree" wins over "agree"
_POLARITY_PATTERNS = [
    (re.compile(rf"\b{re.escape(keyword)}\b"), score)
    for keyword, score in sorted(POLARITY_KEYWORDS.items(), key=lambda item: -len(item[0]))
]


@dataclass(frozen=True)
class CleanedDataset:
    """Result of one cleaning pass. The frame holds cleaned strings only."""
    columns: List[str]
    frame: pd.DataFrame
    profiles: List[ColumnProfile]
    report: CleaningReport

    @property
    def row_count(self) -> int:
        return len(self.frame)

    def profile(self, column: str) -> ColumnProfile:
        return self.profiles[self.columns.index(column)]


def clean_cell(value: Any) -> str:
    """Render a raw cell as trimmed text without control characters."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return strip_control_characters(str(value)).strip()


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a possibly formatted number such as "$1,200", "(35)" or "12%".

    Returns None for anything that is not a finite number, including the
    "nan"/"inf" spellings float() would otherwise accept.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    text = clean_cell(value)
    if not text:
        return None

    negative = False
    match = ACCOUNTING_NEGATIVE.match(text)
    if match:
        text = match.group(1)
        negative = True

    text = NUMERIC_NOISE.sub('', text)
    if not NUMBER_PATTERN.match(text):
        return None

    number = float(text)
    if not math.isfinite(number):
        return None
    return -number if negative else number


def format_number(number: float) -> str:
    """Canonical text for a cleaned numeric cell."""
    if number.is_integer() and abs(number) < 1e15:
        return str(int(number))
    return str(number)


def is_date_like(value: str) -> bool:
    return any(pattern.match(value) for pattern in DATE_PATTERNS)


def extract_numeric_prefix(value: str) -> Optional[int]:
    """Numeric prefix of labels like "1 (Strongly Disagree)" or "2. Disagree"."""
    match = re.match(r'^(\d+)\s*[\(\.\-:\s]', value.strip())
    if match:
        return int(match.group(1))
    return None


def get_polarity_score(value: str) -> Optional[int]:
    lowered = value.lower().strip()
    if lowered in POLARITY_KEYWORDS:
        return POLARITY_KEYWORDS[lowered]
    for pattern, score in _POLARITY_PATTERNS:
        if pattern.search(lowered):
            return score
    return None


def detect_rating_scale(distinct_values: List[str]) -> Tuple[bool, Optional[List[str]]]:
    """
    Detect a rating/Likert scale among 2-10 distinct text values.

    Returns (is_scale, levels ordered from lowest to highest).
    """
    if len(distinct_values) < 2 or len(distinct_values) > 10:
        return False, None

    prefixed = [(value, extract_numeric_prefix(value)) for value in distinct_values]
    prefixed = [(value, number) for value, number in prefixed if number is not None]
    if len(prefixed) == len(distinct_values):
        return True, [value for value, _ in sorted(prefixed, key=lambda item: item[1])]

    scored = [(value, get_polarity_score(value)) for value in distinct_values]
    scored = [(value, score) for value, score in scored if score is not None]
    if len(scored) == len(distinct_values) and len({score for _, score in scored}) > 1:
        return True, [value for value, _ in sorted(scored, key=lambda item: item[1])]

    return False, None


def _is_year_column(name: str, numbers: List[float]) -> bool:
    if not numbers or not all(number.is_integer() for number in numbers):
        return False
    if YEAR_NAME.search(name):
        return True
    in_range = sum(1 for number in numbers if 1900 <= number <= 2100)
    return in_range >= 0.8 * len(numbers)


def infer_semantic_type(
    name: str,
    values: List[str],
    settings: Optional[Settings] = None,
) -> Tuple[str, bool, Optional[List[str]]]:
    """
    Classify a column from its non-empty cleaned values.

    Returns (semantic_type, is_numeric, ordered_levels).
    """
    settings = settings or get_settings()
    if not values:
        return 'text', False, None

    sample = values[:settings.type_sample_size]
    numbers = [number for number in (parse_number(value) for value in sample) if number is not None]

    if len(numbers) * 2 > len(sample):
        if _is_year_column(name, numbers):
            return 'date', False, None
        distinct = len(set(numbers))
        integral = all(number.is_integer() for number in numbers)
        if integral and distinct <= settings.ordinal_max_unique and distinct * 2 <= len(numbers):
            return 'ordinal', True, None
        return 'continuous', True, None

    if sum(1 for value in sample if is_date_like(value)) * 2 > len(sample):
        return 'date', False, None

    lowered = [value.lower() for value in sample]
    if sum(1 for value in lowered if value in BOOLEAN_VALUES) >= 0.8 * len(sample) and len(set(lowered)) <= 3:
        return 'boolean', False, None

    distinct_values = list(dict.fromkeys(sample))
    is_scale, levels = detect_rating_scale(distinct_values)
    if is_scale:
        return 'ordinal', False, levels

    ratio = len(distinct_values) / len(sample)
    if len(distinct_values) <= settings.categorical_max_unique or ratio <= settings.categorical_max_unique_ratio:
        return 'categorical', False, None
    return 'text', False, None


def normalize_value(text: str, semantic_type: str, is_numeric: bool) -> str:
    """Rewrite a cleaned cell into the canonical form for its column type."""
    if not text:
        return text
    if is_numeric:
        number = parse_number(text)
        return text if number is None else format_number(number)
    if semantic_type == 'boolean':
        lowered = text.lower()
        if lowered in BOOLEAN_VALUES:
            return 'true' if lowered in TRUE_VALUES else 'false'
    return text


def normalize_headers(header: Sequence[Any]) -> List[str]:
    """Clean header names, name blank ones and make every name unique (case-insensitively)."""
    names: List[str] = []
    seen: Dict[str, int] = {}
    for position, raw in enumerate(header):
        name = re.sub(r'\s+', ' ', "" if raw is None else str(raw))
        name = clean_cell(name) or f"Column {position + 1}"
        key = name.lower()
        if key in seen:
            seen[key] += 1
            name = f"{name} ({seen[key]})"
        else:
            seen[key] = 1
        names.append(name)
    return names


def _fit_row(row: Sequence[Any], width: int) -> List[str]:
    cells = ["" if cell is None else str(cell) for cell in list(row)[:width]]
    return cells + [""] * (width - len(cells))


def _profile_column(
    name: str,
    position: int,
    series: pd.Series,
    semantic_type: str,
    is_numeric: bool,
    levels: Optional[List[str]],
) -> ColumnProfile:
    present = series[series != '']
    stats = None
    outliers = None

    if is_numeric:
        numbers = present.map(parse_number).dropna().to_numpy(dtype=float)
        if len(numbers):
            stats = NumericStats(
                min=round(float(numbers.min()), 2),
                max=round(float(numbers.max()), 2),
                mean=round(float(numbers.mean()), 2),
                median=round(float(np.median(numbers)), 2),
                std_dev=round(float(numbers.std()), 2),
            )
            if semantic_type == 'continuous':
                outliers = OutlierCounts(
                    zscore=count_zscore_outliers(numbers),
                    iqr=count_iqr_outliers(numbers),
                )

    return ColumnProfile(
        name=name,
        index=position,
        semantic_type=semantic_type,
        is_numeric=is_numeric,
        null_count=int(len(series) - len(present)),
        unique_count=int(present.nunique()),
        sample_values=present.drop_duplicates().head(5).tolist(),
        stats=stats,
        outliers=outliers,
        ordered_levels=levels,
    )


@track_performance("clean_dataset")
def clean_dataset(rows: Sequence[Sequence[Any]], settings: Optional[Settings] = None) -> CleanedDataset:
    """
    Clean and profile a raw dataset whose first row is the header.

    Raises:
        UnrecoverableInputError: fewer than a header plus one data row, or
            nothing left after removing empty and duplicate rows.
    """
    settings = settings or get_settings()

    if len(rows) < 2:
        raise UnrecoverableInputError("A header row and at least one data row are required")

    columns = normalize_headers(rows[0])
    if not columns:
        raise UnrecoverableInputError("The header row has no columns")

    raw_rows = [_fit_row(row, len(columns)) for row in rows[1:]]
    raw_frame = pd.DataFrame(raw_rows, columns=columns, dtype=object)
    frame = raw_frame.map(clean_cell)

    empty_rows = frame.eq('').all(axis=1)
    frame = frame.loc[~empty_rows].reset_index(drop=True).copy()
    raw_frame = raw_frame.loc[~empty_rows].reset_index(drop=True)
    if frame.empty:
        raise UnrecoverableInputError("Every data row is empty")

    nulls_handled = int(frame.eq('').sum().sum())

    column_types = {
        name: infer_semantic_type(name, frame[name][frame[name] != ''].tolist(), settings)
        for name in columns
    }
    for name, (semantic_type, is_numeric, _) in column_types.items():
        frame[name] = frame[name].map(
            lambda value, kind=semantic_type, numeric=is_numeric: normalize_value(value, kind, numeric)
        )

    corrections = int((frame != raw_frame).sum().sum())

    duplicate_rows = frame.duplicated(keep='first')
    duplicates_removed = int(duplicate_rows.sum())
    frame = frame.loc[~duplicate_rows].reset_index(drop=True)

    profiles = [
        _profile_column(name, position, frame[name], *column_types[name])
        for position, name in enumerate(columns)
    ]

    report = CleaningReport(
        total_rows=len(raw_rows),
        cleaned_rows=len(frame),
        removed_rows=len(raw_rows) - len(frame),
        nulls_handled=nulls_handled,
        duplicates_removed=duplicates_removed,
        data_type_corrections=corrections,
        outliers_flagged=sum(profile.outliers.iqr for profile in profiles if profile.outliers),
        columns_analyzed=[
            ColumnSummary(
                name=profile.name,
                type=profile.semantic_type,
                null_count=profile.null_count,
                unique_count=profile.unique_count,
            )
            for profile in profiles
        ],
    )

    logger.info(
        f"Cleaned dataset: kept {report.cleaned_rows}/{report.total_rows} rows, "
        f"{len(columns)} columns, {duplicates_removed} duplicates, {nulls_handled} nulls"
    )
    return CleanedDataset(columns=columns, frame=frame, profiles=profiles, report=report)
