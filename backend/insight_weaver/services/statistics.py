"""
Advanced statistics annotator.

Advisory statistics for aggregated groups: confidence band, median,
Fisher–Pearson skewness and IQR outliers. Annotations never change a
point's value or the bound aggregation.
"""
import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from insight_weaver.core.config import Settings, get_settings
from insight_weaver.core.schemas import AggregatedPoint, ConfidenceInterval, OutlierInfo

logger = logging.getLogger(__name__)

Z_SCORES = {0.90: 1.645, 0.95: 1.96, 0.99: 2.576}
ZSCORE_OUTLIER_THRESHOLD = 3.0
IQR_FACTOR = 1.5


def count_zscore_outliers(values: Sequence[float], threshold: float = ZSCORE_OUTLIER_THRESHOLD) -> int:
    """Values further than `threshold` population standard deviations from the mean."""
    numbers = np.asarray(values, dtype=float)
    if len(numbers) < 2:
        return 0
    std = numbers.std()
    if std == 0:
        return 0
    return int((np.abs(numbers - numbers.mean()) > threshold * std).sum())


def iqr_fences(values: Sequence[float]) -> Tuple[float, float]:
    """Lower and upper 1.5×IQR fences (linear-interpolated quartiles)."""
    q1, q3 = np.percentile(np.asarray(values, dtype=float), [25, 75])
    spread = q3 - q1
    return float(q1 - IQR_FACTOR * spread), float(q3 + IQR_FACTOR * spread)


def count_iqr_outliers(values: Sequence[float]) -> int:
    numbers = np.asarray(values, dtype=float)
    if len(numbers) < 4:
        return 0
    lower, upper = iqr_fences(numbers)
    return int(((numbers < lower) | (numbers > upper)).sum())


def confidence_interval(values: Sequence[float], level: float = 0.95) -> Optional[ConfidenceInterval]:
    """Normal-approximation interval around the mean using the sample standard error."""
    numbers = np.asarray(values, dtype=float)
    if len(numbers) < 2:
        return None
    z = Z_SCORES.get(level, Z_SCORES[0.95])
    mean = float(numbers.mean())
    standard_error = float(numbers.std(ddof=1)) / math.sqrt(len(numbers))
    margin = z * standard_error
    return ConfidenceInterval(lower=round(mean - margin, 2), upper=round(mean + margin, 2), level=level)


def skewness(values: Sequence[float]) -> float:
    """Fisher–Pearson coefficient g1 = m3 / m2^1.5 (population moments)."""
    numbers = np.asarray(values, dtype=float)
    if len(numbers) < 3:
        return 0.0
    deviations = numbers - numbers.mean()
    m2 = float(np.mean(deviations ** 2))
    if m2 == 0:
        return 0.0
    m3 = float(np.mean(deviations ** 3))
    return m3 / m2 ** 1.5


def outlier_info(values: Sequence[float], warning_percent: float) -> OutlierInfo:
    numbers = np.asarray(values, dtype=float)
    lower, upper = iqr_fences(numbers)
    count = count_iqr_outliers(numbers)
    percentage = round(100.0 * count / len(numbers), 2)
    warning = None
    if percentage > warning_percent:
        warning = (
            f"{count} of {len(numbers)} values ({percentage:.0f}%) fall outside the IQR fences; "
            f"the average may be distorted"
        )
    return OutlierInfo(
        count=count,
        percentage=percentage,
        lower_fence=round(lower, 2),
        upper_fence=round(upper, 2),
        warning=warning,
    )


def annotate_point(
    point: AggregatedPoint,
    values: Sequence[float],
    settings: Optional[Settings] = None,
) -> AggregatedPoint:
    """Attach advisory statistics to an averaged point with enough samples."""
    settings = settings or get_settings()
    if len(values) < settings.min_annotation_values:
        return point

    coefficient = round(skewness(values), 3)
    skew_warning = None
    if abs(coefficient) > settings.skewness_threshold:
        direction = "right" if coefficient > 0 else "left"
        skew_warning = (
            f"Values are {direction}-skewed (skewness {coefficient:.2f}); "
            f"the median is a more representative center than the mean"
        )
        logger.debug(f"Skew warning on group '{point.full_label}': {coefficient:.2f}")

    return point.model_copy(update={
        'median': round(float(np.median(np.asarray(values, dtype=float))), 2),
        'confidence_interval': confidence_interval(values),
        'skewness': coefficient,
        'skewness_warning': skew_warning,
        'recommend_median': skew_warning is not None,
        'outlier_info': outlier_info(values, settings.outlier_warning_percent),
    })
