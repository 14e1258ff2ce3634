"""Trend detection over a usage history.

The series is smoothed with a moving average and fitted with ordinary least
squares over the sample index. R-squared of the fit is reported as the
confidence of the detected direction.
"""
from typing import List, Any, Callable, Optional, Sequence

from models import TrendResult
from normalize.math import moving_average, avg, percent_change

SMOOTHING_WINDOW = 6
SLOPE_EPSILON = 0.01

DIRECTION_INCREASING = 'increasing'
DIRECTION_DECREASING = 'decreasing'
DIRECTION_STABLE = 'stable'
DIRECTION_FLUCTUATING = 'fluctuating'
INSUFFICIENT_DATA = 'insufficient_data'

# utilization pattern thresholds (percent change between head and tail)
PATTERN_CHANGE_PERCENT = 10.0
PATTERN_STABLE_PERCENT = 5.0
PATTERN_EDGE_SAMPLES = 3


def _linear_fit(seq: List[float]):
    """Return (slope, intercept) of the least-squares line through (i, seq[i])."""
    n = len(seq)
    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for i, y in enumerate(seq):
        sum_x += i
        sum_y += y
        sum_xy += i * y
        sum_xx += i * i
    denom = n * sum_xx - sum_x * sum_x
    if denom == 0:
        return 0.0, (sum_y / n if n else 0.0)
    slope = (n * sum_xy - sum_x * sum_y) / denom
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


def _r_squared(seq: List[float], slope: float, intercept: float) -> float:
    mean = sum(seq) / len(seq)
    ss_tot = sum((y - mean) ** 2 for y in seq)
    if ss_tot == 0:
        return 1.0
    ss_res = sum((y - (slope * i + intercept)) ** 2 for i, y in enumerate(seq))
    return max(0.0, min(1.0, 1.0 - ss_res / ss_tot))


def calculate_trend(items: Sequence[Any], accessor: Optional[Callable[[Any], float]] = None) -> TrendResult:
    """Detect the trend of a numeric series

    Args:
        items: samples, or arbitrary items when `accessor` is given
        accessor: extracts the numeric value from each item

    Returns:
        TrendResult with trend_percent (slope scaled to the whole window,
        relative to the first fitted value), confidence (R-squared) and direction
    """
    samples = [float(accessor(x)) if accessor else float(x) for x in items]
    if len(samples) < 2:
        return TrendResult(trend_percent=0.0, confidence=0.0, direction=INSUFFICIENT_DATA)

    window = min(SMOOTHING_WINDOW, len(samples))
    seq = moving_average(samples, window)
    if len(seq) < 2:
        # too short to smooth; fit the raw samples instead
        seq = samples

    slope, intercept = _linear_fit(seq)
    confidence = _r_squared(seq, slope, intercept)

    if slope > SLOPE_EPSILON:
        direction = DIRECTION_INCREASING
    elif slope < -SLOPE_EPSILON:
        direction = DIRECTION_DECREASING
    else:
        direction = DIRECTION_STABLE

    trend_percent = 0.0
    if seq[0] != 0:
        trend_percent = slope * len(seq) / seq[0] * 100.0

    return TrendResult(trend_percent=trend_percent, confidence=confidence, direction=direction)


def detect_pattern(samples: List[float]) -> str:
    """Label the utilization pattern by comparing the head and tail of the window."""
    if len(samples) < 2:
        return INSUFFICIENT_DATA
    edge = min(PATTERN_EDGE_SAMPLES, len(samples))
    first = avg(samples[:edge])
    last = avg(samples[-edge:])
    change = percent_change(first, last)
    if change > PATTERN_CHANGE_PERCENT:
        return DIRECTION_INCREASING
    if change < -PATTERN_CHANGE_PERCENT:
        return DIRECTION_DECREASING
    if abs(change) <= PATTERN_STABLE_PERCENT:
        return DIRECTION_STABLE
    return DIRECTION_FLUCTUATING
