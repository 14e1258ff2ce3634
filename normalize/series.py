from typing import List, Optional
from datetime import datetime

from models import RangeResult, TimeSeriesValue


def values_from_series(series: Optional[RangeResult]) -> List[float]:
    """Extract numeric values from a range result, in timestamp order."""
    if series is None:
        return []
    return [v.value for v in series.values]


def sort_by_timestamp(values: List[TimeSeriesValue]) -> List[TimeSeriesValue]:
    return sorted(values, key=lambda v: v.timestamp)


def is_window_sufficient(series: Optional[RangeResult], min_samples: int, min_duration_seconds: int) -> bool:
    """Check that series spans at least `min_duration_seconds` and has at least `min_samples` samples."""
    if series is None or not series.values:
        return False
    if len(series.values) < min_samples:
        return False
    timestamps: List[datetime] = [v.timestamp for v in series.values]
    duration = (max(timestamps) - min(timestamps)).total_seconds()
    return duration >= min_duration_seconds
