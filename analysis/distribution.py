from typing import List

from models import DistributionBucket

CPU_BUCKET_WIDTH_MILLICORES = 200.0
MEMORY_BUCKET_WIDTH_MEBIBYTES = 200.0
DEFAULT_BUCKET_COUNT = 5


def _fmt(v: float) -> str:
    return f"{v:g}"


def bucket_samples(samples: List[float], width: float, unit: str,
                   count: int = DEFAULT_BUCKET_COUNT) -> List[DistributionBucket]:
    """Histogram of samples in `count` fixed-width buckets.

    Lower bounds are inclusive, upper bounds exclusive; the last bucket is
    open-ended so every sample lands somewhere.
    """
    if width <= 0:
        raise ValueError("width must be positive")
    if count <= 0:
        raise ValueError("count must be positive")

    counts = [0] * count
    for s in samples:
        idx = int(s // width) if s > 0 else 0
        counts[min(idx, count - 1)] += 1

    total = len(samples)
    buckets: List[DistributionBucket] = []
    for i, c in enumerate(counts):
        start = i * width
        if i == count - 1:
            label = f"{_fmt(start)}{unit}+"
            end = None
        else:
            end = start + width
            label = f"{_fmt(start)}-{_fmt(end)}{unit}"
        buckets.append(DistributionBucket(
            range=label,
            count=c,
            percent=(c / total * 100.0) if total else 0.0,
            start_val=start,
            end_val=end,
        ))
    return buckets


def bucket_cpu(samples: List[float]) -> List[DistributionBucket]:
    """0-200m, 200-400m, 400-600m, 600-800m, 800m+"""
    return bucket_samples(samples, CPU_BUCKET_WIDTH_MILLICORES, "m")


def bucket_memory(samples: List[float]) -> List[DistributionBucket]:
    """0-200Mi, 200-400Mi, 400-600Mi, 600-800Mi, 800Mi+"""
    return bucket_samples(samples, MEMORY_BUCKET_WIDTH_MEBIBYTES, "Mi")
