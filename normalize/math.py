import math
from typing import List, Optional


def avg(samples: List[float]) -> float:
    if not samples:
        raise ValueError("samples must not be empty")
    return sum(samples) / len(samples)


def avg_or_zero(samples: List[float]) -> float:
    return avg(samples) if samples else 0.0


def peak(samples: List[float]) -> float:
    if not samples:
        return 0.0
    return float(max(samples))


def lowest(samples: List[float]) -> float:
    if not samples:
        return 0.0
    return float(min(samples))


def percentile(samples: List[float], percent: float) -> float:
    if not samples:
        raise ValueError("samples must not be empty")
    if not (0 <= percent <= 100):
        raise ValueError("percent must be between 0 and 100")
    s = sorted(samples)
    n = len(s)
    if n == 1:
        return float(s[0])
    # rank using linear interpolation (0-based index)
    idx = (percent / 100.0) * (n - 1)
    lower = int(idx // 1)
    upper = int(idx // 1 + (0 if idx.is_integer() else 1))
    if upper >= n:
        return float(s[-1])
    if lower == upper:
        return float(s[lower])
    frac = idx - lower
    return float(s[lower] + frac * (s[upper] - s[lower]))


def p95(samples: List[float]) -> float:
    return percentile(samples, 95.0)


def moving_average(samples: List[float], window: int) -> List[float]:
    """Simple moving average; returns len(samples) - window + 1 points."""
    if window <= 0:
        raise ValueError("window must be positive")
    if len(samples) < window:
        return []
    out: List[float] = []
    running = sum(samples[:window])
    out.append(running / window)
    for i in range(window, len(samples)):
        running += samples[i] - samples[i - window]
        out.append(running / window)
    return out


def round_up_to(value: float, granularity: float) -> float:
    """Round up to the next multiple of `granularity` (exact multiples are kept)."""
    if granularity <= 0:
        raise ValueError("granularity must be positive")
    if value <= 0:
        return 0.0
    return ceil_tolerant(value / granularity) * granularity


def ceil_tolerant(value: float) -> int:
    """math.ceil that ignores float noise, so 10 * 0.7 rounds up to 7 and not 8."""
    return int(math.ceil(round(value, 9)))


def sanitize(value: Optional[float], ceiling: float = 1e6) -> float:
    """Coerce missing, non-finite, negative or implausibly large readings to 0.0."""
    if value is None:
        return 0.0
    try:
        fv = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(fv) or fv < 0 or fv > ceiling:
        return 0.0
    return fv


def percent_change(old: float, new: float) -> float:
    if old == 0:
        return 0.0
    return (new - old) / old * 100.0
