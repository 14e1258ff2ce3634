"""Entity types shared by the query client, the analysis engine and the API.

Every type renders to a JSON-ready dict through ``to_dict()``.
"""
import math
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional

UTILIZATION_CEILING_PERCENT = 1000.0


def _iso(ts: Optional[datetime]) -> Optional[str]:
    if ts is None:
        return None
    return ts.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


@dataclass(frozen=True)
class TimeSeriesValue:
    value: float
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value, 'timestamp': _iso(self.timestamp)}


@dataclass
class RangeResult:
    values: List[TimeSeriesValue]
    start_time: datetime
    end_time: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'values': [v.to_dict() for v in self.values],
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
        }


def utilization_percent(usage: float, request: float) -> float:
    """usage / request * 100, clamped to [0, 1000]; 0 when undefined."""
    if request is None or request <= 0:
        return 0.0
    pct = usage / request * 100.0
    if not math.isfinite(pct):
        return 0.0
    return max(0.0, min(pct, UTILIZATION_CEILING_PERCENT))


@dataclass
class ResourceSnapshot:
    """Point-in-time usage of one resource (CPU millicores or memory MiB)."""
    usage: float
    average: float
    peak: float
    request: float
    limit: float
    utilization_percent: float

    @classmethod
    def build(cls, usage: float, average: float, peak: float,
              request: float, limit: float) -> 'ResourceSnapshot':
        return cls(
            usage=usage,
            average=average,
            peak=peak,
            request=request,
            limit=limit,
            utilization_percent=utilization_percent(usage, request),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PodSnapshot:
    running: int
    replicas: int
    min_replicas: int
    max_replicas: int
    target_cpu_percent: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WorkloadSnapshot:
    cpu: ResourceSnapshot
    memory: ResourceSnapshot
    pods: PodSnapshot

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cpu': self.cpu.to_dict(),
            'memory': self.memory.to_dict(),
            'pods': self.pods.to_dict(),
        }


@dataclass
class WorkloadUsage:
    """Current usage as reported by the workload inventory."""
    cpu_millicores: float
    memory_mebibytes: float
    running_pods: int


@dataclass
class WorkloadConfig:
    """Declared sizing of a workload (requests, limits, scaling bounds)."""
    cpu_request: float
    cpu_limit: float
    memory_request: float
    memory_limit: float
    replicas: int
    min_replicas: int = 0
    max_replicas: int = 0
    target_cpu_percent: Optional[float] = None


@dataclass
class TrendResult:
    trend_percent: float
    confidence: float
    direction: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DistributionBucket:
    range: str
    count: int
    percent: float
    start_val: float
    end_val: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Recommendation:
    current: float
    suggested: float
    confidence: float
    reason: str
    priority: int
    detail: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CostLine:
    cpu: float
    memory: float
    total: float

    def scaled(self, factor: float) -> 'CostLine':
        return CostLine(cpu=self.cpu * factor, memory=self.memory * factor, total=self.total * factor)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CostBreakdown:
    hourly: CostLine
    daily: CostLine
    monthly: CostLine

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hourly': self.hourly.to_dict(),
            'daily': self.daily.to_dict(),
            'monthly': self.monthly.to_dict(),
        }


@dataclass
class CostAnalysis:
    current: CostBreakdown
    recommended: CostBreakdown
    savings: CostLine
    savings_percent: float
    currency: str
    exchange_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current': self.current.to_dict(),
            'recommended': self.recommended.to_dict(),
            'savings': self.savings.to_dict(),
            'savings_percent': self.savings_percent,
            'currency': self.currency,
            'exchange_rate': self.exchange_rate,
        }


@dataclass
class Alert:
    type: str
    severity: str
    message: str
    resource: str
    current_value: float
    threshold: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CircuitBreakerState:
    state: str
    consecutive_failures: int
    last_failure_at: Optional[float] = None
    half_open_probes_issued: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ResourceAnalysis:
    """Per-dimension bundle produced by the recommendation engine."""
    current: float
    average: float
    peak: float
    p95: float = 0.0
    distribution: List[DistributionBucket] = field(default_factory=list)
    trend: Optional[TrendResult] = None
    pattern: str = 'insufficient_data'
    recommendation: Optional[Recommendation] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current': self.current,
            'average': self.average,
            'peak': self.peak,
            'p95': self.p95,
            'distribution': [b.to_dict() for b in self.distribution],
            'trend': self.trend.to_dict() if self.trend else None,
            'pattern': self.pattern,
            'recommendation': self.recommendation.to_dict() if self.recommendation else None,
        }
