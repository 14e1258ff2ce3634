"""
Sizing recommendations for requests and replica bounds.

Requests are sized from the observed history with a buffer:
    estimate = max(peak * peak_factor, average * average_factor)
rounded up to the scheduling granularity (100m CPU, 128Mi memory). The
reason is judged from the unrounded estimate against the current request.
"""
import logging
from typing import Dict, List, Optional

from models import Recommendation, ResourceAnalysis, PodSnapshot
from normalize.math import avg_or_zero, peak, lowest, p95, round_up_to, ceil_tolerant
from .distribution import bucket_cpu, bucket_memory
from .trend import calculate_trend, detect_pattern

logger = logging.getLogger(__name__)

REASON_OVERPROVISIONED = 'overprovisioned'
REASON_UNDERPROVISIONED = 'underprovisioned'
REASON_OPTIMAL = 'optimal'
REASON_INSUFFICIENT_DATA = 'insufficient_data'
REASON_CAN_BE_REDUCED = 'can_be_reduced'
REASON_SHOULD_BE_INCREASED = 'should_be_increased'

# estimate below 70% of the request is waste, above 130% is pressure
OVERPROVISIONED_RATIO = 0.7
UNDERPROVISIONED_RATIO = 1.3

CPU_PEAK_FACTOR = 1.1
CPU_AVERAGE_FACTOR = 1.3
MEMORY_PEAK_FACTOR = 1.2
MEMORY_AVERAGE_FACTOR = 1.4
CPU_GRANULARITY = 100.0
MEMORY_GRANULARITY = 128.0

MIN_REPLICAS_FLOOR = 2
MIN_REPLICAS_FACTOR = 0.7
MAX_REPLICAS_FACTOR = 1.4

CONFIDENCE_RESOURCE = 0.95
CONFIDENCE_MIN_REPLICAS = 0.9
CONFIDENCE_MAX_REPLICAS = 0.85

_PRIORITY = {
    REASON_UNDERPROVISIONED: 1,
    REASON_SHOULD_BE_INCREASED: 1,
    REASON_OVERPROVISIONED: 2,
    REASON_CAN_BE_REDUCED: 2,
}


def priority_for(reason: str) -> int:
    """1 = act now (pressure), 2 = savings, 3 = nothing to do"""
    return _PRIORITY.get(reason, 3)


def classify(estimate: float, current: float) -> str:
    if current <= 0:
        return REASON_UNDERPROVISIONED
    if estimate < current * OVERPROVISIONED_RATIO:
        return REASON_OVERPROVISIONED
    if estimate > current * UNDERPROVISIONED_RATIO:
        return REASON_UNDERPROVISIONED
    return REASON_OPTIMAL


def recommend_request(
    current: float,
    average: float,
    peak_value: float,
    has_data: bool,
    peak_factor: float,
    average_factor: float,
    granularity: float,
    unit: str = ''
) -> Recommendation:
    """Recommend a per-pod request for one resource dimension"""
    if not has_data:
        return Recommendation(
            current=current,
            suggested=current,
            confidence=0.0,
            reason=REASON_INSUFFICIENT_DATA,
            priority=priority_for(REASON_INSUFFICIENT_DATA),
            detail='no usage history in the analysis window',
        )

    estimate = max(peak_value * peak_factor, average * average_factor)
    suggested = max(round_up_to(estimate, granularity), granularity)
    reason = classify(estimate, current)
    detail = (
        f"max(peak {peak_value:.1f}{unit} x {peak_factor:g}, avg {average:.1f}{unit} x {average_factor:g})"
        f" = {estimate:.1f}{unit}, rounded to {suggested:g}{unit}"
    )
    return Recommendation(
        current=current,
        suggested=suggested,
        confidence=CONFIDENCE_RESOURCE,
        reason=reason,
        priority=priority_for(reason),
        detail=detail,
    )


def recommend_cpu(current: float, average: float, peak_value: float, has_data: bool = True,
                  peak_factor: float = CPU_PEAK_FACTOR, average_factor: float = CPU_AVERAGE_FACTOR,
                  granularity: float = CPU_GRANULARITY) -> Recommendation:
    return recommend_request(current, average, peak_value, has_data, peak_factor, average_factor, granularity, 'm')


def recommend_memory(current: float, average: float, peak_value: float, has_data: bool = True,
                     peak_factor: float = MEMORY_PEAK_FACTOR, average_factor: float = MEMORY_AVERAGE_FACTOR,
                     granularity: float = MEMORY_GRANULARITY) -> Recommendation:
    return recommend_request(current, average, peak_value, has_data, peak_factor, average_factor, granularity, 'Mi')


def _replica_reason(current: int, suggested: int) -> str:
    if suggested < current:
        return REASON_CAN_BE_REDUCED
    if suggested > current:
        return REASON_SHOULD_BE_INCREASED
    return REASON_OPTIMAL


def recommend_replicas(pods: PodSnapshot, pod_history: List[float]) -> Dict[str, Recommendation]:
    """Recommend min/max replica bounds from the running-pod history

    min = max(2, ceil(avg_running * 0.7)), never lowered below the current min
    while the workload never ran below it; max = ceil(peak_running * 1.4),
    never below the suggested min.
    """
    current_min = pods.min_replicas
    current_max = pods.max_replicas or pods.replicas

    if not pod_history:
        return {
            'min_replicas': Recommendation(current_min, current_min, 0.0, REASON_INSUFFICIENT_DATA,
                                           priority_for(REASON_INSUFFICIENT_DATA), 'no pod count history'),
            'max_replicas': Recommendation(current_max, current_max, 0.0, REASON_INSUFFICIENT_DATA,
                                           priority_for(REASON_INSUFFICIENT_DATA), 'no pod count history'),
        }

    avg_running = avg_or_zero(pod_history)
    peak_running = peak(pod_history)
    low_running = lowest(pod_history)

    suggested_min = max(MIN_REPLICAS_FLOOR, ceil_tolerant(avg_running * MIN_REPLICAS_FACTOR))
    if low_running > current_min:
        suggested_min = max(suggested_min, current_min)
    suggested_max = max(ceil_tolerant(peak_running * MAX_REPLICAS_FACTOR), suggested_min)

    min_reason = _replica_reason(current_min, suggested_min)
    max_reason = _replica_reason(current_max, suggested_max)
    return {
        'min_replicas': Recommendation(
            current=current_min,
            suggested=suggested_min,
            confidence=CONFIDENCE_MIN_REPLICAS,
            reason=min_reason,
            priority=priority_for(min_reason),
            detail=f"avg running {avg_running:.1f} pods, lowest {low_running:g}",
        ),
        'max_replicas': Recommendation(
            current=current_max,
            suggested=suggested_max,
            confidence=CONFIDENCE_MAX_REPLICAS,
            reason=max_reason,
            priority=priority_for(max_reason),
            detail=f"peak running {peak_running:g} pods",
        ),
    }


def analyze_resource(
    kind: str,
    current_usage: float,
    request: float,
    samples: List[float],
    peak_factor: Optional[float] = None,
    average_factor: Optional[float] = None,
    granularity: Optional[float] = None
) -> ResourceAnalysis:
    """Bundle history statistics, distribution, trend and recommendation for 'cpu' or 'memory'"""
    if kind not in ('cpu', 'memory'):
        raise ValueError(f"unknown resource kind: {kind}")

    average = avg_or_zero(samples)
    peak_value = peak(samples)
    has_data = bool(samples)

    if kind == 'cpu':
        distribution = bucket_cpu(samples)
        recommendation = recommend_cpu(
            request, average, peak_value, has_data,
            peak_factor=peak_factor or CPU_PEAK_FACTOR,
            average_factor=average_factor or CPU_AVERAGE_FACTOR,
            granularity=granularity or CPU_GRANULARITY,
        )
    else:
        distribution = bucket_memory(samples)
        recommendation = recommend_memory(
            request, average, peak_value, has_data,
            peak_factor=peak_factor or MEMORY_PEAK_FACTOR,
            average_factor=average_factor or MEMORY_AVERAGE_FACTOR,
            granularity=granularity or MEMORY_GRANULARITY,
        )

    logger.debug(f"{kind}: {len(samples)} samples, avg={average:.2f}, peak={peak_value:.2f}, "
                 f"reason={recommendation.reason}")

    return ResourceAnalysis(
        current=current_usage,
        average=average,
        peak=peak_value,
        p95=p95(samples) if samples else 0.0,
        distribution=distribution,
        trend=calculate_trend(samples),
        pattern=detect_pattern(samples),
        recommendation=recommendation,
    )
