"""Orchestrator: fan out backend reads -> snapshot -> analysis -> recommendations -> costs -> alerts.

All sub-queries for one workload run concurrently and share the request
deadline. The first failure aborts the whole analysis; there are no
partial results.
"""
import argparse
import json
import logging
import math
import os
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor, FIRST_EXCEPTION, wait
from datetime import datetime, timezone, timedelta
from typing import List, Dict, Any, Optional

from config import (
    setup_logging, validate_config, ConfigValidationError,
    get_analysis_output_path, parse_period, PERIOD_UNITS,
)
import config
from models import ResourceSnapshot, PodSnapshot, WorkloadSnapshot
from metrics.interfaces import MetricsQuerier, WorkloadInventory, WorkloadNotFoundError
from metrics.prometheus_client import PrometheusClient, QueryTimeoutError
from metrics.inventory import KubeStateMetricsInventory
from metrics import queries
from normalize.math import avg_or_zero, peak, lowest
from normalize.series import values_from_series, is_window_sufficient
from analysis.recommendation import analyze_resource, recommend_replicas
from analysis.trend import calculate_trend, detect_pattern
from analysis.cost import calculate_costs
from analysis.alerts import generate_alerts
from pricing.client import PricingClient, PricingError

# Configure logging
logger = logging.getLogger(__name__)

# Keeps range queries well under backend point limits
MAX_POINTS_PER_SERIES = 500
MIN_STEP_SECONDS = 60
MIN_HISTORY_SAMPLES = 2

STAGE_USAGE = 'workload_usage'
STAGE_CONFIG = 'workload_config'
STAGE_CPU_HISTORY = 'cpu_history'
STAGE_MEMORY_HISTORY = 'memory_history'
STAGE_POD_HISTORY = 'pod_history'
STAGE_EXCHANGE_RATE = 'exchange_rate'
STAGE_DEADLINE = 'deadline'


class AnalysisError(Exception):
    """A sub-query failed; `stage` names it and `cause` holds the original error"""

    def __init__(self, stage: str, cause: Exception):
        super().__init__(f"analysis failed at {stage}: {cause}")
        self.stage = stage
        self.cause = cause


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_period(seconds: int) -> str:
    for unit in ('d', 'h', 'm'):
        size = PERIOD_UNITS[unit]
        if seconds % size == 0:
            return f"{seconds // size}{unit}"
    return f"{seconds}s"


def history_step(period_seconds: int) -> int:
    """max(60, period / 500) rounded up to a whole minute"""
    raw = period_seconds / MAX_POINTS_PER_SERIES
    return max(MIN_STEP_SECONDS, int(math.ceil(raw / 60.0)) * 60)


def _atomic_write(path: str, data: str) -> None:
    dirp = os.path.dirname(path) or '.'
    os.makedirs(dirp, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix='.tmp_analysis_', dir=dirp)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
        # Atomic replace
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


class WorkloadAnalyzer:
    """Analyzes one deployment on demand

    Args:
        querier: time-series reader (PrometheusClient in production)
        inventory: workload configuration/usage source
        pricing: price table and exchange-rate lookup
        currency: currency the costs are reported in
        max_workers: size of the fan-out thread pool
    """

    def __init__(
        self,
        querier: MetricsQuerier,
        inventory: WorkloadInventory,
        pricing: PricingClient,
        currency: str = 'BRL',
        max_workers: int = 5,
        cpu_threshold: float = 80.0,
        memory_threshold: float = 80.0,
        cpu_peak_factor: Optional[float] = None,
        cpu_average_factor: Optional[float] = None,
        memory_peak_factor: Optional[float] = None,
        memory_average_factor: Optional[float] = None,
        cpu_granularity: Optional[float] = None,
        memory_granularity: Optional[float] = None
    ):
        self.querier = querier
        self.inventory = inventory
        self.pricing = pricing
        self.currency = currency
        self.max_workers = max_workers
        self.cpu_threshold = cpu_threshold
        self.memory_threshold = memory_threshold
        self.cpu_peak_factor = cpu_peak_factor
        self.cpu_average_factor = cpu_average_factor
        self.memory_peak_factor = memory_peak_factor
        self.memory_average_factor = memory_average_factor
        self.cpu_granularity = cpu_granularity
        self.memory_granularity = memory_granularity

    @classmethod
    def from_config(cls) -> 'WorkloadAnalyzer':
        client = PrometheusClient.from_config()
        return cls(
            querier=client,
            inventory=KubeStateMetricsInventory(client),
            pricing=PricingClient.from_config(),
            currency=config.PRICING_CURRENCY,
            max_workers=config.ANALYSIS_MAX_WORKERS,
            cpu_threshold=config.CPU_ALERT_THRESHOLD_PERCENT,
            memory_threshold=config.MEMORY_ALERT_THRESHOLD_PERCENT,
            cpu_peak_factor=config.CPU_PEAK_FACTOR,
            cpu_average_factor=config.CPU_AVERAGE_FACTOR,
            memory_peak_factor=config.MEMORY_PEAK_FACTOR,
            memory_average_factor=config.MEMORY_AVERAGE_FACTOR,
            cpu_granularity=config.CPU_GRANULARITY_MILLICORES,
            memory_granularity=config.MEMORY_GRANULARITY_MEBIBYTES,
        )

    def _fetch_all(self, namespace: str, deployment: str, start: datetime, end: datetime,
                   step: int, deadline: Optional[float]) -> Dict[str, Any]:
        """Run every read concurrently; returns stage -> result or raises on the first failure."""
        tasks = {
            STAGE_USAGE: lambda: self.inventory.get_workload_usage(namespace, deployment, deadline=deadline),
            STAGE_CONFIG: lambda: self.inventory.get_workload_config(namespace, deployment, deadline=deadline),
            STAGE_CPU_HISTORY: lambda: self.querier.query_range(
                queries.cpu_usage(namespace, deployment), start, end, step, deadline=deadline),
            STAGE_MEMORY_HISTORY: lambda: self.querier.query_range(
                queries.memory_usage(namespace, deployment), start, end, step, deadline=deadline),
            STAGE_POD_HISTORY: lambda: self.querier.query_range(
                queries.pod_count_history(namespace, deployment), start, end, step, deadline=deadline),
            STAGE_EXCHANGE_RATE: lambda: self.pricing.get_exchange_rate(self.pricing.prices.currency, self.currency),
        }

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='analyze')
        try:
            futures = {executor.submit(fn): stage for stage, fn in tasks.items()}
            timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
            done, pending = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)

            order = list(tasks)
            failed = sorted(
                ((futures[f], f.exception()) for f in done if f.exception() is not None),
                key=lambda item: order.index(item[0]),
            )
            if failed:
                for p in pending:
                    p.cancel()
                for stage, error in failed:
                    if isinstance(error, WorkloadNotFoundError):
                        raise error
                stage, error = failed[0]
                logger.error(f"[{namespace}/{deployment}] {stage} failed: {error}")
                raise AnalysisError(stage, error) from error

            if pending:
                for p in pending:
                    p.cancel()
                waiting = sorted(futures[p] for p in pending)
                raise AnalysisError(
                    STAGE_DEADLINE,
                    QueryTimeoutError(f"deadline reached while waiting for {', '.join(waiting)}"),
                )

            return {futures[f]: f.result() for f in done}
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def analyze(self, namespace: str, deployment: str, period_seconds: int,
                deadline: Optional[float] = None, period_label: Optional[str] = None) -> Dict[str, Any]:
        """Analyze one deployment over the last `period_seconds`

        Args:
            namespace: Kubernetes namespace
            deployment: deployment name
            period_seconds: length of the history window
            deadline: time.monotonic() instant bounding the whole analysis
            period_label: period as the caller wrote it (defaults to the largest whole unit)

        Returns:
            JSON-ready payload

        Raises:
            ValueError: invalid names or period
            WorkloadNotFoundError: the deployment does not exist
            AnalysisError: any sub-query failed
        """
        queries.validate_name("namespace", namespace)
        queries.validate_name("deployment", deployment)
        if period_seconds <= 0:
            raise ValueError("period must be positive")

        started = time.monotonic()
        end = datetime.now(timezone.utc)
        start = end - timedelta(seconds=period_seconds)
        step = history_step(period_seconds)
        label = period_label.strip() if period_label else format_period(period_seconds)
        logger.info(f"Analyzing {namespace}/{deployment} over {label} (step={step}s)")

        results = self._fetch_all(namespace, deployment, start, end, step, deadline)
        usage = results[STAGE_USAGE]
        workload_config = results[STAGE_CONFIG]
        cpu_samples = values_from_series(results[STAGE_CPU_HISTORY])
        memory_samples = values_from_series(results[STAGE_MEMORY_HISTORY])
        pod_samples = values_from_series(results[STAGE_POD_HISTORY])
        exchange_rate = results[STAGE_EXCHANGE_RATE]

        # History shorter than half the requested period still yields a result, flagged in metadata
        min_span = period_seconds // 2
        coverage = {
            stage.split('_')[0]: is_window_sufficient(results[stage], MIN_HISTORY_SAMPLES, min_span)
            for stage in (STAGE_CPU_HISTORY, STAGE_MEMORY_HISTORY, STAGE_POD_HISTORY)
        }
        for resource, ok in coverage.items():
            if not ok:
                logger.warning(f"[{namespace}/{deployment}] {resource} history covers less than half of {label}")

        cpu_analysis = analyze_resource(
            'cpu', usage.cpu_millicores, workload_config.cpu_request, cpu_samples,
            peak_factor=self.cpu_peak_factor, average_factor=self.cpu_average_factor,
            granularity=self.cpu_granularity,
        )
        memory_analysis = analyze_resource(
            'memory', usage.memory_mebibytes, workload_config.memory_request, memory_samples,
            peak_factor=self.memory_peak_factor, average_factor=self.memory_average_factor,
            granularity=self.memory_granularity,
        )

        snapshot = WorkloadSnapshot(
            cpu=ResourceSnapshot.build(
                usage=usage.cpu_millicores,
                average=cpu_analysis.average,
                peak=cpu_analysis.peak,
                request=workload_config.cpu_request,
                limit=workload_config.cpu_limit,
            ),
            memory=ResourceSnapshot.build(
                usage=usage.memory_mebibytes,
                average=memory_analysis.average,
                peak=memory_analysis.peak,
                request=workload_config.memory_request,
                limit=workload_config.memory_limit,
            ),
            pods=PodSnapshot(
                running=usage.running_pods,
                replicas=workload_config.replicas,
                min_replicas=workload_config.min_replicas,
                max_replicas=workload_config.max_replicas,
                target_cpu_percent=workload_config.target_cpu_percent,
            ),
        )

        replica_recs = recommend_replicas(snapshot.pods, pod_samples)
        recommendations = {
            'cpu': cpu_analysis.recommendation,
            'memory': memory_analysis.recommendation,
            'min_replicas': replica_recs['min_replicas'],
            'max_replicas': replica_recs['max_replicas'],
        }

        costs = calculate_costs(
            current_cpu_m=workload_config.cpu_request,
            current_mem_mi=workload_config.memory_request,
            recommended_cpu_m=recommendations['cpu'].suggested,
            recommended_mem_mi=recommendations['memory'].suggested,
            prices=self.pricing.prices,
            exchange_rate=exchange_rate,
            currency=self.currency,
        )
        alerts = generate_alerts(snapshot, cpu_threshold=self.cpu_threshold,
                                 memory_threshold=self.memory_threshold)

        circuit = None
        if hasattr(self.querier, 'circuit_state'):
            circuit = self.querier.circuit_state().to_dict()

        duration = time.monotonic() - started
        logger.info(f"Analyzed {namespace}/{deployment} in {duration:.2f}s: "
                    f"cpu={recommendations['cpu'].reason}, memory={recommendations['memory'].reason}, "
                    f"alerts={len(alerts)}")

        return {
            'generated_at': _now_iso(),
            'workload': {
                'namespace': namespace,
                'deployment': deployment,
            },
            'period': {
                'label': label,
                'seconds': period_seconds,
                'start': start.isoformat(),
                'end': end.isoformat(),
                'step_seconds': step,
            },
            'current': snapshot.to_dict(),
            'analysis': {
                'cpu': cpu_analysis.to_dict(),
                'memory': memory_analysis.to_dict(),
                'pods': {
                    'average': avg_or_zero(pod_samples),
                    'peak': peak(pod_samples),
                    'lowest': lowest(pod_samples),
                    'trend': calculate_trend(pod_samples).to_dict(),
                    'pattern': detect_pattern(pod_samples),
                },
            },
            'recommendations': {k: v.to_dict() for k, v in recommendations.items()},
            'costs': costs.to_dict(),
            'alerts': [a.to_dict() for a in alerts],
            'metadata': {
                'sources': {
                    'usage': type(self.inventory).__name__,
                    'history': type(self.querier).__name__,
                    'prices': self.pricing.prices.currency,
                },
                'samples': {
                    'cpu': len(cpu_samples),
                    'memory': len(memory_samples),
                    'pods': len(pod_samples),
                },
                'window_sufficient': coverage,
                'cost_basis': 'per_pod_request',
                'circuit_breaker': circuit,
                'duration_seconds': round(duration, 3),
            },
        }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Analyze resource usage of a Kubernetes deployment")
    parser.add_argument('namespace')
    parser.add_argument('deployment')
    parser.add_argument('--period', default=config.ANALYSIS_PERIOD,
                        help="history window, e.g. 7d, 24h, 30m (default: %(default)s)")
    parser.add_argument('--output', default=None,
                        help="write JSON here ('-' for stdout; default: OUTPUT_DIR/<ns>_<deployment>_analysis.json)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    # Setup logging first
    setup_logging()

    # Validate configuration
    try:
        validate_config()
        logger.info("Configuration validated successfully")
    except ConfigValidationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        period_seconds = parse_period(args.period)
    except ValueError as e:
        logger.error(str(e))
        return 1

    try:
        analyzer = WorkloadAnalyzer.from_config()
    except PricingError as e:
        logger.error(f"Pricing configuration error: {e}")
        return 1

    deadline = time.monotonic() + config.ANALYSIS_TIMEOUT_SECONDS
    try:
        out = analyzer.analyze(args.namespace, args.deployment, period_seconds, deadline=deadline,
                               period_label=args.period)
    except WorkloadNotFoundError as e:
        logger.error(str(e))
        return 2
    except (AnalysisError, ValueError) as e:
        logger.error(f"Analysis failed: {e}")
        return 1

    payload = json.dumps(out, indent=2)
    if args.output == '-':
        print(payload)
        return 0

    output_path = args.output or get_analysis_output_path(args.namespace, args.deployment)
    _atomic_write(output_path, payload)
    logger.info(f"Wrote analysis to {output_path}")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
