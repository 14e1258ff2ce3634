"""Workload inventory backed by kube-state-metrics and cAdvisor series.

Both the declared configuration (requests, limits, replicas, HPA bounds) and
the live usage of a deployment are read through the resilient client, so the
analyzer needs no Kubernetes API credentials.
"""
import logging
from typing import Optional

from models import WorkloadUsage, WorkloadConfig
from . import queries
from .interfaces import (
    WorkloadInventory, MetricsQuerier,
    WorkloadNotFoundError, InventoryUnavailableError,
)
from .prometheus_client import PrometheusError

logger = logging.getLogger(__name__)


class KubeStateMetricsInventory(WorkloadInventory):
    """WorkloadInventory reading kube-state-metrics through a MetricsQuerier

    A deployment without an HPA reports min_replicas = replicas and
    max_replicas = 0 (not autoscaled).
    """

    def __init__(self, querier: MetricsQuerier):
        self.querier = querier

    def _value(self, promql: str, deadline: Optional[float]) -> float:
        try:
            return self.querier.query(promql, deadline=deadline).value
        except PrometheusError as e:
            raise InventoryUnavailableError(f"inventory query failed: {e}") from e

    def _ensure_exists(self, namespace: str, name: str, deadline: Optional[float]) -> None:
        if self._value(queries.deployment_exists(namespace, name), deadline) < 1:
            logger.info(f"Deployment {namespace}/{name} not known to kube-state-metrics")
            raise WorkloadNotFoundError(namespace, name)

    def get_workload_usage(self, namespace: str, name: str,
                           deadline: Optional[float] = None) -> WorkloadUsage:
        self._ensure_exists(namespace, name, deadline)
        return WorkloadUsage(
            cpu_millicores=self._value(queries.cpu_usage(namespace, name), deadline),
            memory_mebibytes=self._value(queries.memory_usage(namespace, name), deadline),
            running_pods=int(self._value(queries.running_pods(namespace, name), deadline)),
        )

    def get_workload_config(self, namespace: str, name: str,
                            deadline: Optional[float] = None) -> WorkloadConfig:
        self._ensure_exists(namespace, name, deadline)
        replicas = int(self._value(queries.spec_replicas(namespace, name), deadline))
        hpa_min = int(self._value(queries.hpa_min_replicas(namespace, name), deadline))
        hpa_max = int(self._value(queries.hpa_max_replicas(namespace, name), deadline))
        target = self._value(queries.hpa_target_cpu(namespace, name), deadline)

        if hpa_max > 0:
            min_replicas, max_replicas = max(hpa_min, 1), hpa_max
        else:
            min_replicas, max_replicas = replicas, 0

        return WorkloadConfig(
            cpu_request=self._value(queries.cpu_request(namespace, name), deadline),
            cpu_limit=self._value(queries.cpu_limit(namespace, name), deadline),
            memory_request=self._value(queries.memory_request(namespace, name), deadline),
            memory_limit=self._value(queries.memory_limit(namespace, name), deadline),
            replicas=replicas,
            min_replicas=min_replicas,
            max_replicas=max_replicas,
            target_cpu_percent=target if target > 0 else None,
        )
