"""Capability interfaces the orchestrator depends on.

Production code uses PrometheusClient (MetricsQuerier) and
KubeStateMetricsInventory (WorkloadInventory); tests pass fakes.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from models import TimeSeriesValue, RangeResult, WorkloadUsage, WorkloadConfig


class InventoryError(Exception):
    """Base exception for workload inventory errors"""
    pass


class WorkloadNotFoundError(InventoryError):
    """The requested namespace/deployment does not exist"""

    def __init__(self, namespace: str, name: str):
        super().__init__(f"workload {namespace}/{name} not found")
        self.namespace = namespace
        self.name = name


class InventoryUnavailableError(InventoryError):
    """The inventory source could not be reached"""
    pass


class MetricsQuerier(ABC):
    """Reads time series from a Prometheus-compatible backend."""

    @abstractmethod
    def query(self, promql: str, deadline: Optional[float] = None) -> TimeSeriesValue:
        pass

    @abstractmethod
    def query_range(self, promql: str, start: datetime, end: datetime, step: float,
                    deadline: Optional[float] = None) -> RangeResult:
        pass


class WorkloadInventory(ABC):
    """Reads declared configuration and live usage of a workload."""

    @abstractmethod
    def get_workload_usage(self, namespace: str, name: str,
                           deadline: Optional[float] = None) -> WorkloadUsage:
        pass

    @abstractmethod
    def get_workload_config(self, namespace: str, name: str,
                            deadline: Optional[float] = None) -> WorkloadConfig:
        pass
