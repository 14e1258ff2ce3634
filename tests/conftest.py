"""
Test fixtures and configuration for pytest
"""
import sys
from datetime import datetime, timezone, timedelta
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from models import (
    TimeSeriesValue, RangeResult, WorkloadUsage, WorkloadConfig,
    CircuitBreakerState,
)
from metrics.interfaces import MetricsQuerier, WorkloadInventory, WorkloadNotFoundError
from pricing.client import PricingClient, PriceTable


def make_response(status_code: int = 200, payload=None, headers: Optional[Dict[str, str]] = None,
                  text: str = '', json_error: bool = False) -> MagicMock:
    """Build a stand-in for requests.Response"""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text
    if json_error:
        response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    else:
        response.json.return_value = payload
    return response


def make_range(values: List[float], start: Optional[datetime] = None, step_seconds: int = 60) -> RangeResult:
    start = start or datetime(2026, 1, 4, 10, 0, tzinfo=timezone.utc)
    points = [
        TimeSeriesValue(value=v, timestamp=start + timedelta(seconds=i * step_seconds))
        for i, v in enumerate(values)
    ]
    end = start + timedelta(seconds=max(len(values) - 1, 0) * step_seconds)
    return RangeResult(values=points, start_time=start, end_time=end)


class FakeQuerier(MetricsQuerier):
    """Answers range queries by matching a substring of the PromQL"""

    def __init__(self, ranges: Optional[Dict[str, List[float]]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.ranges = ranges or {}
        self.errors = errors or {}
        self.calls: List[str] = []
        self.deadlines: List[Optional[float]] = []

    def _match(self, promql: str, table: Dict):
        for key, value in table.items():
            if key in promql:
                return value
        return None

    def query(self, promql, deadline=None):
        self.calls.append(promql)
        return TimeSeriesValue(value=0.0, timestamp=datetime.now(timezone.utc))

    def query_range(self, promql, start, end, step, deadline=None):
        self.calls.append(promql)
        self.deadlines.append(deadline)
        error = self._match(promql, self.errors)
        if error is not None:
            raise error
        return make_range(self._match(promql, self.ranges) or [])

    def circuit_state(self):
        return CircuitBreakerState(state='closed', consecutive_failures=0)


class FakeInventory(WorkloadInventory):
    def __init__(self, usage: WorkloadUsage, workload_config: WorkloadConfig,
                 known: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.usage = usage
        self.workload_config = workload_config
        self.known = known if known is not None else ['default/api-server']
        self.error = error

    def _check(self, namespace, name):
        if self.error is not None:
            raise self.error
        if f"{namespace}/{name}" not in self.known:
            raise WorkloadNotFoundError(namespace, name)

    def get_workload_usage(self, namespace, name, deadline=None):
        self._check(namespace, name)
        return self.usage

    def get_workload_config(self, namespace, name, deadline=None):
        self._check(namespace, name)
        return self.workload_config


@pytest.fixture
def mock_prometheus_response():
    """Instant vector with a single series"""
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [
                {
                    "metric": {"pod": "api-server-abc123", "namespace": "default"},
                    "value": [1767520800, "412.5"]
                }
            ]
        }
    }


@pytest.fixture
def mock_matrix_response():
    """Range matrix, deliberately out of order and with a NaN sample"""
    return {
        "status": "success",
        "data": {
            "resultType": "matrix",
            "result": [
                {
                    "metric": {"namespace": "default"},
                    "values": [
                        [1767520920, "300"],
                        [1767520800, "100"],
                        [1767520860, "NaN"],
                    ]
                },
                {
                    "metric": {"namespace": "other"},
                    "values": [[1767520800, "999"]]
                }
            ]
        }
    }


@pytest.fixture
def empty_response():
    return {"status": "success", "data": {"resultType": "vector", "result": []}}


@pytest.fixture
def workload_usage():
    return WorkloadUsage(cpu_millicores=400.0, memory_mebibytes=300.0, running_pods=3)


@pytest.fixture
def workload_config():
    return WorkloadConfig(
        cpu_request=1000.0,
        cpu_limit=2000.0,
        memory_request=512.0,
        memory_limit=1024.0,
        replicas=3,
        min_replicas=2,
        max_replicas=6,
        target_cpu_percent=70.0,
    )


@pytest.fixture
def fake_inventory(workload_usage, workload_config):
    return FakeInventory(workload_usage, workload_config)


@pytest.fixture
def fake_querier():
    """CPU averages 400m and peaks at 600m; memory around 300Mi; 3 pods"""
    return FakeQuerier(ranges={
        'container_cpu_usage_seconds_total': [300.0, 400.0, 600.0, 400.0, 300.0],
        'container_memory_working_set_bytes': [280.0, 300.0, 320.0, 300.0, 300.0],
        'kube_deployment_status_replicas': [3.0, 3.0, 3.0, 3.0, 3.0],
    })


@pytest.fixture
def fake_pricing():
    """Pricing client that never touches the network (same currency)"""
    return PricingClient(prices=PriceTable(currency='USD'), session=MagicMock())
