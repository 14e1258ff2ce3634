import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models import ResourceSnapshot, PodSnapshot, WorkloadSnapshot
from analysis.alerts import generate_alerts


def _snapshot(cpu_usage=400.0, mem_usage=200.0, running=3, max_replicas=10):
    return WorkloadSnapshot(
        cpu=ResourceSnapshot.build(usage=cpu_usage, average=cpu_usage, peak=cpu_usage, request=100.0, limit=200.0),
        memory=ResourceSnapshot.build(usage=mem_usage, average=mem_usage, peak=mem_usage, request=100.0, limit=200.0),
        pods=PodSnapshot(running=running, replicas=running, min_replicas=2, max_replicas=max_replicas),
    )


def test_high_cpu_only():
    alerts = generate_alerts(_snapshot(cpu_usage=85.0, mem_usage=40.0))
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.type == 'high_cpu'
    assert alert.severity == 'warning'
    assert alert.resource == 'cpu'
    assert alert.current_value == pytest.approx(85.0)
    assert alert.threshold == 80.0


def test_threshold_is_strict():
    assert generate_alerts(_snapshot(cpu_usage=80.0, mem_usage=80.0)) == []


def test_high_memory():
    alerts = generate_alerts(_snapshot(cpu_usage=10.0, mem_usage=95.0))
    assert [a.type for a in alerts] == ['high_memory']


def test_custom_thresholds():
    alerts = generate_alerts(_snapshot(cpu_usage=60.0, mem_usage=60.0), cpu_threshold=50, memory_threshold=70)
    assert [a.type for a in alerts] == ['high_cpu']


def test_max_pods():
    alerts = generate_alerts(_snapshot(cpu_usage=10.0, mem_usage=10.0, running=10, max_replicas=10))
    assert [a.type for a in alerts] == ['max_pods']
    assert alerts[0].to_dict()['threshold'] == 10.0


def test_no_max_pods_without_autoscaling():
    """max_replicas == 0 means no HPA; running pods never trigger max_pods"""
    alerts = generate_alerts(_snapshot(cpu_usage=10.0, mem_usage=10.0, running=0, max_replicas=0))
    assert alerts == []
