import json
import math
import os
import sys
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models import ResourceSnapshot, TimeSeriesValue, utilization_percent, CostLine
from conftest import make_range


def test_utilization_is_recomputed():
    snap = ResourceSnapshot.build(usage=250, average=200, peak=300, request=500, limit=1000)
    assert snap.utilization_percent == 50.0


@pytest.mark.parametrize("usage,req,expected", [
    (100, 0, 0.0),
    (100, -5, 0.0),
    (0, 100, 0.0),
    (50000, 100, 1000.0),
    (-10, 100, 0.0),
    (math.inf, 100, 0.0),
    (math.nan, 100, 0.0),
])
def test_utilization_clamped(usage, req, expected):
    assert utilization_percent(usage, req) == expected


def test_time_series_value_is_frozen():
    v = TimeSeriesValue(value=1.0, timestamp=datetime(2026, 1, 4, tzinfo=timezone.utc))
    with pytest.raises(AttributeError):
        v.value = 2.0
    assert v.to_dict()['timestamp'] == '2026-01-04T00:00:00Z'


def test_range_result_serializes():
    data = make_range([1.0, 2.0]).to_dict()
    assert json.loads(json.dumps(data))['values'][1]['value'] == 2.0


def test_cost_line_scaled():
    line = CostLine(cpu=1.0, memory=2.0, total=3.0).scaled(24)
    assert (line.cpu, line.memory, line.total) == (24.0, 48.0, 72.0)
