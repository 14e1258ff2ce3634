import math
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from normalize import math as m


def test_avg_and_peak():
    samples = [1, 2, 3, 4, 5, 6, 7, 8, 9, 100]
    assert round(m.avg(samples), 2) == 14.5
    assert m.peak(samples) == 100
    assert m.lowest(samples) == 1
    assert round(m.p95(samples), 2) == 59.05


def test_empty_samples():
    with pytest.raises(ValueError):
        m.avg([])
    assert m.avg_or_zero([]) == 0.0
    assert m.peak([]) == 0.0
    assert m.lowest([]) == 0.0


def test_moving_average():
    assert m.moving_average([1, 2, 3, 4, 5, 6, 7], 3) == [2.0, 3.0, 4.0, 5.0, 6.0]
    assert m.moving_average([1, 2], 3) == []
    with pytest.raises(ValueError):
        m.moving_average([1, 2, 3], 0)


def test_round_up_to():
    assert m.round_up_to(660.0000000001, 100) == 700
    assert m.round_up_to(700, 100) == 700
    assert m.round_up_to(129, 128) == 256
    assert m.round_up_to(0, 128) == 0


def test_ceil_ignores_float_noise():
    assert m.ceil_tolerant(10 * 0.7) == 7
    assert m.ceil_tolerant(5 * 1.4) == 7
    assert m.ceil_tolerant(7.2) == 8


def test_sanitize():
    assert m.sanitize(float('nan')) == 0.0
    assert m.sanitize(math.inf) == 0.0
    assert m.sanitize(-1) == 0.0
    assert m.sanitize(2e6) == 0.0
    assert m.sanitize(None) == 0.0
    assert m.sanitize("12.5") == 12.5


def test_percent_change():
    assert m.percent_change(100, 150) == 50.0
    assert m.percent_change(0, 10) == 0.0
