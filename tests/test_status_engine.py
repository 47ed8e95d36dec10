from __future__ import annotations

import random

import pytest

from watermonitor.models import MetricType, ReadingStatus
from watermonitor.services.status_engine import metric_status, overall_status

NORMAL = ReadingStatus.NORMAL
WARNING = ReadingStatus.WARNING


@pytest.mark.parametrize(
    "metric, value, expected",
    [
        (MetricType.PH, 6.5, NORMAL),
        (MetricType.PH, 6.49, WARNING),
        (MetricType.PH, 8.5, NORMAL),
        (MetricType.PH, 8.51, WARNING),
        (MetricType.TURBIDITY, 8, NORMAL),
        (MetricType.TURBIDITY, 8.01, WARNING),
        (MetricType.TURBIDITY, 0, NORMAL),
        (MetricType.TEMPERATURE, 20, NORMAL),
        (MetricType.TEMPERATURE, 19.99, WARNING),
        (MetricType.TEMPERATURE, 30, NORMAL),
        (MetricType.TEMPERATURE, 30.01, WARNING),
    ],
)
def test_metric_thresholds(metric, value, expected):
    assert metric_status(metric, value) is expected


def test_plain_string_metric_names_work():
    assert metric_status("ph", 9.0) is WARNING
    assert metric_status("temperature", 25.0) is NORMAL


def test_unknown_metric_is_normal():
    assert metric_status("salinity", 1e9) is NORMAL
    assert metric_status("", -1e9) is NORMAL


def test_overall_status_examples():
    assert overall_status(7.2, 3.5, 25.4) is NORMAL
    assert overall_status(9.0, 3.5, 25.4) is WARNING
    assert overall_status(7.2, 8.5, 25.4) is WARNING
    assert overall_status(7.2, 3.5, 31.0) is WARNING


def test_overall_is_warning_iff_any_metric_is():
    rng = random.Random(0)
    for _ in range(1000):
        ph = rng.uniform(5.0, 10.0)
        turbidity = rng.uniform(0.0, 12.0)
        temperature = rng.uniform(15.0, 35.0)
        any_warning = any(
            metric_status(metric, value) is WARNING
            for metric, value in (
                (MetricType.PH, ph),
                (MetricType.TURBIDITY, turbidity),
                (MetricType.TEMPERATURE, temperature),
            )
        )
        assert (overall_status(ph, turbidity, temperature) is WARNING) == any_warning
