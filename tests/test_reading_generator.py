from __future__ import annotations

import random

import pytest

from conftest import T0
from watermonitor.models import MetricType, Reading, ReadingStatus
from watermonitor.services.reading_generator import WALKS, MetricWalk, ReadingGenerator
from watermonitor.services.status_engine import overall_status


class EdgeRandom:
    """Always draws the same end of the interval."""

    def __init__(self, high: bool):
        self.high = high

    def uniform(self, a, b):
        return b if self.high else a


def _prior(ph, turbidity, temperature) -> Reading:
    return Reading(
        ph=ph,
        turbidity=turbidity,
        temperature=temperature,
        status=overall_status(ph, turbidity, temperature),
        recorded_at=T0,
    )


def test_first_reading_is_one_step_from_defaults():
    rng = random.Random(3)
    reading = ReadingGenerator(rng=random.Random(3)).next(None, at=T0)

    # Metrics draw in a fixed order: ph, turbidity, temperature
    expected_ph = round(min(max(7.1 + rng.uniform(-0.15, 0.15), 6.3), 8.7), 2)
    expected_turbidity = round(min(max(4.0 + rng.uniform(-0.6, 0.6), 1.0), 11.5), 2)
    expected_temperature = round(min(max(25.0 + rng.uniform(-0.35, 0.35), 20.0), 30.5), 2)

    assert reading.ph == expected_ph
    assert reading.turbidity == expected_turbidity
    assert reading.temperature == expected_temperature
    assert reading.recorded_at == T0
    assert reading.id is None


def test_same_seed_gives_same_sequence():
    a = ReadingGenerator(rng=random.Random(99))
    b = ReadingGenerator(rng=random.Random(99))

    prev_a = prev_b = None
    for _ in range(50):
        prev_a = a.next(prev_a, at=T0)
        prev_b = b.next(prev_b, at=T0)
        assert prev_a == prev_b


@pytest.mark.parametrize(
    "prior",
    [
        None,
        _prior(6.3, 1.0, 20.0),
        _prior(8.7, 11.5, 30.5),
        _prior(-50.0, -50.0, -50.0),
        _prior(100.0, 100.0, 100.0),
    ],
)
def test_walk_stays_in_bounds(prior):
    generator = ReadingGenerator(rng=random.Random(5))
    previous = prior
    for _ in range(500):
        previous = generator.next(previous, at=T0)
        assert 6.3 <= previous.ph <= 8.7
        assert 1.0 <= previous.turbidity <= 11.5
        assert 20.0 <= previous.temperature <= 30.5


def test_walk_is_clamped_at_the_edges():
    at_max = _prior(8.7, 11.5, 30.5)
    high = ReadingGenerator(rng=EdgeRandom(high=True)).next(at_max, at=T0)
    assert (high.ph, high.turbidity, high.temperature) == (8.7, 11.5, 30.5)

    at_min = _prior(6.3, 1.0, 20.0)
    low = ReadingGenerator(rng=EdgeRandom(high=False)).next(at_min, at=T0)
    assert (low.ph, low.turbidity, low.temperature) == (6.3, 1.0, 20.0)


def test_step_is_at_most_half_the_step_size():
    generator = ReadingGenerator(rng=random.Random(11))
    previous = _prior(7.5, 5.0, 25.0)
    for _ in range(200):
        current = generator.next(previous, at=T0)
        assert abs(current.ph - previous.ph) <= 0.15 + 0.005
        assert abs(current.turbidity - previous.turbidity) <= 0.6 + 0.005
        assert abs(current.temperature - previous.temperature) <= 0.35 + 0.005
        previous = current


def test_values_are_rounded_to_two_decimals():
    generator = ReadingGenerator(rng=random.Random(1))
    previous = None
    for _ in range(100):
        previous = generator.next(previous, at=T0)
        for value in (previous.ph, previous.turbidity, previous.temperature):
            assert round(value, 2) == value


def test_status_matches_status_engine():
    generator = ReadingGenerator(rng=random.Random(2024))
    previous = _prior(8.6, 9.0, 29.9)
    seen = set()
    for _ in range(300):
        previous = generator.next(previous, at=T0)
        assert previous.status is overall_status(previous.ph, previous.turbidity, previous.temperature)
        seen.add(previous.status)
    assert ReadingStatus.WARNING in seen


def test_recorded_at_defaults_to_clock():
    generator = ReadingGenerator(rng=random.Random(0), clock=lambda: T0)
    assert generator.next().recorded_at == T0


def test_metric_walk_table():
    assert WALKS[MetricType.PH] == MetricWalk(7.1, 0.3, 6.3, 8.7)
    assert WALKS[MetricType.TURBIDITY] == MetricWalk(4.0, 1.2, 1.0, 11.5)
    assert WALKS[MetricType.TEMPERATURE] == MetricWalk(25.0, 0.7, 20.0, 30.5)
