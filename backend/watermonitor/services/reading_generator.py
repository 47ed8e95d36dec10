"""
Reading Generator
=================

Makes up the next water reading when no real sensor is attached.

HOW IT WORKS:
------------
Each metric takes a small random step away from its previous value
(a "bounded random walk"), then gets clamped back into a fixed range and
rounded to 2 decimals:

    next = round(clamp(previous + uniform(-step/2, +step/2), min, max), 2)

| metric      | start | step | min  | max  |
|-------------|-------|------|------|------|
| pH          | 7.1   | 0.3  | 6.3  | 8.7  |
| Turbidity   | 4.0   | 1.2  | 1.0  | 11.5 |
| Temperature | 25.0  | 0.7  | 20.0 | 30.5 |

With no previous reading the walk starts from the "start" column, so the
very first reading is already one step away from it.

The ranges are a bit wider than the warning thresholds in the status
engine, so the simulator does produce the occasional warning.

TESTING:
-------
Pass your own random.Random (seeded) and clock to get the exact same
readings every run.
"""

import random
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from watermonitor.models import MetricType, Reading
from watermonitor.services.status_engine import overall_status
from watermonitor.utils.clock import utc_now


@dataclass(frozen=True)
class MetricWalk:
    """Random walk parameters for one metric."""
    default: float
    step: float
    minimum: float
    maximum: float

    def advance(self, previous: Optional[float], rng: random.Random) -> float:
        start = self.default if previous is None else previous
        value = start + rng.uniform(-self.step / 2, self.step / 2)
        value = min(max(value, self.minimum), self.maximum)
        return round(value, 2)


WALKS = {
    MetricType.PH: MetricWalk(default=7.1, step=0.3, minimum=6.3, maximum=8.7),
    MetricType.TURBIDITY: MetricWalk(default=4.0, step=1.2, minimum=1.0, maximum=11.5),
    MetricType.TEMPERATURE: MetricWalk(default=25.0, step=0.7, minimum=20.0, maximum=30.5),
}


class ReadingGenerator:
    """Produces synthetic readings. Has no side effects besides consuming randomness."""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Args:
            rng: Random source. Defaults to a fresh, unseeded random.Random.
            clock: Returns the generation instant (used for recorded_at).
        """
        self.rng = rng or random.Random()
        self.clock = clock

    def next(self, previous: Optional[Reading] = None, at: Optional[datetime] = None) -> Reading:
        """
        Generate the reading that follows `previous`.

        Args:
            previous: Last reading, or None to start from the defaults
            at: Generation instant. Defaults to the clock.

        Returns:
            A new Reading with its overall status already computed
        """
        ph = WALKS[MetricType.PH].advance(previous.ph if previous else None, self.rng)
        turbidity = WALKS[MetricType.TURBIDITY].advance(
            previous.turbidity if previous else None, self.rng
        )
        temperature = WALKS[MetricType.TEMPERATURE].advance(
            previous.temperature if previous else None, self.rng
        )

        return Reading(
            ph=ph,
            turbidity=turbidity,
            temperature=temperature,
            status=overall_status(ph, turbidity, temperature),
            recorded_at=at or self.clock(),
        )
