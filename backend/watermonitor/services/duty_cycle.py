"""
Duty-Cycle Scheduler
====================

This is the HEARTBEAT of the simulator!

WHAT IT DOES:
------------
1. Wakes up every tick (10 seconds by default)
2. Works out where we are in the duty cycle:
   - first 5 minutes of every 45: SAMPLING
   - remaining 40 minutes: RESTING
3. While SAMPLING: generates a reading, stores it, remembers it as "previous"
4. On EVERY tick: refreshes all device rows (on/off, heartbeat, signal, freshness)

THE CYCLE:
---------
The phase is never counted in ticks. It is worked out from the wall clock:

    elapsed = now - cycle_start
    elapsed < sample window                 -> SAMPLING
    elapsed < sample window + rest window   -> RESTING
    otherwise                               -> new cycle, cycle_start = now, SAMPLING

So if the process stalls and misses a bunch of ticks, the next one still
lands in the right phase.

ONE TICK AT A TIME:
------------------
The scheduler owns its CycleState and nobody else touches it. Ticks never
overlap: an asyncio.Lock guards the tick, and the APScheduler job runs with
max_instances=1 so a tick that overruns makes the next one skip (with a
warning) instead of piling up.

FAILURES:
--------
A store failure inside a tick is logged and the tick carries on with what
it can still do. Nothing escapes a tick. The next tick starts fresh.
"""

import asyncio
import logging
import math
import sys
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Protocol, Union

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import ValidationError

from watermonitor.exceptions import ConfigurationError, StoreError
from watermonitor.models import (
    CyclePhase,
    CycleWindows,
    DeviceState,
    DeviceStateUpdate,
    DeviceStatus,
    Reading,
    ReadingStatus,
)
from watermonitor.services.reading_generator import ReadingGenerator
from watermonitor.utils.clock import utc_now

# Configure logging for the duty cycle
logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] %(message)s',
    datefmt='%H:%M:%S',
    handlers=[logging.StreamHandler(sys.stderr)]
)
logger = logging.getLogger(__name__)


# What the devices look like in each phase
SAMPLING_HEARTBEAT = "Just now"
SAMPLING_SIGNAL = 75
RESTING_HEARTBEAT = "Offline"
RESTING_SIGNAL = 20


class ReadingStore(Protocol):
    """The slice of the store the scheduler needs."""

    def insert_reading(
        self,
        ph: float,
        turbidity: float,
        temperature: float,
        status: ReadingStatus,
        recorded_at: datetime
    ) -> int: ...

    def latest_reading(self) -> Optional[Reading]: ...

    def update_device_state(self, device_id: Optional[int], state: DeviceStateUpdate) -> int: ...

    def list_devices(self) -> list[DeviceState]: ...


@dataclass
class CycleState:
    """
    Process-local cycle bookkeeping. Owned by one DutyCycleScheduler.

    previous_reading is None until the first reading exists, then always the
    most recent one. It seeds the next random walk step.
    """
    cycle_start: datetime
    previous_reading: Optional[Reading] = None


@dataclass(frozen=True)
class TickResult:
    """What one tick did. Handy for logging and tests."""
    phase: CyclePhase
    reading: Optional[Reading]
    device_update: DeviceStateUpdate


# =============================================================================
# PURE HELPERS
# =============================================================================

def build_cycle_windows(
    sample_window_seconds: Union[float, str],
    rest_window_seconds: Union[float, str],
    tick_interval_seconds: Union[float, str]
) -> CycleWindows:
    """
    Build CycleWindows from raw numbers or environment strings.

    Raises:
        ConfigurationError: If any duration is zero, negative, infinite or not a number
    """
    try:
        return CycleWindows(
            sample_window_seconds=sample_window_seconds,
            rest_window_seconds=rest_window_seconds,
            tick_interval_seconds=tick_interval_seconds,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid duty cycle configuration: {e}") from e


def parse_shutdown_grace(raw: Union[float, str]) -> float:
    """
    Seconds to wait for a running tick on shutdown.

    Raises:
        ConfigurationError: If the value is negative, infinite or not a number
    """
    try:
        grace = float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"shutdown grace must be a number, got {raw!r}") from e
    if not math.isfinite(grace) or grace < 0:
        raise ConfigurationError(f"shutdown grace must be a finite, non-negative number, got {raw!r}")
    return grace


def decide_phase(
    now: datetime,
    cycle_start: datetime,
    windows: CycleWindows
) -> tuple[CyclePhase, datetime]:
    """
    Work out the phase for `now`.

    Returns:
        (phase, cycle_start) - cycle_start is `now` if a new cycle just began
    """
    elapsed = now - cycle_start

    if elapsed < windows.sample_window:
        return CyclePhase.SAMPLING, cycle_start
    if elapsed < windows.cycle_length:
        return CyclePhase.RESTING, cycle_start

    # Cycle over: start again, elapsed is now 0 which is always sampling
    return CyclePhase.SAMPLING, now


def freshness_minutes(now: datetime, previous: Optional[Reading]) -> int:
    """Age of the previous reading in whole minutes (half rounds up), 0 if there is none."""
    if previous is None:
        return 0
    seconds = (now - previous.recorded_at).total_seconds()
    return max(0, math.floor(seconds / 60 + 0.5))


def device_update_for(phase: CyclePhase, freshness: int, now: datetime) -> DeviceStateUpdate:
    """Device fields for the given phase."""
    if phase is CyclePhase.SAMPLING:
        return DeviceStateUpdate(
            status=DeviceStatus.ON,
            heartbeat=SAMPLING_HEARTBEAT,
            signal=SAMPLING_SIGNAL,
            freshness_minutes=freshness,
            last_update=now,
        )
    return DeviceStateUpdate(
        status=DeviceStatus.OFF,
        heartbeat=RESTING_HEARTBEAT,
        signal=RESTING_SIGNAL,
        freshness_minutes=freshness,
        last_update=now,
    )


# =============================================================================
# THE SCHEDULER
# =============================================================================

class DutyCycleScheduler:
    """
    Drives the simulator: one tick every tick_interval_seconds.

    Lifecycle:
        scheduler = DutyCycleScheduler(store, windows)
        await scheduler.start()      # bootstrap + one immediate tick + timer
        ...
        await scheduler.shutdown()   # stop timer, let a running tick finish
    """

    JOB_ID = "duty_cycle_tick"

    def __init__(
        self,
        store: ReadingStore,
        windows: CycleWindows,
        generator: Optional[ReadingGenerator] = None,
        clock=utc_now,
        shutdown_grace: float = 5.0
    ):
        """
        Set up the scheduler. Nothing runs until start().

        Args:
            store: Where readings and device rows live
            windows: Sample/rest/tick durations (all must be positive)
            generator: Reading generator. Defaults to an unseeded one.
            clock: Returns "now" as an aware UTC datetime
            shutdown_grace: Seconds to wait for a running tick on shutdown

        Raises:
            ConfigurationError: If a duration is not positive and finite
        """
        for name in ("sample_window_seconds", "rest_window_seconds", "tick_interval_seconds"):
            value = getattr(windows, name)
            if not (value > 0 and math.isfinite(value)):
                raise ConfigurationError(f"{name} must be positive and finite, got {value}")
        if not (shutdown_grace >= 0 and math.isfinite(shutdown_grace)):
            raise ConfigurationError(f"shutdown_grace must be non-negative and finite, got {shutdown_grace}")

        self.store = store
        self.windows = windows
        self.generator = generator or ReadingGenerator(clock=clock)
        self.clock = clock
        self.shutdown_grace = shutdown_grace

        self._state: Optional[CycleState] = None
        self._lock = asyncio.Lock()
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def snapshot(self) -> Optional[CycleState]:
        """A copy of the current cycle state (None before bootstrap)."""
        return replace(self._state) if self._state else None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def bootstrap(self, now: Optional[datetime] = None):
        """Start a new cycle at `now`, seeded with the latest stored reading."""
        now = now or self.clock()
        previous = None
        try:
            previous = await asyncio.to_thread(self.store.latest_reading)
        except StoreError as e:
            logger.error(f"Could not load latest reading, starting from defaults: {e}")
        except Exception as e:
            logger.error(f"Unreadable latest reading, starting from defaults: {e}", exc_info=True)

        self._state = CycleState(cycle_start=now, previous_reading=previous)
        if previous:
            logger.info(f"Duty cycle seeded from reading recorded at {previous.recorded_at.isoformat()}")
        else:
            logger.info("Duty cycle starting with no previous reading")

    async def start(self):
        """Bootstrap, run one tick right away, then tick on the timer."""
        if self.is_running:
            logger.warning("Duty cycle already running")
            return

        await self.bootstrap()
        await self.tick()

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._scheduled_tick,
            trigger=IntervalTrigger(seconds=self.windows.tick_interval_seconds),
            id=self.JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()

        logger.info(
            f"Duty cycle started: sample {self.windows.sample_window_seconds:g}s, "
            f"rest {self.windows.rest_window_seconds:g}s, "
            f"tick every {self.windows.tick_interval_seconds:g}s"
        )

    async def shutdown(self):
        """Stop the timer, then give a running tick up to shutdown_grace seconds to finish."""
        if self._scheduler is not None:
            try:
                self._scheduler.shutdown(wait=False)
            except Exception as e:
                logger.error(f"Error shutting down duty cycle timer: {e}", exc_info=True)
            self._scheduler = None

        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self.shutdown_grace)
        except asyncio.TimeoutError:
            logger.warning(
                f"Tick still running after {self.shutdown_grace:g}s shutdown grace period"
            )
        else:
            self._lock.release()

        logger.info("Duty cycle stopped")

    # =========================================================================
    # TICKING
    # =========================================================================

    async def _scheduled_tick(self):
        if self._lock.locked():
            logger.warning("Previous tick still running, skipping this one")
            return
        await self.tick()

    async def tick(self, now: Optional[datetime] = None) -> Optional[TickResult]:
        """
        Run one tick. Never raises.

        Args:
            now: The tick instant. Defaults to the clock.

        Returns:
            What the tick did, or None if it failed unexpectedly
        """
        async with self._lock:
            try:
                now = now or self.clock()
                if self._state is None:
                    await self.bootstrap(now)
                return await self._run_tick(self._state, now)
            except Exception as e:
                logger.error(f"Duty cycle tick failed: {e}", exc_info=True)
                return None

    async def _run_tick(self, state: CycleState, now: datetime) -> TickResult:
        phase, cycle_start = decide_phase(now, state.cycle_start, self.windows)
        if cycle_start != state.cycle_start:
            logger.info("New duty cycle started")
            state.cycle_start = cycle_start

        reading = None
        if phase is CyclePhase.SAMPLING:
            reading = await self._sample(state, now)

        freshness = freshness_minutes(now, state.previous_reading)
        device_update = device_update_for(phase, freshness, now)

        try:
            await asyncio.to_thread(self.store.update_device_state, None, device_update)
        except StoreError as e:
            logger.error(f"Failed to update device state: {e}")

        logger.debug(
            f"Tick {phase.value}: devices {device_update.status.value}, "
            f"freshness {freshness} min"
        )
        return TickResult(phase=phase, reading=reading, device_update=device_update)

    async def _sample(self, state: CycleState, now: datetime) -> Optional[Reading]:
        """Generate, store and remember one reading. Returns None if storing failed."""
        candidate = self.generator.next(state.previous_reading, at=now)

        try:
            reading_id = await asyncio.to_thread(
                self.store.insert_reading,
                candidate.ph,
                candidate.turbidity,
                candidate.temperature,
                candidate.status,
                candidate.recorded_at,
            )
        except StoreError as e:
            logger.error(f"Failed to store reading: {e}")
            return None

        reading = candidate.model_copy(update={"id": reading_id})
        state.previous_reading = reading

        if reading.status is ReadingStatus.WARNING:
            logger.warning(
                f"Reading {reading_id} out of range: pH {reading.ph}, "
                f"turbidity {reading.turbidity} NTU, temperature {reading.temperature} °C"
            )
        return reading
