"""
Telemetry Models
================
Pydantic models for readings, devices and the duty cycle.

This module defines the data structures shared by the engine, the store
and the API:
- Enums: metric types, reading status, device status, cycle phase
- Internal models: Reading, DeviceState, DeviceStateUpdate, CycleWindows
- Request models: what an IoT device posts to us
- Response models: what the dashboard and USSD surfaces get back

THE THREE CHANNELS:
1. pH          - acidity of the water (no unit)
2. Turbidity   - cloudiness of the water (NTU)
3. Temperature - water temperature (°C)
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

# Longest accepted duty cycle window (one year)
MAX_WINDOW_SECONDS = 365 * 24 * 3600


# =============================================================================
# ENUMS
# =============================================================================

class MetricType(str, Enum):
    """The sensor channels we monitor. Device rows use these as their metric."""
    PH = "ph"
    TURBIDITY = "turbidity"
    TEMPERATURE = "temperature"


class ReadingStatus(str, Enum):
    """
    Health label for a metric or a whole reading.

    - NORMAL: every value is inside its safe band
    - WARNING: at least one value is outside its safe band
    """
    NORMAL = "normal"
    WARNING = "warning"


class DeviceStatus(str, Enum):
    """Whether a device is currently sampling (ON) or resting (OFF)."""
    ON = "on"
    OFF = "off"


class CyclePhase(str, Enum):
    """
    The two halves of the duty cycle.

    Cycle Flow:
    - SAMPLING: new readings are generated every tick
    - RESTING: no readings, but device freshness keeps updating
    - after SAMPLING + RESTING the cycle starts over with SAMPLING
    """
    SAMPLING = "sampling"
    RESTING = "resting"


# =============================================================================
# INTERNAL MODELS
# =============================================================================

class Reading(BaseModel):
    """
    One water quality reading.

    Readings are immutable once created. The latest reading is the one with
    the greatest recorded_at (ties go to the higher id).

    Fields:
        id: Database id (None until stored)
        ph: pH value
        turbidity: Turbidity in NTU
        temperature: Water temperature in °C
        status: Overall status derived from the three values
        recorded_at: When the reading was taken (UTC)
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = Field(None, description="Database id")
    ph: float = Field(..., description="pH value")
    turbidity: float = Field(..., description="Turbidity in NTU")
    temperature: float = Field(..., description="Water temperature in °C")
    status: ReadingStatus = Field(..., description="Overall status")
    recorded_at: datetime = Field(..., description="When the reading was taken")


class DeviceState(BaseModel):
    """
    One monitored sensor channel as shown on the dashboard.

    Rows are created once when the database is seeded and then updated on
    every scheduler tick.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    metric: str = Field(..., description="Channel this device reports (ph, turbidity, temperature)")
    status: DeviceStatus
    battery: int = Field(..., description="Battery level %")
    heartbeat: str = Field(..., description="Human label for the last heartbeat")
    signal: int = Field(..., ge=0, le=100, description="Signal strength 0-100")
    calibration: str
    freshness_minutes: int = Field(..., ge=0, alias="freshnessMinutes")
    last_update: datetime = Field(..., alias="lastUpdate")


class DeviceStateUpdate(BaseModel):
    """The fields the scheduler rewrites on every tick."""
    status: DeviceStatus
    heartbeat: str
    signal: int = Field(..., ge=0, le=100)
    freshness_minutes: int = Field(..., ge=0)
    last_update: datetime


class CycleWindows(BaseModel):
    """
    Duty cycle timing.

    All three durations must be positive, finite and at most a year. A zero
    or negative window would either spin the cycle without ever sampling or
    never leave a phase, so building this model with one is a configuration
    error.

    Fields:
        sample_window_seconds: How long each sampling phase lasts (default 5 min)
        rest_window_seconds: How long each resting phase lasts (default 40 min)
        tick_interval_seconds: How often the scheduler wakes up (default 10 s)
    """
    sample_window_seconds: float = Field(300.0, gt=0, le=MAX_WINDOW_SECONDS, allow_inf_nan=False)
    rest_window_seconds: float = Field(2400.0, gt=0, le=MAX_WINDOW_SECONDS, allow_inf_nan=False)
    tick_interval_seconds: float = Field(10.0, gt=0, le=MAX_WINDOW_SECONDS, allow_inf_nan=False)

    @property
    def sample_window(self) -> timedelta:
        return timedelta(seconds=self.sample_window_seconds)

    @property
    def rest_window(self) -> timedelta:
        return timedelta(seconds=self.rest_window_seconds)

    @property
    def cycle_length(self) -> timedelta:
        return self.sample_window + self.rest_window


# =============================================================================
# REQUEST MODELS - What devices send to the backend
# =============================================================================

class IoTReadingRequest(BaseModel):
    """
    Request body for POST /iot/readings.

    Values are accepted as numbers or numeric strings. Anything else is
    rejected with a 400 before the status engine ever sees it.

    Example Request:
        POST /iot/readings
        {
            "ph": 7.2,
            "turbidity": "3.5",
            "temperature": 25.4
        }
    """
    ph: Any = Field(None, description="pH value", examples=[7.2])
    turbidity: Any = Field(None, description="Turbidity in NTU", examples=[3.5])
    temperature: Any = Field(None, description="Water temperature in °C", examples=[25.4])


# =============================================================================
# RESPONSE MODELS - What the backend returns
# =============================================================================

class MetricValue(BaseModel):
    """One metric on the latest-readings card."""
    value: float
    status: ReadingStatus
    unit: Optional[str] = None
    range: str


class LatestReadingsResponse(BaseModel):
    """
    Response for GET /latest-readings.

    deviceStatus is "offline" as soon as any device is off.
    """
    model_config = ConfigDict(populate_by_name=True)

    ph: MetricValue
    turbidity: MetricValue
    temperature: MetricValue
    device_status: str = Field(..., alias="deviceStatus")
    last_update: datetime = Field(..., alias="lastUpdate")


class ReadingResponse(BaseModel):
    """A stored reading as returned by /history and POST /iot/readings."""
    id: int
    ph: float
    turbidity: float
    temperature: float
    status: ReadingStatus
    timestamp: datetime

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingResponse":
        return cls(
            id=reading.id,
            ph=round(reading.ph, 2),
            turbidity=round(reading.turbidity, 2),
            temperature=round(reading.temperature, 2),
            status=reading.status,
            timestamp=reading.recorded_at,
        )
