from __future__ import annotations

import importlib
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from watermonitor.exceptions import StoreError
from watermonitor.models import DeviceState, DeviceStateUpdate, Reading, ReadingStatus
from watermonitor.services.store import TelemetryStore

T0 = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeStore:
    """In-memory stand-in for the store the scheduler talks to."""

    def __init__(self, latest: Reading | None = None, delay: float = 0.0):
        self.readings: list[Reading] = [latest] if latest else []
        self.device_updates: list[tuple[int | None, DeviceStateUpdate]] = []
        self.devices = [
            DeviceState(
                id=i,
                name=f"{metric} sensor",
                metric=metric,
                status="off",
                battery=90,
                heartbeat="Offline",
                signal=20,
                calibration="Calibrated",
                freshness_minutes=0,
                last_update=T0,
            )
            for i, metric in enumerate(("temperature", "turbidity", "ph"), start=1)
        ]
        self.fail_inserts = False
        self.fail_updates = False
        self.fail_latest = False
        self.corrupt_latest = False
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self._guard = threading.Lock()

    def _enter(self):
        with self._guard:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        if self.delay:
            time.sleep(self.delay)

    def _exit(self):
        with self._guard:
            self.active -= 1

    def insert_reading(self, ph, turbidity, temperature, status, recorded_at) -> int:
        self._enter()
        try:
            if self.fail_inserts:
                raise StoreError("insert failed")
            reading = Reading(
                id=len(self.readings) + 1,
                ph=ph,
                turbidity=turbidity,
                temperature=temperature,
                status=ReadingStatus(status),
                recorded_at=recorded_at,
            )
            self.readings.append(reading)
            return reading.id
        finally:
            self._exit()

    def latest_reading(self) -> Reading | None:
        if self.fail_latest:
            raise StoreError("read failed")
        if self.corrupt_latest:
            raise ValueError("'bogus' is not a valid ReadingStatus")
        if not self.readings:
            return None
        return max(self.readings, key=lambda r: (r.recorded_at, r.id or 0))

    def update_device_state(self, device_id, state: DeviceStateUpdate) -> int:
        self._enter()
        try:
            if self.fail_updates:
                raise StoreError("update failed")
            self.device_updates.append((device_id, state))
            touched = 0
            for i, device in enumerate(self.devices):
                if device_id is None or device.id == device_id:
                    self.devices[i] = device.model_copy(update=state.model_dump())
                    touched += 1
            return touched
        finally:
            self._exit()

    def list_devices(self) -> list[DeviceState]:
        return list(self.devices)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def store(tmp_path) -> TelemetryStore:
    telemetry_store = TelemetryStore(f"sqlite:///{tmp_path / 'test.db'}")
    telemetry_store.init_database(seed=False)
    yield telemetry_store
    telemetry_store.close()


def _client(tmp_path: Path, **env: str):
    mp = pytest.MonkeyPatch()
    mp.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
    mp.setenv("SAMPLING_ENABLED", "false")
    mp.delenv("SMTP_USER", raising=False)
    mp.delenv("SMTP_PASSWORD", raising=False)
    for key, value in env.items():
        mp.setenv(key, value)

    import watermonitor.main as main_module

    importlib.reload(main_module)
    return main_module, mp


@pytest.fixture(scope="module")
def api(tmp_path_factory) -> TestClient:
    """TestClient over a freshly seeded SQLite database, simulator off."""
    main_module, mp = _client(tmp_path_factory.mktemp("api"))
    try:
        with TestClient(main_module.app) as client:
            yield client
    finally:
        mp.undo()


@pytest.fixture
def sampling_api(tmp_path) -> TestClient:
    """TestClient with the simulator on. The timer is slow, so only the startup tick runs."""
    main_module, mp = _client(tmp_path, SAMPLING_ENABLED="true", TICK_INTERVAL_SECONDS="3600")
    try:
        with TestClient(main_module.app) as client:
            yield client
    finally:
        mp.undo()
