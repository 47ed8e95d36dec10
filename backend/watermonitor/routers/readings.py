"""
Readings API Router
===================

Endpoints for the dashboard and for devices that push their own readings.

ALL ENDPOINTS:
-------------
GET    /latest-readings   - Newest reading with per-metric status
GET    /history           - Past readings (filter with from, to, q, limit)
GET    /device-status     - All devices with heartbeat and freshness
POST   /iot/readings      - A device submits a reading (JSON or urlencoded form)
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from watermonitor.exceptions import StoreError
from watermonitor.models import (
    DeviceState,
    DeviceStatus,
    IoTReadingRequest,
    LatestReadingsResponse,
    MetricType,
    MetricValue,
    ReadingResponse,
)
from watermonitor.services.status_engine import METRIC_DISPLAY, metric_status, overall_status
from watermonitor.utils.clock import utc_now
from watermonitor.utils.validation import parse_metric_value, validate_history_limit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["readings"])


# =============================================================================
# DEPENDENCY INJECTION
# =============================================================================

_store = None  # This gets set when the app starts


def set_store(store):
    """Called when the app starts to hand the routers the store."""
    global _store
    _store = store


def get_store():
    """Get the store for use in endpoints."""
    if _store is None:
        raise HTTPException(status_code=500, detail="Server not fully started yet")
    return _store


def _metric_value(metric: MetricType, value: float) -> MetricValue:
    display = METRIC_DISPLAY[metric]
    return MetricValue(
        value=round(value, 2),
        status=metric_status(metric, value),
        unit=display["unit"],
        range=display["range"],
    )


# =============================================================================
# DASHBOARD ENDPOINTS
# =============================================================================

@router.get(
    "/latest-readings",
    response_model=LatestReadingsResponse,
    response_model_exclude_none=True,
)
def get_latest_readings(store=Depends(get_store)):
    """
    The newest reading, each metric labelled normal or warning.

    deviceStatus is "offline" if any device is currently off.
    """
    try:
        latest = store.latest_reading()
        devices = store.list_devices()
    except StoreError as e:
        logger.error(f"[/latest-readings] Error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch latest readings")

    if latest is None:
        raise HTTPException(status_code=404, detail="No readings found")

    any_off = any(device.status is DeviceStatus.OFF for device in devices)

    return LatestReadingsResponse(
        ph=_metric_value(MetricType.PH, latest.ph),
        turbidity=_metric_value(MetricType.TURBIDITY, latest.turbidity),
        temperature=_metric_value(MetricType.TEMPERATURE, latest.temperature),
        device_status="offline" if any_off else "online",
        last_update=latest.recorded_at,
    )


@router.get("/history", response_model=list[ReadingResponse])
def get_history(
    start: Optional[datetime] = Query(None, alias="from", description="Only readings at or after this time"),
    end: Optional[datetime] = Query(None, alias="to", description="Only readings at or before this time"),
    q: Optional[str] = Query(None, description="Search the timestamp text, e.g. 2026-10-18"),
    limit: int = Query(100, description="Maximum rows (1-1000)"),
    store=Depends(get_store)
):
    """Past readings, newest first."""
    if not validate_history_limit(limit):
        raise HTTPException(status_code=400, detail="limit must be between 1 and 1000")

    try:
        readings = store.reading_history(start=start, end=end, query=q, limit=limit)
    except StoreError as e:
        logger.error(f"[/history] Error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch history")

    return [ReadingResponse.from_reading(r) for r in readings]


@router.get("/device-status", response_model=list[DeviceState])
def get_device_status(store=Depends(get_store)):
    """All devices, ordered by id."""
    try:
        return store.list_devices()
    except StoreError as e:
        logger.error(f"[/device-status] Error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch device status")


# =============================================================================
# DEVICE INGEST
# =============================================================================

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def _read_iot_payload(request: Request) -> IoTReadingRequest:
    """Body as JSON or as a form (simple devices often post urlencoded)."""
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return IoTReadingRequest.model_validate(dict(form))

    body = await request.body()
    if not body.strip():
        return IoTReadingRequest()
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON or form data")
    if not isinstance(payload, dict):
        return IoTReadingRequest()
    return IoTReadingRequest.model_validate(payload)


@router.post(
    "/iot/readings",
    response_model=ReadingResponse,
    status_code=201,
    openapi_extra={
        "requestBody": {
            "content": {
                "application/json": {"schema": IoTReadingRequest.model_json_schema()},
                "application/x-www-form-urlencoded": {"schema": IoTReadingRequest.model_json_schema()},
            }
        }
    },
)
async def submit_reading(request: Request, store=Depends(get_store)):
    """
    A device reports a reading.

    Send us ph, turbidity and temperature (numbers or numeric strings) as
    JSON or as a urlencoded form. Values are kept to 2 decimals, then we
    label the reading normal/warning and store it.
    """
    payload = await _read_iot_payload(request)

    ph = parse_metric_value(payload.ph)
    turbidity = parse_metric_value(payload.turbidity)
    temperature = parse_metric_value(payload.temperature)

    if ph is None or turbidity is None or temperature is None:
        raise HTTPException(
            status_code=400,
            detail="ph, turbidity and temperature must be numeric values",
        )

    # Status is judged on the values as stored and displayed
    ph, turbidity, temperature = round(ph, 2), round(turbidity, 2), round(temperature, 2)

    status = overall_status(ph, turbidity, temperature)
    recorded_at = utc_now()

    try:
        reading_id = await asyncio.to_thread(
            store.insert_reading, ph, turbidity, temperature, status, recorded_at
        )
    except StoreError as e:
        logger.error(f"[/iot/readings] Error: {e}")
        raise HTTPException(status_code=500, detail="Failed to store IoT reading")

    logger.info(f"[IoT] Reading {reading_id} stored ({status.value})")

    return ReadingResponse(
        id=reading_id,
        ph=ph,
        turbidity=turbidity,
        temperature=temperature,
        status=status,
        timestamp=recorded_at,
    )
