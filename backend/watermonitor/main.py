"""
Water Monitor - Backend API
===========================
FastAPI application for a water quality monitoring station.

ARCHITECTURE:
    A duty-cycle simulator stands in for the pH, turbidity and temperature
    sensors. It samples for a few minutes, rests for a while, and keeps the
    device rows fresh the whole time. Dashboards, phones (USSD) and real
    devices all go through the same database.

    [Dashboard App] --HTTP--> [This Backend] <--USSD-- [Basic Phones]
                                   |    ^
                                   v    |
                             [Database] [Duty Cycle Simulator]
                                   ^
                                   |
                           [IoT devices POST /iot/readings]

HOW TO RUN:
    # Install dependencies
    pip install -e .

    # Copy environment config
    cp env.example.txt .env
    # Edit .env with your settings

    # Run the server
    uvicorn watermonitor.main:app --reload --port 8000

API DOCUMENTATION:
    After starting the server, visit:
    - Swagger UI: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
    - OpenAPI JSON: http://localhost:8000/openapi.json
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from watermonitor.routers import (
    auth_router,
    readings_router,
    set_auth_service,
    set_store,
    ussd_router,
    users_router,
)
from watermonitor.services import (
    AuthService,
    DutyCycleScheduler,
    EmailService,
    TelemetryStore,
    build_cycle_windows,
    parse_shutdown_grace,
)


# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

SERVICE_NAME = "water-monitor-backend"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# CONFIGURATION
# =============================================================================

class Config:
    """
    Application configuration loaded from environment variables.

    Environment Variables:
        SAMPLE_WINDOW_SECONDS: Length of each sampling phase (default: 300)
        REST_WINDOW_SECONDS: Length of each resting phase (default: 2400)
        TICK_INTERVAL_SECONDS: Seconds between scheduler ticks (default: 10)
        SHUTDOWN_GRACE_SECONDS: Wait for a running tick on shutdown (default: 5)
        SAMPLING_ENABLED: Run the duty cycle simulator (default: true)
        DATABASE_URL: SQLAlchemy database URL
        CORS_ORIGIN / FRONTEND_URL: Comma separated allowed origins (default: *)
        APP_BASE_URL: Public URL used in password reset links
        RESET_TOKEN_TTL_MINUTES: Reset link lifetime (default: 30)
        SESSION_TOKEN_TTL_DAYS: Login token lifetime (default: 7)

    Non-numeric, non-positive or infinite durations stop the app at startup
    with a ConfigurationError.
    """

    # Duty cycle timing
    # Kept as raw strings; the lifespan validates them and stops startup on bad values
    SAMPLE_WINDOW_SECONDS = os.getenv("SAMPLE_WINDOW_SECONDS", "300")
    REST_WINDOW_SECONDS = os.getenv("REST_WINDOW_SECONDS", "2400")
    TICK_INTERVAL_SECONDS = os.getenv("TICK_INTERVAL_SECONDS", "10")
    SHUTDOWN_GRACE_SECONDS = os.getenv("SHUTDOWN_GRACE_SECONDS", "5")
    SAMPLING_ENABLED = _env_flag("SAMPLING_ENABLED", "true")

    # Database
    # Default: a SQLite file next to where the server is started
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./water_monitor.db")

    # Accounts
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:8000")
    RESET_TOKEN_TTL_MINUTES = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "30"))
    SESSION_TOKEN_TTL_DAYS = int(os.getenv("SESSION_TOKEN_TTL_DAYS", "7"))

    # Allowed CORS origins (FRONTEND_URL is the older name)
    CORS_ORIGINS = [
        origin.strip()
        for origin in (os.getenv("CORS_ORIGIN") or os.getenv("FRONTEND_URL") or "*").split(",")
        if origin.strip()
    ]


# =============================================================================
# APPLICATION LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    STARTUP:
        1. Check the duty cycle configuration (bad values stop startup)
        2. Open the database, create tables, seed sample data
        3. Set up email and auth services
        4. Inject services into routers
        5. Start the duty cycle simulator

    SHUTDOWN:
        1. Stop the simulator (a running tick gets to finish)
        2. Close the database
    """
    # ========== STARTUP ==========
    windows = build_cycle_windows(
        Config.SAMPLE_WINDOW_SECONDS,
        Config.REST_WINDOW_SECONDS,
        Config.TICK_INTERVAL_SECONDS,
    )
    shutdown_grace = parse_shutdown_grace(Config.SHUTDOWN_GRACE_SECONDS)

    store = TelemetryStore(Config.DATABASE_URL)
    store.init_database()

    auth_service = AuthService(
        store=store,
        email_service=EmailService(),
        app_base_url=Config.APP_BASE_URL,
        reset_token_ttl_minutes=Config.RESET_TOKEN_TTL_MINUTES,
        session_token_ttl_days=Config.SESSION_TOKEN_TTL_DAYS,
    )

    set_store(store)
    set_auth_service(auth_service)

    duty_cycle = DutyCycleScheduler(
        store=store,
        windows=windows,
        shutdown_grace=shutdown_grace,
    )
    app.state.duty_cycle = duty_cycle
    if Config.SAMPLING_ENABLED:
        await duty_cycle.start()

    print("=" * 60)
    print("WATER MONITOR - Backend running")
    print("=" * 60)
    print(f"   Database: {Config.DATABASE_URL}")
    print(f"   Sampling: {'on' if Config.SAMPLING_ENABLED else 'off'}")
    print(f"   Duty cycle: sample {windows.sample_window_seconds:g}s / rest {windows.rest_window_seconds:g}s")
    print(f"   Tick interval: {windows.tick_interval_seconds:g}s")
    print(f"   CORS origins: {len(Config.CORS_ORIGINS)} configured")
    print("=" * 60)

    yield  # Application runs here

    # ========== SHUTDOWN ==========
    print("Shutting down...")
    await duty_cycle.shutdown()
    store.close()
    print("Shutdown complete")


# =============================================================================
# CREATE FASTAPI APPLICATION
# =============================================================================

app = FastAPI(
    title="Water Monitor API",
    description="""
## Overview

Backend API for a water quality monitoring station measuring pH,
turbidity and temperature.

## How It Works

1. **Sampling** - For 5 minutes of every 45, a new reading every 10 seconds
2. **Resting** - For the other 40 minutes the devices show as offline
3. **Status** - Every reading is labelled `normal` or `warning`:

| Metric | Warning when |
|--------|--------------|
| **pH** | below 6.5 or above 8.5 |
| **Turbidity** | above 8 NTU |
| **Temperature** | below 20 °C or above 30 °C |

## Authentication

- Register or log in under `/auth` to get a token
- `GET /users` needs `Authorization: Bearer <token>`
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# =============================================================================
# MIDDLEWARE
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials="*" not in Config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request as: METHOD path status duration."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(f"{request.method} {request.url.path} {response.status_code} {duration_ms:.0f}ms")
    return response


# =============================================================================
# INCLUDE ROUTERS
# =============================================================================

# Dashboard and device endpoints
app.include_router(readings_router)

# Accounts
app.include_router(auth_router)
app.include_router(users_router)

# USSD menu
app.include_router(ussd_router)


# =============================================================================
# ROOT ENDPOINTS
# =============================================================================

@app.get(
    "/",
    summary="API Information",
    description="Get basic API information and available endpoints."
)
async def root():
    """Root endpoint with API overview."""
    return {
        "name": "Water Monitor API",
        "version": "1.0.0",
        "documentation": {
            "swagger": "/docs",
            "redoc": "/redoc",
            "openapi": "/openapi.json"
        },
        "endpoints": {
            "latest_readings": "GET /latest-readings",
            "history": "GET /history?from=&to=&q=&limit=",
            "device_status": "GET /device-status",
            "submit_reading": "POST /iot/readings",
            "auth": {
                "register": "POST /auth/register",
                "login": "POST /auth/login",
                "forgot_password": "POST /auth/forgot-password",
                "reset_password": "POST /auth/reset-password"
            },
            "users": "GET /users",
            "ussd": "POST /ussd"
        }
    }


@app.get(
    "/health",
    summary="Health Check",
    description="Check if the backend is running."
)
async def health(request: Request):
    """Health check endpoint."""
    duty_cycle = getattr(request.app.state, "duty_cycle", None)
    return {
        "ok": True,
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sampling": bool(duty_cycle and duty_cycle.is_running),
    }
