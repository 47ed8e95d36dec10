"""
Models Package
==============

This is where all our data models live.
Import from here instead of the individual files.

Example:
    from watermonitor.models import Reading, ReadingStatus
"""

from .telemetry import (
    # Enums
    MetricType,
    ReadingStatus,
    DeviceStatus,
    CyclePhase,

    # Engine and store models
    Reading,
    DeviceState,
    DeviceStateUpdate,
    CycleWindows,

    # API models
    IoTReadingRequest,
    MetricValue,
    LatestReadingsResponse,
    ReadingResponse,
)
from .user import (
    RegisterRequest,
    LoginRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    UserResponse,
    UserListItem,
    AuthResponse,
    MessageResponse,
    UserRecord,
    ResetTokenRecord,
)

__all__ = [
    "MetricType",
    "ReadingStatus",
    "DeviceStatus",
    "CyclePhase",
    "Reading",
    "DeviceState",
    "DeviceStateUpdate",
    "CycleWindows",
    "IoTReadingRequest",
    "MetricValue",
    "LatestReadingsResponse",
    "ReadingResponse",
    "RegisterRequest",
    "LoginRequest",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    "UserResponse",
    "UserListItem",
    "AuthResponse",
    "MessageResponse",
    "UserRecord",
    "ResetTokenRecord",
]
