"""
Services Package
================

These are the "workers" that do the actual work.

- ReadingGenerator: Makes up plausible water readings (bounded random walk)
- status_engine: Decides normal vs warning for each value
- DutyCycleScheduler: Alternates sampling and resting, keeps devices fresh
- TelemetryStore: Talks to the database
- AuthService: Accounts and password resets
- EmailService: Sends reset links
- UssdService: Answers the USSD menu
"""

from .reading_generator import ReadingGenerator
from .status_engine import metric_status, overall_status
from .store import TelemetryStore
from .duty_cycle import DutyCycleScheduler, build_cycle_windows, parse_shutdown_grace
from .email_service import EmailService
from .auth_service import AuthService
from .ussd_service import UssdService

__all__ = [
    "ReadingGenerator",
    "metric_status",
    "overall_status",
    "TelemetryStore",
    "DutyCycleScheduler",
    "build_cycle_windows",
    "parse_shutdown_grace",
    "EmailService",
    "AuthService",
    "UssdService",
]
