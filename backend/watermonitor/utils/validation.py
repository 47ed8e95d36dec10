"""
Input Validation Utilities
===========================

Common validation functions for telemetry and account inputs.

Everything a device or a user sends gets checked here before it reaches
the status engine or the store.
"""

import math
import re
from typing import Any, Optional


MIN_PASSWORD_LENGTH = 6
MAX_HISTORY_LIMIT = 1000


def parse_metric_value(value: Any) -> Optional[float]:
    """
    Turn a submitted metric value into a float.

    Accepts numbers and numeric strings ("7.2", " 25 ").

    Args:
        value: Whatever the device sent

    Returns:
        The float value, or None if it is missing, not numeric, or not finite
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None

    try:
        number = float(value)
    except (TypeError, ValueError):
        return None

    if not math.isfinite(number):
        return None
    return number


def validate_history_limit(limit: int) -> bool:
    """
    Validate a history page size.

    Args:
        limit: Number of rows requested

    Returns:
        True if 1 <= limit <= 1000
    """
    return 1 <= limit <= MAX_HISTORY_LIMIT


def validate_email(email: str) -> bool:
    """
    Validate an email address (just the basic shape).

    Args:
        email: Email address string

    Returns:
        True if it looks like name@domain.tld
    """
    if not email:
        return False
    return bool(re.match(r'^[^@\s]+@[^@\s]+\.[^@\s]+$', email))


def validate_password(password: str) -> bool:
    """Passwords need at least 6 characters."""
    return len(password or "") >= MIN_PASSWORD_LENGTH
