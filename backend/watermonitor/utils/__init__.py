"""
Utility modules for the water monitor backend.
"""

from watermonitor.utils.clock import utc_now
from watermonitor.utils.validation import (
    parse_metric_value,
    validate_history_limit,
    validate_email,
    validate_password,
)

__all__ = [
    "utc_now",
    "parse_metric_value",
    "validate_history_limit",
    "validate_email",
    "validate_password",
]
