"""
Exceptions
==========

Errors raised by the engine and the store. Routers translate these into
HTTP responses; the duty-cycle scheduler logs them and carries on.
"""


class WaterMonitorError(Exception):
    """Base class for everything this backend raises on purpose."""


class ConfigurationError(WaterMonitorError):
    """Invalid configuration. Fatal at startup."""


class StoreError(WaterMonitorError):
    """The store could not complete a read or a write."""


class DuplicateEmailError(StoreError):
    """A user with this email address already exists."""
