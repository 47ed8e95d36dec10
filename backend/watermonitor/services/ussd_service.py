"""
USSD Menu
=========

Lets people on basic phones check the water from a USSD short code.

The USSD gateway POSTs the text the user has typed so far:

    ""   -> main menu
    "1"  -> latest reading
    "2"  -> last five readings
    else -> invalid option

Responses starting with "CON" keep the session open, "END" closes it.
Rendering is kept separate from the store so it can be tested on its own.
"""

import logging
from typing import Optional

from watermonitor.models import Reading
from watermonitor.services.store import TelemetryStore

logger = logging.getLogger(__name__)

HISTORY_SIZE = 5

MAIN_MENU = (
    "CON Water Monitoring System\n"
    "\n"
    "1. Latest Readings\n"
    "2. History"
)
NO_DATA = "END No data available yet."
NO_HISTORY = "END No history records."
INVALID_OPTION = "END Invalid option."
SYSTEM_ERROR = "END System error. Try again later."


def render_latest(reading: Optional[Reading]) -> str:
    if reading is None:
        return NO_DATA
    updated = reading.recorded_at.strftime("%Y-%m-%d %H:%M UTC")
    return (
        "END Latest Readings\n"
        "\n"
        f"pH: {reading.ph:.2f}\n"
        f"Turbidity: {reading.turbidity:.2f} NTU\n"
        f"Temperature: {reading.temperature:.2f}°C\n"
        f"Updated: {updated}"
    )


def render_history(readings: list[Reading]) -> str:
    if not readings:
        return NO_HISTORY
    lines = ["END Recent Records:", ""]
    for i, r in enumerate(readings, start=1):
        lines.append(f"{i}. pH:{r.ph:.2f} NTU:{r.turbidity:.2f} T:{r.temperature:.2f}°C")
    return "\n".join(lines)


class UssdService:
    """Answers USSD requests from the store."""

    def __init__(self, store: TelemetryStore):
        self.store = store

    def respond(self, text: Optional[str]) -> str:
        """Build the reply for what the user has typed so far."""
        text = (text or "").strip()

        if text == "":
            return MAIN_MENU
        if text == "1":
            return render_latest(self.store.latest_reading())
        if text == "2":
            return render_history(self.store.recent_readings(HISTORY_SIZE))
        return INVALID_OPTION
