"""
Status Engine
=============

Decides whether a value is safe.

Every reading gets a status - the generator's synthetic ones and the ones
devices post to /iot/readings alike. The rules are fixed thresholds:

    pH          warning below 6.5 or above 8.5
    Turbidity   warning above 8 NTU
    Temperature warning below 20 °C or above 30 °C

The boundaries themselves are normal (pH 6.5 is fine, pH 6.49 is not).
An unknown metric name is always normal so that odd input never blocks
ingestion.
"""

from typing import Union

from watermonitor.models import MetricType, ReadingStatus


# What the dashboard shows next to each value
METRIC_DISPLAY = {
    MetricType.PH: {"unit": None, "range": "6.5-8.5"},
    MetricType.TURBIDITY: {"unit": "NTU", "range": "0-10"},
    MetricType.TEMPERATURE: {"unit": "°C", "range": "20-30"},
}


def metric_status(metric: Union[MetricType, str], value: float) -> ReadingStatus:
    """
    Classify a single metric value.

    Args:
        metric: "ph", "turbidity" or "temperature" (anything else is normal)
        value: The measured value

    Returns:
        ReadingStatus.WARNING if the value is outside its safe band
    """
    if metric == MetricType.PH:
        warning = value < 6.5 or value > 8.5
    elif metric == MetricType.TURBIDITY:
        warning = value > 8
    elif metric == MetricType.TEMPERATURE:
        warning = value < 20 or value > 30
    else:
        warning = False

    return ReadingStatus.WARNING if warning else ReadingStatus.NORMAL


def overall_status(ph: float, turbidity: float, temperature: float) -> ReadingStatus:
    """Warning if any of the three metrics is warning, otherwise normal."""
    statuses = (
        metric_status(MetricType.PH, ph),
        metric_status(MetricType.TURBIDITY, turbidity),
        metric_status(MetricType.TEMPERATURE, temperature),
    )
    if ReadingStatus.WARNING in statuses:
        return ReadingStatus.WARNING
    return ReadingStatus.NORMAL
