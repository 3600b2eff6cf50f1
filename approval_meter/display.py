"""
display.py

Helpers that turn dB values into what the dashboard draws: a level bar on
a -60 dB .. 0 dB scale, its colour band and the position of the
threshold marker.
"""

import math
from typing import Optional

DISPLAY_FLOOR_DB = -60.0
DISPLAY_CEILING_DB = 0.0

# bar colour thresholds, in percent of the scale
YELLOW_ABOVE_PCT = 50.0
RED_ABOVE_PCT = 80.0


def clamp_db(value: Optional[float]) -> Optional[float]:
    """Clamp a reading into the displayable range; -inf becomes the floor."""
    if value is None or math.isnan(value):
        return None
    return max(DISPLAY_FLOOR_DB, min(DISPLAY_CEILING_DB, value))


def meter_percent(value: Optional[float]) -> float:
    """Position of ``value`` on the -60..0 dB bar, 0..100."""
    clamped = clamp_db(value)
    if clamped is None:
        return 0.0
    span = DISPLAY_CEILING_DB - DISPLAY_FLOOR_DB
    return (clamped - DISPLAY_FLOOR_DB) / span * 100.0


def meter_color(value: Optional[float]) -> str:
    pct = meter_percent(value)
    if pct > RED_ABOVE_PCT:
        return "red"
    if pct > YELLOW_ABOVE_PCT:
        return "yellow"
    return "green"


def marker_percent(required_level: float) -> float:
    # no threshold configured -> marker sits at the left edge
    if required_level <= 0:
        return 0.0
    return meter_percent(required_level)


def format_db(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    if math.isinf(value) and value < 0:
        return "-inf dB"
    return f"{value:.2f} dB"
