"""Moon phase and solunar feeding periods (simplified transit model)."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

LUNAR_CYCLE_DAYS = 29.53059
# Julian day of the reference new moon (2000-01-06)
REFERENCE_NEW_MOON_JD = 2451550.1
# date.toordinal() -> Julian day number
ORDINAL_TO_JDN = 1721425

MAJOR_HALF_WIDTH_HOURS = 1.0
MINOR_HALF_WIDTH_HOURS = 0.5


def moon_phase(day: date) -> float:
    """Phase in [0, 1): 0 new moon, 0.5 full moon."""
    days_since_new = day.toordinal() + ORDINAL_TO_JDN - REFERENCE_NEW_MOON_JD
    return (days_since_new % LUNAR_CYCLE_DAYS) / LUNAR_CYCLE_DAYS


def _hour_distance(a: float, b: float) -> float:
    diff = abs(a - b) % 24.0
    return min(diff, 24.0 - diff)


def solunar_period(moment: datetime) -> Optional[str]:
    """
    'major' within ±1 h of the moon overhead/underfoot, 'minor' within ±30 min
    of moonrise/moonset, otherwise None. Uses the local clock of ``moment``.

    The moon transits roughly 50 minutes later each day, starting near 12:30
    at new moon; rise and set are taken as ±6 h from the transit.
    """
    hour = moment.hour + moment.minute / 60.0
    days_since_new = moon_phase(moment.date()) * LUNAR_CYCLE_DAYS
    overhead = (12.5 + days_since_new * 50.0 / 60.0) % 24.0
    underfoot = (overhead + 12.0) % 24.0
    moonrise = (overhead - 6.0) % 24.0
    moonset = (overhead + 6.0) % 24.0

    if min(_hour_distance(hour, overhead), _hour_distance(hour, underfoot)) <= MAJOR_HALF_WIDTH_HOURS:
        return "major"
    if min(_hour_distance(hour, moonrise), _hour_distance(hour, moonset)) <= MINOR_HALF_WIDTH_HOURS:
        return "minor"
    return None
