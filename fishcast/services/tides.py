from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

import pandas as pd

from fishcast.schemas.conditions import TideEvent, TideReading


# |dH/dt| below this (m/h) counts as slack water
SLACK_RATE_THRESHOLD = 0.05
# Within this many minutes of a high/low event the water is slack
SLACK_WINDOW_MINUTES = 30


def _utc(moment: datetime) -> pd.Timestamp:
    return pd.Timestamp(moment).tz_convert("UTC")


class TideState:
    """
    Read-only tide curve for one location: water level readings plus the
    discrete high/low events of the same horizon.
    """

    def __init__(self, readings: Iterable[TideReading] = (), events: Iterable[TideEvent] = ()):
        readings = sorted(readings, key=lambda r: r.timestamp)
        events = sorted(events, key=lambda e: e.timestamp)

        self.heights = pd.Series(
            [r.height for r in readings],
            index=pd.to_datetime([r.timestamp for r in readings], utc=True),
            dtype=float,
        )
        self.heights = self.heights[~self.heights.index.duplicated(keep="last")]
        self.events: List[TideEvent] = events
        self._event_index = pd.to_datetime([e.timestamp for e in events], utc=True)

    @property
    def is_empty(self) -> bool:
        return self.heights.empty and not self.events

    def _nearest_position(self, moment: datetime) -> Optional[int]:
        if self.heights.empty:
            return None
        return int(self.heights.index.get_indexer([_utc(moment)], method="nearest")[0])

    def height_at(self, moment: datetime) -> Optional[float]:
        pos = self._nearest_position(moment)
        if pos is None:
            return None
        return float(self.heights.iloc[pos])

    def rate_at(self, moment: datetime) -> Optional[float]:
        """Rate of change in m/h around the nearest reading (central difference)."""
        pos = self._nearest_position(moment)
        if pos is None:
            return None
        lo = max(pos - 1, 0)
        hi = min(pos + 1, len(self.heights) - 1)
        if lo == hi:
            return None
        hours = (self.heights.index[hi] - self.heights.index[lo]).total_seconds() / 3600.0
        if hours <= 0:
            return None
        return float((self.heights.iloc[hi] - self.heights.iloc[lo]) / hours)

    def previous_event(self, moment: datetime) -> Optional[TideEvent]:
        pos = int(self._event_index.searchsorted(_utc(moment), side="right"))
        return self.events[pos - 1] if pos > 0 else None

    def next_event(self, moment: datetime) -> Optional[TideEvent]:
        pos = int(self._event_index.searchsorted(_utc(moment), side="right"))
        return self.events[pos] if pos < len(self.events) else None

    def minutes_to_next_event(self, moment: datetime) -> Optional[float]:
        upcoming = self.next_event(moment)
        if upcoming is None:
            return None
        return (upcoming.timestamp - moment).total_seconds() / 60.0

    def exchange_at(self, moment: datetime) -> Optional[float]:
        """Height difference between the surrounding low and high events."""
        before = self.previous_event(moment)
        after = self.next_event(moment)
        if before is None or after is None:
            return None
        return round(abs(after.height - before.height), 3)

    def _nearest_event(self, moment: datetime) -> Optional[TideEvent]:
        candidates = [e for e in (self.previous_event(moment), self.next_event(moment)) if e is not None]
        if not candidates:
            return None
        return min(candidates, key=lambda e: abs((e.timestamp - moment).total_seconds()))

    def phase_at(self, moment: datetime) -> Optional[str]:
        nearest = self._nearest_event(moment)
        if nearest is not None:
            minutes_away = abs((nearest.timestamp - moment).total_seconds()) / 60.0
            if minutes_away <= SLACK_WINDOW_MINUTES:
                return "high_slack" if nearest.type == "high" else "low_slack"

        rate = self.rate_at(moment)
        if rate is not None:
            if abs(rate) < SLACK_RATE_THRESHOLD:
                return self._slack_side(moment)
            return "incoming" if rate > 0 else "outgoing"

        upcoming = self.next_event(moment)
        if upcoming is not None:
            return "incoming" if upcoming.type == "high" else "outgoing"
        return None

    def _slack_side(self, moment: datetime) -> str:
        before = self.previous_event(moment)
        after = self.next_event(moment)
        height = self.height_at(moment)
        if before is not None and after is not None:
            midpoint = (before.height + after.height) / 2.0
        else:
            midpoint = float(self.heights.mean())
        return "high_slack" if height > midpoint else "low_slack"
