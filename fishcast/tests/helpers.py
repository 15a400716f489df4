import asyncio
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from fishcast.schemas.conditions import EnvironmentalSample, TideEvent, TideReading
from fishcast.services.conditions import Conditions
from fishcast.services.tides import TideState

UTC = timezone.utc


def make_samples(start: datetime, count: int, step_minutes: int = 15, **fields) -> List[EnvironmentalSample]:
    """``count`` samples from ``start``; a list value in ``fields`` is taken per index."""
    samples = []
    for i in range(count):
        values = {k: (v[i] if isinstance(v, (list, tuple)) else v) for k, v in fields.items()}
        samples.append(EnvironmentalSample(timestamp=start + timedelta(minutes=step_minutes * i), **values))
    return samples


def calm_conditions(end: datetime, hours: int = 6, wind_kmh: float = 16.0) -> Conditions:
    """Steady pressure, light wind from 350°, samples up to and including ``end``."""
    count = hours * 4 + 1
    start = end - timedelta(minutes=15 * (count - 1))
    samples = make_samples(
        start,
        count,
        temperature=12.0,
        pressure=1015.0,
        wind_speed=wind_kmh,
        wind_direction=350.0,
        precipitation=0.0,
        cloud_cover=50.0,
        weather_code=2,
    )
    return Conditions(samples=samples, water_temp_c=11.5)


class FakeConditionSource:
    """Records fetches; fails for coordinates listed in ``failing``."""

    def __init__(
        self,
        conditions: Optional[Conditions] = None,
        failing: Iterable[Tuple[float, float]] = (),
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.conditions = conditions
        self.failing = set(failing)
        self.delay = delay
        self.error = error or RuntimeError("upstream exploded")
        self.calls: List[Tuple[float, float]] = []
        self.started = asyncio.Event()

    async def fetch(self, latitude: float, longitude: float) -> Conditions:
        self.calls.append((latitude, longitude))
        self.started.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        if (latitude, longitude) in self.failing:
            raise self.error
        if self.conditions is None:
            return calm_conditions(datetime.now(UTC))
        return self.conditions


def profile_data(profile_id: str = "p1", **overrides) -> Dict:
    data = {
        "id": profile_id,
        "user_id": "u1",
        "name": f"Profile {profile_id}",
        "latitude": 49.28,
        "longitude": -123.12,
        "location_name": "English Bay",
        "triggers": [{"kind": "wind", "speed_min": 5, "speed_max": 15}],
        "logic_mode": "AND",
        "cooldown_hours": 12,
    }
    data.update(overrides)
    return data


def tide_curve(day: datetime) -> TideState:
    """Semi-diurnal curve: high 00:00 and 12:00 (3.5 m), low 06:00 and 18:00 (0.5 m)."""
    readings = [
        TideReading(
            timestamp=day + timedelta(hours=h),
            height=2.0 - 1.5 * math.cos(2 * math.pi * (h - 6) / 12),
        )
        for h in range(24)
    ]
    events = [
        TideEvent(type="high", timestamp=day, height=3.5),
        TideEvent(type="low", timestamp=day + timedelta(hours=6), height=0.5),
        TideEvent(type="high", timestamp=day + timedelta(hours=12), height=3.5),
        TideEvent(type="low", timestamp=day + timedelta(hours=18), height=0.5),
    ]
    return TideState(readings, events)
