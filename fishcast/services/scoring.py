from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from fishcast.exceptions import InvalidInputError
from fishcast.schemas.conditions import DayContext, EnvironmentalSample
from fishcast.schemas.forecast import ScoredSample
from fishcast.services.tides import TideState


SCORE_MIN = 0.0
SCORE_MAX = 10.0
BASELINE = (SCORE_MIN + SCORE_MAX) / 2

WEATHER_CODES: Dict[int, str] = {
    0: "clear sky",
    1: "mainly clear",
    2: "partly cloudy",
    3: "overcast",
    45: "fog",
    48: "depositing rime fog",
    51: "light drizzle",
    53: "moderate drizzle",
    55: "dense drizzle",
    56: "light freezing drizzle",
    57: "dense freezing drizzle",
    61: "slight rain",
    63: "moderate rain",
    65: "heavy rain",
    66: "light freezing rain",
    67: "heavy freezing rain",
    71: "slight snow fall",
    73: "moderate snow fall",
    75: "heavy snow fall",
    77: "snow grains",
    80: "slight rain showers",
    81: "moderate rain showers",
    82: "violent rain showers",
    85: "slight snow showers",
    86: "heavy snow showers",
    95: "thunderstorm",
    96: "thunderstorm with slight hail",
    99: "thunderstorm with heavy hail",
}


@dataclass(frozen=True)
class SpeciesProfile:
    """Thresholds and weights of the per-sample factors for one target species."""

    name: str
    temp_optimal: Tuple[float, float] = (8.0, 16.0)     # °C, full credit
    temp_viable: Tuple[float, float] = (5.0, 20.0)      # °C, half credit
    temp_weight: float = 1.0
    wind_calm_kmh: float = 15.0                         # no penalty below
    wind_rough_kmh: float = 30.0                        # half penalty below, full above
    wind_penalty: float = 2.0
    pressure_stable: Tuple[float, float] = (1013.0, 1023.0)  # hPa
    pressure_viable: Tuple[float, float] = (1008.0, 1028.0)
    pressure_weight: float = 1.0
    light_window_hours: float = 2.0                     # ± around sunrise/sunset
    light_bonus: float = 1.5
    dry_threshold_mm: float = 0.1
    heavy_rain_mm: float = 2.0
    precipitation_bonus: float = 0.5
    precipitation_penalty: float = 1.0
    cloud_band: Tuple[float, float] = (25.0, 75.0)      # % cover that earns the bonus
    cloud_bonus: float = 0.5
    moving_water_weight: float = 1.0
    slack_water_weight: float = 0.25
    turn_window_minutes: float = 60.0
    turn_bonus: float = 0.5


SPECIES_PROFILES: Dict[str, SpeciesProfile] = {
    "general": SpeciesProfile(name="general"),
    "salmon": SpeciesProfile(
        name="salmon",
        temp_optimal=(7.0, 14.0),
        temp_viable=(4.0, 18.0),
        light_bonus=1.75,
        moving_water_weight=1.25,
        slack_water_weight=0.0,
    ),
    "bottomfish": SpeciesProfile(
        name="bottomfish",
        temp_weight=0.5,
        wind_rough_kmh=25.0,
        light_bonus=0.75,
        moving_water_weight=0.25,
        slack_water_weight=1.25,
        turn_bonus=0.75,
    ),
    "crab": SpeciesProfile(
        name="crab",
        temp_weight=0.5,
        pressure_weight=0.5,
        light_bonus=0.5,
        moving_water_weight=0.5,
        slack_water_weight=0.75,
    ),
}

SPECIES_ALIASES: Dict[str, str] = {
    "chinook": "salmon",
    "coho": "salmon",
    "pink": "salmon",
    "sockeye": "salmon",
    "chum": "salmon",
    "halibut": "bottomfish",
    "lingcod": "bottomfish",
    "rockfish": "bottomfish",
    "spot_prawn": "crab",
}


@dataclass(frozen=True)
class SampleScore:
    total: float
    factors: Dict[str, float] = field(default_factory=dict)
    weather_subtotal: float = BASELINE

    @property
    def has_tide(self) -> bool:
        return "tide" in self.factors


def get_species(name: Optional[str]) -> SpeciesProfile:
    key = (name or "general").strip().lower()
    key = SPECIES_ALIASES.get(key, key)
    try:
        return SPECIES_PROFILES[key]
    except KeyError:
        raise InvalidInputError(f"unknown species {name!r}") from None


def describe_weather(code: Optional[int]) -> str:
    if code is None:
        return "unknown"
    return WEATHER_CODES.get(int(code), "unknown")


def _value(raw: Optional[float]) -> Optional[float]:
    """Missing and non-finite readings are treated as absent."""
    if raw is None:
        return None
    value = float(raw)
    return value if math.isfinite(value) else None


def _band_credit(
    raw: Optional[float],
    optimal: Tuple[float, float],
    viable: Tuple[float, float],
    weight: float,
) -> float:
    value = _value(raw)
    if value is None:
        return 0.0
    if optimal[0] <= value <= optimal[1]:
        return weight
    if viable[0] <= value <= viable[1]:
        return weight / 2
    return 0.0


def _wind_factor(raw: Optional[float], profile: SpeciesProfile) -> float:
    speed = _value(raw)
    if speed is None or speed < profile.wind_calm_kmh:
        return 0.0
    if speed < profile.wind_rough_kmh:
        return -profile.wind_penalty / 2
    return -profile.wind_penalty


def _light_factor(moment: datetime, day: Optional[DayContext], profile: SpeciesProfile) -> float:
    if day is None:
        return 0.0
    window = timedelta(hours=profile.light_window_hours)
    if abs(moment - day.sunrise) <= window or abs(moment - day.sunset) <= window:
        return profile.light_bonus
    return 0.0


def _precipitation_factor(raw: Optional[float], profile: SpeciesProfile) -> float:
    amount = _value(raw)
    if amount is None:
        return 0.0
    if amount <= profile.dry_threshold_mm:
        return profile.precipitation_bonus
    if amount > profile.heavy_rain_mm:
        return -profile.precipitation_penalty
    return 0.0


def _cloud_factor(raw: Optional[float], profile: SpeciesProfile) -> float:
    cover = _value(raw)
    if cover is None:
        return 0.0
    low, high = profile.cloud_band
    return profile.cloud_bonus if low <= cover <= high else 0.0


def _tide_factor(moment: datetime, tide: TideState, profile: SpeciesProfile) -> float:
    contribution = 0.0
    phase = tide.phase_at(moment)
    if phase in ("incoming", "outgoing"):
        contribution += profile.moving_water_weight
    elif phase in ("high_slack", "low_slack"):
        contribution += profile.slack_water_weight

    minutes = tide.minutes_to_next_event(moment)
    if minutes is not None and 0 <= minutes <= profile.turn_window_minutes:
        contribution += profile.turn_bonus
    return contribution


def _clamp(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, value))


def score_sample(
    sample: EnvironmentalSample,
    day: Optional[DayContext] = None,
    tide: Optional[TideState] = None,
    species: Optional[str] = None,
) -> SampleScore:
    """
    Score one sample on the 0-10 scale.

    Starts at the scale midpoint and adds one bounded contribution per factor.
    Without tide data the result equals the weather-only subtotal and no
    ``tide`` factor is reported.
    """
    profile = get_species(species)

    factors = {
        "temperature": _band_credit(sample.temperature, profile.temp_optimal, profile.temp_viable, profile.temp_weight),
        "wind": _wind_factor(sample.wind_speed, profile),
        "pressure": _band_credit(sample.pressure, profile.pressure_stable, profile.pressure_viable, profile.pressure_weight),
        "time_of_day": _light_factor(sample.timestamp, day, profile),
        "precipitation": _precipitation_factor(sample.precipitation, profile),
        "cloud_cover": _cloud_factor(sample.cloud_cover, profile),
    }
    weather_subtotal = _clamp(BASELINE + sum(factors.values()))

    total = BASELINE + sum(factors.values())
    if tide is not None and not tide.is_empty:
        factors["tide"] = _tide_factor(sample.timestamp, tide, profile)
        total += factors["tide"]

    return SampleScore(
        total=round(_clamp(total), 2),
        factors={name: round(value, 2) for name, value in factors.items()},
        weather_subtotal=round(weather_subtotal, 2),
    )


def score_samples(
    samples: Iterable[EnvironmentalSample],
    days: Iterable[DayContext],
    tide: Optional[TideState] = None,
    species: Optional[str] = None,
) -> List[ScoredSample]:
    """Score a horizon; each sample uses the DayContext of its local date."""
    day_by_date = {d.date: d for d in days}
    scored: List[ScoredSample] = []
    for sample in sorted(samples, key=lambda s: s.timestamp):
        result = score_sample(sample, day_by_date.get(sample.timestamp.date()), tide, species)
        scored.append(
            ScoredSample(
                sample=sample,
                score=result.total,
                factors=result.factors,
                description=describe_weather(sample.weather_code),
            )
        )
    return scored
