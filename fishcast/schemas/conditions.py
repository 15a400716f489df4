from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


TidePhase = Literal["incoming", "outgoing", "high_slack", "low_slack"]
PressureTrend = Literal["rising", "falling", "steady"]
SolunarPhase = Literal["major", "minor"]


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("timestamp must be timezone-aware")
    return value


class EnvironmentalSample(BaseModel):
    """One fixed-cadence weather sample for a point (Open-Meteo 15-minute units)."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="Sample time, timezone-aware")
    temperature: Optional[float] = Field(None, description="Air temperature in °C")
    apparent_temperature: Optional[float] = Field(None, description="Feels-like temperature in °C")
    humidity: Optional[float] = Field(None, description="Relative humidity in %")
    dew_point: Optional[float] = Field(None, description="Dew point in °C")
    precipitation: Optional[float] = Field(None, description="Precipitation in mm per sample")
    pressure: Optional[float] = Field(None, description="Surface pressure in hPa")
    cloud_cover: Optional[float] = Field(None, description="Cloud cover in %")
    wind_speed: Optional[float] = Field(None, description="Wind speed at 10 m in km/h")
    wind_direction: Optional[float] = Field(None, description="Direction the wind blows from, degrees")
    wind_gusts: Optional[float] = Field(None, description="Wind gusts in km/h")
    visibility: Optional[float] = Field(None, description="Visibility in m")
    sunshine_duration: Optional[float] = Field(None, description="Sunshine within the sample in s")
    cape: Optional[float] = Field(None, description="Convective available potential energy in J/kg")
    weather_code: Optional[int] = Field(None, description="WMO weather code")

    check_timestamp = field_validator("timestamp")(_require_aware)


class DayContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    sunrise: datetime
    sunset: datetime
    temperature_min: Optional[float] = None
    temperature_max: Optional[float] = None

    check_sun = field_validator("sunrise", "sunset")(_require_aware)


class TideReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    height: float = Field(..., description="Water level in m")

    check_timestamp = field_validator("timestamp")(_require_aware)


class TideEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["high", "low"]
    timestamp: datetime
    height: float

    check_timestamp = field_validator("timestamp")(_require_aware)


class ConditionSnapshot(BaseModel):
    """
    Fixed-shape capture of the signals an alert profile was evaluated against.
    Persisted by the store as the audit record of a firing.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    wind_speed_mph: Optional[float] = Field(None, description="Smoothed over the last 3 samples")
    wind_direction: Optional[float] = None
    pressure_hpa: Optional[float] = None
    pressure_trend: Optional[PressureTrend] = None
    pressure_change_3h: Optional[float] = None
    water_temp_c: Optional[float] = None
    tide_phase: Optional[TidePhase] = None
    tide_height_m: Optional[float] = None
    tidal_exchange_m: Optional[float] = None
    solunar_phase: Optional[SolunarPhase] = None
    fishing_score: Optional[float] = Field(None, ge=0.0, le=10.0)
    matched_triggers: List[str] = Field(default_factory=list)
