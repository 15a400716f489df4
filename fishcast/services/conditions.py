from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Protocol, Sequence, Tuple

import httpx

from fishcast.config import Settings, get_settings
from fishcast.exceptions import UpstreamUnavailableError
from fishcast.schemas.conditions import ConditionSnapshot, DayContext, EnvironmentalSample
from fishcast.services.scoring import score_sample
from fishcast.services.solunar import solunar_period
from fishcast.services.tides import TideState


logger = logging.getLogger("fishcast.conditions")

KMH_TO_MPH = 0.621371
WIND_SMOOTHING_SAMPLES = 3
PRESSURE_LOOKBACK = timedelta(hours=3)
PRESSURE_LOOKBACK_TOLERANCE = timedelta(hours=1)
PRESSURE_TREND_THRESHOLD = 1.5  # hPa over 3 h

# Open-Meteo minutely_15 variable -> EnvironmentalSample field
MINUTELY_FIELDS: Mapping[str, str] = {
    "temperature_2m": "temperature",
    "apparent_temperature": "apparent_temperature",
    "relative_humidity_2m": "humidity",
    "dew_point_2m": "dew_point",
    "precipitation": "precipitation",
    "surface_pressure": "pressure",
    "cloud_cover": "cloud_cover",
    "wind_speed_10m": "wind_speed",
    "wind_direction_10m": "wind_direction",
    "wind_gusts_10m": "wind_gusts",
    "visibility": "visibility",
    "sunshine_duration": "sunshine_duration",
    "cape": "cape",
    "weather_code": "weather_code",
}
DAILY_PARAMS = ["sunrise", "sunset", "temperature_2m_max", "temperature_2m_min"]


@dataclass(frozen=True)
class Conditions:
    """Everything fetched for one coordinate during one run."""

    samples: Sequence[EnvironmentalSample]
    days: Sequence[DayContext] = ()
    tide: Optional[TideState] = None
    water_temp_c: Optional[float] = None


class ConditionSource(Protocol):
    async def fetch(self, latitude: float, longitude: float) -> Conditions:
        ...


TideProvider = Callable[[float, float], Awaitable[Optional[TideState]]]


def current_sample(samples: Sequence[EnvironmentalSample], at: datetime) -> EnvironmentalSample:
    """Latest sample at or before ``at``; the first sample if all lie in the future."""
    if not samples:
        raise UpstreamUnavailableError("no weather samples available")
    ordered = sorted(samples, key=lambda s: s.timestamp)
    past = [s for s in ordered if s.timestamp <= at]
    return past[-1] if past else ordered[0]


def smoothed_wind_mph(samples: Sequence[EnvironmentalSample], at: datetime) -> Optional[float]:
    """Simple moving average over the last three readings, filtering single gusts."""
    recent = [
        s.wind_speed
        for s in sorted(samples, key=lambda s: s.timestamp)
        if s.timestamp <= at and s.wind_speed is not None
    ][-WIND_SMOOTHING_SAMPLES:]
    if not recent:
        return None
    return round(sum(recent) / len(recent) * KMH_TO_MPH, 2)


def pressure_trend(
    samples: Sequence[EnvironmentalSample], at: datetime
) -> Tuple[Optional[float], Optional[str]]:
    """(change over 3 h in hPa, rising|falling|steady) or (None, None) without history."""
    with_pressure = [s for s in samples if s.pressure is not None and s.timestamp <= at]
    if not with_pressure:
        return None, None
    now_sample = max(with_pressure, key=lambda s: s.timestamp)
    target = at - PRESSURE_LOOKBACK
    past = min(with_pressure, key=lambda s: abs(s.timestamp - target))
    if abs(past.timestamp - target) > PRESSURE_LOOKBACK_TOLERANCE or past is now_sample:
        return None, None

    change = round(now_sample.pressure - past.pressure, 2)
    if change >= PRESSURE_TREND_THRESHOLD:
        return change, "rising"
    if change <= -PRESSURE_TREND_THRESHOLD:
        return change, "falling"
    return change, "steady"


def build_snapshot(
    conditions: Conditions,
    at: datetime,
    species: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> ConditionSnapshot:
    """
    Capture the signals the trigger evaluator needs at ``at``. The fishing
    score is computed fresh from the current sample; the solunar period uses
    the local clock of ``tz``.
    """
    current = current_sample(conditions.samples, at)
    day_by_date = {d.date: d for d in conditions.days}
    change, trend = pressure_trend(conditions.samples, at)

    tide = conditions.tide if conditions.tide is not None and not conditions.tide.is_empty else None
    local = at.astimezone(tz) if tz is not None else at
    score = score_sample(current, day_by_date.get(current.timestamp.date()), tide, species)

    return ConditionSnapshot(
        timestamp=at,
        wind_speed_mph=smoothed_wind_mph(conditions.samples, at),
        wind_direction=current.wind_direction,
        pressure_hpa=current.pressure,
        pressure_trend=trend,
        pressure_change_3h=change,
        water_temp_c=conditions.water_temp_c,
        tide_phase=tide.phase_at(at) if tide else None,
        tide_height_m=tide.height_at(at) if tide else None,
        tidal_exchange_m=tide.exchange_at(at) if tide else None,
        solunar_phase=solunar_period(local),
        fishing_score=score.total,
    )


def _local_datetime(raw: str, tz: tzinfo) -> datetime:
    return datetime.fromisoformat(raw).replace(tzinfo=tz)


def parse_open_meteo(payload: Mapping[str, Any]) -> Tuple[List[EnvironmentalSample], List[DayContext]]:
    """Turn an Open-Meteo forecast response into samples and day contexts."""
    tz = timezone(timedelta(seconds=int(payload.get("utc_offset_seconds", 0))))

    minutely = payload.get("minutely_15", {}) or {}
    times = minutely.get("time", []) or []
    samples: List[EnvironmentalSample] = []
    for i, raw_time in enumerate(times):
        values = {}
        for source_key, field_name in MINUTELY_FIELDS.items():
            series = minutely.get(source_key) or []
            values[field_name] = series[i] if i < len(series) else None
        samples.append(EnvironmentalSample(timestamp=_local_datetime(raw_time, tz), **values))

    daily = payload.get("daily", {}) or {}
    days: List[DayContext] = []
    for i, raw_day in enumerate(daily.get("time", []) or []):
        try:
            sunrise = _local_datetime(daily["sunrise"][i], tz)
            sunset = _local_datetime(daily["sunset"][i], tz)
        except (KeyError, IndexError, TypeError, ValueError):
            logger.warning("Open-Meteo day %s has no sunrise/sunset, skipped", raw_day)
            continue
        days.append(
            DayContext(
                date=date.fromisoformat(raw_day),
                sunrise=sunrise,
                sunset=sunset,
                temperature_min=(daily.get("temperature_2m_min") or [None] * (i + 1))[i],
                temperature_max=(daily.get("temperature_2m_max") or [None] * (i + 1))[i],
            )
        )
    return samples, days


class OpenMeteoConditionSource:
    """
    ConditionSource backed by the Open-Meteo 15-minute forecast and the marine
    API (sea surface temperature). Tide curves come from an optional provider.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        tide_provider: Optional[TideProvider] = None,
    ):
        self.client = client
        self.settings = settings or get_settings()
        self.tide_provider = tide_provider

    async def _get(self, url: str, params: Mapping[str, Any]) -> Mapping[str, Any]:
        timeout = self.settings.fetch_timeout_seconds
        if self.client is not None:
            resp = await self.client.get(url, params=params, timeout=timeout)
            resp.raise_for_status()
            return resp.json()
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()

    async def fetch(
        self,
        latitude: float,
        longitude: float,
        *,
        past_days: Optional[int] = None,
        forecast_days: Optional[int] = None,
    ) -> Conditions:
        """Defaults cover the alert look-back; forecasts ask for the full horizon from today."""
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "minutely_15": ",".join(MINUTELY_FIELDS),
            "daily": ",".join(DAILY_PARAMS),
            "timezone": "auto",
            "past_days": self.settings.forecast_past_days if past_days is None else past_days,
            "forecast_days": self.settings.forecast_days if forecast_days is None else forecast_days,
        }
        try:
            payload = await self._get(self.settings.open_meteo_url, params)
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamUnavailableError(
                f"weather fetch failed for ({latitude}, {longitude}): {exc}"
            ) from exc

        samples, days = parse_open_meteo(payload)
        if not samples:
            raise UpstreamUnavailableError(f"no weather samples for ({latitude}, {longitude})")

        return Conditions(
            samples=samples,
            days=days,
            tide=await self._fetch_tide(latitude, longitude),
            water_temp_c=await self._fetch_water_temp(latitude, longitude),
        )

    async def _fetch_water_temp(self, latitude: float, longitude: float) -> Optional[float]:
        params = {"latitude": latitude, "longitude": longitude, "current": "sea_surface_temperature"}
        try:
            payload = await self._get(self.settings.open_meteo_marine_url, params)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Water temperature not available for (%s, %s): %s", latitude, longitude, exc)
            return None
        value = (payload.get("current") or {}).get("sea_surface_temperature")
        return float(value) if value is not None else None

    async def _fetch_tide(self, latitude: float, longitude: float) -> Optional[TideState]:
        if self.tide_provider is None:
            return None
        try:
            return await self.tide_provider(latitude, longitude)
        except Exception as exc:  # tide data is optional; scoring degrades to weather only
            logger.warning("Tide data not available for (%s, %s): %s", latitude, longitude, exc)
            return None
