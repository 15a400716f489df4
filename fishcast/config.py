from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass
class Settings:
    """
    Runtime configuration, overridable through FISHCAST_* environment variables.
    """

    window_size_samples: int = int(os.getenv("FISHCAST_WINDOW_SIZE", 8))
    min_window_samples: int = int(os.getenv("FISHCAST_MIN_WINDOW_SAMPLES", 4))
    horizon_days: int = int(os.getenv("FISHCAST_HORIZON_DAYS", 14))
    sample_cadence_minutes: int = int(os.getenv("FISHCAST_SAMPLE_CADENCE_MIN", 15))
    default_species: str = os.getenv("FISHCAST_DEFAULT_SPECIES", "general")
    default_timezone: str = os.getenv("FISHCAST_DEFAULT_TIMEZONE", "America/Vancouver")

    alert_interval_minutes: int = int(os.getenv("FISHCAST_ALERT_INTERVAL_MIN", 15))
    max_concurrent_fetches: int = int(os.getenv("FISHCAST_MAX_CONCURRENT_FETCHES", 4))
    fetch_timeout_seconds: float = float(os.getenv("FISHCAST_FETCH_TIMEOUT", 10.0))
    coordinate_precision: int = int(os.getenv("FISHCAST_COORDINATE_PRECISION", 2))

    open_meteo_url: str = os.getenv("FISHCAST_OPEN_METEO_URL", "https://api.open-meteo.com/v1/forecast")
    open_meteo_marine_url: str = os.getenv(
        "FISHCAST_OPEN_METEO_MARINE_URL", "https://marine-api.open-meteo.com/v1/marine"
    )
    forecast_past_days: int = int(os.getenv("FISHCAST_FORECAST_PAST_DAYS", 1))
    forecast_days: int = int(os.getenv("FISHCAST_FORECAST_DAYS", 2))

    api_key: str = os.getenv("API_KEY", "dev-1234")
    history_limit: int = int(os.getenv("FISHCAST_HISTORY_LIMIT", 100))


@lru_cache()
def get_settings() -> Settings:
    return Settings()
