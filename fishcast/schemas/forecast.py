from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fishcast.schemas.conditions import DayContext, EnvironmentalSample, TideEvent, TideReading


class ScoredSample(BaseModel):
    model_config = ConfigDict(frozen=True)

    sample: EnvironmentalSample
    score: float = Field(..., ge=0.0, le=10.0)
    factors: Dict[str, float] = Field(default_factory=dict, description="Contribution per factor")
    description: str = Field("unknown", description="Weather description from the WMO code")


class WindowSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    sample_count: int
    score: float = Field(..., ge=0.0, le=10.0, description="Mean of the per-sample scores")
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    precipitation: Optional[float] = None
    pressure: Optional[float] = None
    cloud_cover: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_gusts: Optional[float] = None
    description: str = "unknown"


class DaySummary(BaseModel):
    date: date
    sunrise: Optional[datetime] = None
    sunset: Optional[datetime] = None
    best_window: Optional[WindowSummary] = None
    windows: List[WindowSummary] = Field(default_factory=list)
    samples: List[ScoredSample] = Field(default_factory=list)

    @property
    def best_score(self) -> Optional[float]:
        return self.best_window.score if self.best_window is not None else None


class Forecast(BaseModel):
    species: str
    days: List[DaySummary] = Field(default_factory=list)
    ranking: List[date] = Field(default_factory=list, description="Dates by best window score")
    best_day: Optional[date] = None
    best_window: Optional[WindowSummary] = None


class ForecastRequest(BaseModel):
    """Request body of ``POST /forecast``."""

    samples: List[EnvironmentalSample]
    days: List[DayContext]
    tide_readings: List[TideReading] = Field(default_factory=list)
    tide_events: List[TideEvent] = Field(default_factory=list)
    species: Optional[str] = None
    window_size: Optional[int] = Field(None, ge=1, le=96)
