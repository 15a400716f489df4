from __future__ import annotations

from datetime import datetime, time
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field, field_validator, model_validator

from fishcast.config import get_settings
from fishcast.exceptions import InvalidInputError
from fishcast.schemas.conditions import ConditionSnapshot, PressureTrend, SolunarPhase, TidePhase
from fishcast.services.scoring import get_species


MIN_COOLDOWN_HOURS = 1
MAX_COOLDOWN_HOURS = 168


class WindTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["wind"] = "wind"
    enabled: bool = True
    speed_min: float = Field(..., ge=0.0, description="mph")
    speed_max: float = Field(..., ge=0.0, description="mph")
    direction_center: Optional[float] = Field(None, ge=0.0, le=360.0)
    direction_tolerance: Optional[float] = Field(None, ge=0.0, le=180.0, description="± degrees")

    @model_validator(mode="after")
    def check_ranges(self) -> "WindTrigger":
        if self.speed_min > self.speed_max:
            raise ValueError("speed_min must not exceed speed_max")
        if (self.direction_center is None) != (self.direction_tolerance is None):
            raise ValueError("direction_center and direction_tolerance must be set together")
        return self


class TideTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["tide"] = "tide"
    enabled: bool = True
    phases: List[TidePhase] = Field(..., min_length=1)
    exchange_min: Optional[float] = Field(None, ge=0.0, description="Minimum tidal exchange in m")


class PressureTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["pressure"] = "pressure"
    enabled: bool = True
    trend: PressureTrend
    gradient_threshold: Optional[float] = Field(None, description="hPa change over 3 h, e.g. -2.0")


class WaterTempTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["water_temp"] = "water_temp"
    enabled: bool = True
    min: float = Field(..., description="°C")
    max: float = Field(..., description="°C")

    @model_validator(mode="after")
    def check_range(self) -> "WaterTempTrigger":
        if self.min > self.max:
            raise ValueError("min must not exceed max")
        return self


class SolunarTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["solunar"] = "solunar"
    enabled: bool = True
    phases: List[SolunarPhase] = Field(..., min_length=1)


class FishingScoreTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["fishing_score"] = "fishing_score"
    enabled: bool = True
    min_score: float = Field(..., ge=0.0, le=10.0)
    species: Optional[str] = None

    @field_validator("species")
    @classmethod
    def check_species(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                get_species(value)
            except InvalidInputError as exc:
                raise ValueError(str(exc)) from None
        return value


Trigger = Annotated[
    Union[WindTrigger, TideTrigger, PressureTrigger, WaterTempTrigger, SolunarTrigger, FishingScoreTrigger],
    Field(discriminator="kind"),
]


class ActiveHours(BaseModel):
    """Local time-of-day window, both ends inclusive; start > end wraps midnight."""

    model_config = ConfigDict(frozen=True)

    start: time
    end: time

    def contains(self, moment: time) -> bool:
        current = moment.hour * 60 + moment.minute
        start = self.start.hour * 60 + self.start.minute
        end = self.end.hour * 60 + self.end.minute
        if start > end:
            return current >= start or current <= end
        return start <= current <= end


class AlertProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    location_name: Optional[str] = None
    is_active: bool = True
    triggers: List[Trigger] = Field(default_factory=list)
    logic_mode: Literal["AND", "OR"] = "AND"
    active_hours: Optional[ActiveHours] = None
    timezone: str = Field(default_factory=lambda: get_settings().default_timezone)
    cooldown_hours: float = Field(12, ge=MIN_COOLDOWN_HOURS, le=MAX_COOLDOWN_HOURS)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @model_validator(mode="after")
    def check_triggers(self) -> "AlertProfile":
        kinds = [t.kind for t in self.triggers]
        if len(kinds) != len(set(kinds)):
            raise ValueError("each trigger kind may appear only once")
        if not self.enabled_triggers:
            raise ValueError("at least one trigger must be enabled")
        return self

    @property
    def enabled_triggers(self) -> list:
        return [t for t in self.triggers if t.enabled]

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class SkipReason(str, Enum):
    INACTIVE = "inactive"
    OUTSIDE_ACTIVE_HOURS = "outside-active-hours"
    COOLDOWN = "cooldown"
    NO_MATCH = "no-match"
    ERROR = "error"
    CANCELLED = "cancelled"


class TriggerResult(BaseModel):
    kind: str
    triggered: bool
    current_value: Optional[Union[float, str]] = None
    threshold: str = ""
    details: str = ""


class FiringDecision(BaseModel):
    profile_id: str
    profile_name: Optional[str] = None
    triggered: bool = False
    matched_triggers: List[str] = Field(default_factory=list)
    skip_reason: Optional[SkipReason] = None
    detail: str = ""
    evaluated_at: datetime


def parse_profile(data: Union[Mapping[str, Any], AlertProfile]) -> AlertProfile:
    """
    Validate a raw profile record; invariant violations raise InvalidInputError.
    """
    if isinstance(data, AlertProfile):
        return data
    try:
        return AlertProfile.model_validate(dict(data))
    except ValidationError as exc:
        profile_id = data.get("id") if isinstance(data, Mapping) else None
        raise InvalidInputError(f"invalid alert profile {profile_id!r}: {exc}") from exc


class RunError(BaseModel):
    profile_id: str
    error: str


class RunSummary(BaseModel):
    """Outcome of one alert run: one decision per distinct profile."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    decisions: List[FiringDecision] = Field(default_factory=list)
    snapshots: Dict[str, ConditionSnapshot] = Field(default_factory=dict)
    errors: List[RunError] = Field(default_factory=list)
    last_fired: Dict[str, datetime] = Field(default_factory=dict)
    cancelled: bool = False

    @computed_field
    @property
    def processed(self) -> int:
        return len(self.decisions)

    @computed_field
    @property
    def fired(self) -> int:
        return sum(1 for d in self.decisions if d.triggered)

    @computed_field
    @property
    def skipped(self) -> int:
        return self.processed - self.fired

    @computed_field
    @property
    def failed(self) -> int:
        return len(self.errors)

    def fired_decisions(self) -> List[FiringDecision]:
        return [d for d in self.decisions if d.triggered]
