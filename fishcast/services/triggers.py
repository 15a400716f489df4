from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List

from fishcast.schemas.alerts import (
    AlertProfile,
    FishingScoreTrigger,
    PressureTrigger,
    SolunarTrigger,
    TideTrigger,
    TriggerResult,
    WaterTempTrigger,
    WindTrigger,
)
from fishcast.schemas.conditions import ConditionSnapshot


@dataclass(frozen=True)
class Evaluation:
    satisfied: bool
    matched: List[str] = field(default_factory=list)
    results: Dict[str, TriggerResult] = field(default_factory=dict)
    reason: str = ""


def angular_difference(a: float, b: float) -> float:
    """Smallest angle between two compass bearings (350° and 10° are 20° apart)."""
    diff = abs(a - b) % 360.0
    return min(diff, 360.0 - diff)


def _unavailable(kind: str, threshold: str, what: str) -> TriggerResult:
    return TriggerResult(
        kind=kind,
        triggered=False,
        current_value="unavailable",
        threshold=threshold,
        details=f"{what} unavailable",
    )


def _evaluate_wind(trigger: WindTrigger, snapshot: ConditionSnapshot) -> TriggerResult:
    threshold = f"{trigger.speed_min:g}-{trigger.speed_max:g} mph"
    speed = snapshot.wind_speed_mph
    if speed is None:
        return _unavailable("wind", threshold, "Wind data")

    in_range = trigger.speed_min <= speed <= trigger.speed_max
    direction_ok = True
    details = f"Speed: {speed:.1f} mph (smoothed)"

    if trigger.direction_center is not None and trigger.direction_tolerance is not None:
        direction = snapshot.wind_direction
        if direction is None:
            direction_ok = False
            details += " | Direction unavailable"
        else:
            diff = angular_difference(trigger.direction_center, direction)
            direction_ok = diff <= trigger.direction_tolerance
            details += (
                f" | Direction: {direction:.0f}° (target: {trigger.direction_center:.0f}°"
                f" ±{trigger.direction_tolerance:.0f}°, diff: {diff:.1f}°)"
            )

    return TriggerResult(
        kind="wind",
        triggered=in_range and direction_ok,
        current_value=speed,
        threshold=threshold,
        details=details,
    )


def _evaluate_tide(trigger: TideTrigger, snapshot: ConditionSnapshot) -> TriggerResult:
    threshold = f"Phases: {', '.join(trigger.phases)}"
    if snapshot.tide_phase is None:
        return _unavailable("tide", threshold, "Tide data")

    phase_ok = snapshot.tide_phase in trigger.phases
    exchange_ok = True
    details = f"Current phase: {snapshot.tide_phase}"

    if trigger.exchange_min is not None:
        exchange = snapshot.tidal_exchange_m
        exchange_ok = exchange is not None and exchange >= trigger.exchange_min
        shown = f"{exchange:.2f}m" if exchange is not None else "unavailable"
        details += f" | Exchange: {shown} (min: {trigger.exchange_min:g}m)"

    return TriggerResult(
        kind="tide",
        triggered=phase_ok and exchange_ok,
        current_value=snapshot.tide_phase,
        threshold=threshold,
        details=details,
    )


def _evaluate_pressure(trigger: PressureTrigger, snapshot: ConditionSnapshot) -> TriggerResult:
    threshold = f"{trigger.trend}"
    if trigger.gradient_threshold is not None:
        threshold += f" ({trigger.gradient_threshold:+g} hPa/3h)"
    if snapshot.pressure_trend is None:
        return _unavailable("pressure", threshold, "Pressure trend")

    triggered = snapshot.pressure_trend == trigger.trend
    change = snapshot.pressure_change_3h
    if triggered and trigger.gradient_threshold is not None:
        if change is None:
            triggered = False
        elif trigger.trend == "falling":
            triggered = change <= trigger.gradient_threshold
        elif trigger.trend == "rising":
            triggered = change >= trigger.gradient_threshold

    details = f"Trend: {snapshot.pressure_trend}"
    if change is not None:
        details += f" | Change: {change:+.1f} hPa/3h"
    return TriggerResult(
        kind="pressure",
        triggered=triggered,
        current_value=change if change is not None else snapshot.pressure_trend,
        threshold=threshold,
        details=details,
    )


def _evaluate_water_temp(trigger: WaterTempTrigger, snapshot: ConditionSnapshot) -> TriggerResult:
    threshold = f"{trigger.min:g}-{trigger.max:g}°C"
    temp = snapshot.water_temp_c
    if temp is None:
        return _unavailable("water_temp", threshold, "Water temperature")
    return TriggerResult(
        kind="water_temp",
        triggered=trigger.min <= temp <= trigger.max,
        current_value=temp,
        threshold=threshold,
        details=f"Water temp: {temp:.1f}°C",
    )


def _evaluate_solunar(trigger: SolunarTrigger, snapshot: ConditionSnapshot) -> TriggerResult:
    current = snapshot.solunar_phase
    return TriggerResult(
        kind="solunar",
        triggered=current is not None and current in trigger.phases,
        current_value=current or "none",
        threshold=f"Phases: {', '.join(trigger.phases)}",
        details=f"Current solunar: {current or 'none'}",
    )


def _evaluate_fishing_score(trigger: FishingScoreTrigger, snapshot: ConditionSnapshot) -> TriggerResult:
    threshold = f">={trigger.min_score:g}"
    score = snapshot.fishing_score
    if score is None:
        return _unavailable("fishing_score", threshold, "Fishing score")
    details = f"Score: {score:.1f}/10"
    if trigger.species:
        details += f" ({trigger.species})"
    return TriggerResult(
        kind="fishing_score",
        triggered=score >= trigger.min_score,
        current_value=score,
        threshold=threshold,
        details=details,
    )


EVALUATORS: Dict[str, Callable[..., TriggerResult]] = {
    "wind": _evaluate_wind,
    "tide": _evaluate_tide,
    "pressure": _evaluate_pressure,
    "water_temp": _evaluate_water_temp,
    "solunar": _evaluate_solunar,
    "fishing_score": _evaluate_fishing_score,
}


def evaluate_profile(profile: AlertProfile, snapshot: ConditionSnapshot) -> Evaluation:
    """
    Evaluate every enabled trigger of ``profile`` against ``snapshot`` and
    compose the results with the profile's AND/OR logic.
    """
    enabled = [t for t in profile.triggers if t.enabled]
    if not enabled:
        return Evaluation(satisfied=False, reason="No triggers enabled")

    results: Dict[str, TriggerResult] = {}
    matched: List[str] = []
    for trigger in enabled:
        result = EVALUATORS[trigger.kind](trigger, snapshot)
        results[trigger.kind] = result
        if result.triggered:
            matched.append(trigger.kind)

    total = len(results)
    if profile.logic_mode == "AND":
        satisfied = len(matched) == total
        reason = (
            f"All {total} triggers matched"
            if satisfied
            else f"Only {len(matched)}/{total} triggers matched (AND mode)"
        )
    else:
        satisfied = len(matched) > 0
        reason = f"{len(matched)} trigger(s) matched (OR mode)" if satisfied else "No triggers matched (OR mode)"

    return Evaluation(satisfied=satisfied, matched=matched, results=results, reason=reason)
