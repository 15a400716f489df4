from __future__ import annotations
import asyncio
import logging
from typing import Mapping, Optional, Protocol, Sequence, Tuple

from fishcast.schemas.alerts import AlertProfile, FiringDecision
from fishcast.schemas.conditions import ConditionSnapshot


logger = logging.getLogger("fishcast.notifications")


class NotificationSink(Protocol):
    async def send(
        self, profile: Optional[AlertProfile], decision: FiringDecision, snapshot: Optional[ConditionSnapshot]
    ) -> None:
        ...


def format_message(
    profile: Optional[AlertProfile], decision: FiringDecision, snapshot: Optional[ConditionSnapshot]
) -> str:
    if profile is None:
        location = "unknown location"
    else:
        location = profile.location_name or f"{profile.latitude:.2f}, {profile.longitude:.2f}"
    lines = [
        f"🎣 Fishcast Alert: {decision.profile_name or decision.profile_id}",
        f"Location: {location}",
        f"Matched: {', '.join(decision.matched_triggers) or '-'} ({decision.detail})",
    ]
    if snapshot is not None:
        if snapshot.fishing_score is not None:
            lines.append(f"Fishing score: {snapshot.fishing_score:.1f}/10")
        if snapshot.wind_speed_mph is not None:
            lines.append(f"Wind: {snapshot.wind_speed_mph:.1f} mph")
        if snapshot.tide_phase:
            lines.append(f"Tide: {snapshot.tide_phase}")
        if snapshot.pressure_trend:
            lines.append(f"Pressure: {snapshot.pressure_trend}")
    lines.append(f"Time: {decision.evaluated_at.isoformat()}")
    return "\n".join(lines)


class LoggingNotificationSink:
    """Writes fired alerts to the log; delivery channels plug in behind the same protocol."""

    def __init__(self, logger_name: str = "fishcast.notifications"):
        self.log = logging.getLogger(logger_name)
        self.sent: list[str] = []

    async def send(
        self, profile: Optional[AlertProfile], decision: FiringDecision, snapshot: Optional[ConditionSnapshot]
    ) -> None:
        message = format_message(profile, decision, snapshot)
        self.sent.append(message)
        self.log.info("%s", message)


async def notify_fired(
    sink: NotificationSink,
    fired: Sequence[Tuple[Optional[AlertProfile], FiringDecision, Optional[ConditionSnapshot]]],
) -> Mapping[str, Optional[BaseException]]:
    """Send all fired alerts concurrently; a failing send is logged and does not abort the rest."""
    if not fired:
        return {}
    results = await asyncio.gather(
        *(sink.send(profile, decision, snapshot) for profile, decision, snapshot in fired),
        return_exceptions=True,
    )
    outcome = {}
    for (_, decision, _), result in zip(fired, results):
        if isinstance(result, BaseException):
            logger.warning("Notification for profile %s failed: %s", decision.profile_id, result)
            outcome[decision.profile_id] = result
        else:
            outcome[decision.profile_id] = None
    return outcome
