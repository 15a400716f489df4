from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from fishcast.config import Settings, get_settings
from fishcast.exceptions import FishcastError, UpstreamUnavailableError
from fishcast.schemas.alerts import (
    AlertProfile,
    FiringDecision,
    RunError,
    RunSummary,
    SkipReason,
    parse_profile,
)
from fishcast.schemas.conditions import ConditionSnapshot
from fishcast.services.conditions import Conditions, ConditionSource, build_snapshot
from fishcast.services.triggers import evaluate_profile


logger = logging.getLogger("fishcast.runner")

CoordinateKey = Tuple[float, float]
ProfileInput = Union[AlertProfile, Mapping[str, Any]]


class RunCancelled(Exception):
    """Raised inside a profile evaluation once the run's cancel event is set."""


def cooldown_elapsed(last_fired: Optional[datetime], now: datetime, cooldown_hours: float) -> bool:
    """True when a profile may fire again; exactly ``cooldown_hours`` later is eligible."""
    if last_fired is None:
        return True
    return now - last_fired >= timedelta(hours=cooldown_hours)


def in_active_hours(profile: AlertProfile, now: datetime) -> bool:
    if profile.active_hours is None:
        return True
    return profile.active_hours.contains(now.astimezone(profile.zone).time())


@dataclass
class _RunContext:
    now: datetime
    last_fired: Dict[str, datetime]
    semaphore: asyncio.Semaphore
    fetches: Dict[CoordinateKey, asyncio.Task] = field(default_factory=dict)
    fired: Dict[str, datetime] = field(default_factory=dict)


class AlertRunner:
    """
    Evaluates a batch of alert profiles against freshly fetched conditions.

    Profiles run concurrently; fetches are shared per rounded coordinate and
    capped by a semaphore. The runner keeps no state between runs: the
    last-fired times come in as a mapping and go out on the RunSummary.
    """

    def __init__(
        self,
        source: ConditionSource,
        settings: Optional[Settings] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.source = source
        self.settings = settings or get_settings()
        self.cancel_event = cancel_event

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def coordinate_key(self, profile: AlertProfile) -> CoordinateKey:
        digits = self.settings.coordinate_precision
        return round(profile.latitude, digits), round(profile.longitude, digits)

    async def run(
        self,
        profiles: Iterable[ProfileInput],
        last_fired: Optional[Mapping[str, datetime]] = None,
        now: Optional[datetime] = None,
    ) -> RunSummary:
        now = now or datetime.now().astimezone()
        ctx = _RunContext(
            now=now,
            last_fired=dict(last_fired or {}),
            semaphore=asyncio.Semaphore(max(1, self.settings.max_concurrent_fetches)),
        )
        summary = RunSummary(started_at=now)

        parsed: List[AlertProfile] = []
        seen = set()
        for raw in profiles:
            try:
                profile = parse_profile(raw)
            except FishcastError as exc:
                profile_id = str(raw.get("id", "?")) if isinstance(raw, Mapping) else "?"
                logger.warning("Alert profile %s rejected: %s", profile_id, exc)
                summary.decisions.append(self._skip(profile_id, None, SkipReason.ERROR, str(exc), now))
                summary.errors.append(RunError(profile_id=profile_id, error=str(exc)))
                continue
            if profile.id in seen:
                continue
            seen.add(profile.id)
            parsed.append(profile)

        try:
            outcomes = await asyncio.gather(*(self._process(p, ctx) for p in parsed))
        finally:
            await self._drain_fetches(ctx)

        for profile, (decision, snapshot, error) in zip(parsed, outcomes):
            summary.decisions.append(decision)
            if snapshot is not None:
                summary.snapshots[profile.id] = snapshot
            if error is not None:
                summary.errors.append(RunError(profile_id=profile.id, error=error))

        summary.last_fired = {**ctx.last_fired, **ctx.fired}
        summary.cancelled = self.cancelled
        summary.finished_at = datetime.now().astimezone()
        logger.info(
            "Alert run: %d processed, %d fired, %d skipped, %d errors",
            summary.processed,
            summary.fired,
            summary.skipped,
            summary.failed,
        )
        return summary

    async def _process(
        self, profile: AlertProfile, ctx: _RunContext
    ) -> Tuple[FiringDecision, Optional[ConditionSnapshot], Optional[str]]:
        try:
            decision, snapshot = await self._evaluate(profile, ctx)
            return decision, snapshot, None
        except RunCancelled:
            return self._skip(profile.id, profile.name, SkipReason.CANCELLED, "run cancelled", ctx.now), None, None
        except FishcastError as exc:
            logger.warning("Alert profile %s failed: %s", profile.id, exc)
            error = str(exc)
        except Exception as exc:
            logger.exception("Alert profile %s failed unexpectedly", profile.id)
            error = f"{type(exc).__name__}: {exc}"
        return self._skip(profile.id, profile.name, SkipReason.ERROR, error, ctx.now), None, error

    async def _evaluate(
        self, profile: AlertProfile, ctx: _RunContext
    ) -> Tuple[FiringDecision, Optional[ConditionSnapshot]]:
        now = ctx.now
        if not profile.is_active:
            return self._skip(profile.id, profile.name, SkipReason.INACTIVE, "profile inactive", now), None

        if not in_active_hours(profile, now):
            local = now.astimezone(profile.zone).strftime("%H:%M")
            detail = (
                f"local time {local} outside "
                f"{profile.active_hours.start:%H:%M}-{profile.active_hours.end:%H:%M}"
            )
            return self._skip(profile.id, profile.name, SkipReason.OUTSIDE_ACTIVE_HOURS, detail, now), None

        previous = ctx.fired.get(profile.id) or ctx.last_fired.get(profile.id)
        if not cooldown_elapsed(previous, now, profile.cooldown_hours):
            hours = (now - previous).total_seconds() / 3600
            detail = f"fired {hours:.1f}h ago, cooldown {profile.cooldown_hours:g}h"
            return self._skip(profile.id, profile.name, SkipReason.COOLDOWN, detail, now), None

        if self.cancelled:
            raise RunCancelled()
        conditions = await self._conditions_for(profile, ctx)

        snapshot = build_snapshot(conditions, now, species=self._species(profile), tz=profile.zone)
        evaluation = evaluate_profile(profile, snapshot)
        snapshot = snapshot.model_copy(update={"matched_triggers": list(evaluation.matched)})

        if self.cancelled:
            raise RunCancelled()
        if not evaluation.satisfied:
            return (
                self._skip(profile.id, profile.name, SkipReason.NO_MATCH, evaluation.reason, now, evaluation.matched),
                snapshot,
            )

        ctx.fired[profile.id] = now
        decision = FiringDecision(
            profile_id=profile.id,
            profile_name=profile.name,
            triggered=True,
            matched_triggers=list(evaluation.matched),
            detail=evaluation.reason,
            evaluated_at=now,
        )
        return decision, snapshot

    @staticmethod
    def _species(profile: AlertProfile) -> Optional[str]:
        for trigger in profile.enabled_triggers:
            if trigger.kind == "fishing_score" and trigger.species:
                return trigger.species
        return None

    async def _conditions_for(self, profile: AlertProfile, ctx: _RunContext) -> Conditions:
        key = self.coordinate_key(profile)
        task = ctx.fetches.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key, ctx.semaphore))
            ctx.fetches[key] = task

        waiters = {task}
        cancel_waiter = None
        if self.cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(self.cancel_event.wait())
            waiters.add(cancel_waiter)
        try:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task not in done:
            raise RunCancelled()
        return task.result()

    async def _fetch(self, key: CoordinateKey, semaphore: asyncio.Semaphore) -> Conditions:
        timeout = self.settings.fetch_timeout_seconds
        async with semaphore:
            try:
                return await asyncio.wait_for(self.source.fetch(*key), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise UpstreamUnavailableError(f"conditions fetch for {key} timed out after {timeout:g}s") from exc

    @staticmethod
    async def _drain_fetches(ctx: _RunContext) -> None:
        pending = [t for t in ctx.fetches.values() if not t.done()]
        for task in pending:
            task.cancel()
        # retrieve results so failed shared fetches are not reported as unhandled
        await asyncio.gather(*ctx.fetches.values(), return_exceptions=True)

    @staticmethod
    def _skip(
        profile_id: str,
        profile_name: Optional[str],
        reason: SkipReason,
        detail: str,
        now: datetime,
        matched: Iterable[str] = (),
    ) -> FiringDecision:
        return FiringDecision(
            profile_id=profile_id,
            profile_name=profile_name,
            triggered=False,
            matched_triggers=list(matched),
            skip_reason=reason,
            detail=detail,
            evaluated_at=now,
        )
