from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from fishcast.config import Settings, get_settings
from fishcast.exceptions import FishcastError
from fishcast.schemas.alerts import AlertProfile, RunError, RunSummary, parse_profile
from fishcast.services.conditions import ConditionSource
from fishcast.services.notifications import NotificationSink, notify_fired
from fishcast.services.runner import AlertRunner
from fishcast.services.store import ProfileStore


logger = logging.getLogger("fishcast.pipeline")


async def run_alert_batch(
    store: ProfileStore,
    source: ConditionSource,
    sink: NotificationSink,
    now: Optional[datetime] = None,
    *,
    settings: Optional[Settings] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> dict:
    """
    Ein kompletter Alert-Lauf: Profile laden, auswerten, Auslösungen speichern
    und benachrichtigen, Lauf protokollieren.
    """
    now = now or datetime.now().astimezone()
    raw_profiles = list(await store.list_active_profiles())
    if not raw_profiles:
        logger.info("Alert run: no active profiles")
        summary = RunSummary(started_at=now, finished_at=now)
        return {"summary": summary, "run_log_id": await store.record_run(summary), "notified": 0}

    ids = [p.id if isinstance(p, AlertProfile) else p.get("id") for p in raw_profiles]
    last_fired = await store.last_fired([i for i in ids if i is not None])

    runner = AlertRunner(source, settings=settings or get_settings(), cancel_event=cancel_event)
    summary = await runner.run(raw_profiles, last_fired=last_fired, now=now)

    profiles: Dict[str, AlertProfile] = {}
    for raw in raw_profiles:
        try:
            profile = parse_profile(raw)
        except FishcastError:
            continue  # already reported by the runner
        profiles.setdefault(profile.id, profile)

    fired = []
    outcome: Dict[str, Optional[BaseException]] = {}
    try:
        for decision in summary.fired_decisions():
            snapshot = summary.snapshots.get(decision.profile_id)
            try:
                await store.record_firing(decision, snapshot)
            except Exception as exc:
                logger.warning("Recording alert for profile %s failed: %s", decision.profile_id, exc)
                summary.errors.append(RunError(profile_id=decision.profile_id, error=f"record failed: {exc}"))
                continue
            fired.append((profiles.get(decision.profile_id), decision, snapshot))

        outcome = await notify_fired(sink, fired)
    finally:
        run_log_id = await store.record_run(summary)

    return {
        "summary": summary,
        "run_log_id": run_log_id,
        "notified": sum(1 for error in outcome.values() if error is None),
    }
