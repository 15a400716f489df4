from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import desc, select

from fishcast.db.session import AsyncSessionLocal
from fishcast.models.models import AlertHistory, AlertProfileRecord, AlertRun
from fishcast.schemas.alerts import AlertProfile, FiringDecision, RunSummary
from fishcast.schemas.conditions import ConditionSnapshot


class ProfileStore(Protocol):
    async def list_active_profiles(self) -> Sequence[Any]:
        ...

    async def last_fired(self, ids: Iterable[str]) -> Dict[str, datetime]:
        ...

    async def record_firing(self, decision: FiringDecision, snapshot: Optional[ConditionSnapshot]) -> None:
        ...

    async def record_run(self, summary: RunSummary) -> Optional[int]:
        ...


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops the offset; stored values are UTC by convention."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    value = to_utc(value)
    return value.replace(tzinfo=None) if value is not None else None


def _format_time(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value is not None else None


def record_to_mapping(record: AlertProfileRecord) -> Dict[str, Any]:
    """Raw profile data; validation happens in the runner so one bad row stays isolated."""
    active_hours = None
    if record.active_hours_start and record.active_hours_end:
        active_hours = {"start": record.active_hours_start, "end": record.active_hours_end}
    return {
        "id": record.id,
        "user_id": record.user_id,
        "name": record.name,
        "latitude": record.latitude,
        "longitude": record.longitude,
        "location_name": record.location_name,
        "is_active": bool(record.is_active),
        "triggers": list(record.triggers or []),
        "logic_mode": record.logic_mode,
        "active_hours": active_hours,
        "timezone": record.timezone,
        "cooldown_hours": record.cooldown_hours,
    }


class SqlProfileStore:
    """ProfileStore on the async SQLAlchemy session factory."""

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def save_profile(self, profile: AlertProfile) -> AlertProfileRecord:
        async with self.session_factory() as session:
            record = await session.get(AlertProfileRecord, profile.id)
            if record is None:
                record = AlertProfileRecord(id=profile.id)
                session.add(record)
            record.user_id = profile.user_id
            record.name = profile.name
            record.latitude = profile.latitude
            record.longitude = profile.longitude
            record.location_name = profile.location_name
            record.is_active = profile.is_active
            record.triggers = [t.model_dump(mode="json") for t in profile.triggers]
            record.logic_mode = profile.logic_mode
            record.active_hours_start = _format_time(profile.active_hours.start if profile.active_hours else None)
            record.active_hours_end = _format_time(profile.active_hours.end if profile.active_hours else None)
            record.timezone = profile.timezone
            record.cooldown_hours = profile.cooldown_hours
            await session.commit()
            await session.refresh(record)
            return record

    async def list_active_profiles(self) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            res = await session.execute(
                select(AlertProfileRecord)
                .where(AlertProfileRecord.is_active.is_(True))
                .order_by(AlertProfileRecord.id)
            )
            return [record_to_mapping(r) for r in res.scalars().all()]

    async def last_fired(self, ids: Iterable[str]) -> Dict[str, datetime]:
        ids = list(ids)
        if not ids:
            return {}
        async with self.session_factory() as session:
            res = await session.execute(
                select(AlertProfileRecord.id, AlertProfileRecord.last_triggered_at).where(
                    AlertProfileRecord.id.in_(ids),
                    AlertProfileRecord.last_triggered_at.is_not(None),
                )
            )
            return {row[0]: to_utc(row[1]) for row in res.all()}

    async def record_firing(self, decision: FiringDecision, snapshot: Optional[ConditionSnapshot]) -> None:
        fired_at = _naive_utc(decision.evaluated_at)
        async with self.session_factory() as session:
            record = await session.get(AlertProfileRecord, decision.profile_id)
            if record is not None:
                record.last_triggered_at = fired_at
            session.add(
                AlertHistory(
                    profile_id=decision.profile_id,
                    profile_name=decision.profile_name,
                    triggered_at=fired_at,
                    matched_triggers=list(decision.matched_triggers),
                    snapshot=snapshot.model_dump(mode="json") if snapshot is not None else None,
                    fishing_score=snapshot.fishing_score if snapshot is not None else None,
                    detail=decision.detail,
                )
            )
            await session.commit()

    async def record_run(self, summary: RunSummary) -> Optional[int]:
        run_log = AlertRun(
            started_at=_naive_utc(summary.started_at),
            finished_at=_naive_utc(summary.finished_at),
            profiles_processed=summary.processed,
            alerts_fired=summary.fired,
            skipped=summary.skipped,
            errors=summary.failed,
            cancelled=summary.cancelled,
            note="; ".join(f"{e.profile_id}: {e.error}" for e in summary.errors)[:1000] or None,
        )
        async with self.session_factory() as session:
            session.add(run_log)
            await session.commit()
            await session.refresh(run_log)
            return run_log.id

    async def history(self, limit: int = 100, profile_id: Optional[str] = None) -> List[AlertHistory]:
        stmt = select(AlertHistory)
        if profile_id:
            stmt = stmt.where(AlertHistory.profile_id == profile_id)
        stmt = stmt.order_by(desc(AlertHistory.triggered_at), desc(AlertHistory.id)).limit(limit)
        async with self.session_factory() as session:
            res = await session.execute(stmt)
            return list(res.scalars().all())

    async def latest_run(self) -> Optional[AlertRun]:
        async with self.session_factory() as session:
            res = await session.execute(select(AlertRun).order_by(desc(AlertRun.started_at)).limit(1))
            return res.scalars().first()
