import unittest
from datetime import datetime, time, timedelta

from sqlalchemy.pool import StaticPool

from fishcast.db.session import init_db, make_session_factory
from fishcast.schemas.alerts import FiringDecision, RunSummary, SkipReason, parse_profile
from fishcast.schemas.conditions import ConditionSnapshot
from fishcast.services.notifications import LoggingNotificationSink
from fishcast.services.pipeline import run_alert_batch
from fishcast.services.store import SqlProfileStore
from fishcast.tests.helpers import UTC, FakeConditionSource, calm_conditions, profile_data

T = datetime(2024, 6, 1, 18, 0, tzinfo=UTC)


class BrokenSink:
    async def send(self, profile, decision, snapshot):
        raise ConnectionError("smtp unreachable")


class FlakyStore(SqlProfileStore):
    def __init__(self, session_factory, failing_id):
        super().__init__(session_factory)
        self.failing_id = failing_id

    async def record_firing(self, decision, snapshot):
        if decision.profile_id == self.failing_id:
            raise RuntimeError("db write failed")
        return await super().record_firing(decision, snapshot)


class InMemoryStoreCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine, factory = make_session_factory(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        await init_db(self.engine)
        self.store = SqlProfileStore(factory)

    async def asyncTearDown(self):
        await self.engine.dispose()


class StoreTestCase(InMemoryStoreCase):
    async def test_profile_round_trip(self):
        profile = parse_profile(
            profile_data(
                "p1",
                active_hours={"start": "22:00", "end": "04:30"},
                triggers=[
                    {"kind": "tide", "phases": ["incoming"], "exchange_min": 2.0},
                    {"kind": "wind", "speed_min": 0, "speed_max": 12, "direction_center": 350, "direction_tolerance": 20},
                ],
            )
        )
        await self.store.save_profile(profile)
        await self.store.save_profile(parse_profile(profile_data("off", is_active=False)))

        rows = await self.store.list_active_profiles()
        self.assertEqual([r["id"] for r in rows], ["p1"])
        loaded = parse_profile(rows[0])
        self.assertEqual(loaded, profile)
        self.assertEqual(loaded.active_hours.end, time(4, 30))

    async def test_firing_updates_last_fired_and_history(self):
        await self.store.save_profile(parse_profile(profile_data("p1")))
        self.assertEqual(await self.store.last_fired(["p1"]), {})

        decision = FiringDecision(
            profile_id="p1", profile_name="Profile p1", triggered=True, matched_triggers=["wind"], evaluated_at=T
        )
        snapshot = ConditionSnapshot(timestamp=T, wind_speed_mph=9.9, fishing_score=7.25, matched_triggers=["wind"])
        await self.store.record_firing(decision, snapshot)

        self.assertEqual(await self.store.last_fired(["p1", "p2"]), {"p1": T})
        (entry,) = await self.store.history()
        self.assertEqual(entry.profile_id, "p1")
        self.assertEqual(entry.matched_triggers, ["wind"])
        self.assertEqual(entry.fishing_score, 7.25)
        self.assertEqual(entry.snapshot["wind_speed_mph"], 9.9)
        self.assertEqual(await self.store.history(profile_id="other"), [])

    async def test_record_run(self):
        summary = RunSummary(started_at=T, finished_at=T + timedelta(seconds=3))
        run_id = await self.store.record_run(summary)
        self.assertIsNotNone(run_id)
        run = await self.store.latest_run()
        self.assertEqual(run.id, run_id)
        self.assertEqual(run.profiles_processed, 0)


class PipelineTestCase(InMemoryStoreCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.source = FakeConditionSource(calm_conditions(T + timedelta(hours=1)))
        self.sink = LoggingNotificationSink()
        for profile_id in ("p1", "p2"):
            await self.store.save_profile(parse_profile(profile_data(profile_id)))

    async def test_empty_store(self):
        engine, factory = make_session_factory(
            "sqlite+aiosqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
        )
        await init_db(engine)
        try:
            result = await run_alert_batch(SqlProfileStore(factory), self.source, self.sink, T)
        finally:
            await engine.dispose()
        self.assertEqual(result["summary"].processed, 0)
        self.assertEqual(self.source.calls, [])

    async def test_batch_persists_and_notifies(self):
        result = await run_alert_batch(self.store, self.source, self.sink, T)
        self.assertEqual(result["summary"].fired, 2)
        self.assertEqual(result["notified"], 2)
        self.assertEqual(len(self.sink.sent), 2)
        self.assertIn("Fishcast Alert", self.sink.sent[0])
        self.assertEqual(len(await self.store.history()), 2)
        self.assertEqual((await self.store.latest_run()).alerts_fired, 2)

        again = await run_alert_batch(self.store, self.source, self.sink, T + timedelta(hours=1))
        self.assertEqual(again["summary"].fired, 0)
        self.assertEqual({d.skip_reason for d in again["summary"].decisions}, {SkipReason.COOLDOWN})
        self.assertEqual(len(await self.store.history()), 2)

    async def test_sink_failure_does_not_abort(self):
        result = await run_alert_batch(self.store, self.source, BrokenSink(), T)
        self.assertEqual(result["summary"].fired, 2)
        self.assertEqual(result["notified"], 0)
        self.assertIsNotNone(result["run_log_id"])
        self.assertEqual(await self.store.last_fired(["p1", "p2"]), {"p1": T, "p2": T})

    async def test_failed_write_is_isolated(self):
        await self.store.save_profile(parse_profile(profile_data("p3")))
        store = FlakyStore(self.store.session_factory, failing_id="p1")

        result = await run_alert_batch(store, self.source, self.sink, T)
        summary = result["summary"]
        self.assertEqual(summary.fired, 3)
        self.assertEqual([e.profile_id for e in summary.errors], ["p1"])
        self.assertIn("db write failed", summary.errors[0].error)
        self.assertEqual(result["notified"], 2)
        self.assertEqual(await self.store.last_fired(["p1", "p2", "p3"]), {"p2": T, "p3": T})

        run = await self.store.latest_run()
        self.assertEqual(run.id, result["run_log_id"])
        self.assertEqual(run.errors, 1)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
