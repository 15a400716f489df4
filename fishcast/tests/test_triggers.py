import unittest
from datetime import datetime, time

from fishcast.exceptions import InvalidInputError
from fishcast.schemas.alerts import ActiveHours, parse_profile
from fishcast.schemas.conditions import ConditionSnapshot
from fishcast.services.triggers import angular_difference, evaluate_profile
from fishcast.tests.helpers import UTC, profile_data


def snapshot(**values) -> ConditionSnapshot:
    return ConditionSnapshot(timestamp=datetime(2024, 6, 1, 18, tzinfo=UTC), **values)


WIND_AND_TIDE = [
    {"kind": "wind", "speed_min": 5, "speed_max": 20},
    {"kind": "tide", "phases": ["incoming"]},
]


class TriggerEvaluationTestCase(unittest.TestCase):
    def test_and_requires_every_trigger(self):
        profile = parse_profile(profile_data(triggers=WIND_AND_TIDE, logic_mode="AND"))
        result = evaluate_profile(profile, snapshot(wind_speed_mph=12, tide_phase="outgoing"))
        self.assertFalse(result.satisfied)
        self.assertEqual(result.matched, ["wind"])
        self.assertEqual(result.reason, "Only 1/2 triggers matched (AND mode)")

        result = evaluate_profile(profile, snapshot(wind_speed_mph=12, tide_phase="incoming"))
        self.assertTrue(result.satisfied)
        self.assertEqual(result.reason, "All 2 triggers matched")

    def test_or_requires_any_trigger(self):
        profile = parse_profile(profile_data(triggers=WIND_AND_TIDE, logic_mode="OR"))
        result = evaluate_profile(profile, snapshot(wind_speed_mph=12, tide_phase="outgoing"))
        self.assertTrue(result.satisfied)
        self.assertEqual(result.reason, "1 trigger(s) matched (OR mode)")

        result = evaluate_profile(profile, snapshot(wind_speed_mph=30, tide_phase="outgoing"))
        self.assertFalse(result.satisfied)
        self.assertEqual(result.reason, "No triggers matched (OR mode)")

    def test_disabled_trigger_is_ignored(self):
        triggers = [WIND_AND_TIDE[0], dict(WIND_AND_TIDE[1], enabled=False)]
        profile = parse_profile(profile_data(triggers=triggers))
        result = evaluate_profile(profile, snapshot(wind_speed_mph=12, tide_phase="outgoing"))
        self.assertTrue(result.satisfied)
        self.assertEqual(list(result.results), ["wind"])

    def test_wind_direction_wraps_north(self):
        trigger = {"kind": "wind", "speed_min": 0, "speed_max": 30, "direction_center": 350, "direction_tolerance": 20}
        profile = parse_profile(profile_data(triggers=[trigger]))
        self.assertTrue(evaluate_profile(profile, snapshot(wind_speed_mph=10, wind_direction=5)).satisfied)
        self.assertFalse(evaluate_profile(profile, snapshot(wind_speed_mph=10, wind_direction=100)).satisfied)
        self.assertEqual(angular_difference(350, 10), 20)
        self.assertEqual(angular_difference(10, 350), 20)
        self.assertEqual(angular_difference(0, 180), 180)

    def test_missing_data_never_matches(self):
        triggers = [
            {"kind": "water_temp", "min": 8, "max": 14},
            {"kind": "pressure", "trend": "falling"},
        ]
        profile = parse_profile(profile_data(triggers=triggers, logic_mode="OR"))
        result = evaluate_profile(profile, snapshot())
        self.assertFalse(result.satisfied)
        self.assertEqual(result.results["water_temp"].current_value, "unavailable")

    def test_pressure_gradient_and_tide_exchange(self):
        triggers = [
            {"kind": "pressure", "trend": "falling", "gradient_threshold": -2.0},
            {"kind": "tide", "phases": ["incoming", "high_slack"], "exchange_min": 2.5},
        ]
        profile = parse_profile(profile_data(triggers=triggers))
        weak = snapshot(pressure_trend="falling", pressure_change_3h=-1.6, tide_phase="incoming", tidal_exchange_m=3.0)
        self.assertEqual(evaluate_profile(profile, weak).matched, ["tide"])
        strong = weak.model_copy(update={"pressure_change_3h": -2.4})
        self.assertTrue(evaluate_profile(profile, strong).satisfied)
        small_exchange = strong.model_copy(update={"tidal_exchange_m": 1.0})
        self.assertEqual(evaluate_profile(profile, small_exchange).matched, ["pressure"])

    def test_solunar_and_fishing_score(self):
        triggers = [
            {"kind": "solunar", "phases": ["major"]},
            {"kind": "fishing_score", "min_score": 7, "species": "salmon"},
        ]
        profile = parse_profile(profile_data(triggers=triggers))
        self.assertTrue(evaluate_profile(profile, snapshot(solunar_phase="major", fishing_score=7.0)).satisfied)
        result = evaluate_profile(profile, snapshot(solunar_phase=None, fishing_score=8.5))
        self.assertEqual(result.matched, ["fishing_score"])
        self.assertEqual(result.results["solunar"].current_value, "none")


class ProfileValidationTestCase(unittest.TestCase):
    def assertRejected(self, **overrides):
        with self.assertRaises(InvalidInputError):
            parse_profile(profile_data(**overrides))

    def test_invariants(self):
        self.assertRejected(triggers=[])
        self.assertRejected(triggers=[dict(WIND_AND_TIDE[0], enabled=False)])
        self.assertRejected(triggers=[WIND_AND_TIDE[0], WIND_AND_TIDE[0]])
        self.assertRejected(cooldown_hours=0.5)
        self.assertRejected(cooldown_hours=200)
        self.assertRejected(latitude=95)
        self.assertRejected(timezone="Mars/Olympus_Mons")
        self.assertRejected(triggers=[{"kind": "wind", "speed_min": 20, "speed_max": 10}])
        self.assertRejected(triggers=[{"kind": "wind", "speed_min": 0, "speed_max": 10, "direction_center": 90}])
        self.assertRejected(triggers=[{"kind": "rainbow"}])
        self.assertRejected(triggers=[{"kind": "fishing_score", "min_score": 6, "species": "tuna"}])
        self.assertRejected(
            triggers=[WIND_AND_TIDE[0], {"kind": "fishing_score", "min_score": 6, "species": "tuna", "enabled": False}]
        )

    def test_species_aliases_are_accepted(self):
        trigger = {"kind": "fishing_score", "min_score": 6, "species": "Chinook"}
        profile = parse_profile(profile_data(triggers=[trigger]))
        self.assertEqual(profile.triggers[0].species, "Chinook")

    def test_defaults(self):
        profile = parse_profile(profile_data())
        self.assertEqual(profile.timezone, "America/Vancouver")
        self.assertEqual(profile.cooldown_hours, 12)
        self.assertIsNone(profile.active_hours)
        self.assertEqual(profile.triggers[0].kind, "wind")

    def test_active_hours_wrap_midnight(self):
        night = ActiveHours(start=time(22, 0), end=time(4, 0))
        self.assertTrue(night.contains(time(23, 30)))
        self.assertTrue(night.contains(time(4, 0)))
        self.assertFalse(night.contains(time(12, 0)))
        day = ActiveHours(start=time(6, 0), end=time(20, 0))
        self.assertFalse(day.contains(time(5, 59)))
        self.assertTrue(day.contains(time(6, 0)))
        self.assertTrue(day.contains(time(20, 0, 59)))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
