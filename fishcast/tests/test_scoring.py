import itertools
import unittest
from datetime import date, datetime, timedelta

from fishcast.exceptions import InvalidInputError
from fishcast.schemas.conditions import DayContext, EnvironmentalSample
from fishcast.services.scoring import describe_weather, get_species, score_sample, score_samples
from fishcast.services.tides import TideState
from fishcast.tests.helpers import UTC, tide_curve


class ScoreSampleTestCase(unittest.TestCase):
    def setUp(self):
        self.day = datetime(2024, 6, 1, tzinfo=UTC)
        self.sample = EnvironmentalSample(
            timestamp=self.day + timedelta(hours=11, minutes=15),
            temperature=12.0,
            pressure=1018.0,
            wind_speed=5.0,
            precipitation=0.0,
            cloud_cover=50.0,
            weather_code=2,
        )

    def test_weather_only_score(self):
        result = score_sample(self.sample)
        self.assertEqual(result.total, 8.0)
        self.assertNotIn("tide", result.factors)
        self.assertFalse(result.has_tide)

    def test_without_tide_total_equals_weather_subtotal(self):
        result = score_sample(self.sample, tide=None)
        self.assertEqual(result.total, result.weather_subtotal)
        empty = score_sample(self.sample, tide=TideState())
        self.assertEqual(empty.total, empty.weather_subtotal)
        self.assertNotIn("tide", empty.factors)

    def test_tide_adds_moving_water_and_turn_bonus(self):
        result = score_sample(self.sample, tide=tide_curve(self.day))
        self.assertEqual(result.factors["tide"], 1.5)
        self.assertEqual(result.total, 9.5)
        self.assertEqual(result.weather_subtotal, 8.0)

    def test_score_is_clamped_to_upper_bound(self):
        context = DayContext(
            date=date(2024, 6, 1),
            sunrise=self.day + timedelta(hours=10, minutes=30),
            sunset=self.day + timedelta(hours=23),
        )
        result = score_sample(self.sample, day=context, tide=tide_curve(self.day))
        self.assertEqual(result.factors["time_of_day"], 1.5)
        self.assertEqual(result.total, 10.0)

    def test_harsh_conditions(self):
        sample = EnvironmentalSample(
            timestamp=self.day,
            temperature=40.0,
            pressure=980.0,
            wind_speed=80.0,
            precipitation=10.0,
            cloud_cover=100.0,
        )
        result = score_sample(sample)
        self.assertEqual(result.factors["wind"], -2.0)
        self.assertEqual(result.factors["precipitation"], -1.0)
        self.assertEqual(result.total, 2.0)

    def test_bounds_over_signal_grid(self):
        tide = tide_curve(self.day)
        grid = itertools.product(
            [None, -10.0, 6.0, 12.0, 35.0],
            [None, 0.0, 20.0, 90.0],
            [None, 950.0, 1010.0, 1018.0],
            [None, 0.0, 1.0, 25.0],
            [None, 0.0, 50.0, 100.0],
        )
        for temperature, wind, pressure, rain, cloud in grid:
            sample = EnvironmentalSample(
                timestamp=self.day + timedelta(hours=5, minutes=45),
                temperature=temperature,
                wind_speed=wind,
                pressure=pressure,
                precipitation=rain,
                cloud_cover=cloud,
            )
            for t in (None, tide):
                total = score_sample(sample, tide=t).total
                self.assertGreaterEqual(total, 0.0)
                self.assertLessEqual(total, 10.0)

    def test_missing_signals_contribute_nothing(self):
        result = score_sample(EnvironmentalSample(timestamp=self.day, temperature=float("nan")))
        self.assertEqual(result.total, 5.0)
        self.assertTrue(all(v == 0.0 for v in result.factors.values()))

    def test_deterministic(self):
        tide = tide_curve(self.day)
        first = score_sample(self.sample, tide=tide, species="salmon")
        second = score_sample(self.sample, tide=tide, species="salmon")
        self.assertEqual(first, second)

    def test_species_aliases_and_unknown(self):
        self.assertEqual(get_species("Coho").name, "salmon")
        self.assertEqual(get_species("halibut").name, "bottomfish")
        self.assertEqual(get_species(None).name, "general")
        with self.assertRaises(InvalidInputError):
            get_species("kraken")

    def test_species_changes_tide_weight(self):
        tide = tide_curve(self.day)
        salmon = score_sample(self.sample, tide=tide, species="salmon")
        bottomfish = score_sample(self.sample, tide=tide, species="bottomfish")
        self.assertGreater(salmon.factors["tide"], bottomfish.factors["tide"])

    def test_describe_weather(self):
        self.assertEqual(describe_weather(0), "clear sky")
        self.assertEqual(describe_weather(95), "thunderstorm")
        self.assertEqual(describe_weather(None), "unknown")
        self.assertEqual(describe_weather(42), "unknown")

    def test_score_samples_uses_local_day_context(self):
        samples = [
            self.sample,
            self.sample.model_copy(update={"timestamp": self.day + timedelta(days=1, hours=11)}),
        ]
        context = DayContext(
            date=date(2024, 6, 2),
            sunrise=self.day + timedelta(days=1, hours=10),
            sunset=self.day + timedelta(days=1, hours=22),
        )
        scored = score_samples(reversed(samples), [context])
        self.assertEqual([s.sample.timestamp for s in scored], [s.timestamp for s in samples])
        self.assertEqual(scored[0].factors["time_of_day"], 0.0)
        self.assertEqual(scored[1].factors["time_of_day"], 1.5)
        self.assertEqual(scored[0].description, "partly cloudy")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
