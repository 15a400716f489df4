#!/usr/bin/env python
"""
Fishing forecast for one location from the Open-Meteo 15-minute feed.

Example:
    PYTHONPATH=. python analysis/run_forecast.py --lat 49.28 --lon -123.12 \\
        --species salmon --output reports/forecast.csv
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import pandas as pd

from fishcast.config import get_settings
from fishcast.schemas.forecast import Forecast
from fishcast.services.aggregation import build_forecast
from fishcast.services.conditions import OpenMeteoConditionSource


def parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Rank the best fishing windows for a location")
    parser.add_argument("--lat", type=float, required=True)
    parser.add_argument("--lon", type=float, required=True)
    parser.add_argument("--species", default=settings.default_species)
    parser.add_argument(
        "--days",
        type=int,
        default=settings.horizon_days,
        help="Vorhersagetage ab heute",
    )
    parser.add_argument(
        "--window-size",
        type=int,
        default=settings.window_size_samples,
        help="Samples pro Fenster (8 x 15 min = 2 h)",
    )
    parser.add_argument("--output", type=Path, help="Optionaler Pfad für CSV-Export der Fenster")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> Forecast:
    conditions = await OpenMeteoConditionSource().fetch(args.lat, args.lon, past_days=0, forecast_days=args.days)
    return build_forecast(
        conditions.samples,
        conditions.days,
        tide=conditions.tide,
        species=args.species,
        window_size=args.window_size,
    )


def windows_frame(forecast: Forecast) -> pd.DataFrame:
    rows = []
    for day in forecast.days:
        for window in day.windows:
            rows.append({"date": day.date, **window.model_dump()})
    return pd.DataFrame(rows)


def main() -> None:
    args = parse_args()
    forecast = asyncio.run(_run(args))

    if not forecast.ranking:
        print("Keine Daten gefunden.")
        return

    print(f"=== Ranking ({forecast.species}) ===")
    by_date = {d.date: d for d in forecast.days}
    for pos, day in enumerate(forecast.ranking, start=1):
        best = by_date[day].best_window
        print(
            f"{pos}. {day} score={best.score:.2f} "
            f"{best.start:%H:%M}-{best.end:%H:%M} {best.description}"
        )

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        windows_frame(forecast).to_csv(args.output, index=False)
        print(f"Fenster gespeichert unter {args.output}")


if __name__ == "__main__":
    main()
