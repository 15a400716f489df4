#!/usr/bin/env python
"""Einfacher Scheduler für wiederkehrende Alert-Läufe."""

from __future__ import annotations

import argparse
import asyncio
from datetime import datetime

from fishcast.config import get_settings
from fishcast.db.session import init_db
from fishcast.services.conditions import OpenMeteoConditionSource
from fishcast.services.notifications import LoggingNotificationSink
from fishcast.services.pipeline import run_alert_batch
from fishcast.services.store import SqlProfileStore


async def scheduler_loop(args: argparse.Namespace) -> None:
    await init_db()

    store = SqlProfileStore()
    source = OpenMeteoConditionSource()
    sink = LoggingNotificationSink()

    interval = max(0, args.interval_minutes) * 60
    while True:
        start = datetime.now().astimezone()
        result = await run_alert_batch(store, source, sink, start)
        summary = result["summary"]
        print(
            f"[{start.isoformat()}] Alert-Lauf abgeschlossen – "
            f"processed={summary.processed} fired={summary.fired} "
            f"skipped={summary.skipped} errors={summary.failed}"
        )
        for error in summary.errors:
            print(f"  ! {error.profile_id}: {error.error}")
        if interval <= 0:
            break
        await asyncio.sleep(interval)


def parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Periodische Alert-Auswertung starten")
    parser.add_argument(
        "--interval-minutes",
        type=int,
        default=settings.alert_interval_minutes,
        help="Abstand zwischen zwei Läufen; 0 = nur ein Lauf",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    asyncio.run(scheduler_loop(args))


if __name__ == "__main__":
    main()
