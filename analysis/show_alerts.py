#!/usr/bin/env python
"""Kleiner Snapshot der ausgelösten Alerts."""

from __future__ import annotations

import asyncio

from fishcast.services.store import SqlProfileStore, to_utc


async def main() -> None:
    store = SqlProfileStore()
    entries = await store.history(limit=10)
    if not entries:
        print("Keine Alerts gespeichert.")
        return
    print(f"Letzte {len(entries)} Alerts:\n")
    for e in entries:
        score = f"{e.fishing_score:.1f}" if e.fishing_score is not None else "-"
        print(
            f"Profil={e.profile_name or e.profile_id} at={to_utc(e.triggered_at).isoformat()} "
            f"score={score} matched={','.join(e.matched_triggers or [])} ({e.detail})"
        )
    run = await store.latest_run()
    if run is not None:
        print(
            f"\nLetzter Lauf: {run.started_at} processed={run.profiles_processed} "
            f"fired={run.alerts_fired} errors={run.errors}"
        )


if __name__ == "__main__":
    asyncio.run(main())
