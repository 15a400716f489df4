#!/usr/bin/env python
"""Exportiert Alert-Historie und Läufe als CSV oder JSON."""

from __future__ import annotations

import argparse
import asyncio
import csv
import json
from pathlib import Path

from fishcast.db.session import AsyncSessionLocal
from fishcast.models.models import AlertHistory, AlertRun


async def fetch_history(limit: int) -> list[dict]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            AlertHistory.__table__.select().order_by(AlertHistory.triggered_at.desc()).limit(limit)
        )
        return [dict(row._mapping) for row in result.fetchall()]


async def fetch_runs(limit: int) -> list[dict]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            AlertRun.__table__.select().order_by(AlertRun.started_at.desc()).limit(limit)
        )
        return [dict(row._mapping) for row in result.fetchall()]


def write_output(data: list[dict], path: Path, fmt: str) -> None:
    if fmt == "json":
        path.write_text(json.dumps(data, default=str, indent=2), encoding="utf-8")
        return
    if not data:
        path.write_text("", encoding="utf-8")
        return
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=data[0].keys())
        writer.writeheader()
        # JSON-Spalten (Trigger, Snapshot) als String ablegen
        writer.writerows(
            {k: json.dumps(v, default=str) if isinstance(v, (dict, list)) else v for k, v in row.items()}
            for row in data
        )


async def main():
    parser = argparse.ArgumentParser(description="Export alert history and runs")
    parser.add_argument("--limit", type=int, default=200)
    parser.add_argument("--format", choices=["csv", "json"], default="csv")
    parser.add_argument("--output", default="reports/alert_history.csv")
    parser.add_argument("--runs-output", default=None)
    args = parser.parse_args()

    history = await fetch_history(args.limit)
    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    write_output(history, output_path, args.format)
    print(f"Alerts exportiert: {len(history)} -> {output_path}")

    if args.runs_output:
        runs = await fetch_runs(args.limit)
        runs_path = Path(args.runs_output)
        runs_path.parent.mkdir(parents=True, exist_ok=True)
        write_output(runs, runs_path, args.format)
        print(f"Runs exportiert: {len(runs)} -> {runs_path}")


if __name__ == "__main__":
    asyncio.run(main())
