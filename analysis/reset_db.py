#!/usr/bin/env python
"""Hilfsskript: setzt die SQLite-Datenbank zurück."""

from __future__ import annotations

import asyncio

from fishcast.db.session import engine, init_db
from fishcast.models.models import Base


async def main() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db()
    print("SQLite-DB zurückgesetzt.")


if __name__ == "__main__":
    asyncio.run(main())
