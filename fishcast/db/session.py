# fishcast/db/session.py
import os
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from fishcast.models.models import Base

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_SQLITE = f"sqlite+aiosqlite:///{os.path.join(BASE_DIR, 'fishcast.sqlite')}"
DB_URL = os.getenv("DB_URL", DEFAULT_SQLITE)


def make_session_factory(url: str, **engine_kwargs):
    """Engine + session factory for ``url`` (tests pass an in-memory SQLite URL)."""
    db_engine = create_async_engine(url, echo=False, future=True, **engine_kwargs)
    factory = sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)
    return db_engine, factory


engine, AsyncSessionLocal = make_session_factory(DB_URL)


async def init_db(db_engine: AsyncEngine = engine) -> None:
    # Tabellen anlegen, falls sie noch fehlen
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
