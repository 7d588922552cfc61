# medtracker/store/session.py
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from medtracker import config

_engine: AsyncEngine | None = None


def engine() -> AsyncEngine:
    """
    Lazily create a singleton AsyncEngine from config.DB_DSN.
    The runner passes it into the store explicitly; nothing else reaches for it.
    """
    global _engine
    if _engine is None:
        kwargs = {"echo": config.DB_ECHO, "pool_pre_ping": True}
        if config.DB_DSN.startswith("mysql"):
            kwargs.update(pool_size=5, max_overflow=0)
        _engine = create_async_engine(config.DB_DSN, **kwargs)
    return _engine


async def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
