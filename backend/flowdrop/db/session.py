"""Database engine and sessions.

The status API reads through ``get_db``; orchestrators and standalone
worker processes open their own sessions from ``async_session`` and own
their transactions.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from flowdrop.core.config import settings
from flowdrop.models import Base


def _engine_options(url: str) -> dict[str, object]:
    # SQLite drivers do not accept pool sizing arguments
    if url.startswith("sqlite"):
        return {"echo": settings.DEBUG}
    return {
        "pool_pre_ping": True,
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "echo": settings.DEBUG,
    }


engine = create_async_engine(
    settings.DATABASE_URL,
    **_engine_options(settings.DATABASE_URL),
)

# Orchestrators keep using pipelines and jobs after committing them
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create the pipeline and job tables if they do not exist."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Read-only session dependency for the status API.

    Nothing is committed; the session is closed when the request ends.
    """
    async with async_session() as session:
        yield session


__all__ = [
    "async_session",
    "engine",
    "get_db",
    "init_models",
]
