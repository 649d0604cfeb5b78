"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.
Every mutation runs in the request's session and commits once, so a case
write and its activity entry persist together or not at all.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rescuetrack.config import settings


def _engine_kwargs(url: str) -> dict:
    # SQLite (tests, local tinkering) uses a singleton pool without sizing knobs.
    if url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {"echo": settings.debug, "pool_size": 5, "max_overflow": 15}


engine = create_async_engine(settings.database_url, **_engine_kwargs(settings.database_url))

# One session per request.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes.

    Anything left uncommitted when the handler raises is rolled back.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_all() -> None:
    """Create every table (dev bootstrap; production uses Alembic)."""
    from rescuetrack.db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
