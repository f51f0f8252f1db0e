"""Database engine, session factory, and declarative base.

All community-scoped rows live in one schema and carry a
`community_id` column.

Session dependency for FastAPI:
  - get_db()  → one transaction per request (commit on success,
                rollback on any exception)
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


def _engine_options(url: str) -> dict:
    # SQLite (local dev / tests) does not accept queue pool sizing
    if url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {"echo": settings.debug, "pool_size": 20, "max_overflow": 10}


engine = create_async_engine(
    settings.database_url,
    **_engine_options(settings.database_url),
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Declarative base for every application table."""
    pass


async def get_db() -> AsyncSession:
    """Yield a session wrapped in a single transaction."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for long-lived handlers (websockets) that open
    a fresh session per unit of work."""
    return async_session
