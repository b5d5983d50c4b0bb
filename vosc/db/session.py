"""Async database engine and request-scoped sessions."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vosc.config import get_settings

settings = get_settings()


def _engine_options(database_url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.app_debug}
    if database_url.startswith("sqlite"):
        # SQLite pools do not accept sizing arguments
        return options
    options.update(pool_size=settings.database_pool_size, pool_pre_ping=True)
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session, committing on success and rolling back on error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
