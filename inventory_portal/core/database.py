"""Database engine and session management.

Two kinds of units of work use the same session configuration:
- API requests: one session per request (``get_session``), committed when
  the endpoint returns and rolled back if it raises
- Reminder cycles: the scheduler opens one session per organization from
  ``async_session_factory`` and commits it on its own
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by the API and the reminder jobs."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,  # Loaded rows stay readable after commit
        autoflush=False,         # Stores flush explicitly
    )


engine = create_async_engine(
    settings.database_url_async,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    echo=settings.database_echo,
    pool_pre_ping=True,
    pool_recycle=300,
)

async_session_factory = create_session_factory(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped transactional session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Request transaction rolled back: {e!r}")
            raise


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create missing tables (development only; production uses migrations)."""
    from ..models import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def close_db() -> None:
    await engine.dispose()
