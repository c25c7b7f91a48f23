"""Database engine and session management."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)

from facialauth.core.logging import get_logger

logger = get_logger(__name__)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    return create_async_engine(database_url, echo=echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session, committing on success and rolling back on error.

    Example:
        ```python
        async with session_scope(factory) as session:
            session.add(item)
        ```
    """
    session = session_factory()
    try:
        yield session
        await session.commit()
    except Exception as e:
        logger.error(
            "Database session error",
            error=str(e),
            exc_info=True
        )
        await session.rollback()
        raise
    finally:
        await session.close()
