from collections.abc import AsyncGenerator

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.exceptions import LifecycleError

logger = structlog.get_logger()

_engine_kwargs: dict = {
    "echo": settings.APP_DEBUG,
    "pool_pre_ping": True,
}
# SQLite (local runs, tests) uses a static pool and rejects the sizing arguments.
if not settings.is_sqlite:
    _engine_kwargs.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=3600,
        pool_timeout=30,
    )
    if settings.is_production:
        _engine_kwargs["connect_args"] = {"ssl": "require"}

engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per HTTP request: commit on success, roll back on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except (HTTPException, LifecycleError):
            # Expected client-facing failures: nothing to persist, nothing to alert on
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            logger.exception("db_session_failed")
            raise
