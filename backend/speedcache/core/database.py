from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from speedcache.config import settings


def _pool_options(pool_size: int, max_overflow: int) -> dict:
    """Pool sizing only applies to server databases; SQLite uses a static pool."""
    if settings.DATABASE_URL.startswith("sqlite"):
        return {}
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_pool_options(settings.DB_POOL_SIZE, settings.DB_MAX_OVERFLOW),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def create_worker_session_factory():
    """Create a fresh engine + session factory for Celery workers.

    Each Celery task runs in a new event loop, so we need a fresh engine
    that isn't tied to a previous (closed) loop.
    """
    worker_engine = create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        **_pool_options(settings.WORKER_DB_POOL_SIZE, 2),
    )
    return async_sessionmaker(worker_engine, class_=AsyncSession, expire_on_commit=False), worker_engine
