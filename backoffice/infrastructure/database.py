"""
Async SQLAlchemy engine and session factory.

One engine per API process over ``asyncpg``; pool size comes from
``DB_POOL_SIZE`` / ``DB_MAX_OVERFLOW``.  Each request and the daily
notification run borrow one connection for their unit of work.
``expire_on_commit`` is off so handlers can serialise ORM objects after
the unit of work has been committed.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from backoffice.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""

    # fetch server defaults (created_at) at INSERT time; an async session
    # cannot lazy-load them later
    __mapper_args__ = {"eager_defaults": True}
