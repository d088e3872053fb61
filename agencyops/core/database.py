"""
Database engine, sessions and units of work.

Services never open sessions themselves: they receive an ``AsyncSession`` and
wrap each mutation in ``unit_of_work`` so validation reads, data writes and
the audit write commit or roll back together.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from agencyops.core.config import settings
from agencyops.core.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available, query_canceled
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03", "57014"})


def create_engine_from_settings() -> AsyncEngine:
    """Build the async engine with the configured isolation level."""
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
        isolation_level=settings.DATABASE_ISOLATION_LEVEL,
    )


engine = create_engine_from_settings()

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a request-scoped session.

    Commits whatever is still pending on success, rolls back on error.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            if session.in_transaction():
                await session.commit()
        except Exception:
            await session.rollback()
            raise


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block atomically.

    Opens a transaction, or a SAVEPOINT when the session is already inside
    one. Store aborts caused by concurrent writers or timeouts surface as
    ``ConcurrentModificationError``.
    """
    try:
        if session.in_transaction():
            async with session.begin_nested():
                yield session
        else:
            async with session.begin():
                yield session
    except DBAPIError as exc:
        sqlstate = _sqlstate(exc)
        if sqlstate in RETRYABLE_SQLSTATES:
            logger.warning("Transaction aborted by store: sqlstate=%s", sqlstate)
            raise ConcurrentModificationError(details={"sqlstate": sqlstate}) from exc
        raise
