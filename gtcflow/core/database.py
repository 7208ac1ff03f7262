"""
Database connection, session management and the workflow transaction helper.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy import exc as sa_exc
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gtcflow.core.config import get_settings
from gtcflow.core.exceptions import ConflictError

settings = get_settings()
log = structlog.get_logger()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context():
    """Context manager for use outside of FastAPI request lifecycle."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def transaction(
    session: AsyncSession,
    *,
    max_wait: float | None = None,
    timeout: float | None = None,
):
    """Run the body as one atomic unit on `session`.

    Commits on success and rolls back on any exception. `max_wait` bounds how
    long a statement may wait for row locks and `timeout` bounds the whole
    unit, so a stuck transaction aborts instead of blocking its caller.
    A unique-key violation surfaces as ConflictError.
    """
    max_wait = settings.tx_max_wait_seconds if max_wait is None else max_wait
    timeout = settings.tx_timeout_seconds if timeout is None else timeout

    try:
        async with asyncio.timeout(timeout):
            if session.get_bind().dialect.name == "postgresql":
                await session.execute(text(f"SET LOCAL lock_timeout = '{int(max_wait * 1000)}ms'"))
                await session.execute(text(f"SET LOCAL statement_timeout = '{int(timeout * 1000)}ms'"))
            yield session
            await session.commit()
    except TimeoutError:
        await session.rollback()
        log.warning("db.transaction_timeout", timeout=timeout)
        raise ConflictError("Transaction timed out, please retry")
    except sa_exc.IntegrityError as e:
        await session.rollback()
        log.info("db.integrity_conflict", error=str(e.orig))
        raise ConflictError("Duplicate or conflicting record") from e
    except BaseException:
        await session.rollback()
        raise
