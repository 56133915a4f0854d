"""Database engine and session management.

The engine is created lazily from DatabaseSettings on first use. Commands
that run each step under a fresh event loop call dispose_engine() before the
loop closes so pooled connections do not outlive it.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from outbox_relay.core.settings import get_db_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./outbox.db"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    """Configured database URL, or the local SQLite file when unset."""
    db_settings = get_db_settings()
    if db_settings.is_configured and db_settings.dsn:
        return db_settings.dsn
    return DEFAULT_DATABASE_URL


def get_engine() -> AsyncEngine:
    """Get the shared async engine, creating it on first use."""
    global _engine

    if _engine is None:
        db_settings = get_db_settings()
        url = get_database_url()
        kwargs: dict[str, Any] = {"echo": db_settings.echo}
        if url == db_settings.dsn:
            kwargs = db_settings.engine_kwargs()
        _engine = create_async_engine(url, **kwargs)
        logger.debug("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the shared session factory bound to the shared engine."""
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Get async database session.

    Yields:
        Database session that is automatically closed.

    Example:
        async with get_async_session() as session, session.begin():
            await session.execute(update(Order).values(status="PAID"))
            await router.publish(OrderPaid(order_id=7), session)
    """
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()


async def ensure_outbox_table(engine: AsyncEngine | None = None) -> None:
    """Create the outbox_record table if migrations haven't run yet.

    Safety net for environments where Alembic migrations aren't executed
    (local SQLite files, ephemeral test databases). Idempotent thanks to
    SQLAlchemy's `checkfirst` guard.
    """
    from outbox_relay.infra.events.outbox.models import OutboxRecord

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(
            lambda sync_conn: cast("Any", OutboxRecord.__table__).create(
                bind=sync_conn, checkfirst=True
            )
        )
    logger.info("Outbox table ensured", extra={"dialect": target.dialect.name})


async def check_database() -> None:
    """Run a trivial query to verify connectivity.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: If the database is unreachable.
    """
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


async def dispose_engine() -> None:
    """Dispose the shared engine and forget it and its session factory."""
    global _engine, _session_factory

    if _engine is None:
        return

    logger.debug("Disposing database engine")
    try:
        await _engine.dispose()
    finally:
        _engine = None
        _session_factory = None


__all__ = [
    "DEFAULT_DATABASE_URL",
    "check_database",
    "dispose_engine",
    "ensure_outbox_table",
    "get_async_session",
    "get_database_url",
    "get_engine",
    "get_session_factory",
]
