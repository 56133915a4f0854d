"""Pytest configuration and shared fixtures.

Organization:
    - Environment: settings isolation
    - Database Fixtures: in-memory SQLite engine, session factory, session
    - Outbox Fixtures: registry, fake publisher, clock
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Iterator
import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from outbox_relay.core.events.registry import EventRegistry
from tests.utils import FakePublisher, FrozenClock, MemberJoined, OrderPaymentRequested

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

# Ensure tests run without external infrastructure
os.environ.setdefault("RABBIT_ENABLED", "false")
os.environ.setdefault("LOG_CONSOLE_ENABLED", "false")
os.environ.setdefault("LOG_FILE_ENABLED", "false")


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def _clear_settings() -> Iterator[None]:
    """Reset cached settings around every test."""
    from outbox_relay.core.settings import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """Async engine on a single shared in-memory SQLite connection.

    Tables are created before the test and the engine disposed afterwards.
    """
    from outbox_relay.core.database.base import Base
    from outbox_relay.infra.events.outbox import models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Session that is rolled back after the test."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


# ============================================================================
# Outbox Fixtures
# ============================================================================


@pytest.fixture
def registry() -> EventRegistry:
    """Fresh registry with the sample order and member events registered."""
    registry = EventRegistry()
    registry.register(
        OrderPaymentRequested,
        aggregate_type="Order",
        topic="market.order.payment-requested",
        aggregate_id="order_id",
    )
    registry.register(
        MemberJoined,
        aggregate_type="Member",
        topic="member.joined",
        aggregate_id=lambda event: event.member_id,
    )
    return registry


@pytest.fixture
def publisher() -> FakePublisher:
    """Publisher that accepts every message."""
    return FakePublisher()


@pytest.fixture
def clock() -> FrozenClock:
    """Clock frozen at 2025-01-15 12:00 UTC."""
    return FrozenClock()
