"""
Global pytest configuration and fixtures for Uniflow Platform Services tests.

Every database test gets its own in-memory SQLite database (aiosqlite with a
StaticPool so all sessions share one connection) with the full schema created.
"""

import os
from collections.abc import AsyncIterator
from datetime import datetime, timedelta

# Settings are read at import time; point them at SQLite before anything loads
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OBSERVABILITY__LOG_FORMAT", "text")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import uniflow.platform.models  # noqa: F401  # registers every table
from uniflow.platform.billing.catalog.models import Plan
from uniflow.platform.billing.catalog.service import PlanCatalog
from uniflow.platform.billing.subscriptions.lifecycle import SubscriptionLifecycleManager
from uniflow.platform.db import Base
from uniflow.platform.settings import Settings

from tests.factories import *  # noqa: F401,F403
from tests.factories import T0


class FrozenClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, moment: datetime) -> datetime:
        self.now = moment
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(environment="test")


@pytest_asyncio.fixture
async def async_db_engine() -> AsyncIterator[AsyncEngine]:
    """Async database engine for tests."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def async_session_maker(
    async_db_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=async_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def async_db_session(
    async_session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Async database session for tests."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest_asyncio.fixture
async def plans(async_db_session: AsyncSession) -> dict[str, Plan]:
    """The default catalog, seeded, keyed by plan name."""
    seeded = await PlanCatalog(async_db_session).seed_default_plans()
    return {plan.name: plan for plan in seeded}


@pytest_asyncio.fixture
async def manager(
    async_db_session: AsyncSession,
    clock: FrozenClock,
    test_settings: Settings,
    plans: dict[str, Plan],
) -> SubscriptionLifecycleManager:
    return SubscriptionLifecycleManager(async_db_session, clock=clock, settings=test_settings)
