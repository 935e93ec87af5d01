# tests/conftest.py

"""Pytest configuration and fixtures."""

from collections.abc import Awaitable, Callable
from typing import AsyncGenerator

import pytest
from arcstats.db.models import RECOMPUTE_TOKEN_KEY, Base, GameResult, InternalToken
from arcstats.db.session import get_db
from arcstats.main import app
from helpers import RECOMPUTE_TOKEN
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """A fresh SQLite database file per test, with all tables created."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'arcstats.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Fixture to provide a database session to a test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def recompute_token(session_factory: async_sessionmaker[AsyncSession]) -> str:
    """Store the shared recompute secret and return it."""
    async with session_factory() as session:
        session.add(InternalToken(key=RECOMPUTE_TOKEN_KEY, value=RECOMPUTE_TOKEN))
        await session.commit()
    return RECOMPUTE_TOKEN


@pytest.fixture
def seed_results(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[list[GameResult]], Awaitable[None]]:
    """Return a coroutine function that commits raw result rows."""

    async def _seed(rows: list[GameResult]) -> None:
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()

    return _seed


@pytest.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Fixture to provide an async test client for the API."""

    # Every request gets its own session, as in production
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clean up the override after the test
    del app.dependency_overrides[get_db]
