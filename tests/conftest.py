import os
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.base import Base
from libs.db.session import get_async_db
from services.ledger_service import models as _ledger_models  # noqa: F401
from services.ledger_service.app.main import app


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    Fresh schema per test. Ledger operations commit as they go, so tests
    cannot be isolated by rolling back an outer transaction.

    Uses TEST_DATABASE_URL when set, else one SQLite file per test.
    """
    db_url = os.environ.get("TEST_DATABASE_URL") or (
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"
    )
    engine = create_async_engine(db_url, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


class Actor:
    """Mutable identity returned by the overridden auth dependency."""

    def __init__(self):
        self.user_id = "anonymous"
        self.role = "authenticated"

    def set(self, user_id: str, role: Optional[str] = None) -> None:
        self.user_id = user_id
        self.role = role or "authenticated"

    def as_auth_user(self) -> AuthUser:
        return AuthUser(user_id=self.user_id, role=self.role)


@pytest.fixture
def actor() -> Actor:
    return Actor()


@pytest_asyncio.fixture
async def ledger_client(session_factory, actor) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient against the ledger app. Each request gets its own session on
    the per-test database; ``actor.set(...)`` switches the caller.
    """

    async def _get_db():
        async with session_factory() as session:
            yield session

    async def _current_user():
        return actor.as_auth_user()

    app.dependency_overrides[get_async_db] = _get_db
    app.dependency_overrides[get_current_user] = _current_user

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
