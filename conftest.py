import os
from typing import AsyncGenerator, Optional

# Settings are read at import time by libs.db.config; point them at the test
# database before anything from libs is imported.
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:"
)
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("REDIS_URL", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from libs.auth.dependencies import get_current_actor
from libs.auth.models import Actor
from libs.common.config import get_settings
from libs.common.error_handler import ApiError, ErrorCode
from libs.db.base import Base
from libs.db.session import get_async_db

# Import all models so metadata includes every table
from services.approvals_service import models as _approval_models  # noqa: F401
from services.communications_service import models as _communication_models  # noqa: F401
from services.members_service import models as _member_models  # noqa: F401

# Clear cached settings to reload with new env vars
get_settings.cache_clear()
settings = get_settings()


@pytest_asyncio.fixture
async def test_engine():
    """A fresh database per test: in-memory SQLite unless TEST_DATABASE_URL is set."""
    if settings.is_sqlite:
        engine = create_async_engine(
            settings.DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(settings.DATABASE_URL, future=True)

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except OperationalError:
        await engine.dispose()
        pytest.skip("Database not available for tests")

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Factory for extra sessions, e.g. to simulate a concurrent request."""
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


class ActorSwitch:
    """Stands in for ``get_current_actor``; tests pick who is calling."""

    def __init__(self):
        self.actor: Optional[Actor] = None

    def use(self, actor: Actor) -> Actor:
        self.actor = actor
        return actor

    async def __call__(self) -> Actor:
        if self.actor is None:
            raise ApiError(ErrorCode.UNAUTHORIZED)
        return self.actor


@pytest.fixture
def act_as() -> ActorSwitch:
    return ActorSwitch()


async def _service_client(app, db_session, act_as) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_current_actor] = act_as
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def members_app():
    from services.members_service.app.main import create_app

    return create_app()


@pytest_asyncio.fixture
async def communications_app():
    from services.communications_service.app.main import create_app

    return create_app()


@pytest_asyncio.fixture
async def approvals_app():
    from services.approvals_service.app.main import create_app

    return create_app()


@pytest_asyncio.fixture
async def members_client(members_app, db_session, act_as):
    async for ac in _service_client(members_app, db_session, act_as):
        yield ac


@pytest_asyncio.fixture
async def communications_client(communications_app, db_session, act_as):
    async for ac in _service_client(communications_app, db_session, act_as):
        yield ac


@pytest_asyncio.fixture
async def approvals_client(approvals_app, db_session, act_as):
    async for ac in _service_client(approvals_app, db_session, act_as):
        yield ac
