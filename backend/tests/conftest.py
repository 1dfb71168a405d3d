"""
Shared fixtures.

Database-backed tests run against in-memory SQLite through aiosqlite. A
``StaticPool`` keeps the single connection alive so every session sees the
same database.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

import medresponse.models  # noqa: F401
from medresponse.api.middleware import rate_limit as rate_limit_module
from medresponse.api.middleware.auth import create_access_token
from medresponse.config import Settings
from medresponse.db.postgres import Base, make_session_factory
from medresponse.main import create_app
from medresponse.models.user import User, UserRole

SQLITE_URL = "sqlite+aiosqlite://"


def sqlite_engine():
    return create_async_engine(
        SQLITE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


def make_user(username="amal", role=UserRole.USER, **overrides):
    fields = {
        "username": username,
        "first_name": username.capitalize(),
        "last_name": "Test",
        "email": f"{username}@example.com",
        "phone": "0599000000",
        "role": role,
    }
    fields.update(overrides)
    return User(**fields)


def token_for(user: User) -> str:
    return create_access_token({"sub": str(user.id), "role": user.role.value})


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def run_db():
    """Run ``scenario(session_factory)`` against a fresh database."""

    def _run(scenario):
        async def _main():
            engine = sqlite_engine()
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            try:
                return await scenario(make_session_factory(engine))
            finally:
                await engine.dispose()

        return asyncio.run(_main())

    return _run


@pytest.fixture
def no_rate_limit(monkeypatch):
    monkeypatch.setattr(rate_limit_module, "check_rate_limit", AsyncMock(return_value=(False, 1)))


@pytest.fixture
def app_settings():
    return Settings(
        DATABASE_URL=SQLITE_URL,
        CREATE_TABLES_ON_STARTUP=True,
        WS_PING_INTERVAL_SECONDS=0,
        WS_REQUIRE_AUTH=False,
    )


@pytest.fixture
def client(app_settings, no_rate_limit):
    app = create_app(engine=sqlite_engine(), settings=app_settings)
    with TestClient(app) as c:
        yield c


def seed(client: TestClient, *objects):
    """Insert ORM objects through the app's own event loop and session factory."""

    async def _add():
        async with client.app.state.session_factory() as session:
            session.add_all(objects)
            await session.commit()

    client.portal.call(_add)
    return objects
