"""
Shared test configuration and fixtures for Blogify tests.

Provides a throwaway SQLite database per test, a fake redis client, settings
suitable for tests and an aiohttp test client wired to fake providers.
"""

import os

import pytest
import pytest_asyncio
import fakeredis.aioredis
from aiohttp.test_utils import TestClient, TestServer
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from blogify.app.config import (
    DatabaseSessionMakerAppKey,
    MetricsClientAppKey,
    OAuthFlowStoreAppKey,
    OAuthProviderAppKey,
    Settings,
    TextGenerationAppKey,
)
from blogify.app.server import build_app
from blogify.model.base import Base
from blogify.social.transient import OAuthFlowStore
from tests.test_helpers import (
    FakeOAuthProvider,
    FakeTextGenerationProvider,
    RecordingMetricsClient,
)


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Use the cheapest bcrypt cost so account tests stay fast."""
    monkeypatch.setattr("blogify.auth.passwords.BCRYPT_ROUNDS", 4)


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Create async SQLAlchemy engine backed by a per-test SQLite file."""
    database_path = os.path.join(tmp_path, "blogify_test.db")
    engine = create_async_engine(f"sqlite+aiosqlite:///{database_path}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(session_maker):
    """Create async database session for testing."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def fake_redis_client():
    """Provide fake Redis client for unit tests."""
    client = fakeredis.aioredis.FakeRedis(decode_responses=False)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        session_secret="test-session-secret-0123456789abcdef",
        encryption_key=Fernet(Fernet.generate_key()),
        external_url="https://blog.example",
        static_dir=os.path.join(tmp_path, "static"),
        social_client_id="test-client",
        social_callback_url="https://blog.example/social/callback",
    )


@pytest.fixture
def oauth_provider():
    return FakeOAuthProvider()


@pytest.fixture
def text_generation():
    return FakeTextGenerationProvider()


@pytest.fixture
def metrics_client():
    return RecordingMetricsClient()


@pytest.fixture
def flow_store(fake_redis_client, settings):
    return OAuthFlowStore(fake_redis_client, settings.oauth_flow_ttl)


@pytest_asyncio.fixture
async def client(
    settings,
    session_maker,
    flow_store,
    oauth_provider,
    text_generation,
    metrics_client,
):
    """An aiohttp test client for the full application with fake providers."""
    app = build_app(settings)
    app[DatabaseSessionMakerAppKey] = session_maker
    app[MetricsClientAppKey] = metrics_client
    app[OAuthProviderAppKey] = oauth_provider
    app[OAuthFlowStoreAppKey] = flow_store
    app[TextGenerationAppKey] = text_generation

    test_client = TestClient(TestServer(app))
    await test_client.start_server()
    yield test_client
    await test_client.close()
