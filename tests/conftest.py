"""
Test infrastructure for the Forum API.

Strategy
--------
- SQLite in-memory via aiosqlite replaces Postgres.  StaticPool makes every
  session share the single in-memory connection; a second connection would
  see an empty database.
- The app's get_db dependency is overridden with the test session factory.
- Tables are created before and dropped after every test.
- Redis is replaced by a fakeredis client on a fresh FakeServer per test and
  attached to the shared ``session_store``, so session TTLs and deletes
  behave like the real thing without a server.
- bcrypt runs at its minimum cost to keep signup/login tests fast.
"""
from typing import Awaitable, Callable

import fakeredis
import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from forum.config import settings
from forum.database import Base, get_db
from forum.main import app
from forum.middleware import install_query_counter
from forum.session_store import session_store

settings.BCRYPT_ROUNDS = 4

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(autouse=True)
async def redis_client():
    """Attach a private fakeredis instance to the shared session store."""
    client = fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    session_store._redis = client
    yield client
    session_store._redis = None
    await client.aclose()


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live AsyncSession for service-level tests."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """An httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def register_user(async_client: AsyncClient) -> Callable[..., Awaitable[dict]]:
    """
    Return a coroutine function that signs a user up through the API and
    yields ``{"token": ..., "headers": ...}`` ready for authenticated calls.
    """

    async def _register(username: str, password: str = "secret") -> dict:
        resp = await async_client.post(
            "/api/register", json={"username": username, "password": password}
        )
        assert resp.status_code == 201, resp.text
        token = resp.json()["token"]
        return {"token": token, "headers": {"Authorization": f"Bearer {token}"}}

    return _register


@pytest_asyncio.fixture
async def file_sessions(tmp_path) -> async_sessionmaker:
    """
    Session factory on a file-backed SQLite database.

    Unlike the shared in-memory connection, every session here gets its own
    connection, so tests can run service calls truly side by side.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'forum.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
