"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (aiosqlite) with the
   schema created from the models. StaticPool keeps the single connection
   alive so every session in the test sees the same database.
2. The API client overrides get_db to hand out that test's session, so
   requests and assertions look at the same rows.
3. Environment is set BEFORE gatehouse is imported: settings are read once
   at import time.

bcrypt rounds are dropped to the minimum — the hashing code path is the
same, it just doesn't cost 250ms per call.
"""

import os

os.environ.setdefault("GATEHOUSE_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault(
    "GATEHOUSE_SESSION_SECRET", "test-session-secret-0123456789abcdef0123456789"
)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from gatehouse.db.engine import build_session_factory, get_db
from gatehouse.db.models import Base
from gatehouse.main import app
from gatehouse.providers.assertions import ExternalAssertion, ProviderTokens
from gatehouse.providers.config import ProviderConfig

STRONG_PASSWORD = "Correct1Horse"


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr("gatehouse.auth.password.BCRYPT_ROUNDS", 4)


@pytest_asyncio.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(engine):
    """Per-test session; the database disappears with the engine."""
    async with build_session_factory(engine)() as session:
        yield session


@pytest_asyncio.fixture()
async def file_engine(tmp_path):
    """File-backed SQLite with a real pool: separate sessions get separate
    connections, which in-memory StaticPool can't give us.

    Learn: pysqlite defers BEGIN until the first write, so two writers can
    each hold a read lock and deadlock on upgrade ("database is locked").
    Taking the write lock at BEGIN makes SQLite queue them instead.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def client(db_session):
    """HTTP client with the app's get_db pointed at the test session.

    Learn: Nothing auth-related is overridden — tests register, sign in and
    send real session tokens through the real pipeline.
    """
    from gatehouse.db import engine as engine_module

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    # /health touches the module-level engine; release it on this loop.
    await engine_module.engine.dispose()


@pytest.fixture()
def providers():
    return ProviderConfig(providers=("google", "apple"))


def google_assertion(**overrides) -> ExternalAssertion:
    """A Google profile as a provider exchange would hand it over."""
    values = dict(
        provider="google",
        provider_subject_id="g-1001",
        email="ada@example.com",
        name="Ada Lovelace",
        picture="https://example.com/ada.png",
        tokens=ProviderTokens(access_token="ga-1", refresh_token="gr-1"),
        email_verified=True,
    )
    values.update(overrides)
    return ExternalAssertion(**values)


def apple_assertion(**overrides) -> ExternalAssertion:
    values = dict(
        provider="apple",
        provider_subject_id="a-2002",
        email="ada@example.com",
        name=None,
        tokens=ProviderTokens(access_token="aa-1", refresh_token="ar-1"),
        email_verified=True,
    )
    values.update(overrides)
    return ExternalAssertion(**values)


async def register(client, email="ada@example.com", name="Ada", password=STRONG_PASSWORD):
    """Register through the API and return (response json, session token).

    The session cookie is dropped so the caller chooses how to authenticate;
    a leftover cookie would win over any Bearer header.
    """
    r = await client.post(
        "/api/v1/auth/register",
        json={"email": email, "name": name, "password": password},
    )
    assert r.status_code == 201, r.text
    client.cookies.clear()
    body = r.json()
    return body, body["session_token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
