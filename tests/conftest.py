"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (aiosqlite + StaticPool,
   so every session sees the same single connection) with the schema
   created from the ORM models.
2. get_db is overridden to open a new session per request from that
   engine, exactly like production does against Postgres.
3. get_outbox is overridden with a private NotificationOutbox whose
   sender just records messages, so tests can assert what would have
   been emailed without any network.

Env vars are set before taskhub is imported so the settings singleton
picks them up (cheap bcrypt, SQLite URL for the module-level engine).
"""

import os

os.environ.setdefault("TASKHUB_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TASKHUB_BCRYPT_ROUNDS", "4")
os.environ.setdefault("TASKHUB_SENDGRID_API_KEY", "")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from taskhub.db.engine import get_db
from taskhub.db.models import Base
from taskhub.main import app
from taskhub.notifications import NotificationOutbox, get_outbox

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class RecordingSender:
    """Stands in for SendGrid: remembers every message it was asked to send."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send(self, message) -> bool:
        if self.fail:
            raise ConnectionError("mail provider unreachable")
        self.sent.append(message)
        return True


@pytest_asyncio.fixture()
async def engine():
    eng = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    """A session for direct DB access from tests (not shared with requests)."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def outbox(sender):
    return NotificationOutbox(sender=sender, poll_interval=0.01)


@pytest_asyncio.fixture()
async def client(engine, session_factory, outbox, monkeypatch):
    """HTTP client against the app with DB and outbox overridden.

    Learn: Auth is NOT mocked — every protected call in the tests goes
    through the real token verification and session lookup.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_outbox] = lambda: outbox
    # The health check talks to the module-level engine directly
    monkeypatch.setattr("taskhub.api.health.engine", engine)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Users ───────────────────────────────────────────────


async def signup(client, name: str, email: str, password: str = "MyPass777!") -> dict:
    """Sign up through the API; returns {user, token, headers, password}."""
    r = await client.post(
        "/users",
        json={"name": name, "email": email, "password": password},
    )
    assert r.status_code == 201, r.text
    data = r.json()
    data["headers"] = {"Authorization": f"Bearer {data['token']}"}
    data["password"] = password
    return data


@pytest_asyncio.fixture()
async def user_one(client):
    return await signup(client, "Mike", "mike@example.com", "56what!!")


@pytest_asyncio.fixture()
async def user_two(client):
    return await signup(client, "Jess", "jess@example.com", "myhouse099@@")
