"""Test fixtures — a fresh in-memory database per test, real auth, recorded fan-out.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (aiosqlite + StaticPool,
   so every session sees the same single connection) with all tables created
2. get_db is overridden to open a fresh session per request, like production
3. get_broadcaster is overridden with a Broadcaster whose publisher only
   records (channel, message) pairs, so tests can assert who heard what
4. get_blob_store is overridden with an in-memory store

No Redis is initialized, so rate limiting is skipped. Auth is NOT mocked:
tests register and log in real users and send real bearer tokens.
"""

import os

os.environ.setdefault("RESCUETRACK_ENVIRONMENT", "test")
os.environ.setdefault("RESCUETRACK_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RESCUETRACK_BCRYPT_ROUNDS", "4")

import uuid
from typing import Any

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rescuetrack.db.engine import get_db
from rescuetrack.db.models import Base
from rescuetrack.main import app
from rescuetrack.realtime.broadcaster import Broadcaster, get_broadcaster
from rescuetrack.storage import StoredBlob, get_blob_store


# ─── Doubles ─────────────────────────────────────────────


class RecordingPublisher:
    """EventPublisher that remembers every (channel, message) it was given."""

    def __init__(self):
        self.sent: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, channel: str, message: dict[str, Any]) -> None:
        self.sent.append((channel, message))

    def channels(self, event: str | None = None) -> list[str]:
        return [c for c, m in self.sent if event is None or m["event"] == event]

    def messages(self, channel: str) -> list[dict[str, Any]]:
        return [m for c, m in self.sent if c == channel]

    def clear(self) -> None:
        self.sent.clear()


class InMemoryBlobStore:
    def __init__(self):
        self.blobs: dict[str, bytes] = {}

    async def save(self, key: str, content: bytes, content_type: str) -> StoredBlob:
        url = f"memory://{key}"
        self.blobs[url] = content
        return StoredBlob(url=url, thumbnail_url=url + "?thumb")

    async def delete(self, url: str) -> None:
        self.blobs.pop(url, None)


# ─── Database ────────────────────────────────────────────


@pytest_asyncio.fixture()
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(session_factory):
    """A session for tests that drive services directly."""
    async with session_factory() as session:
        yield session


# ─── App wiring ──────────────────────────────────────────


@pytest_asyncio.fixture()
async def publisher():
    return RecordingPublisher()


@pytest_asyncio.fixture()
async def broadcaster(publisher):
    b = Broadcaster(publisher)
    yield b
    await b.drain()


@pytest_asyncio.fixture()
async def blob_store():
    return InMemoryBlobStore()


@pytest_asyncio.fixture()
async def client(session_factory, broadcaster, blob_store):
    """HTTP client with DB, fan-out and blob storage overridden for testing."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_blob_store] = lambda: blob_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def server_error_client(client):
    """Same app wiring, but unhandled errors come back as the 500 envelope.

    Learn: ASGITransport re-raises app exceptions by default; turning that
    off lets a test see exactly what a real client would receive.
    """
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ─── Users ───────────────────────────────────────────────


async def register_user(client, name: str, role: str = "rescuer") -> dict:
    """Register through the API. Returns {id, email, name, tokens, headers}."""
    email = f"{name.lower()}-{uuid.uuid4().hex[:8]}@example.com"
    r = await client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": "rescue123", "name": name, "role": role},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    return {
        "id": body["user"]["id"],
        "email": email,
        "password": "rescue123",
        "name": name,
        "access_token": body["access_token"],
        "refresh_token": body["refresh_token"],
        "headers": {"Authorization": f"Bearer {body['access_token']}"},
    }


@pytest_asyncio.fixture()
async def alice(client):
    return await register_user(client, "Alice")


@pytest_asyncio.fixture()
async def bob(client):
    return await register_user(client, "Bob", role="vet")


@pytest_asyncio.fixture()
async def carol(client):
    return await register_user(client, "Carol", role="foster")


# ─── Cases ───────────────────────────────────────────────


CASE_BODY = {
    "species": "dog",
    "description": "Brown terrier mix, limping",
    "status": "rescued",
    "urgency": "high",
    "location_found": "123 Main St, Downtown",
    "location_current": "Eastside Clinic",
    "injuries": "Fractured left foreleg",
    "treatments": "Splint applied",
    "medications": "Carprofen 25mg",
    "is_public": True,
}


async def create_case(client, owner: dict, **overrides) -> dict:
    r = await client.post(
        "/api/v1/cases", json={**CASE_BODY, **overrides}, headers=owner["headers"]
    )
    assert r.status_code == 201, r.text
    return r.json()


async def add_collaborator(client, owner: dict, case_id: str, user: dict, label: str = "Vet"):
    r = await client.post(
        f"/api/v1/cases/{case_id}/collaborators",
        json={"user_id": user["id"], "role_label": label},
        headers=owner["headers"],
    )
    assert r.status_code == 201, r.text
    return r.json()
