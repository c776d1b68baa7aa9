"""Shared pytest fixtures for the SpeedCache backend test suite."""

import os
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# ---------------------------------------------------------------------------
# Override settings BEFORE any app code is imported so that the module-level
# objects (engine, redis_client, celery_app) never try to reach real services.
# ---------------------------------------------------------------------------

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("PAGESPEED_INSIGHTS_API", "test-psi-key")
os.environ.setdefault("ACCESS_KEY", "test-access-key")

from speedcache.core.database import Base  # noqa: E402
from speedcache.models.report import Report  # noqa: E402
from speedcache.services.blob_store import BlobStore  # noqa: E402
from speedcache.services.job_store import JobStore  # noqa: E402
from speedcache.services.pagespeed import AnalysisResult  # noqa: E402

ACCESS_KEY = os.environ["ACCESS_KEY"]


# ---------------------------------------------------------------------------
# Async engine / session factory for tests (SQLite in-memory)
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def session_factory():
    """Yield a session factory backed by a fresh in-memory SQLite database.

    Tables are created before and dropped after every test function so that
    tests are fully isolated.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_factory) -> JobStore:
    return JobStore(session_factory)


async def force_fields(session_factory, public_id: str, **fields) -> None:
    """Write columns directly, bypassing the store (backdating, corrupting state)."""
    async with session_factory() as db:
        await db.execute(update(Report).where(Report.public_id == public_id).values(**fields))
        await db.commit()


# ---------------------------------------------------------------------------
# In-memory blob store
# ---------------------------------------------------------------------------


class InMemoryBlobStore(BlobStore):
    def __init__(self):
        self.objects: dict[str, str] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int | None] = {}

    async def put(self, key, body, *, content_type="application/json", metadata=None, ttl_seconds=None):
        self.objects[key] = body
        self.metadata[key] = {"contentType": content_type, **(metadata or {})}
        self.ttls[key] = ttl_seconds

    async def get(self, key):
        return self.objects.get(key)

    async def get_metadata(self, key):
        return dict(self.metadata.get(key, {}))

    async def delete(self, key):
        self.objects.pop(key, None)
        self.metadata.pop(key, None)
        self.ttls.pop(key, None)


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


# ---------------------------------------------------------------------------
# PageSpeed fakes
# ---------------------------------------------------------------------------


def fake_pagespeed(fail_device: str | None = None, error_body: str = '{"error": {"code": 500}}'):
    """Build a stand-in for fetch_analysis that answers per device."""
    calls = []

    async def _fetch(url, device, api_key):
        calls.append((url, device, api_key))
        if device == fail_device:
            return AnalysisResult(device=device, error=error_body, status_code=500)
        return AnalysisResult(
            device=device,
            payload={"id": url, "strategy": device, "lighthouseResult": {"score": 0.9}},
            status_code=200,
        )

    _fetch.calls = calls
    return _fetch


# ---------------------------------------------------------------------------
# FastAPI test client (ASGI transport via httpx)
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_dispatch():
    """Replace the Celery hand-off at every import site."""
    dispatch = MagicMock()
    with patch("speedcache.api.reports.dispatch_report", dispatch), \
         patch("speedcache.api.admin.dispatch_report", dispatch):
        yield dispatch


@pytest_asyncio.fixture
async def client(store: JobStore, blobs: InMemoryBlobStore, mock_dispatch):
    """Yield an httpx.AsyncClient wired to the FastAPI app.

    Dependency overrides point the routes at the test SQLite store and the
    in-memory blob store. ASGITransport does not run the app lifespan.
    """
    from speedcache.api.deps import get_blob_store, get_job_store
    from speedcache.main import app

    app.dependency_overrides[get_job_store] = lambda: store
    app.dependency_overrides[get_blob_store] = lambda: blobs

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()

