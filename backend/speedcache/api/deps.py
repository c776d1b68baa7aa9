import secrets

from fastapi import Query

from speedcache.config import settings
from speedcache.core.database import async_session
from speedcache.core.exceptions import AuthenticationError
from speedcache.core.redis import redis_client
from speedcache.services.blob_store import BlobStore, RedisBlobStore
from speedcache.services.job_store import JobStore


def get_job_store() -> JobStore:
    return JobStore(async_session)


def get_blob_store() -> BlobStore:
    return RedisBlobStore(redis_client)


def is_authorized(key: str | None) -> bool:
    """Check a caller-supplied key against the shared secret (never matches when unset)."""
    expected = settings.access_key
    if not expected or not key:
        return False
    return secrets.compare_digest(key.encode("utf-8"), expected.encode("utf-8"))


async def require_access_key(key: str | None = Query(None)) -> None:
    if not is_authorized(key):
        raise AuthenticationError()
