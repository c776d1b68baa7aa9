"""Write-once storage for report result payloads.

Results are addressed by a key derived from the report's public id and URL and
expire on their own after the configured retention period.
"""

import logging
from abc import ABC, abstractmethod

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from speedcache.core.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    @abstractmethod
    async def put(
        self,
        key: str,
        body: str,
        *,
        content_type: str = "application/json",
        metadata: dict[str, str] | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        pass

    @abstractmethod
    async def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    async def get_metadata(self, key: str) -> dict[str, str]:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass


class RedisBlobStore(BlobStore):
    """Blob store on Redis: body under ``blob:<key>``, metadata hash under ``blob:<key>:meta``."""

    PREFIX = "blob:"

    def __init__(self, client: aioredis.Redis):
        self._client = client

    def _body_key(self, key: str) -> str:
        return f"{self.PREFIX}{key}"

    def _meta_key(self, key: str) -> str:
        return f"{self.PREFIX}{key}:meta"

    async def put(
        self,
        key: str,
        body: str,
        *,
        content_type: str = "application/json",
        metadata: dict[str, str] | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        meta = {"contentType": content_type, **(metadata or {})}
        pipe = self._client.pipeline()
        pipe.set(self._body_key(key), body, ex=ttl_seconds)
        pipe.hset(self._meta_key(key), mapping=meta)
        if ttl_seconds:
            pipe.expire(self._meta_key(key), ttl_seconds)
        try:
            await pipe.execute()
        except (RedisError, OSError) as e:
            logger.error(f"Blob put failed for {key}: {e}")
            raise StorageUnavailable(str(e), operation="blob_put") from e
        logger.debug(f"Stored blob {key} ({len(body)} chars, TTL={ttl_seconds}s)")

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(self._body_key(key))
        except (RedisError, OSError) as e:
            logger.error(f"Blob get failed for {key}: {e}")
            raise StorageUnavailable(str(e), operation="blob_get") from e

    async def get_metadata(self, key: str) -> dict[str, str]:
        try:
            return await self._client.hgetall(self._meta_key(key))
        except (RedisError, OSError) as e:
            raise StorageUnavailable(str(e), operation="blob_get_metadata") from e

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(self._body_key(key), self._meta_key(key))
        except (RedisError, OSError) as e:
            raise StorageUnavailable(str(e), operation="blob_delete") from e
