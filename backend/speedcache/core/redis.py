import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from speedcache.config import settings

logger = logging.getLogger(__name__)

redis_client = aioredis.from_url(
    settings.REDIS_URL,
    encoding="utf-8",
    decode_responses=True,
    max_connections=settings.REDIS_MAX_CONNECTIONS,
)


async def get_redis() -> aioredis.Redis:
    return redis_client


async def ping_redis(client: aioredis.Redis | None = None) -> bool:
    """Return True when Redis answers PING."""
    client = client or redis_client
    try:
        return bool(await client.ping())
    except (RedisError, OSError) as e:
        logger.warning(f"Redis ping failed: {e}")
        return False


def create_worker_redis() -> aioredis.Redis:
    """Create a Redis client for a Celery task's private event loop.

    Pooled connections are bound to the loop that opened them, so workers
    must not reuse the module-level client across tasks.
    """
    return aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
    )
