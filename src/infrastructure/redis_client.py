"""
Shared Redis connection pool.

Backs the notification channel, the stale-ride alert de-duplication keys and
the sweep lock.  Connections are opened lazily on first command.
"""

import redis.asyncio as aioredis

from src.config import settings

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


async def get_redis() -> aioredis.Redis:
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    """Drop pooled connections on shutdown."""
    await _pool.disconnect()
