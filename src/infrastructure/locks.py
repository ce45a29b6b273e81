"""
Redis-based distributed lock for periodic sweeps.

Only one API process at a time may run the stale-ride sweep.  The lock is a
plain key written with ``SET NX EX`` holding a per-holder token; the TTL
bounds how long a crashed process can block the others.  Release goes
through a Lua script so a holder whose lock already expired never deletes
the lock a newer holder took.

Used as an async context manager that yields whether the lock was won::

    async with DistributedLock(redis, "stale_ride_monitor", ttl_seconds=60) as won:
        if not won:
            return
"""

from __future__ import annotations

import logging
import uuid

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DistributedLock:
    def __init__(self, client: aioredis.Redis, name: str, ttl_seconds: int = 30):
        self.redis = client
        self.key = f"lock:{name}"
        self.ttl = ttl_seconds
        self.token = uuid.uuid4().hex
        self.held = False

    async def acquire(self) -> bool:
        self.held = bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )
        return self.held

    async def release(self) -> bool:
        """Delete the key if this holder still owns it.

        Returns False when the TTL ran out first (and another process may now
        hold the lock).
        """
        released = bool(await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token))
        if self.held and not released:
            logger.warning("Lock %s expired before release (ttl=%ds)", self.key, self.ttl)
        self.held = False
        return released

    async def __aenter__(self) -> bool:
        return await self.acquire()

    async def __aexit__(self, *exc_info) -> None:
        if self.held:
            await self.release()
