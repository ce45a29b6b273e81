"""
Notification sinks.

The lifecycle engine calls ``notify(event_type, payload)`` *after* a
transition has committed.  Sinks must never raise back into the caller and
must never block it: delivery failures are logged and dropped.

* ``LoggingNotifier`` -- console mode, used when no broker is configured.
* ``RedisNotifier``   -- publishes JSON onto a Redis pub/sub channel from a
  fire-and-forget task; e-mail / in-app delivery subscribes downstream.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, event_type: str, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        try:
            logger.info("Notification %s: %s", event_type, json.dumps(payload, default=str))
        except Exception:
            logger.exception("Failed to log notification %s", event_type)


class RedisNotifier:
    def __init__(
        self,
        client_factory: Callable[[], Awaitable[aioredis.Redis]],
        channel: str,
    ):
        self._client_factory = client_factory
        self.channel = channel
        self._tasks: set[asyncio.Task] = set()

    def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        try:
            task = asyncio.get_running_loop().create_task(
                self._publish(event_type, payload)
            )
        except RuntimeError:
            logger.warning("No running loop; dropped notification %s", event_type)
            return
        # Hold a reference until done so the task is not garbage-collected
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _publish(self, event_type: str, payload: dict[str, Any]) -> None:
        try:
            client = await self._client_factory()
            message = json.dumps({"event": event_type, "payload": payload}, default=str)
            await client.publish(self.channel, message)
        except Exception:
            logger.exception("Failed to publish notification %s", event_type)

    async def drain(self) -> None:
        """Wait for in-flight publishes (shutdown / tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))


def build_notifier(settings) -> Notifier:
    if settings.notification_backend == "redis":
        from src.infrastructure.redis_client import get_redis

        return RedisNotifier(get_redis, settings.notification_channel)
    return LoggingNotifier()
