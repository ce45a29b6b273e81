"""
Stale Ride Monitor
==================

Runs every ``STALE_CHECK_INTERVAL_SECONDS`` (default 60 s).

Finds rides still ``pending`` longer than ``STALE_PENDING_MINUTES`` and sends
one ``ride_pending_stale`` notification per ride so the office notices
requests nobody has acted on.  The monitor only reads ride state; it never
transitions a ride.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one API process runs a sweep at a
  time.
* **Redis SET NX** per ride de-duplicates alerts across sweeps and processes.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from src.config import settings
from src.domain.clock import SystemClock
from src.infrastructure.database import async_session_factory
from src.infrastructure.locks import DistributedLock
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import RideRepository
from src.services.notifications import Notifier, build_notifier
from src.services.rides import ride_payload

logger = logging.getLogger(__name__)

ALERT_TTL_SECONDS = 24 * 60 * 60

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_stale_monitor() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Stale ride monitor started (interval=%ds)",
        settings.stale_check_interval_seconds,
    )


async def stop_stale_monitor() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Stale ride monitor stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a sweep then sleep."""
    assert _stop_event is not None
    notifier = build_notifier(settings)
    clock = SystemClock(settings.service_timezone)
    while not _stop_event.is_set():
        try:
            redis = await get_redis()
            async with async_session_factory() as session:
                await run_stale_sweep(session, redis, notifier, clock)
        except Exception:
            logger.exception("Unhandled error in stale ride sweep")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.stale_check_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next sweep


async def run_stale_sweep(session, redis, notifier: Notifier, clock) -> int:
    """Execute one sweep.  Returns the number of alerts sent."""
    async with DistributedLock(redis, "stale_ride_monitor", ttl_seconds=60) as won:
        if not won:
            logger.debug("Lock held by another worker - skipping sweep")
            return 0
        return await _flag_stale_rides(session, redis, notifier, clock)


async def _flag_stale_rides(session, redis, notifier: Notifier, clock) -> int:
    alerted = 0
    now = clock.now()
    cutoff = now - timedelta(minutes=settings.stale_pending_minutes)
    for ride in await RideRepository(session).get_stale_pending(cutoff):
        first = await redis.set(
            f"stale-alert:{ride.id}", "1", nx=True, ex=ALERT_TTL_SECONDS
        )
        if not first:
            continue
        minutes = int((now - ride.created_at).total_seconds() // 60)
        notifier.notify(
            "ride_pending_stale", {**ride_payload(ride), "minutes_pending": minutes}
        )
        alerted += 1
    if alerted:
        logger.info("Stale sweep: %d pending rides flagged", alerted)
    return alerted
