"""APScheduler: sweep expired entries out of the gamepass cache every hour."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cache import TTLCache

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_HOURS = 1


async def sweep_cache(cache: TTLCache) -> None:
    """Job function: drop expired entries the request path never re-read.

    A coroutine, so the asyncio executor runs it on the event loop rather
    than in a worker thread; the cache is not locked.
    """
    removed = cache.sweep()
    logger.info("Cache cleaned (%d expired). Current size: %d", removed, len(cache))


def create_scheduler(cache: TTLCache) -> AsyncIOScheduler:
    """Create and configure the scheduler. Call start() on the returned instance
    from inside the running event loop."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        sweep_cache,
        trigger=IntervalTrigger(hours=SWEEP_INTERVAL_HOURS),
        args=[cache],
        id="gamepass_cache_sweep",
        replace_existing=True,
    )
    return scheduler
