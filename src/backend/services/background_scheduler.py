"""
In-process maintenance jobs.

Two interval jobs run on an APScheduler AsyncIOScheduler inside the API
process: the rollup refresh, which folds counter shards into rollup
documents, and a sweep that drops expired markers from the in-memory store.
"""

import logging
from datetime import timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from db.session import get_document_store
from db.store import InMemoryDocumentStore

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def rollup_refresh_job() -> None:
    """
    Rebuild rollups from the live counters.

    A failed run only leaves rollups stale until the next interval, so the
    error is logged rather than raised into the scheduler.
    """
    from services.rollup_service import RollupService

    logger.info("Rollup refresh starting")

    try:
        written = await RollupService(get_document_store()).refresh_rollups()
        logger.info(f"Rollup refresh finished, {written} rollup documents written")
    except Exception as e:
        logger.error(f"Rollup refresh failed: {e}", exc_info=True)


async def store_sweep_job() -> None:
    """Drop expired idempotency records and dedup markers (in-memory store only)."""
    store = get_document_store()
    # Cosmos expires items itself via per-item ttl
    if not isinstance(store, InMemoryDocumentStore):
        return

    removed = store.purge_expired()
    logger.info(f"Store sweep finished, {removed} expired documents removed")


def get_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=timezone.utc)
    return _scheduler


async def start_scheduler() -> None:
    """Register the maintenance jobs and start the scheduler (no-op if running)."""
    scheduler = get_scheduler()

    if scheduler.running:
        logger.info("Maintenance scheduler is already running")
        return

    jobs = (
        (rollup_refresh_job, "rollup_refresh", "Rollup Refresh", settings.ROLLUP_INTERVAL_MINUTES),
        (store_sweep_job, "store_sweep", "Store Sweep", settings.STORE_SWEEP_INTERVAL_MINUTES),
    )
    for func, job_id, name, minutes in jobs:
        scheduler.add_job(
            func,
            trigger=IntervalTrigger(minutes=minutes),
            id=job_id,
            name=name,
            replace_existing=True,
            max_instances=1,
        )
        logger.info(f"Scheduled {job_id} every {minutes} minutes")

    scheduler.start()
    logger.info("Maintenance scheduler started")


async def stop_scheduler() -> None:
    """Shut the scheduler down, waiting for running jobs to finish."""
    global _scheduler

    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=True)
        logger.info("Maintenance scheduler stopped")

    _scheduler = None
