"""
Startup and shutdown hooks.

Startup opens the configured document store and, when enabled, the
maintenance scheduler (rollup refresh, expired marker sweep). Shutdown stops
the scheduler before closing the store so no job runs against a closed store.
"""

from typing import Awaitable, Callable

import structlog
from fastapi import FastAPI

from core.config import settings
from db.session import close_document_store, get_document_store

logger = structlog.get_logger(__name__)

LifecycleHook = Callable[[], Awaitable[None]]


def create_start_app_handler(app: FastAPI) -> LifecycleHook:
    async def on_startup() -> None:
        store = get_document_store()
        logger.info("store_opened", backend=settings.STORAGE_BACKEND, store=type(store).__name__)

        if not settings.ENABLE_MAINTENANCE_JOBS:
            logger.info("maintenance_jobs_disabled")
            return

        from services.background_scheduler import start_scheduler

        try:
            await start_scheduler()
        except Exception as e:
            # Votes are still accepted; rollups just go stale
            logger.exception("maintenance_jobs_start_failed", error=str(e))

    return on_startup


def create_stop_app_handler(app: FastAPI) -> LifecycleHook:
    async def on_shutdown() -> None:
        from services.background_scheduler import stop_scheduler

        try:
            await stop_scheduler()
        except Exception as e:
            logger.warning("maintenance_jobs_stop_failed", error=str(e))

        await close_document_store()
        logger.info("store_closed")

    return on_shutdown
