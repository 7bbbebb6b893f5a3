from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.background.github_sync_jobs import sync_github_installations_for_all_tenants
from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

sync_scheduler = AsyncIOScheduler()


def start_scheduler() -> None:
    if sync_scheduler.running:
        return
    sync_scheduler.add_job(
        sync_github_installations_for_all_tenants,
        "interval",
        minutes=settings.installation_sync_interval_minutes,
        id="github-installation-sync",
        max_instances=1,
        coalesce=True,
    )
    sync_scheduler.start()
    logger.info("Sync scheduler started", extra={"interval_minutes": settings.installation_sync_interval_minutes})


def shutdown_scheduler() -> None:
    if sync_scheduler.running:
        sync_scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")
