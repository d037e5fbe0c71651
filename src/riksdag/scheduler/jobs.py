"""
APScheduler jobs for background sync.

A nightly strategic plan advances every incomplete, enabled resource type by
one batch. A complete type is skipped until its sync_interval_hours have
passed, then the plan rewinds it and starts a refresh pass.
"""
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from riksdag.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(engine) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine to pass to the sync service.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _nightly_plan,
        trigger="cron",
        hour=settings.sync_hour,
        minute=0,
        id="nightly_plan",
        replace_existing=True,
        max_instances=1,  # never two plans against the same cursors
        kwargs={"engine": engine},
    )

    return scheduler


async def _nightly_plan(engine) -> None:
    """Nightly job: run one strategic plan pass over all resource types."""
    from riksdag.opendata.sync_service import build_sync_service

    logger.info("Nightly plan starting at %s", datetime.utcnow().isoformat())

    service = build_sync_service(engine=engine)
    try:
        summary = await service.run_strategic_plan(manual=False)
        for phase in summary.phases:
            if phase.error:
                logger.warning("Phase %s failed: %s", phase.resource_type, phase.error)
        logger.info("Nightly plan done: %d records", summary.total_processed)
    except Exception as exc:
        logger.error("Nightly plan failed: %s", exc)
    finally:
        await service.client.aclose()
