"""FundSync - Scheduler Jobs.

APScheduler nightly job that re-runs the bulk sync against the configured
Raisely export file.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from fundsync.config import settings
from fundsync.connectors.raisely.transformer import load_export
from fundsync.connectors.storyblok.client import StoryblokClient
from fundsync.core.logging import get_logger
from fundsync.models.sync_models import BulkOptions
from fundsync.sync.bulk import BulkRunner

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def nightly_bulk_sync_job():
    """Re-sync every profile in the export file, updating existing nodes."""
    logger.info("Scheduled bulk sync starting...")
    client = StoryblokClient()
    try:
        profiles = load_export(settings.bulk_data_path)
        runner = BulkRunner(
            client,
            BulkOptions(
                force_update=True,
                batch_size=settings.bulk_batch_size,
                delay_seconds=settings.bulk_delay_seconds,
            ),
        )
        summary = await runner.run(profiles)
        logger.info(
            f"Scheduled bulk sync complete. Created: {summary.created}, "
            f"updated: {summary.updated}, errors: {summary.errors}"
        )
    except Exception as e:
        logger.error(f"Scheduled bulk sync failed: {e}")
    finally:
        await client.close()


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return
    if not settings.bulk_data_path:
        logger.warning("Scheduler enabled but BULK_DATA_PATH is not set, not starting")
        return

    scheduler.add_job(
        nightly_bulk_sync_job,
        "cron",
        hour=settings.bulk_sync_hour,
        minute=0,
        id="nightly_bulk_sync",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Bulk sync at {settings.bulk_sync_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
