import logging
from datetime import date
from typing import Optional
from uuid import UUID

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from dompet.core.database import AsyncSessionLocal
from dompet.core.config import get_settings
from dompet.features.bills.schemas import GenerationResult

logger = logging.getLogger(__name__)
settings = get_settings()

scheduler = AsyncIOScheduler(timezone=settings.APP_TIMEZONE)


async def run_generation(now: Optional[date] = None, user_id: Optional[UUID] = None) -> GenerationResult:
    """
    Materialize recurring bill instances for the configured horizon.
    Entry point for the cron job; also safe to call by hand.
    """
    from dompet.features.bills.service import BillService

    logger.info("Starting recurring bills generation...")
    async with AsyncSessionLocal() as db:
        result = await BillService().run_generation(db, now=now, user_id=user_id)
    logger.info("Recurring bills generation completed.")
    return result


async def _run_generation_job():
    try:
        await run_generation()
    except Exception as e:
        logger.error(f"Recurring bills generation failed: {e}", exc_info=True)


def start_scheduler():
    """
    Start the scheduler if ENABLE_SCHEDULER is True.
    Set ENABLE_SCHEDULER=False when an external cron hits POST /bills/generate instead.
    """
    if not settings.ENABLE_SCHEDULER:
        logger.info("Scheduler disabled (ENABLE_SCHEDULER=False). Using external cron.")
        return

    trigger = CronTrigger(
        hour=settings.GENERATION_CRON_HOUR,
        minute=settings.GENERATION_CRON_MINUTE,
        timezone=settings.APP_TIMEZONE
    )
    # One run at a time inside this process; missed runs collapse into one
    scheduler.add_job(
        _run_generation_job,
        trigger,
        id="generate_recurring_bills",
        max_instances=1,
        coalesce=True,
        replace_existing=True
    )

    scheduler.start()
    logger.info("Scheduler started. Jobs scheduled.")


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
