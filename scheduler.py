"""APScheduler jobs: routing sweep, stale detection and the daily digest."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from fastapi.concurrency import run_in_threadpool

from services.container import Services


def create_scheduler(services: Services) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")

    async def sweep_new_leads():
        try:
            result = await run_in_threadpool(services.router.sweep_new_leads)
            logger.info(f"Scheduled sweep finished: {result}")
        except Exception as e:
            logger.error(f"Scheduled sweep failed: {e}")

    async def detect_stale_leads():
        try:
            count = await run_in_threadpool(services.lifecycle.detect_stale_leads)
            logger.info(f"Scheduled stale detection marked {count} leads")
        except Exception as e:
            logger.error(f"Scheduled stale detection failed: {e}")

    async def send_daily_digest():
        try:
            await run_in_threadpool(services.leads.send_daily_digest)
        except Exception as e:
            logger.error(f"Scheduled daily digest failed: {e}")

    # Safety net for leads whose webhook-triggered routing never completed
    scheduler.add_job(
        sweep_new_leads,
        CronTrigger(minute="*/15"),
        id="sweep_new_leads",
        name="Route unprocessed NEW leads",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.add_job(
        detect_stale_leads,
        CronTrigger(day_of_week="mon-fri", hour=9, minute=0),
        id="detect_stale_leads",
        name="Mark overdue ROUTED leads stale",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.add_job(
        send_daily_digest,
        CronTrigger(day_of_week="mon-fri", hour=8, minute=0),
        id="daily_digest",
        name="Leadership daily digest",
        replace_existing=True,
    )

    logger.info("Scheduler configured: sweep every 15 min, stale detection 09:00, digest 08:00 (mon-fri)")
    return scheduler
