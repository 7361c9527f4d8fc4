"""
APScheduler Configuration

Periodic jobs driving the decision pipeline: hourly assessment cycles,
per-minute dispatch of due alerts and the expiry sweep.
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from agrisentinel.services.pipeline import get_pipeline

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def run_assessment_cycles():
    """
    Hourly job running one assessment cycle for every known farm.

    Logs execution summary including per-status counts and duration.
    """
    logger.info("Starting hourly assessment cycles")

    try:
        summary = await get_pipeline().run_all()

        logger.info(
            f"Assessment cycles complete: {summary['farms_assessed']} farms, "
            f"{summary['alerts_created']} alerts created, {summary['alerts_dispatched']} dispatched "
            f"in {summary['duration_seconds']:.1f}s"
        )

        if summary['failed'] > 0 or summary['rejected'] > 0:
            logger.warning(
                f"Assessment cycles degraded: {summary['failed']} failed, {summary['rejected']} rejected"
            )

    except Exception as e:
        logger.error(f"Failed to run assessment cycles: {e}", exc_info=True)


async def dispatch_due_alerts():
    """Deliver scheduled alerts whose delivery time has arrived"""
    try:
        delivered = await get_pipeline().dispatch_due()
        if delivered:
            logger.info(f"Dispatched {len(delivered)} due alerts")
    except Exception as e:
        logger.error(f"Failed to dispatch due alerts: {e}", exc_info=True)


async def expire_stale_alerts():
    """Expire alerts whose event passed before delivery"""
    try:
        expired = await get_pipeline().expire_stale()
        if expired:
            logger.warning(f"Expired {len(expired)} undelivered alerts")
    except Exception as e:
        logger.error(f"Failed to expire stale alerts: {e}", exc_info=True)


def configure_scheduler():
    """
    Configure APScheduler with all scheduled jobs.

    Jobs:
        - Assessment cycles: Every hour on the hour
        - Alert dispatch: Every minute
        - Expiry sweep: Every 5 minutes
    """
    scheduler.add_job(
        run_assessment_cycles,
        trigger=CronTrigger(hour='*'),  # Every hour at :00
        id='assessment_cycles',
        name='Run Farm Assessment Cycles',
        replace_existing=True,
        coalesce=True,  # Combine missed runs into single execution
        max_instances=1  # Only one instance at a time
    )

    scheduler.add_job(
        dispatch_due_alerts,
        trigger=IntervalTrigger(minutes=1),
        id='alert_dispatch',
        name='Dispatch Due Alerts',
        replace_existing=True,
        coalesce=True,
        max_instances=1
    )

    scheduler.add_job(
        expire_stale_alerts,
        trigger=IntervalTrigger(minutes=5),
        id='alert_expiry',
        name='Expire Stale Alerts',
        replace_existing=True,
        coalesce=True,
        max_instances=1
    )

    logger.info("Scheduler configured with assessment, dispatch and expiry jobs")


def start_scheduler():
    """Start the APScheduler"""
    configure_scheduler()
    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler():
    """Stop the APScheduler"""
    scheduler.shutdown()
    logger.info("Scheduler stopped")
