"""
app/services/scheduler.py
APScheduler-based background jobs.

One recurring job: export the closed-position snapshot every
SNAPSHOT_INTERVAL_MINUTES (disabled when 0). The position monitor has
its own tick loop and is not scheduled here.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.services.paper_trader import PaperTrader

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def _job_snapshot_export(trader: PaperTrader) -> None:
    """Scheduled job: export the snapshot of closed positions."""
    try:
        await trader.export_snapshot()
    except Exception as exc:
        logger.error("Scheduled snapshot export failed: %s", exc)


def start_scheduler(trader: PaperTrader) -> None:
    """Start the snapshot job if an interval is configured."""
    global _scheduler

    if _scheduler is not None:
        logger.warning("Scheduler already running")
        return

    minutes = trader.settings.SNAPSHOT_INTERVAL_MINUTES
    if minutes <= 0:
        logger.info("Periodic snapshot export disabled")
        return

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        _job_snapshot_export,
        "interval",
        minutes=minutes,
        args=[trader],
        id="snapshot_export",
        name="Snapshot Export",
        max_instances=1,
    )
    _scheduler.start()
    logger.info("Scheduler started: snapshot export every %dm", minutes)


def stop_scheduler() -> None:
    """Shut down the scheduler gracefully."""
    global _scheduler

    if _scheduler is None:
        return

    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("Scheduler stopped")
