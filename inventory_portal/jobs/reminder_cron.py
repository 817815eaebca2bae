"""
Reminder Cron Job: periodic execution of the reminder cycle.

In the web process the cycle is driven by APScheduler: one immediate run at
startup, then one run per ``reminder_cycle_interval_minutes``. The same
cycle can be run once from the command line (cron, ops scripts):

    python -m inventory_portal.jobs.reminder_cron --database-url postgresql://...
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import create_async_engine

from ..core.config import Settings, get_settings
from ..core.database import create_session_factory
from ..services.reminder_scheduler import ReminderScheduler


logger = logging.getLogger(__name__)

REMINDER_JOB_ID = "reminder_cycle"


# =============================================================================
# IN-PROCESS SCHEDULING
# =============================================================================


async def _run_scheduled_cycle(scheduler: ReminderScheduler) -> None:
    try:
        result = await scheduler.run_cycle()
    except Exception:
        logger.exception("Reminder cycle failed")
        return

    if result.errors:
        logger.warning(f"Reminder cycle finished with {len(result.errors)} errors: {result.errors[:5]}")


def start_reminder_scheduler(
    scheduler: ReminderScheduler,
    settings: Settings,
) -> AsyncIOScheduler:
    """Start the periodic reminder job on the running event loop."""
    job_scheduler = AsyncIOScheduler(timezone=timezone.utc)
    job_scheduler.add_job(
        _run_scheduled_cycle,
        trigger="interval",
        minutes=settings.reminder_cycle_interval_minutes,
        args=[scheduler],
        id=REMINDER_JOB_ID,
        replace_existing=True,
        next_run_time=datetime.now(timezone.utc),  # Initial run at startup
        max_instances=1,      # Prevent overlapping runs
        coalesce=True,        # Merge missed runs
    )
    job_scheduler.start()

    logger.info(
        f"Reminder scheduler started: cycle every "
        f"{settings.reminder_cycle_interval_minutes} minutes"
    )
    return job_scheduler


async def stop_reminder_scheduler(job_scheduler: AsyncIOScheduler) -> None:
    """Stop the periodic job; a cycle already running finishes on its own."""
    if job_scheduler.running:
        job_scheduler.shutdown(wait=False)
        # AsyncIOScheduler applies the shutdown on the next loop iteration
        await asyncio.sleep(0)
        logger.info("Reminder scheduler stopped")


# =============================================================================
# ONE-SHOT JOB
# =============================================================================


async def run_reminder_job(
    database_url: str,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """
    Run a single reminder cycle against ``database_url``.

    Returns:
        Job result summary
    """
    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting reminder job at {start_time.isoformat()}")

    engine = create_async_engine(database_url)
    session_factory = create_session_factory(engine)

    try:
        scheduler = ReminderScheduler(session_factory, settings or get_settings())
        result = await scheduler.run_cycle()
    finally:
        await engine.dispose()

    end_time = datetime.now(timezone.utc)
    summary = {
        "started_at": start_time.isoformat(),
        "completed_at": end_time.isoformat(),
        "duration_seconds": (end_time - start_time).total_seconds(),
        "queued_count": result.queued_count,
        "disabled": result.disabled,
        "errors": result.errors,
    }

    logger.info(
        f"Reminder job completed in {summary['duration_seconds']:.2f}s: "
        f"{result.queued_count} reminders queued"
    )
    return summary


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the reminder job."""
    import argparse
    import os

    parser = argparse.ArgumentParser(description="Run one inventory reminder cycle")
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL"),
        help="PostgreSQL connection string",
    )

    args = parser.parse_args()

    if not args.database_url:
        print("Error: DATABASE_URL is required")
        raise SystemExit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    database_url = args.database_url.replace("postgresql://", "postgresql+asyncpg://")

    try:
        results = asyncio.run(run_reminder_job(database_url=database_url))
        print(f"Job completed: {results}")
    except Exception as e:
        print(f"Job failed: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
