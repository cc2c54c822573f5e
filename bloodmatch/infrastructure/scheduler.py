"""Background Scheduler — runs the arrival sweeper on a fixed interval.

Invariants:
    - At most one sweep job instance runs at a time (max_instances=1, coalesce)
    - Each tick opens its own DB session; it never shares the request session
    - A failing tick is logged and the schedule keeps running

Design Decisions:
    - APScheduler AsyncIOScheduler: jobs run on the FastAPI event loop, so the
      async session manager is usable without a thread bridge
    - Started/stopped by the FastAPI lifespan, not at import time
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from bloodmatch.core.clock import utc_now
from bloodmatch.core.errors import BloodMatchError
from bloodmatch.infrastructure import database
from bloodmatch.services.arrival_sweeper import ArrivalSweeper

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "arrival_sweeper"

scheduler = AsyncIOScheduler(timezone="UTC")


async def run_sweep() -> int:
    """One sweeper tick against the process-wide db_manager."""
    if not database.db_manager:
        logger.error("Cannot sweep: database not initialized")
        return 0
    try:
        async with database.db_manager.session() as db:
            return await ArrivalSweeper(db).sweep_arrivals(utc_now())
    except BloodMatchError as e:
        logger.error(
            f"Sweep tick failed: {e.message}", extra={"error_code": e.code},
        )
        return 0


def start_scheduler(interval_seconds: int) -> None:
    if scheduler.running:
        return
    scheduler.add_job(
        run_sweep,
        trigger="interval",
        seconds=interval_seconds,
        id=SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(f"Arrival sweeper scheduled every {interval_seconds}s")


def shutdown_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Arrival sweeper stopped")


def sweeper_status() -> str:
    """'running' with the next tick time, or 'stopped'."""
    job = scheduler.get_job(SWEEP_JOB_ID) if scheduler.running else None
    if job is None or job.next_run_time is None:
        return "stopped"
    return f"running (next {job.next_run_time.isoformat()})"
