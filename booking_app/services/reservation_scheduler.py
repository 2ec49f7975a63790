"""
Reservation Scheduler

Daily sweep, run once a day at SWEEP_HOUR:SWEEP_MINUTE:
- CONFIRMED reservations whose stay ended -> COMPLETED
- AVAILABLE intervals lying entirely in the past -> EXPIRED

Uses APScheduler for cron-based scheduling.
"""

import logging
from datetime import date, datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import settings
from ..database import SessionLocal
from ..errors import BookingError
from .availability_service import AvailabilityService
from .calendar_intervals import business_today
from .reservation_request_service import ReservationRequestService

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: Optional[AsyncIOScheduler] = None
_last_sweep_time: Optional[datetime] = None
_last_sweep_result: Optional[Dict] = None

SWEEP_JOB_ID = "daily_reservation_sweep"
SWEEP_MISFIRE_GRACE_SECONDS = 6 * 3600


def run_daily_sweep(db: Session, today: Optional[date] = None) -> Dict:
    """
    Complete finished reservations, then expire past free intervals.

    A failure in one step is logged and reported; the other step still runs.

    Returns:
        Dict with keys: completed, expired, errors, sweep_date
    """
    global _last_sweep_time, _last_sweep_result

    today = today or business_today()
    result = {
        "completed": 0,
        "expired": 0,
        "errors": [],
        "sweep_date": today.isoformat()
    }

    try:
        result["completed"] = ReservationRequestService(db).complete_finished_reservations(today)
    except BookingError as e:
        logger.error(f"Completion sweep failed: {e.message}")
        result["errors"].append(e.to_dict()["error"])

    try:
        result["expired"] = AvailabilityService(db).expire_past_intervals(today)
    except BookingError as e:
        logger.error(f"Expiry sweep failed: {e.message}")
        result["errors"].append(e.to_dict()["error"])

    _last_sweep_time = datetime.utcnow()
    _last_sweep_result = result

    logger.info(
        f"Daily sweep for {today}: {result['completed']} reservations completed, "
        f"{result['expired']} intervals expired"
    )
    return result


async def run_sweep_job():
    """
    Async job function called by the scheduler.

    Creates a database session, runs the sweep, and cleans up.
    """
    logger.info("Running scheduled daily sweep...")

    db = SessionLocal()
    try:
        run_daily_sweep(db)
    except Exception as e:
        logger.error(f"Scheduled daily sweep failed: {e}", exc_info=True)
    finally:
        db.close()


def start_reservation_scheduler() -> bool:
    """
    Start the scheduler with the daily sweep job.

    Returns:
        True if scheduler started successfully, False otherwise
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Reservation scheduler is already running")
        return True

    timezone = settings.scheduler_timezone
    try:
        _scheduler = AsyncIOScheduler(timezone=timezone)
        _scheduler.add_job(
            run_sweep_job,
            CronTrigger(hour=settings.sweep_hour, minute=settings.sweep_minute, timezone=timezone),
            id=SWEEP_JOB_ID,
            name="Daily reservation completion and interval expiry",
            replace_existing=True,
            # A run delayed by a busy event loop still fires, at most once
            coalesce=True,
            max_instances=1,
            misfire_grace_time=SWEEP_MISFIRE_GRACE_SECONDS
        )
        _scheduler.start()

        logger.info(
            f"Reservation scheduler started (daily at "
            f"{settings.sweep_hour:02d}:{settings.sweep_minute:02d} {timezone})"
        )
        return True

    except Exception as e:
        logger.error(f"Failed to start reservation scheduler: {e}")
        return False


def stop_reservation_scheduler() -> bool:
    """
    Stop the scheduler gracefully.

    Returns:
        True if scheduler stopped successfully, False otherwise
    """
    global _scheduler

    if _scheduler is None:
        logger.warning("Reservation scheduler is not running")
        return True

    try:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Reservation scheduler stopped")
        return True
    except Exception as e:
        logger.error(f"Failed to stop reservation scheduler: {e}")
        return False


def get_scheduler_status() -> Dict:
    """
    Get the current status of the reservation scheduler.
    """
    status = {
        "running": False,
        "timezone": settings.scheduler_timezone,
        "next_run": None,
        "last_sweep": None,
        "last_sweep_result": None
    }

    if _scheduler is not None and _scheduler.running:
        status["running"] = True
        job = _scheduler.get_job(SWEEP_JOB_ID)
        if job and job.next_run_time:
            status["next_run"] = job.next_run_time.isoformat()

    if _last_sweep_time:
        status["last_sweep"] = _last_sweep_time.isoformat()

    if _last_sweep_result:
        status["last_sweep_result"] = _last_sweep_result

    return status
