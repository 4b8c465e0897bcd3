"""
Reconciliation Scheduler

Runs the calendar reconciliation of every active mapping once an hour
(at RECONCILIATION_CRON_MINUTE) inside the API process.

Uses APScheduler for cron-based scheduling. The job body is blocking
(HTTP + DB), so it runs on a BackgroundScheduler thread.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import settings

logger = logging.getLogger(__name__)

JOB_ID = "calendar_reconciliation"

# Global scheduler instance
_scheduler: Optional[BackgroundScheduler] = None
_service_factory: Optional[Callable] = None
_last_run_time: Optional[datetime] = None
_last_run_result: Optional[Dict] = None


def run_reconciliation_job():
    """
    Job function called by the scheduler.

    Errors are logged and never escape to APScheduler, so the next hourly
    tick still fires.
    """
    global _last_run_time, _last_run_result

    logger.info("Running scheduled reconciliation job...")
    try:
        service = _service_factory()
        summary = service.scheduled_reconciliation()
        _last_run_result = summary.to_dict()
    except Exception as e:
        logger.error(f"Scheduled reconciliation job failed: {e}", exc_info=True)
        _last_run_result = {"error": str(e)}
    finally:
        _last_run_time = datetime.utcnow()


def start_reconciliation_scheduler(service_factory: Optional[Callable] = None) -> bool:
    """
    Start the hourly reconciliation job.

    Args:
        service_factory: returns a ReconciliationService; defaults to
            get_reconciliation_service, the engine the admin trigger uses

    Returns:
        True if scheduler started successfully, False otherwise
    """
    global _scheduler, _service_factory

    if _scheduler is not None and _scheduler.running:
        logger.warning("Reconciliation scheduler is already running")
        return True

    if service_factory is None:
        from .reconciliation_service import get_reconciliation_service
        service_factory = get_reconciliation_service
    _service_factory = service_factory

    timezone = settings.reconciliation_timezone
    minute = settings.reconciliation_cron_minute

    try:
        _scheduler = BackgroundScheduler(timezone=timezone)
        _scheduler.add_job(
            run_reconciliation_job,
            CronTrigger(minute=minute, timezone=timezone),
            id=JOB_ID,
            name=f"Calendar reconciliation (hourly at :{minute:02d})",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        _scheduler.start()

        logger.info(f"Reconciliation scheduler started (every hour at :{minute:02d} {timezone})")
        return True

    except Exception as e:
        logger.error(f"Failed to start reconciliation scheduler: {e}")
        _scheduler = None
        return False


def stop_reconciliation_scheduler() -> bool:
    """
    Stop the scheduler; a job in flight is allowed to finish in the background.
    """
    global _scheduler

    if _scheduler is None:
        logger.warning("Reconciliation scheduler is not running")
        return True

    try:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Reconciliation scheduler stopped")
        return True
    except Exception as e:
        logger.error(f"Failed to stop reconciliation scheduler: {e}")
        return False


def get_scheduler_status() -> Dict:
    """Current scheduler state, for the admin API."""
    status = {
        "running": False,
        "timezone": settings.reconciliation_timezone,
        "next_run": None,
        "last_run": _last_run_time.isoformat() if _last_run_time else None,
        "last_run_result": _last_run_result,
    }

    if _scheduler is not None and _scheduler.running:
        status["running"] = True
        job = _scheduler.get_job(JOB_ID)
        if job is not None and job.next_run_time:
            status["next_run"] = job.next_run_time.isoformat()

    return status
