#!/usr/bin/env python
"""
Reconciliation Worker

Standalone process running the hourly calendar reconciliation, for
deployments where the API runs with RECONCILIATION_ENABLED=false.

Run with:
    python worker.py                      # hourly, until SIGINT/SIGTERM
    python worker.py --once               # one pass over every active mapping
    python worker.py --property <id>      # one pass over a single property
"""

import argparse
import os
import sys
import logging
import signal

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from channel_sync.config import settings
from channel_sync.database import create_tables
from channel_sync.models.audit_log import AuditSource
from channel_sync.services.reconciliation_service import build_reconciliation_service
from channel_sync.utils.logging_config import setup_logging

logger = logging.getLogger("worker")


def run_once(property_id=None) -> int:
    """Single pass; exit code 1 when a mapping could not be reconciled"""
    service = build_reconciliation_service()
    if property_id:
        summary = service.reconcile_property(property_id, source=AuditSource.MANUAL)
    else:
        summary = service.scheduled_reconciliation()

    logger.info(
        f"Runs {summary.runs} | failed {summary.failed_runs + summary.failed_mappings} | "
        f"discrepancies {summary.discrepancies} | fixed {summary.fixes} | {summary.duration_ms}ms"
    )
    return 1 if summary.failed_mappings else 0


def run_worker():
    """Hourly loop"""
    service = build_reconciliation_service()
    minute = settings.reconciliation_cron_minute
    timezone = settings.reconciliation_timezone

    scheduler = BlockingScheduler(timezone=timezone)
    scheduler.add_job(
        service.scheduled_reconciliation,
        CronTrigger(minute=minute, timezone=timezone),
        id="calendar_reconciliation",
        max_instances=1,
        coalesce=True
    )

    def signal_handler(signum, frame):
        """Handle shutdown signals gracefully"""
        logger.info("Received shutdown signal, finishing current run...")
        scheduler.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("=" * 50)
    logger.info("Starting Reconciliation Worker")
    logger.info(f"Schedule: every hour at :{minute:02d} ({timezone})")
    logger.info(f"Window: {settings.reconciliation_window_days} days")
    logger.info("=" * 50)

    scheduler.start()
    logger.info("Worker shutdown complete")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Calendar reconciliation worker")
    parser.add_argument("--once", action="store_true", help="run one pass and exit")
    parser.add_argument("--property", dest="property_id", help="reconcile a single property and exit")
    args = parser.parse_args(argv)

    setup_logging(level=settings.log_level, json_format=settings.log_json)
    create_tables()

    if args.once or args.property_id:
        return run_once(args.property_id)

    run_worker()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.critical(f"Worker crashed: {e}")
        sys.exit(1)
