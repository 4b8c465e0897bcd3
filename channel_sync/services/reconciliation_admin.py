"""
Reconciliation admin queries

Read side of the reconciliation history for the admin dashboard.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from ..models.reconciliation_run import ReconciliationRun, ReconciliationStatus
from ..schemas.pagination import paginate_query

logger = logging.getLogger(__name__)

# Discrepancy totals are summed over this many most recent runs
STATS_RECENT_RUNS = 1000


def list_runs(
    db: Session,
    page: int = 1,
    page_size: int = 20,
    property_id: Optional[str] = None,
    status: Optional[str] = None
) -> Tuple[List[ReconciliationRun], int]:
    """Runs, newest first, optionally filtered by property and status."""
    query = db.query(ReconciliationRun)
    if property_id:
        query = query.filter(ReconciliationRun.property_id == property_id)
    if status:
        query = query.filter(ReconciliationRun.status == status.upper())
    query = query.order_by(desc(ReconciliationRun.started_at), desc(ReconciliationRun.id))
    return paginate_query(query, page, page_size)


def get_run(db: Session, run_id: str) -> Optional[ReconciliationRun]:
    return db.query(ReconciliationRun).filter(ReconciliationRun.id == run_id).first()


def get_stats(db: Session) -> Dict:
    counts = dict(
        db.query(ReconciliationRun.status, func.count(ReconciliationRun.id))
        .group_by(ReconciliationRun.status)
        .all()
    )

    recent = (
        db.query(ReconciliationRun.discrepancies_found, ReconciliationRun.discrepancies_fixed)
        .order_by(desc(ReconciliationRun.started_at))
        .limit(STATS_RECENT_RUNS)
        .all()
    )

    last_run_at = db.query(func.max(ReconciliationRun.started_at)).scalar()

    return {
        "total_runs": sum(counts.values()),
        "success_count": counts.get(ReconciliationStatus.SUCCESS.value, 0),
        "divergence_count": counts.get(ReconciliationStatus.DIVERGENCE.value, 0),
        "failed_count": counts.get(ReconciliationStatus.FAILED.value, 0),
        "running_count": counts.get(ReconciliationStatus.RUNNING.value, 0),
        "total_discrepancies_found": sum(found or 0 for found, _ in recent),
        "total_discrepancies_fixed": sum(fixed or 0 for _, fixed in recent),
        "last_run_at": last_run_at,
    }
