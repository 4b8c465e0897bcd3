"""
Reconciliation Admin Router

Reconciliation history, aggregate stats and manual trigger for the
admin sync dashboard.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.audit_log import AuditSource
from ..models.reconciliation_run import ReconciliationStatus
from ..schemas.pagination import PaginatedResponse
from ..schemas.reconciliation import (
    ReconciliationRunDetailResponse,
    ReconciliationRunResponse,
    ReconciliationStatsResponse,
    ReconciliationTriggerRequest,
    ReconciliationTriggerResponse,
)
from ..services import reconciliation_admin
from ..services.reconciliation_scheduler import get_scheduler_status
from ..services.reconciliation_service import ReconciliationService, get_reconciliation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/sync/reconciliation", tags=["Reconciliation"])


def _run_property_reconciliation(service: ReconciliationService, property_id: str):
    try:
        summary = service.reconcile_property(property_id, source=AuditSource.MANUAL)
        logger.info(f"Manual reconciliation of property {property_id} finished: {summary.to_dict()}")
    except Exception as e:
        logger.error(f"Manual reconciliation of property {property_id} failed: {e}", exc_info=True)


@router.get("", response_model=PaginatedResponse[ReconciliationRunResponse])
@router.get("/", response_model=PaginatedResponse[ReconciliationRunResponse])
def list_reconciliation_runs(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    property_id: Optional[str] = None,
    status_filter: Optional[ReconciliationStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    runs, total = reconciliation_admin.list_runs(
        db,
        page=page,
        page_size=page_size,
        property_id=property_id,
        status=status_filter.value if status_filter else None
    )
    items = [ReconciliationRunResponse.model_validate(run) for run in runs]
    return PaginatedResponse[ReconciliationRunResponse].create(items, total, page, page_size)


@router.get("/stats", response_model=ReconciliationStatsResponse)
def get_reconciliation_stats(db: Session = Depends(get_db)):
    stats = reconciliation_admin.get_stats(db)
    return ReconciliationStatsResponse(**stats, scheduler=get_scheduler_status())


@router.post(
    "/trigger",
    response_model=ReconciliationTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED
)
def trigger_reconciliation(
    body: ReconciliationTriggerRequest,
    background_tasks: BackgroundTasks,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """Reconcile every active mapping of a property, in the background."""
    background_tasks.add_task(_run_property_reconciliation, service, body.property_id)
    return ReconciliationTriggerResponse(
        property_id=body.property_id,
        message="Reconciliation started"
    )


@router.get("/{run_id}", response_model=ReconciliationRunDetailResponse)
def get_reconciliation_run(run_id: str, db: Session = Depends(get_db)):
    run = reconciliation_admin.get_run(db, run_id)
    if not run:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Reconciliation run not found"
        )
    return ReconciliationRunDetailResponse.from_run(run)
