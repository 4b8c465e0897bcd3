"""
Reconciliation API Schemas
"""

import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DiscrepancyResponse(BaseModel):
    day: date = Field(alias="date")
    pms_status: str = Field(alias="pmsStatus")
    channel_status: str = Field(alias="channelStatus")

    class Config:
        populate_by_name = True


class ReconciliationRunResponse(BaseModel):
    id: str
    mapping_id: Optional[str] = None
    property_id: str
    organization_id: Optional[str] = None
    channel_name: str
    window_start: Optional[date] = None
    window_end: Optional[date] = None
    status: str
    channel_days_checked: int = 0
    pms_days_checked: int = 0
    discrepancies_found: int = 0
    discrepancies_fixed: int = 0
    divergence_pct: float = 0.0
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    is_final: bool = False

    class Config:
        from_attributes = True


class ReconciliationRunDetailResponse(ReconciliationRunResponse):
    """A run with its discrepancy list decoded"""
    details: List[DiscrepancyResponse] = []

    @classmethod
    def from_run(cls, run) -> "ReconciliationRunDetailResponse":
        details = []
        if run.details_json:
            try:
                details = json.loads(run.details_json)
            except ValueError:
                details = []
        base = ReconciliationRunResponse.model_validate(run).model_dump()
        return cls(**base, details=details)


class ReconciliationStatsResponse(BaseModel):
    total_runs: int
    success_count: int
    divergence_count: int
    failed_count: int
    running_count: int
    # Summed over the most recent runs only
    total_discrepancies_found: int
    total_discrepancies_fixed: int
    last_run_at: Optional[datetime] = None
    scheduler: Optional[Dict[str, Any]] = None


class ReconciliationTriggerRequest(BaseModel):
    property_id: str = Field(..., min_length=1)


class ReconciliationTriggerResponse(BaseModel):
    status: str = "accepted"
    property_id: str
    message: str
