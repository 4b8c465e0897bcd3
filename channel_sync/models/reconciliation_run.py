"""
Reconciliation Run Model

One row per reconciliation attempt of a single channel mapping.

The row is written twice: once before any channel/PMS I/O (status
RUNNING, so an operator can see in-flight runs after a crash) and once
when the attempt concludes. A finalized run is never updated again.
"""

import uuid
import enum
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, String, Date, DateTime, Integer, Numeric, Text, Index
from ..database import Base


class ReconciliationStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    DIVERGENCE = "DIVERGENCE"
    FAILED = "FAILED"


FINAL_STATUSES = (
    ReconciliationStatus.SUCCESS.value,
    ReconciliationStatus.DIVERGENCE.value,
    ReconciliationStatus.FAILED.value,
)


class ReconciliationRun(Base):
    __tablename__ = "reconciliation_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # What was reconciled
    mapping_id = Column(String(36), nullable=True)
    property_id = Column(String(36), nullable=False)
    organization_id = Column(String(36), nullable=True)
    channel_name = Column(String(50), nullable=False)

    # Window [window_start, window_end)
    window_start = Column(Date, nullable=True)
    window_end = Column(Date, nullable=True)

    status = Column(String(20), default=ReconciliationStatus.RUNNING.value, nullable=False)

    # Counters
    channel_days_checked = Column(Integer, default=0)
    pms_days_checked = Column(Integer, default=0)
    discrepancies_found = Column(Integer, default=0)
    discrepancies_fixed = Column(Integer, default=0)
    divergence_pct = Column(Numeric(5, 2), default=Decimal("0.00"))

    # Serialized discrepancy list (JSON array), empty when none
    details_json = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, default=datetime.utcnow)
    finished_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_reconciliation_property", "property_id", "started_at"),
        Index("ix_reconciliation_status", "status", "started_at"),
    )

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES

    def __repr__(self):
        return f"<ReconciliationRun {self.channel_name} property={self.property_id} status={self.status}>"
