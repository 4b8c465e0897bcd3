"""
Audit Log Model

Records significant system actions, including every reconciliation
attempt performed by the scheduled job.
"""
from sqlalchemy import Column, String, DateTime, Text, Index
from datetime import datetime
import uuid
import enum

from ..database import Base


class ActivityType(str, enum.Enum):
    """Audited actions"""
    RECONCILIATION = "RECONCILIATION"


class AuditSource(str, enum.Enum):
    """What triggered the action"""
    CRON = "CRON"
    MANUAL = "MANUAL"


class EntityType(str, enum.Enum):
    """Audited entities"""
    PROPERTY = "PROPERTY"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Who - NULL user means the system itself
    user_id = Column(String(36), nullable=True)
    source = Column(String(20), default=AuditSource.CRON.value, nullable=False)

    activity_type = Column(String(50), nullable=False)

    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=True)

    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_audit_entity", "entity_type", "entity_id"),
        Index("ix_audit_created", "created_at"),
    )

    def __repr__(self):
        return f"<AuditLog {self.activity_type} {self.entity_type}/{self.entity_id} source={self.source}>"
