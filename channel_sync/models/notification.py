"""
Notification Model - operator alerts
"""
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
import enum

from ..database import Base


class NotificationType(str, enum.Enum):
    """Notification keys"""
    RECONCILIATION_DIVERGENCE_HIGH = "reconciliation_divergence_high"
    RECONCILIATION_FAILED = "reconciliation_failed"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Target user (NULL = broadcast to every operator)
    user_id = Column(String(36), nullable=True, index=True)

    type = Column(String(50), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=True)
    link = Column(String(500), nullable=True)

    is_read = Column(Boolean, default=False, index=True)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<Notification {self.type} - {self.title}>"
