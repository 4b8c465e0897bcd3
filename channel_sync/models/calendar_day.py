"""
Calendar Day Model

Daily availability state per PMS property.
This is the source of truth for availability: reconciliation reads it and
pushes it to the channels, it never writes it.
"""

import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Index, UniqueConstraint
from ..database import Base


class CalendarDayStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    BLOCKED = "BLOCKED"
    MAINTENANCE = "MAINTENANCE"


class CalendarDay(Base):
    """
    Daily calendar state for a property.

    A missing row for a date means the property is open that day.
    """
    __tablename__ = "calendar_days"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    property_id = Column(String(36), nullable=False)
    organization_id = Column(String(36), nullable=False)

    date = Column(Date, nullable=False)
    status = Column(String(20), default=CalendarDayStatus.AVAILABLE.value, nullable=False)

    # Booking occupying the day, if any
    booking_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("property_id", "date", "organization_id", name="uq_calendar_property_date"),
        Index("ix_calendar_property_date", "property_id", "organization_id", "date"),
    )

    @property
    def status_enum(self) -> CalendarDayStatus:
        """Status as enum; unknown stored values read as AVAILABLE"""
        try:
            return CalendarDayStatus(self.status)
        except ValueError:
            return CalendarDayStatus.AVAILABLE

    def __repr__(self):
        return f"<CalendarDay {self.property_id} {self.date} {self.status}>"
