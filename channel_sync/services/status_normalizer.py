"""
Channel status normalization

Channels describe a day with their own vocabulary ("RESERVED", "FREE",
"CLOSED", ...). Before a channel day can be compared with the PMS it is
mapped onto CalendarDayStatus.

Unknown, empty or missing values map to AVAILABLE: an unrecognized
channel value is read as "no reservation", never as a block.
"""

from typing import Optional, Dict

from ..models.calendar_day import CalendarDayStatus


STATUS_SYNONYMS: Dict[str, CalendarDayStatus] = {
    "AVAILABLE": CalendarDayStatus.AVAILABLE,
    "FREE": CalendarDayStatus.AVAILABLE,
    "OPEN": CalendarDayStatus.AVAILABLE,
    "BOOKED": CalendarDayStatus.BOOKED,
    "RESERVED": CalendarDayStatus.BOOKED,
    "OCCUPIED": CalendarDayStatus.BOOKED,
    "BLOCKED": CalendarDayStatus.BLOCKED,
    "CLOSED": CalendarDayStatus.BLOCKED,
    "UNAVAILABLE": CalendarDayStatus.BLOCKED,
    "MAINTENANCE": CalendarDayStatus.MAINTENANCE,
}


def normalize_status(raw_status: Optional[str]) -> CalendarDayStatus:
    """Map a channel-specific status onto the PMS vocabulary (case-insensitive)."""
    if not raw_status:
        return CalendarDayStatus.AVAILABLE
    return STATUS_SYNONYMS.get(raw_status.strip().upper(), CalendarDayStatus.AVAILABLE)
