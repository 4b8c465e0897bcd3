"""
Calendar diff between the PMS and a channel.

The PMS is the reference: each channel day is normalized and compared
with the PMS status of the same date. A date without a PMS row counts as
AVAILABLE.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List

from ..models.calendar_day import CalendarDayStatus
from .status_normalizer import normalize_status


@dataclass
class Discrepancy:
    """A date on which PMS and channel disagree after normalization."""
    date: date
    pms_status: CalendarDayStatus
    channel_status: CalendarDayStatus

    def to_dict(self) -> Dict[str, str]:
        return {
            "date": self.date.isoformat(),
            "pmsStatus": self.pms_status.value,
            "channelStatus": self.channel_status.value,
        }


@dataclass
class CalendarDiff:
    channel_days_checked: int = 0
    pms_days_checked: int = 0
    discrepancies: List[Discrepancy] = field(default_factory=list)

    @property
    def discrepancies_found(self) -> int:
        return len(self.discrepancies)


def index_pms_days(pms_days: Iterable) -> Dict[date, CalendarDayStatus]:
    """date -> status; the first row wins when the store returns duplicates"""
    by_date: Dict[date, CalendarDayStatus] = {}
    for day in pms_days:
        if day.date not in by_date:
            by_date[day.date] = day.status_enum
    return by_date


def diff_calendars(channel_days: List, pms_days: List) -> CalendarDiff:
    """
    Compare channel days against PMS days.

    Counts are reported independently: the PMS may have fewer rows than
    the channel has days.
    """
    pms_by_date = index_pms_days(pms_days)
    diff = CalendarDiff(
        channel_days_checked=len(channel_days),
        pms_days_checked=len(pms_days),
    )

    for channel_day in channel_days:
        pms_status = pms_by_date.get(channel_day.date, CalendarDayStatus.AVAILABLE)
        channel_status = normalize_status(channel_day.raw_status)
        if pms_status != channel_status:
            diff.discrepancies.append(Discrepancy(channel_day.date, pms_status, channel_status))

    return diff
