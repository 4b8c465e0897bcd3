"""
Tests for the PMS / channel calendar diff

These tests verify:
- Missing PMS rows read as AVAILABLE
- Channel statuses are normalized before comparison
- Day counts are reported independently
"""

import os
import sys
from datetime import date, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from channel_sync.models.calendar_day import CalendarDay, CalendarDayStatus
from channel_sync.services.calendar_diff import diff_calendars, index_pms_days
from channel_sync.services.channel_connector import ChannelDay

START = date(2026, 3, 1)


def channel_days(statuses):
    return [ChannelDay(START + timedelta(days=i), status) for i, status in enumerate(statuses)]


def pms_day(offset, status):
    return CalendarDay(
        property_id="prop-1",
        organization_id="org-1",
        date=START + timedelta(days=offset),
        status=status
    )


class TestDiff:

    def test_identical_calendars_have_no_discrepancy(self):
        diff = diff_calendars(
            channel_days(["BOOKED", "AVAILABLE"]),
            [pms_day(0, "BOOKED"), pms_day(1, "AVAILABLE")]
        )
        assert diff.discrepancies == []
        assert diff.channel_days_checked == 2
        assert diff.pms_days_checked == 2

    def test_missing_pms_day_is_available(self):
        """No PMS row for a date means the property is open"""
        diff = diff_calendars(channel_days(["AVAILABLE", "FREE", "OPEN"]), [])
        assert diff.discrepancies_found == 0
        assert diff.pms_days_checked == 0
        assert diff.channel_days_checked == 3

    def test_booked_on_channel_only(self):
        diff = diff_calendars(channel_days(["AVAILABLE", "RESERVED"]), [])

        assert diff.discrepancies_found == 1
        discrepancy = diff.discrepancies[0]
        assert discrepancy.date == START + timedelta(days=1)
        assert discrepancy.pms_status == CalendarDayStatus.AVAILABLE
        assert discrepancy.channel_status == CalendarDayStatus.BOOKED

    def test_channel_synonyms_do_not_count_as_discrepancies(self):
        diff = diff_calendars(
            channel_days(["occupied", "closed"]),
            [pms_day(0, "BOOKED"), pms_day(1, "BLOCKED")]
        )
        assert diff.discrepancies == []

    def test_blocked_in_pms_but_open_on_channel(self):
        diff = diff_calendars(channel_days(["AVAILABLE"]), [pms_day(0, "BLOCKED")])

        assert diff.discrepancies[0].pms_status == CalendarDayStatus.BLOCKED
        assert diff.discrepancies[0].channel_status == CalendarDayStatus.AVAILABLE

    def test_pms_rows_outside_channel_days_are_counted_not_compared(self):
        diff = diff_calendars(channel_days(["AVAILABLE"]), [pms_day(0, "AVAILABLE"), pms_day(5, "BOOKED")])
        assert diff.pms_days_checked == 2
        assert diff.discrepancies == []

    def test_discrepancy_dict_uses_camel_case_keys(self):
        diff = diff_calendars(channel_days(["BOOKED"]), [])
        assert diff.discrepancies[0].to_dict() == {
            "date": "2026-03-01",
            "pmsStatus": "AVAILABLE",
            "channelStatus": "BOOKED",
        }


class TestIndexPmsDays:

    def test_first_row_wins_on_duplicates(self):
        index = index_pms_days([pms_day(0, "BOOKED"), pms_day(0, "AVAILABLE")])
        assert index[START] == CalendarDayStatus.BOOKED

    def test_unknown_stored_status_reads_as_available(self):
        index = index_pms_days([pms_day(0, "GARBAGE")])
        assert index[START] == CalendarDayStatus.AVAILABLE
