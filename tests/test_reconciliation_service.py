"""
Tests for the Reconciliation Engine (single mapping)

These tests verify:
- Divergence computation and SUCCESS / DIVERGENCE classification
- Auto-repair of every discrepancy with single-day pushes
- FAILED path (connector missing, channel read error, PMS read error)
- Two-phase persistence of the run
- Metrics, audit entry and operator alerts
"""

import json
import os
import sys
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from channel_sync.models.audit_log import ActivityType, AuditSource, EntityType
from channel_sync.models.calendar_day import CalendarDay
from channel_sync.models.channel_mapping import ChannelMapping
from channel_sync.models.notification import NotificationType
from channel_sync.services.channel_connector import ChannelConnectorError, ChannelDay, SyncResult
from channel_sync.services.reconciliation_service import ReconciliationService

TODAY = date(2026, 3, 1)


def make_mapping(mapping_id="map-1", channel="AIRBNB", property_id="prop-1"):
    return ChannelMapping(
        id=mapping_id,
        channel_name=channel,
        internal_property_id=property_id,
        external_id=f"ext-{mapping_id}",
        organization_id="org-1",
        is_active=True
    )


def make_days(count, booked_offsets=()):
    """count channel days from TODAY, BOOKED on the given offsets"""
    return [
        ChannelDay(TODAY + timedelta(days=i), "BOOKED" if i in booked_offsets else "AVAILABLE")
        for i in range(count)
    ]


def make_connector(days=None, push_result=None):
    connector = MagicMock()
    connector.get_channel_calendar.return_value = days if days is not None else []
    connector.push_calendar_update.return_value = push_result or SyncResult.succeeded(1)
    return connector


def make_service(connector, pms_days=None, **kwargs):
    registry = MagicMock()
    registry.get_connector.return_value = connector

    calendar_store = MagicMock()
    calendar_store.find_by_property_and_date_range.return_value = pms_days or []

    run_store = MagicMock()
    run_store.save.side_effect = lambda run: run

    return ReconciliationService(
        mapping_store=MagicMock(),
        calendar_store=calendar_store,
        connector_registry=registry,
        run_store=run_store,
        metrics=MagicMock(),
        audit=MagicMock(),
        notifications=MagicMock(),
        today=lambda: TODAY,
        **kwargs
    )


class TestClassification:

    def test_one_discrepancy_in_30_days_is_success(self):
        """1/30 = 3.33% stays under the 5% threshold; the push fixes it"""
        connector = make_connector(make_days(30, booked_offsets={4}))
        service = make_service(connector)

        run = service.reconcile_mapping(make_mapping())

        assert run.status == "SUCCESS"
        assert run.channel_days_checked == 30
        assert run.discrepancies_found == 1
        assert run.discrepancies_fixed == 1
        assert run.divergence_pct == Decimal("3.33")

    def test_one_discrepancy_in_10_days_is_divergence(self):
        connector = make_connector(make_days(10, booked_offsets={0}))
        service = make_service(connector, window_days=10)

        run = service.reconcile_mapping(make_mapping())

        assert run.status == "DIVERGENCE"
        assert run.divergence_pct == Decimal("10.00")
        service.notifications.notify_operators.assert_called_once()
        args = service.notifications.notify_operators.call_args[0]
        assert args[0] == NotificationType.RECONCILIATION_DIVERGENCE_HIGH
        assert args[3] == "/admin/sync"

    def test_exactly_at_threshold_is_success(self):
        """Classification is strictly greater than the threshold"""
        connector = make_connector(make_days(20, booked_offsets={3}))
        service = make_service(connector)

        run = service.reconcile_mapping(make_mapping())

        assert run.divergence_pct == Decimal("5.00")
        assert run.status == "SUCCESS"
        service.notifications.notify_operators.assert_not_called()

    def test_ratio_rounding_down_to_threshold_is_success(self):
        """51/1019 = 5.0049% is stored as 5.00, so the run is not divergent"""
        connector = make_connector(make_days(1019, booked_offsets=set(range(51))))
        service = make_service(connector, window_days=1019)

        run = service.reconcile_mapping(make_mapping())

        assert run.divergence_pct == Decimal("5.00")
        assert run.status == "SUCCESS"
        service.notifications.notify_operators.assert_not_called()

    def test_custom_threshold(self):
        connector = make_connector(make_days(30, booked_offsets={4}))
        service = make_service(connector, divergence_threshold=1.0)

        run = service.reconcile_mapping(make_mapping())

        assert run.status == "DIVERGENCE"

    @pytest.mark.parametrize("total,booked", [(7, {0, 1, 2}), (30, {1, 2}), (3, {0, 1, 2}), (1, {0})])
    def test_divergence_is_found_over_checked(self, total, booked):
        connector = make_connector(make_days(total, booked_offsets=booked))
        service = make_service(connector)

        run = service.reconcile_mapping(make_mapping())

        expected = (Decimal(len(booked) * 100) / Decimal(total)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
        assert run.divergence_pct == expected
        assert run.discrepancies_fixed <= run.discrepancies_found

    def test_missing_pms_day_is_available(self):
        """Channel AVAILABLE everywhere and no PMS rows: nothing to fix"""
        connector = make_connector(make_days(30))
        service = make_service(connector, pms_days=[])

        run = service.reconcile_mapping(make_mapping())

        assert run.status == "SUCCESS"
        assert run.discrepancies_found == 0
        connector.push_calendar_update.assert_not_called()

    def test_pms_days_are_counted(self):
        pms = [CalendarDay(property_id="prop-1", organization_id="org-1", date=TODAY, status="BOOKED")]
        connector = make_connector(make_days(5, booked_offsets={0}))
        service = make_service(connector, pms_days=pms)

        run = service.reconcile_mapping(make_mapping())

        assert run.pms_days_checked == 1
        assert run.discrepancies_found == 0


class TestEmptyChannelCalendar:

    def test_empty_channel_calendar_is_success_with_zero_counts(self):
        connector = make_connector([])
        service = make_service(connector)

        run = service.reconcile_mapping(make_mapping())

        assert run.status == "SUCCESS"
        assert run.channel_days_checked == 0
        assert run.pms_days_checked == 0
        assert run.discrepancies_found == 0
        assert run.divergence_pct == Decimal("0.00")

    def test_empty_channel_calendar_does_not_read_pms(self):
        connector = make_connector([])
        service = make_service(connector)

        service.reconcile_mapping(make_mapping())

        service.calendar_store.find_by_property_and_date_range.assert_not_called()


class TestRepair:

    def test_push_is_single_day_with_pms_identifiers(self):
        connector = make_connector(make_days(30, booked_offsets={4}))
        service = make_service(connector)

        service.reconcile_mapping(make_mapping())

        day = TODAY + timedelta(days=4)
        connector.push_calendar_update.assert_called_once_with("prop-1", day, day + timedelta(days=1), "org-1")

    def test_push_throwing_is_not_fatal(self):
        connector = make_connector(make_days(30, booked_offsets={4}))
        connector.push_calendar_update.side_effect = ChannelConnectorError("channel down")
        service = make_service(connector)

        run = service.reconcile_mapping(make_mapping())

        assert run.discrepancies_found == 1
        assert run.discrepancies_fixed == 0
        assert run.status != "FAILED"

    def test_failed_push_result_is_not_counted(self):
        connector = make_connector(
            make_days(30, booked_offsets={1, 2}),
            push_result=SyncResult.failed("HTTP 500")
        )
        service = make_service(connector)

        run = service.reconcile_mapping(make_mapping())

        assert run.discrepancies_fixed == 0
        assert connector.push_calendar_update.call_count == 2

    def test_loop_continues_after_a_failing_push(self):
        connector = make_connector(make_days(30, booked_offsets={1, 2, 3}))
        connector.push_calendar_update.side_effect = [
            SyncResult.succeeded(1),
            RuntimeError("timeout"),
            SyncResult.succeeded(1),
        ]
        service = make_service(connector)

        run = service.reconcile_mapping(make_mapping())

        assert connector.push_calendar_update.call_count == 3
        assert run.discrepancies_fixed == 2

    def test_repair_is_not_gated_by_threshold(self):
        connector = make_connector(make_days(10, booked_offsets={0, 1, 2, 3, 4}))
        service = make_service(connector, window_days=10)

        run = service.reconcile_mapping(make_mapping())

        assert run.status == "DIVERGENCE"
        assert run.discrepancies_fixed == 5


class TestFailures:

    def test_connector_not_found(self):
        service = make_service(None)

        run = service.reconcile_mapping(make_mapping())

        assert run.status == "FAILED"
        assert "Connector not found" in run.error_message

    def test_channel_read_error(self):
        connector = make_connector()
        connector.get_channel_calendar.side_effect = ChannelConnectorError("HTTP 503 from channel")
        service = make_service(connector)

        run = service.reconcile_mapping(make_mapping())

        assert run.status == "FAILED"
        assert "HTTP 503 from channel" in run.error_message
        connector.push_calendar_update.assert_not_called()
        args = service.notifications.notify_operators.call_args[0]
        assert args[0] == NotificationType.RECONCILIATION_FAILED
        assert "HTTP 503 from channel" in args[2]

    def test_pms_read_error(self):
        connector = make_connector(make_days(5))
        service = make_service(connector)
        service.calendar_store.find_by_property_and_date_range.side_effect = RuntimeError("db gone")

        run = service.reconcile_mapping(make_mapping())

        assert run.status == "FAILED"
        assert run.error_message == "db gone"

    def test_notification_error_does_not_hide_failure(self):
        connector = make_connector()
        connector.get_channel_calendar.side_effect = ChannelConnectorError("boom")
        service = make_service(connector)
        service.notifications.notify_operators.side_effect = RuntimeError("smtp down")

        run = service.reconcile_mapping(make_mapping())

        assert run.status == "FAILED"
        assert service.run_store.save.call_count == 2

    def test_audit_error_propagates(self):
        connector = make_connector(make_days(5))
        service = make_service(connector)
        service.audit.log_action.side_effect = RuntimeError("audit table missing")

        with pytest.raises(RuntimeError):
            service.reconcile_mapping(make_mapping())

    def test_alert_is_sent_even_when_audit_fails(self):
        connector = make_connector()
        connector.get_channel_calendar.side_effect = ChannelConnectorError("boom")
        service = make_service(connector)
        service.audit.log_action.side_effect = RuntimeError("audit table missing")

        with pytest.raises(RuntimeError):
            service.reconcile_mapping(make_mapping())

        service.notifications.notify_operators.assert_called_once()


class TestPersistence:

    def test_run_is_saved_twice_running_then_final(self):
        statuses = []
        connector = make_connector(make_days(30, booked_offsets={4}))
        service = make_service(connector)
        service.run_store.save.side_effect = lambda run: statuses.append(run.status) or run

        service.reconcile_mapping(make_mapping())

        assert statuses == ["RUNNING", "SUCCESS"]

    def test_first_save_happens_before_channel_read(self):
        order = []
        connector = make_connector()
        connector.get_channel_calendar.side_effect = lambda *a: order.append("read") or []
        service = make_service(connector)
        service.run_store.save.side_effect = lambda run: order.append("save") or run

        service.reconcile_mapping(make_mapping())

        assert order == ["save", "read", "save"]

    def test_window_is_today_plus_window_days(self):
        connector = make_connector([])
        service = make_service(connector)
        mapping = make_mapping()

        run = service.reconcile_mapping(mapping)

        connector.get_channel_calendar.assert_called_once_with(mapping, TODAY, TODAY + timedelta(days=30))
        assert run.window_start == TODAY
        assert run.window_end == TODAY + timedelta(days=30)

    def test_explicit_window_start(self):
        connector = make_connector([])
        service = make_service(connector, window_days=7)
        start = date(2026, 5, 10)

        run = service.reconcile_mapping(make_mapping(), window_start=start)

        assert run.window_end == date(2026, 5, 17)

    def test_details_json_lists_discrepancies(self):
        connector = make_connector(make_days(30, booked_offsets={4}))
        service = make_service(connector)

        run = service.reconcile_mapping(make_mapping())

        assert json.loads(run.details_json) == [
            {"date": "2026-03-05", "pmsStatus": "AVAILABLE", "channelStatus": "BOOKED"}
        ]

    def test_serializer_error_leaves_details_empty(self):
        connector = make_connector(make_days(30, booked_offsets={4}))
        service = make_service(connector, serializer=MagicMock(side_effect=TypeError("not serializable")))

        run = service.reconcile_mapping(make_mapping())

        assert run.details_json is None
        assert run.status == "SUCCESS"
        assert service.run_store.save.call_count == 2

    def test_finished_at_is_set(self):
        service = make_service(make_connector([]))
        run = service.reconcile_mapping(make_mapping())
        assert run.finished_at is not None


class TestSideEffects:

    def test_metrics_for_clean_run(self):
        service = make_service(make_connector(make_days(30)))

        service.reconcile_mapping(make_mapping())

        service.metrics.increment_runs.assert_called_once_with(channel="AIRBNB")
        service.metrics.increment_discrepancies.assert_not_called()
        service.metrics.increment_fixes.assert_not_called()

    def test_metrics_with_discrepancies_and_fixes(self):
        service = make_service(make_connector(make_days(30, booked_offsets={1, 2})))

        service.reconcile_mapping(make_mapping())

        service.metrics.increment_discrepancies.assert_called_once_with(2, channel="AIRBNB")
        service.metrics.increment_fixes.assert_called_once_with(2, channel="AIRBNB")

    def test_no_fix_metric_when_every_push_fails(self):
        connector = make_connector(make_days(30, booked_offsets={1}))
        connector.push_calendar_update.side_effect = RuntimeError("down")
        service = make_service(connector)

        service.reconcile_mapping(make_mapping())

        service.metrics.increment_discrepancies.assert_called_once_with(1, channel="AIRBNB")
        service.metrics.increment_fixes.assert_not_called()

    def test_metrics_on_failed_run(self):
        service = make_service(None)
        service.reconcile_mapping(make_mapping())
        service.metrics.increment_runs.assert_called_once()

    def test_audit_entry(self):
        service = make_service(make_connector(make_days(30, booked_offsets={4})))

        service.reconcile_mapping(make_mapping())

        service.audit.log_action.assert_called_once()
        args = service.audit.log_action.call_args[0]
        assert args[0] == ActivityType.RECONCILIATION
        assert args[1] == EntityType.PROPERTY
        assert args[2] == "prop-1"
        assert args[3] is None
        assert args[4] == "SUCCESS"
        assert args[5] == "channel=AIRBNB, checked=30, discrepancies=1, fixed=1, divergence=3.33%"
        assert args[6] == AuditSource.CRON

    def test_audit_entry_on_failure(self):
        service = make_service(None)
        service.reconcile_mapping(make_mapping())
        assert service.audit.log_action.call_args[0][4] == "FAILED"

    def test_manual_source(self):
        service = make_service(make_connector([]))
        service.reconcile_mapping(make_mapping(), source=AuditSource.MANUAL)
        assert service.audit.log_action.call_args[0][6] == AuditSource.MANUAL

    def test_success_does_not_alert(self):
        service = make_service(make_connector(make_days(30)))
        service.reconcile_mapping(make_mapping())
        service.notifications.notify_operators.assert_not_called()
