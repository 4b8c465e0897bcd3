"""
Tests for the reconciliation batch drivers

These tests verify:
- One mapping's failure never stops the others
- Property filtering and the no-match short-circuit
- Worker pool execution
- Serialization of overlapping runs of the same mapping
"""

import os
import sys
import threading
import time
from datetime import date, timedelta
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from channel_sync.models.audit_log import AuditSource
from channel_sync.models.channel_mapping import ChannelMapping
from channel_sync.services.channel_connector import ChannelConnectorError, ChannelDay, SyncResult
from channel_sync.services.reconciliation_service import ReconciliationService

TODAY = date(2026, 3, 1)


def make_mapping(mapping_id, channel, property_id="prop-1"):
    return ChannelMapping(
        id=mapping_id,
        channel_name=channel,
        internal_property_id=property_id,
        external_id=f"ext-{mapping_id}",
        organization_id="org-1",
        is_active=True
    )


def make_connector(booked=False):
    connector = MagicMock()
    connector.get_channel_calendar.return_value = [
        ChannelDay(TODAY + timedelta(days=i), "BOOKED" if booked and i == 0 else "AVAILABLE")
        for i in range(30)
    ]
    connector.push_calendar_update.return_value = SyncResult.succeeded(1)
    return connector


def make_service(mappings, connectors, **kwargs):
    mapping_store = MagicMock()
    mapping_store.find_all_active.return_value = mappings

    registry = MagicMock()
    registry.get_connector.side_effect = lambda name: connectors.get(name)

    calendar_store = MagicMock()
    calendar_store.find_by_property_and_date_range.return_value = []

    run_store = MagicMock()
    run_store.save.side_effect = lambda run: run

    return ReconciliationService(
        mapping_store=mapping_store,
        calendar_store=calendar_store,
        connector_registry=registry,
        run_store=run_store,
        metrics=MagicMock(),
        audit=MagicMock(),
        notifications=MagicMock(),
        today=lambda: TODAY,
        **kwargs
    )


class TestScheduledReconciliation:

    def test_first_mapping_failing_does_not_stop_second(self):
        """The second mapping's connector is still invoked"""
        failing = make_connector()
        failing.get_channel_calendar.side_effect = ChannelConnectorError("channel down")
        healthy = make_connector()
        service = make_service(
            [make_mapping("m1", "AIRBNB"), make_mapping("m2", "BOOKING")],
            {"AIRBNB": failing, "BOOKING": healthy}
        )

        summary = service.scheduled_reconciliation()

        healthy.get_channel_calendar.assert_called_once()
        assert summary.runs == 2
        assert summary.failed_runs == 1
        assert summary.failed_mappings == 0

    def test_exception_escaping_a_mapping_is_caught(self):
        """Even a run store failure only affects its own mapping"""
        service = make_service(
            [make_mapping("m1", "AIRBNB"), make_mapping("m2", "BOOKING")],
            {"AIRBNB": make_connector(), "BOOKING": make_connector()}
        )
        saved = []

        def save(run):
            if run.mapping_id == "m1":
                raise RuntimeError("disk full")
            saved.append(run.status)
            return run

        service.run_store.save.side_effect = save

        summary = service.scheduled_reconciliation()

        assert summary.failed_mappings == 1
        assert summary.runs == 1
        assert saved == ["RUNNING", "SUCCESS"]

    def test_summary_totals(self):
        service = make_service(
            [make_mapping("m1", "AIRBNB"), make_mapping("m2", "BOOKING")],
            {"AIRBNB": make_connector(booked=True), "BOOKING": make_connector(booked=True)}
        )

        summary = service.scheduled_reconciliation()

        assert summary.mappings == 2
        assert summary.discrepancies == 2
        assert summary.fixes == 2
        assert summary.to_dict()["trigger"] == "scheduled"

    def test_no_active_mappings(self):
        service = make_service([], {})
        summary = service.scheduled_reconciliation()
        assert summary.runs == 0
        service.run_store.save.assert_not_called()

    def test_scheduled_runs_are_audited_as_cron(self):
        service = make_service([make_mapping("m1", "AIRBNB")], {"AIRBNB": make_connector()})
        service.scheduled_reconciliation()
        assert service.audit.log_action.call_args[0][6] == AuditSource.CRON


class TestReconcileProperty:

    def test_only_matching_mappings_are_reconciled(self):
        other = make_connector()
        mine = make_connector()
        service = make_service(
            [make_mapping("m1", "AIRBNB", "prop-1"), make_mapping("m2", "BOOKING", "prop-2")],
            {"AIRBNB": mine, "BOOKING": other}
        )

        summary = service.reconcile_property("prop-1")

        mine.get_channel_calendar.assert_called_once()
        other.get_channel_calendar.assert_not_called()
        assert summary.runs == 1

    def test_no_match_has_no_side_effects(self):
        service = make_service([make_mapping("m1", "AIRBNB", "prop-1")], {"AIRBNB": make_connector()})

        summary = service.reconcile_property("unknown")

        assert summary.runs == 0
        service.run_store.save.assert_not_called()
        service.connector_registry.get_connector.assert_not_called()
        service.audit.log_action.assert_not_called()
        service.metrics.increment_runs.assert_not_called()

    def test_isolation_between_mappings_of_one_property(self):
        failing = make_connector()
        failing.get_channel_calendar.side_effect = RuntimeError("boom")
        healthy = make_connector()
        service = make_service(
            [make_mapping("m1", "AIRBNB"), make_mapping("m2", "BOOKING")],
            {"AIRBNB": failing, "BOOKING": healthy}
        )

        summary = service.reconcile_property("prop-1", source=AuditSource.MANUAL)

        healthy.get_channel_calendar.assert_called_once()
        assert summary.failed_runs == 1
        assert service.audit.log_action.call_args[0][6] == AuditSource.MANUAL


class TestConcurrency:

    def test_worker_pool_reconciles_every_mapping(self):
        connectors = {name: make_connector() for name in ("AIRBNB", "BOOKING", "VRBO")}
        connectors["BOOKING"].get_channel_calendar.side_effect = RuntimeError("boom")
        service = make_service(
            [make_mapping("m1", "AIRBNB"), make_mapping("m2", "BOOKING"), make_mapping("m3", "VRBO")],
            connectors,
            max_workers=3
        )

        summary = service.scheduled_reconciliation()

        assert summary.runs == 3
        assert summary.failed_runs == 1
        for connector in connectors.values():
            connector.get_channel_calendar.assert_called_once()

    def test_worker_pool_isolates_raised_exceptions(self):
        service = make_service(
            [make_mapping("m1", "AIRBNB"), make_mapping("m2", "BOOKING")],
            {"AIRBNB": make_connector(), "BOOKING": make_connector()},
            max_workers=2
        )
        service.audit.log_action.side_effect = [RuntimeError("audit down"), None]

        summary = service.scheduled_reconciliation()

        assert summary.failed_mappings == 1
        assert summary.runs == 1

    def test_same_mapping_runs_do_not_overlap(self):
        active = []
        overlaps = []
        lock = threading.Lock()

        def slow_read(*args):
            with lock:
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
            time.sleep(0.05)
            with lock:
                active.pop()
            return []

        connector = make_connector()
        connector.get_channel_calendar.side_effect = slow_read
        mapping = make_mapping("m1", "AIRBNB")
        service = make_service([mapping], {"AIRBNB": connector})

        threads = [threading.Thread(target=service.reconcile_mapping, args=(mapping,)) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert connector.get_channel_calendar.call_count == 3
        assert overlaps == []
