"""
Calendar Reconciliation Service

Periodically compares the PMS calendar (source of truth) with the
calendar each booking channel holds for the same listing, detects
divergences and repairs them.

The PMS always wins: a discrepancy is repaired by pushing the PMS state
of that day back to the channel, never the other way round.

Flow per channel mapping:
1. Persist a RUNNING run (visible while in flight)
2. Read channel calendar, then PMS calendar, for [today, today + window)
3. Diff day by day (channel vocabulary normalized first)
4. Push the PMS state for every discrepant day
5. Classify (SUCCESS / DIVERGENCE / FAILED) and persist the final run
6. Metrics, operator alerts, audit entry
"""

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from functools import lru_cache
from typing import Callable, Dict, List, Optional

from ..config import settings
from ..models.audit_log import ActivityType, AuditSource, EntityType
from ..models.channel_mapping import ChannelMapping
from ..models.notification import NotificationType
from ..models.reconciliation_run import ReconciliationRun, ReconciliationStatus
from ..utils.logging_config import get_logger, run_id_var
from ..utils.metrics import record_channel_push
from .calendar_diff import Discrepancy, diff_calendars
from .channel_connector import ChannelConnector, ConnectorNotFoundError

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__)

RECONCILIATION_WINDOW_DAYS = 30
DIVERGENCE_ALERT_THRESHOLD = 5.0


@dataclass
class BatchSummary:
    """Totals of one batch of mapping reconciliations."""
    trigger: str
    mappings: int = 0
    runs: int = 0
    failed_runs: int = 0
    failed_mappings: int = 0
    discrepancies: int = 0
    fixes: int = 0
    duration_ms: int = 0

    def add_run(self, run: ReconciliationRun):
        self.runs += 1
        self.discrepancies += run.discrepancies_found or 0
        self.fixes += run.discrepancies_fixed or 0
        if run.status == ReconciliationStatus.FAILED.value:
            self.failed_runs += 1

    def to_dict(self) -> Dict:
        return {
            "trigger": self.trigger,
            "mappings": self.mappings,
            "runs": self.runs,
            "failed_runs": self.failed_runs,
            "failed_mappings": self.failed_mappings,
            "discrepancies": self.discrepancies,
            "fixes": self.fixes,
            "duration_ms": self.duration_ms,
        }


class ReconciliationService:
    """
    Reconciliation engine.

    Collaborators are passed in so the engine can run against the SQL
    stores in production and against mocks in tests:
    - mapping_store.find_all_active()
    - calendar_store.find_by_property_and_date_range(property_id, from, to, org_id)
    - connector_registry.get_connector(channel_name)
    - run_store.save(run)
    - metrics.increment_runs / increment_discrepancies / increment_fixes
    - audit.log_action(...)
    - notifications.notify_operators(alert_key, title, message, link)
    """

    def __init__(
        self,
        mapping_store,
        calendar_store,
        connector_registry,
        run_store,
        metrics,
        audit,
        notifications,
        window_days: Optional[int] = None,
        divergence_threshold: Optional[float] = None,
        max_workers: Optional[int] = None,
        alert_link: Optional[str] = None,
        serializer: Optional[Callable] = None,
        today: Callable[[], date] = date.today
    ):
        self.mapping_store = mapping_store
        self.calendar_store = calendar_store
        self.connector_registry = connector_registry
        self.run_store = run_store
        self.metrics = metrics
        self.audit = audit
        self.notifications = notifications

        self.window_days = window_days or RECONCILIATION_WINDOW_DAYS
        self.divergence_threshold = (
            DIVERGENCE_ALERT_THRESHOLD if divergence_threshold is None else divergence_threshold
        )
        self.max_workers = max(max_workers or 1, 1)
        self.alert_link = alert_link or "/admin/sync"
        self.serializer = serializer or json.dumps
        self.today = today

        # One lock per mapping id: overlapping reconciles of the same
        # mapping (manual trigger during the hourly job) run one after the other.
        self._mapping_locks: Dict[str, threading.Lock] = {}
        self._mapping_locks_guard = threading.Lock()

    # ==================
    # Batch drivers
    # ==================

    def scheduled_reconciliation(self) -> BatchSummary:
        """Reconcile every active mapping (all organizations)."""
        logger.info("Starting scheduled reconciliation")
        mappings = self.mapping_store.find_all_active()
        logger.info(f"{len(mappings)} active mappings to reconcile")
        return self._run_batch(mappings, trigger="scheduled", source=AuditSource.CRON)

    def reconcile_property(
        self,
        property_id: str,
        source: AuditSource = AuditSource.CRON
    ) -> BatchSummary:
        """Reconcile every active mapping of one PMS property."""
        logger.info(f"Reconciliation requested for property {property_id}")
        mappings = [
            m for m in self.mapping_store.find_all_active()
            if str(m.internal_property_id) == str(property_id)
        ]

        if not mappings:
            logger.warning(f"No active mapping for property {property_id}")
            return BatchSummary(trigger="property")

        return self._run_batch(mappings, trigger="property", source=source)

    def _run_batch(
        self,
        mappings: List[ChannelMapping],
        trigger: str,
        source: AuditSource
    ) -> BatchSummary:
        start = time.perf_counter()
        summary = BatchSummary(trigger=trigger, mappings=len(mappings))

        if self.max_workers <= 1 or len(mappings) <= 1:
            for mapping in mappings:
                try:
                    summary.add_run(self.reconcile_mapping(mapping, source=source))
                except Exception as e:
                    summary.failed_mappings += 1
                    self._log_mapping_error(mapping, e)
        else:
            workers = min(self.max_workers, len(mappings))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reconcile") as pool:
                futures = {
                    pool.submit(self.reconcile_mapping, mapping, None, source): mapping
                    for mapping in mappings
                }
                for future in as_completed(futures):
                    try:
                        summary.add_run(future.result())
                    except Exception as e:
                        summary.failed_mappings += 1
                        self._log_mapping_error(futures[future], e)

        summary.duration_ms = int((time.perf_counter() - start) * 1000)
        structured_logger.batch_completed(
            trigger,
            summary.mappings,
            summary.failed_runs + summary.failed_mappings,
            summary.duration_ms
        )
        logger.info(
            f"Reconciliation ({trigger}) done in {summary.duration_ms}ms - "
            f"runs={summary.runs}, discrepancies={summary.discrepancies}, fixes={summary.fixes}"
        )
        return summary

    def _log_mapping_error(self, mapping: ChannelMapping, error: Exception):
        logger.error(
            f"Reconciliation error for mapping {mapping.id} "
            f"(property={mapping.internal_property_id}, channel={mapping.channel_name}): {error}",
            exc_info=True
        )

    # ==================
    # Single mapping
    # ==================

    def reconcile_mapping(
        self,
        mapping: ChannelMapping,
        window_start: Optional[date] = None,
        source: AuditSource = AuditSource.CRON
    ) -> ReconciliationRun:
        """Reconcile one mapping; returns the finalized run."""
        with self._mapping_lock(mapping.id):
            return self._reconcile(mapping, window_start, source)

    @contextmanager
    def _mapping_lock(self, mapping_id: str):
        with self._mapping_locks_guard:
            lock = self._mapping_locks.setdefault(str(mapping_id), threading.Lock())
        with lock:
            yield

    def _reconcile(
        self,
        mapping: ChannelMapping,
        window_start: Optional[date],
        source: AuditSource
    ) -> ReconciliationRun:
        started = time.perf_counter()
        date_from = window_start or self.today()
        date_to = date_from + timedelta(days=self.window_days)

        run = self.run_store.save(self._new_run(mapping, date_from, date_to))
        token = run_id_var.set(str(run.id or ""))

        try:
            discrepancies: List[Discrepancy] = []
            try:
                connector = self.connector_registry.get_connector(mapping.channel_name)
                if connector is None:
                    raise ConnectorNotFoundError(mapping.channel_name)
                discrepancies = self._fetch_and_diff(connector, mapping, run, date_from, date_to)
            except Exception as e:
                logger.error(f"Reconciliation of mapping {mapping.id} failed: {e}", exc_info=True)
                run.status = ReconciliationStatus.FAILED.value
                run.error_message = str(e) or e.__class__.__name__
            else:
                run.discrepancies_fixed = self._repair(connector, mapping, discrepancies)
                self._classify(run)

            run.details_json = self._serialize_details(discrepancies)
            run.finished_at = datetime.utcnow()
            run = self.run_store.save(run)

            duration = time.perf_counter() - started
            self._emit_metrics(run, duration)
            try:
                self._audit(run, source)
            finally:
                self._alert(run)

            structured_logger.reconciliation_completed(
                property_id=str(run.property_id),
                channel_name=run.channel_name,
                status=run.status,
                discrepancies_found=run.discrepancies_found,
                discrepancies_fixed=run.discrepancies_fixed,
                divergence_pct=float(run.divergence_pct or 0),
                duration_ms=round(duration * 1000, 2)
            )
            return run
        finally:
            run_id_var.reset(token)

    def _new_run(self, mapping: ChannelMapping, date_from: date, date_to: date) -> ReconciliationRun:
        return ReconciliationRun(
            mapping_id=mapping.id,
            property_id=mapping.internal_property_id,
            organization_id=mapping.organization_id,
            channel_name=mapping.channel_name,
            window_start=date_from,
            window_end=date_to,
            status=ReconciliationStatus.RUNNING.value,
            channel_days_checked=0,
            pms_days_checked=0,
            discrepancies_found=0,
            discrepancies_fixed=0,
            divergence_pct=Decimal("0.00"),
            started_at=datetime.utcnow(),
        )

    def _fetch_and_diff(
        self,
        connector: ChannelConnector,
        mapping: ChannelMapping,
        run: ReconciliationRun,
        date_from: date,
        date_to: date
    ) -> List[Discrepancy]:
        channel_days = connector.get_channel_calendar(mapping, date_from, date_to)

        # Nothing to compare: the PMS is not read at all
        if not channel_days:
            logger.info(f"Channel {mapping.channel_name} returned no calendar for mapping {mapping.id}")
            return []

        run.channel_days_checked = len(channel_days)

        pms_days = self.calendar_store.find_by_property_and_date_range(
            mapping.internal_property_id, date_from, date_to, mapping.organization_id
        )

        diff = diff_calendars(channel_days, pms_days)
        run.pms_days_checked = diff.pms_days_checked
        run.discrepancies_found = diff.discrepancies_found
        return diff.discrepancies

    def _repair(
        self,
        connector: ChannelConnector,
        mapping: ChannelMapping,
        discrepancies: List[Discrepancy]
    ) -> int:
        """Push the PMS state of each discrepant day; returns the number fixed."""
        fixed = 0
        for discrepancy in discrepancies:
            day = discrepancy.date
            try:
                result = connector.push_calendar_update(
                    mapping.internal_property_id,
                    day,
                    day + timedelta(days=1),
                    mapping.organization_id
                )
            except Exception as e:
                logger.warning(
                    f"Push fix error for property={mapping.internal_property_id}, "
                    f"channel={mapping.channel_name}, date={day}: {e}"
                )
                record_channel_push(mapping.channel_name, False)
                continue

            record_channel_push(mapping.channel_name, result.success)
            if result.success:
                fixed += 1
            else:
                logger.warning(
                    f"Push fix rejected for property={mapping.internal_property_id}, "
                    f"channel={mapping.channel_name}, date={day}: {result.message}"
                )

        if fixed:
            logger.info(
                f"{fixed}/{len(discrepancies)} discrepancies fixed for "
                f"property={mapping.internal_property_id}, channel={mapping.channel_name}"
            )
        return fixed

    def _classify(self, run: ReconciliationRun):
        pct = Decimal(run.discrepancies_found * 100) / Decimal(max(run.channel_days_checked, 1))
        run.divergence_pct = pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if run.divergence_pct > Decimal(str(self.divergence_threshold)):
            run.status = ReconciliationStatus.DIVERGENCE.value
        else:
            run.status = ReconciliationStatus.SUCCESS.value

    # ==================
    # Side channels
    # ==================

    def _serialize_details(self, discrepancies: List[Discrepancy]) -> Optional[str]:
        """Best effort: a serialization error leaves the details empty."""
        if not discrepancies:
            return None
        try:
            return self.serializer([d.to_dict() for d in discrepancies])
        except Exception as e:
            logger.warning(f"Could not serialize discrepancy details: {e}")
            return None

    def _emit_metrics(self, run: ReconciliationRun, duration: float):
        channel = run.channel_name
        self.metrics.increment_runs(channel=channel)
        if run.discrepancies_found > 0:
            self.metrics.increment_discrepancies(run.discrepancies_found, channel=channel)
        if run.discrepancies_fixed > 0:
            self.metrics.increment_fixes(run.discrepancies_fixed, channel=channel)
        self.metrics.observe_duration(duration, channel=channel, status=run.status)

    def _audit(self, run: ReconciliationRun, source: AuditSource):
        self.audit.log_action(
            ActivityType.RECONCILIATION,
            EntityType.PROPERTY,
            str(run.property_id),
            None,
            run.status,
            (
                f"channel={run.channel_name}, checked={run.channel_days_checked}, "
                f"discrepancies={run.discrepancies_found}, fixed={run.discrepancies_fixed}, "
                f"divergence={float(run.divergence_pct or 0):.2f}%"
            ),
            source
        )

    def _alert(self, run: ReconciliationRun):
        if run.status == ReconciliationStatus.DIVERGENCE.value:
            self._notify(
                NotificationType.RECONCILIATION_DIVERGENCE_HIGH,
                "High calendar divergence detected",
                (
                    f"Property {run.property_id} ({run.channel_name}): "
                    f"{float(run.divergence_pct):.2f}% divergence "
                    f"({run.discrepancies_found} discrepancies over {run.channel_days_checked} days checked)"
                )
            )
        elif run.status == ReconciliationStatus.FAILED.value:
            self._notify(
                NotificationType.RECONCILIATION_FAILED,
                "Reconciliation failed",
                f"Reconciliation error for property {run.property_id} ({run.channel_name}): {run.error_message}"
            )

    def _notify(self, alert_key: NotificationType, title: str, message: str):
        """Best effort: a notification error never reaches the caller."""
        try:
            self.notifications.notify_operators(alert_key, title, message, self.alert_link)
        except Exception as e:
            logger.warning(f"Operator notification {alert_key.value} failed: {e}")


def build_reconciliation_service(session_factory=None) -> ReconciliationService:
    """
    Wire the engine with the SQL stores, audit/notification services and
    the connectors configured in CHANNEL_ENDPOINTS.
    """
    from ..database import SessionLocal
    from ..utils.metrics import ReconciliationMetrics
    from .audit_service import AuditService
    from .notification_service import NotificationService
    from .reconciliation_stores import SqlMappingStore, SqlCalendarStore, SqlRunStore
    from .rest_connector import build_connector_registry

    session_factory = session_factory or SessionLocal
    mapping_store = SqlMappingStore(session_factory)
    calendar_store = SqlCalendarStore(session_factory)

    return ReconciliationService(
        mapping_store=mapping_store,
        calendar_store=calendar_store,
        connector_registry=build_connector_registry(calendar_store, mapping_store),
        run_store=SqlRunStore(session_factory),
        metrics=ReconciliationMetrics(),
        audit=AuditService(session_factory),
        notifications=NotificationService(session_factory),
        window_days=settings.reconciliation_window_days,
        divergence_threshold=settings.reconciliation_divergence_threshold,
        max_workers=settings.reconciliation_max_workers,
        alert_link=settings.reconciliation_alert_link,
    )


@lru_cache()
def get_reconciliation_service() -> ReconciliationService:
    """
    Process-wide engine, shared by the hourly job and the admin trigger so
    both go through the same per-mapping locks.
    """
    return build_reconciliation_service()
