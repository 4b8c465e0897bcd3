# Services package
from .status_normalizer import normalize_status, STATUS_SYNONYMS
from .channel_connector import (
    ChannelConnector, ChannelConnectorError, ChannelDay,
    ConnectorNotFoundError, ConnectorRegistry, SyncResult, SyncStatus
)
from .calendar_diff import CalendarDiff, Discrepancy, diff_calendars
from .reconciliation_stores import SqlMappingStore, SqlCalendarStore, SqlRunStore
from .audit_service import AuditService
from .notification_service import NotificationService
from .rest_connector import RestCalendarConnector, build_connector_registry
from .reconciliation_service import (
    BatchSummary, ReconciliationService, build_reconciliation_service,
    get_reconciliation_service
)

__all__ = [
    "normalize_status", "STATUS_SYNONYMS",
    "ChannelConnector", "ChannelConnectorError", "ChannelDay",
    "ConnectorNotFoundError", "ConnectorRegistry", "SyncResult", "SyncStatus",
    "CalendarDiff", "Discrepancy", "diff_calendars",
    "SqlMappingStore", "SqlCalendarStore", "SqlRunStore",
    "AuditService", "NotificationService",
    "RestCalendarConnector", "build_connector_registry",
    "BatchSummary", "ReconciliationService", "build_reconciliation_service",
    "get_reconciliation_service",
]
