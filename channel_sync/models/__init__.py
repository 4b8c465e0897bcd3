# Models package
from .channel_mapping import ChannelMapping
from .calendar_day import CalendarDay, CalendarDayStatus
from .reconciliation_run import ReconciliationRun, ReconciliationStatus, FINAL_STATUSES
from .audit_log import AuditLog, ActivityType, AuditSource, EntityType
from .notification import Notification, NotificationType

__all__ = [
    "ChannelMapping",
    "CalendarDay", "CalendarDayStatus",
    "ReconciliationRun", "ReconciliationStatus", "FINAL_STATUSES",
    "AuditLog", "ActivityType", "AuditSource", "EntityType",
    "Notification", "NotificationType",
]
