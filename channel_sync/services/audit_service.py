"""
Audit Logging Service
Writes audit entries for system actions (reconciliation, sync).
"""
import enum
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..models.audit_log import AuditLog, ActivityType, AuditSource, EntityType

logger = logging.getLogger(__name__)


def _value(v) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, enum.Enum):
        return v.value
    return str(v)


class AuditService:
    """
    Audit sink. Errors are not swallowed here: a failed audit write
    surfaces to the caller.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def log_action(
        self,
        action: ActivityType,
        entity_type: EntityType,
        entity_id: Optional[str],
        old_value: Optional[str],
        new_value: Optional[str],
        message: Optional[str],
        source: AuditSource,
        user_id: Optional[str] = None
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            source=_value(source),
            activity_type=_value(action),
            entity_type=_value(entity_type),
            entity_id=str(entity_id) if entity_id is not None else None,
            old_value=_value(old_value),
            new_value=_value(new_value),
            description=message,
        )
        with self.session_factory() as db:
            db.add(entry)
            db.commit()
        logger.debug(f"Audit {entry.activity_type} {entry.entity_type}/{entry.entity_id} -> {entry.new_value}")
        return entry
