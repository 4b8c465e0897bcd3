"""
Operator notifications

Alerts are stored as broadcast notifications (user_id NULL), which every
admin/manager sees in the dashboard.
"""
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def notify_operators(
        self,
        alert_key: NotificationType,
        title: str,
        message: str,
        link: Optional[str] = None
    ) -> Notification:
        notification = Notification(
            user_id=None,
            type=getattr(alert_key, "value", alert_key),
            title=title[:200],
            message=message,
            link=link,
        )
        with self.session_factory() as db:
            db.add(notification)
            db.commit()
        logger.info(f"Operator alert [{notification.type}]: {title}")
        return notification
