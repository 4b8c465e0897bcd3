"""
SQL-backed collaborators of the reconciliation engine.

Each call opens its own short-lived session from the given factory, so
one store instance can be shared by worker threads.
"""

import logging
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from ..models.channel_mapping import ChannelMapping
from ..models.calendar_day import CalendarDay
from ..models.reconciliation_run import ReconciliationRun

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class SqlMappingStore:
    """Active channel mappings, across all organizations."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def find_all_active(self) -> List[ChannelMapping]:
        with self.session_factory() as db:
            return db.query(ChannelMapping).filter(
                ChannelMapping.is_active == True  # noqa: E712
            ).order_by(ChannelMapping.created_at, ChannelMapping.id).all()

    def find_active_for_property(
        self,
        property_id: str,
        channel_name: Optional[str] = None,
        organization_id: Optional[str] = None
    ) -> List[ChannelMapping]:
        with self.session_factory() as db:
            query = db.query(ChannelMapping).filter(
                and_(
                    ChannelMapping.is_active == True,  # noqa: E712
                    ChannelMapping.internal_property_id == property_id
                )
            )
            if channel_name:
                query = query.filter(func.upper(ChannelMapping.channel_name) == channel_name.upper())
            if organization_id:
                query = query.filter(ChannelMapping.organization_id == organization_id)
            return query.all()


class SqlCalendarStore:
    """Read access to the PMS calendar."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def find_by_property_and_date_range(
        self,
        property_id: str,
        date_from: date,
        date_to: date,
        organization_id: str
    ) -> List[CalendarDay]:
        """Days in [date_from, date_to), ordered by date."""
        with self.session_factory() as db:
            return db.query(CalendarDay).filter(
                and_(
                    CalendarDay.property_id == property_id,
                    CalendarDay.organization_id == organization_id,
                    CalendarDay.date >= date_from,
                    CalendarDay.date < date_to
                )
            ).order_by(CalendarDay.date).all()


class SqlRunStore:
    """Persists reconciliation runs; save() commits immediately."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def save(self, run: ReconciliationRun) -> ReconciliationRun:
        with self.session_factory() as db:
            saved = db.merge(run)
            db.commit()
            return saved
