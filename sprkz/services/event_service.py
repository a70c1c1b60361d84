"""
Event Service

Read side of the audit log: filtered listings of system events and the
aggregate numbers shown on the admin dashboard.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from sprkz.models.system_event import SystemEvent
from sprkz.models.webhook import utcnow

ERROR_CATEGORY = "error_tracking"
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000


class EventService:
    """Queries over the system_events table"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def list_events(self, event_type: Optional[str] = None, event_category: Optional[str] = None,
                    start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                    search: Optional[str] = None, user_id: Optional[str] = None,
                    session_id: Optional[str] = None, limit: int = DEFAULT_PAGE_SIZE,
                    offset: int = 0) -> List[SystemEvent]:
        """Events matching every given filter, newest first.

        ``search`` is a case-insensitive substring match over the event name
        and description.
        """
        query = self.db.query(SystemEvent)

        if event_type:
            query = query.filter(SystemEvent.event_type == event_type)
        if event_category:
            query = query.filter(SystemEvent.event_category == event_category)
        if start_date:
            query = query.filter(SystemEvent.created_at >= start_date)
        if end_date:
            query = query.filter(SystemEvent.created_at <= end_date)
        if user_id:
            query = query.filter(SystemEvent.user_id == user_id)
        if session_id:
            query = query.filter(SystemEvent.session_id == session_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                SystemEvent.event_name.ilike(pattern),
                SystemEvent.description.ilike(pattern),
            ))

        limit = min(max(int(limit), 1), MAX_PAGE_SIZE)
        offset = max(int(offset), 0)
        return (
            query.order_by(SystemEvent.created_at.desc(), SystemEvent.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def summary(self) -> Dict[str, Any]:
        now = utcnow()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

        by_type = dict(
            self.db.query(SystemEvent.event_type, func.count(SystemEvent.id))
            .group_by(SystemEvent.event_type)
            .all()
        )
        by_category = dict(
            self.db.query(SystemEvent.event_category, func.count(SystemEvent.id))
            .group_by(SystemEvent.event_category)
            .all()
        )

        top_sessions = (
            self.db.query(SystemEvent.session_id, func.count(SystemEvent.id).label('events'))
            .filter(SystemEvent.session_id.isnot(None))
            .group_by(SystemEvent.session_id)
            .order_by(func.count(SystemEvent.id).desc())
            .limit(10)
            .all()
        )

        recent_errors = (
            self.db.query(SystemEvent)
            .filter(or_(
                SystemEvent.event_category == ERROR_CATEGORY,
                SystemEvent.event_type.like('%\\_failed', escape='\\'),
            ))
            .order_by(SystemEvent.created_at.desc(), SystemEvent.id.desc())
            .limit(10)
            .all()
        )

        return {
            'total_events': sum(by_type.values()),
            'events_by_type': by_type,
            'events_by_category': by_category,
            'events_today': self._count_since(start_of_day),
            'events_last_7_days': self._count_since(now - timedelta(days=7)),
            'events_last_30_days': self._count_since(now - timedelta(days=30)),
            'top_sessions': [
                {'session_id': session_id, 'event_count': count}
                for session_id, count in top_sessions
            ],
            'recent_errors': [event.to_dict() for event in recent_errors],
        }

    def _count_since(self, since: datetime) -> int:
        return (
            self.db.query(func.count(SystemEvent.id))
            .filter(SystemEvent.created_at >= since)
            .scalar()
        ) or 0
