"""
Event Logger

Append-only audit sink for webhook and automation activity. Every write uses
its own short-lived session so a failed insert can never disturb the caller's
transaction, and failures are reported to the application log only.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sprkz.models.system_event import SystemEvent, EventSession
from sprkz.models.webhook import WebhookEvent, utcnow
from sprkz.services.structured_logging import get_logger

logger = get_logger('sprkz.events')

WEBHOOK_ACTIVITY = "webhook_activity"
AUTOMATION_ACTIVITY = "automation_activity"


@dataclass(frozen=True)
class EventContext:
    """Caller identity attached to every event emitted on its behalf"""
    session_id: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    user_id: Optional[str] = None


class EventLogger:
    """Best-effort writer for system events and webhook delivery history"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def log_event(self, event_type: str, event_category: str, event_name: str,
                  description: str, metadata: Optional[Dict[str, Any]] = None,
                  session_id: Optional[str] = None, user_agent: Optional[str] = None,
                  ip_address: Optional[str] = None, user_id: Optional[str] = None) -> Optional[int]:
        """Persist one SystemEvent. Returns its id, or None if the write failed."""
        event = SystemEvent(
            event_type=event_type,
            event_category=event_category,
            event_name=event_name,
            description=description,
            event_metadata=metadata or {},
            session_id=session_id,
            user_agent=user_agent,
            ip_address=ip_address,
            user_id=user_id,
        )
        return self._write(event, f"event {event_type}")

    def emit(self, event_type: str, event_category: str, event_name: str,
             description: str, metadata: Optional[Dict[str, Any]] = None,
             context: Optional[EventContext] = None) -> Optional[int]:
        """Shorthand for :meth:`log_event` taking an :class:`EventContext`."""
        context = context or EventContext()
        return self.log_event(
            event_type, event_category, event_name, description, metadata,
            session_id=context.session_id,
            user_agent=context.user_agent,
            ip_address=context.ip_address,
            user_id=context.user_id,
        )

    def record_delivery(self, webhook_id: int, event_type: str, payload: Any, success: bool,
                        attempt_count: int, response_status: Optional[int] = None,
                        response_body: Optional[str] = None,
                        last_attempt_at: Optional[datetime] = None) -> Optional[int]:
        """Append a webhook_events row summarising one invocation."""
        delivery = WebhookEvent(
            webhook_id=webhook_id,
            event_type=event_type,
            payload=payload,
            status="success" if success else "failed",
            attempt_count=attempt_count,
            response_status=response_status,
            response_body=response_body,
            last_attempt_at=last_attempt_at or utcnow(),
        )
        return self._write(delivery, f"delivery for webhook {webhook_id}")

    def touch_session(self, session_id: Optional[str], user_agent: Optional[str] = None,
                      ip_address: Optional[str] = None) -> None:
        """Create or bump the activity counters of an event session."""
        if not session_id:
            return

        session = self.session_factory()
        try:
            now = utcnow()
            row = session.query(EventSession).filter_by(session_id=session_id).first()
            if row is None:
                row = EventSession(session_id=session_id, first_event_at=now, total_events=0)
                session.add(row)
            row.user_agent = user_agent
            row.ip_address = ip_address
            row.last_event_at = now
            row.total_events = (row.total_events or 0) + 1
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to update session {session_id}: {e}")
        finally:
            session.close()

    def _write(self, row, label: str) -> Optional[int]:
        session = self.session_factory()
        try:
            session.add(row)
            session.commit()
            return row.id
        except (SQLAlchemyError, TypeError, ValueError) as e:
            session.rollback()
            logger.error(f"Failed to log {label}: {e}")
            return None
        finally:
            session.close()
