# -*- coding: utf-8 -*-
# sprkz/models/system_event.py
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, DateTime, JSON, Text

from sprkz.infra.db import db
from sprkz.models.webhook import utcnow, _iso


class SystemEvent(db.Model):
    """Immutable audit record for triggers, outcomes and lifecycle transitions"""
    __tablename__ = "system_events"

    id = Column(Integer, primary_key=True)

    # e.g. "webhook_triggered", "automation_failed"
    event_type = Column(String(64), nullable=False, index=True)
    # e.g. "webhook_activity", "automation_activity"
    event_category = Column(String(64), nullable=False, index=True)
    event_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)

    user_agent = Column(Text)
    ip_address = Column(String(64))
    session_id = Column(String(128), index=True)
    user_id = Column(String(128), index=True)

    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "event_name": self.event_name,
            "description": self.description,
            "user_agent": self.user_agent,
            "ip_address": self.ip_address,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "metadata": self.event_metadata or {},
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<SystemEvent {self.id} {self.event_type}>"


class EventSession(db.Model):
    """Per-session activity counters for the event log"""
    __tablename__ = "event_sessions"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(128), nullable=False, unique=True, index=True)
    user_agent = Column(Text)
    ip_address = Column(String(64))
    first_event_at = Column(DateTime(timezone=True))
    last_event_at = Column(DateTime(timezone=True))
    total_events = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
