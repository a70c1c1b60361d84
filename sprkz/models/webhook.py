"""
Webhook Models

Defines the database models for webhook targets and their delivery history.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, Boolean, JSON, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship

from sprkz.infra.db import db

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
PAYLOAD_TYPES = ("json", "pdf", "dynamic")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Webhook(db.Model):
    """A named outbound HTTP target with its own retry and timeout policy"""
    __tablename__ = "webhooks"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    method = Column(String(10), nullable=False, default="POST")
    is_active = Column(Boolean, default=True, nullable=False)

    retry_enabled = Column(Boolean, default=True, nullable=False)
    retry_count = Column(Integer, default=3, nullable=False)
    retry_delay_seconds = Column(Integer, default=30, nullable=False)
    timeout_seconds = Column(Integer, default=30, nullable=False)

    headers = Column(JSON, nullable=False, default=dict)
    payload_type = Column(String(20), nullable=False, default="json")
    payload_template = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    webhook_events = relationship("WebhookEvent", back_populates="webhook", cascade="all, delete-orphan")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "method": self.method,
            "is_active": self.is_active,
            "retry_enabled": self.retry_enabled,
            "retry_count": self.retry_count,
            "retry_delay_seconds": self.retry_delay_seconds,
            "timeout_seconds": self.timeout_seconds,
            "headers": self.headers or {},
            "payload_type": self.payload_type,
            "payload_template": self.payload_template,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Webhook {self.id} {self.method} {self.url}>"


class WebhookEvent(db.Model):
    """One invocation of a webhook, including every retry it took"""
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True)
    webhook_id = Column(Integer, ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(64), nullable=False)  # automation_step, test
    payload = Column(JSON)
    status = Column(String(20), nullable=False)  # success, failed
    attempt_count = Column(Integer, default=1, nullable=False)
    response_status = Column(Integer)
    response_body = Column(Text)
    last_attempt_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    webhook = relationship("Webhook", back_populates="webhook_events")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "webhook_id": self.webhook_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "status": self.status,
            "attempt_count": self.attempt_count,
            "response_status": self.response_status,
            "response_body": self.response_body,
            "last_attempt_at": _iso(self.last_attempt_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<WebhookEvent {self.id} for webhook {self.webhook_id}>"
