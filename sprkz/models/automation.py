'''
Automation Model

An automation is an ordered sequence of steps, each calling one webhook.
'''

from typing import Any, Dict

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from sprkz.infra.db import db
from sprkz.models.webhook import utcnow, _iso

TRIGGER_TYPES = ("manual", "form_submission", "schedule")


class Automation(db.Model):
    __tablename__ = "automations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    trigger_type = Column(String(32), nullable=False, default="manual")
    trigger_config = Column(JSON, default=dict)

    steps = relationship(
        "AutomationStep",
        back_populates="automation",
        cascade="all, delete-orphan",
        order_by="AutomationStep.step_order",
    )
    executions = relationship("AutomationExecution", back_populates="automation", cascade="all, delete-orphan")

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self, include_steps: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "trigger_type": self.trigger_type,
            "trigger_config": self.trigger_config or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_steps:
            data["steps"] = [step.to_dict() for step in self.steps]
        return data

    def __repr__(self):
        return f"<Automation(id={self.id}, name='{self.name}')>"


class AutomationStep(db.Model):
    __tablename__ = "automation_steps"
    __table_args__ = (
        UniqueConstraint("automation_id", "step_order", name="uq_automation_steps_order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False)
    automation = relationship("Automation", back_populates="steps")

    webhook_id = Column(Integer, ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False)
    webhook = relationship("Webhook")

    step_order = Column(Integer, nullable=False)
    is_conditional = Column(Boolean, default=False, nullable=False)
    condition_config = Column(JSON, default=dict)
    delay_seconds = Column(Integer, default=0, nullable=False)
    retry_on_failure = Column(Boolean, default=True, nullable=False)
    continue_on_failure = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "automation_id": self.automation_id,
            "webhook_id": self.webhook_id,
            "step_order": self.step_order,
            "is_conditional": self.is_conditional,
            "condition_config": self.condition_config or {},
            "delay_seconds": self.delay_seconds,
            "retry_on_failure": self.retry_on_failure,
            "continue_on_failure": self.continue_on_failure,
        }
        if self.webhook is not None:
            data["webhook"] = {
                "id": self.webhook.id,
                "name": self.webhook.name,
                "url": self.webhook.url,
                "method": self.webhook.method,
                "is_active": self.webhook.is_active,
            }
        return data

    def __repr__(self):
        return f"<AutomationStep(id={self.id}, order={self.step_order})>"
