# -*- coding: utf-8 -*-

"""
Automation Execution Models

One row per run of an automation, plus one row per step the run attempted.
Both are written only by the execution engine.
"""

from enum import Enum
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship

from sprkz.infra.db import db
from sprkz.models.webhook import utcnow, _iso


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class AutomationExecution(db.Model):
    __tablename__ = "automation_executions"

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True)
    automation = relationship("Automation", back_populates="executions")

    status = Column(String(20), nullable=False, default=ExecutionStatus.RUNNING.value)
    trigger_data = Column(JSON)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    step_executions = relationship(
        "AutomationStepExecution",
        back_populates="execution",
        cascade="all, delete-orphan",
        order_by="AutomationStepExecution.id",
    )

    def to_dict(self, include_steps: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "automation_id": self.automation_id,
            "status": self.status,
            "trigger_data": self.trigger_data or {},
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
        }
        if include_steps:
            data["steps"] = [step.to_dict() for step in self.step_executions]
        return data

    def __repr__(self):
        return f"<AutomationExecution(id={self.id}, status=\"{self.status}\")>"


class AutomationStepExecution(db.Model):
    __tablename__ = "automation_step_executions"

    id = Column(Integer, primary_key=True, index=True)
    automation_execution_id = Column(
        Integer, ForeignKey("automation_executions.id", ondelete="CASCADE"), nullable=False, index=True)
    execution = relationship("AutomationExecution", back_populates="step_executions")

    automation_step_id = Column(Integer, ForeignKey("automation_steps.id", ondelete="CASCADE"), nullable=False)
    webhook_id = Column(Integer, ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False)

    status = Column(String(20), nullable=False, default=StepStatus.RUNNING.value)
    webhook_response_status = Column(Integer)
    webhook_response_body = Column(Text)
    error_message = Column(Text)
    retry_count = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "automation_execution_id": self.automation_execution_id,
            "automation_step_id": self.automation_step_id,
            "webhook_id": self.webhook_id,
            "status": self.status,
            "webhook_response_status": self.webhook_response_status,
            "webhook_response_body": self.webhook_response_body,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self):
        return f"<AutomationStepExecution(id={self.id}, status=\"{self.status}\")>"
