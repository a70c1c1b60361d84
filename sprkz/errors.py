# -*- coding: utf-8 -*-
"""
Error taxonomy for the automation engine.

Configuration and definition errors are reported as structured failures.
Invocation errors never leave the invoker: they are retried and then folded
into an :class:`~sprkz.services.webhook_invoker.InvocationResult`.
"""

from typing import Optional


class AutomationError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(AutomationError):
    """Automation missing or inactive, no active steps, or unknown webhook."""


class DefinitionError(AutomationError):
    """A webhook or automation definition failed write-time validation."""

    def __init__(self, message: str, details: Optional[list] = None):
        super().__init__(message)
        self.details = details or []


class InvocationError(AutomationError):
    """A single webhook attempt failed (transport error, timeout, non-2xx)."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response_body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class PersistenceError(AutomationError):
    """Writing an execution or step-execution row failed."""


class ExecutionAborted(AutomationError):
    """A run stopped early after its execution row was created.

    Raised for unexpected step exceptions and for writes that failed mid-run;
    the run is recorded as failed where the database still allows it.
    """

    def __init__(self, message: str, execution_id: Optional[int] = None,
                 completed_steps: int = 0, total_steps: int = 0):
        super().__init__(message)
        self.execution_id = execution_id
        self.completed_steps = completed_steps
        self.total_steps = total_steps


class TemplateError(AutomationError):
    """A payload template could not be rendered."""


class ConditionError(AutomationError):
    """A step's condition_config is malformed."""
