# -*- coding: utf-8 -*-
from sprkz.infra.db import db

from .webhook import Webhook, WebhookEvent
from .automation import Automation, AutomationStep
from .automation_execution import (
    AutomationExecution, AutomationStepExecution, ExecutionStatus, StepStatus
)
from .system_event import SystemEvent, EventSession
