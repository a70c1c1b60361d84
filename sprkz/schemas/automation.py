# -*- coding: utf-8 -*-
"""
Automation definition schemas.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from sprkz.errors import ConditionError
from sprkz.models.automation import TRIGGER_TYPES
from sprkz.services.conditions import evaluate_condition


class AutomationStepIn(BaseModel):
    """One step of an automation as submitted by the admin UI."""
    webhook_id: int
    step_order: int = Field(..., ge=0)
    is_conditional: bool = False
    condition_config: Dict[str, Any] = Field(default_factory=dict)
    delay_seconds: int = Field(0, ge=0)
    retry_on_failure: bool = True
    continue_on_failure: bool = False

    @field_validator('condition_config', mode='before')
    @classmethod
    def condition_default(cls, v):
        return {} if v is None else v

    @model_validator(mode='after')
    def check_condition(self):
        if self.is_conditional:
            try:
                evaluate_condition(self.condition_config, {'trigger': {}, 'steps': {}})
            except ConditionError as e:
                raise ValueError(f"Invalid condition for step {self.step_order}: {e}")
        return self


def _check_trigger_type(v):
    if v is not None and v not in TRIGGER_TYPES:
        raise ValueError(f"Trigger type must be one of {', '.join(TRIGGER_TYPES)}")
    return v


def _check_unique_orders(steps):
    if steps is None:
        return steps
    orders = [step.step_order for step in steps]
    if len(orders) != len(set(orders)):
        raise ValueError("step_order must be unique within an automation")
    return steps


class AutomationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: bool = True
    trigger_type: str = "manual"
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    steps: List[AutomationStepIn] = Field(default_factory=list)

    check_trigger_type = field_validator('trigger_type')(_check_trigger_type)
    check_steps = field_validator('steps')(_check_unique_orders)


class AutomationUpdate(BaseModel):
    """Omitted fields are left unchanged; a submitted step list replaces the old one."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    trigger_type: Optional[str] = None
    trigger_config: Optional[Dict[str, Any]] = None
    steps: Optional[List[AutomationStepIn]] = None

    check_trigger_type = field_validator('trigger_type')(_check_trigger_type)
    check_steps = field_validator('steps')(_check_unique_orders)
