# -*- coding: utf-8 -*-
"""
Webhook definition schemas.
"""
from typing import Dict, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

from sprkz.errors import TemplateError
from sprkz.models.webhook import HTTP_METHODS, PAYLOAD_TYPES
from sprkz.services.payload_template import PayloadTemplate


def _check_url(v):
    if v is None:
        return v
    parsed = urlparse(v)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("URL must be an absolute http(s) URL")
    return v


def _check_method(v):
    if v is None:
        return v
    method = v.upper()
    if method not in HTTP_METHODS:
        raise ValueError(f"Method must be one of {', '.join(HTTP_METHODS)}")
    return method


def _check_payload_type(v):
    if v is not None and v not in PAYLOAD_TYPES:
        raise ValueError(f"Payload type must be one of {', '.join(PAYLOAD_TYPES)}")
    return v


def check_payload_template(payload_type, payload_template):
    """Raise TemplateError when a json template does not parse."""
    if payload_type == "json" and payload_template:
        PayloadTemplate("json", payload_template).render({})


def _check_template(model):
    try:
        check_payload_template(model.payload_type, model.payload_template)
    except TemplateError as e:
        raise ValueError(str(e))
    return model


class WebhookCreate(BaseModel):
    """Schema for creating a webhook."""
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., max_length=2048)
    method: str = "POST"
    is_active: bool = True
    retry_enabled: bool = True
    retry_count: int = Field(3, ge=0)
    retry_delay_seconds: int = Field(30, ge=0)
    timeout_seconds: int = Field(30, gt=0)
    headers: Dict[str, str] = Field(default_factory=dict)
    payload_type: str = "json"
    payload_template: Optional[str] = None

    check_url = field_validator('url')(_check_url)
    check_method = field_validator('method')(_check_method)
    check_payload_type = field_validator('payload_type')(_check_payload_type)

    @field_validator('headers', mode='before')
    @classmethod
    def headers_default(cls, v):
        return {} if v is None else v

    check_template = model_validator(mode="after")(_check_template)


class WebhookUpdate(BaseModel):
    """Schema for updating a webhook; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = Field(None, max_length=2048)
    method: Optional[str] = None
    is_active: Optional[bool] = None
    retry_enabled: Optional[bool] = None
    retry_count: Optional[int] = Field(None, ge=0)
    retry_delay_seconds: Optional[int] = Field(None, ge=0)
    timeout_seconds: Optional[int] = Field(None, gt=0)
    headers: Optional[Dict[str, str]] = None
    payload_type: Optional[str] = None
    payload_template: Optional[str] = None

    check_url = field_validator('url')(_check_url)
    check_method = field_validator('method')(_check_method)
    check_payload_type = field_validator('payload_type')(_check_payload_type)
    check_template = model_validator(mode="after")(_check_template)
