"""
Webhook Invoker

Performs the HTTP call(s) for one webhook invocation: renders the payload,
applies the webhook's own retry and timeout policy, classifies the outcome and
reports every attempt to the event log.
"""

import json
import time
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional, Tuple

import requests
from requests.structures import CaseInsensitiveDict

from sprkz.errors import InvocationError, TemplateError
from sprkz.services.cancellation import CancellationToken
from sprkz.services.event_logger import EventContext, EventLogger, WEBHOOK_ACTIVITY
from sprkz.services.payload_template import PayloadTemplate
from sprkz.services.structured_logging import get_logger

logger = get_logger('sprkz.webhooks')

DEFAULT_HEADERS = {'Content-Type': 'application/json'}
BODY_METHODS = ('POST', 'PUT', 'PATCH')


@dataclass(frozen=True)
class WebhookTarget:
    """Immutable snapshot of a webhook definition, safe to hand to worker threads"""
    id: int
    name: str
    url: str
    method: str = 'POST'
    retry_enabled: bool = True
    retry_count: int = 3
    retry_delay_seconds: int = 30
    timeout_seconds: int = 30
    headers: Dict[str, str] = field(default_factory=dict)
    payload: PayloadTemplate = field(default_factory=PayloadTemplate)

    @classmethod
    def from_model(cls, webhook) -> 'WebhookTarget':
        return cls(
            id=webhook.id,
            name=webhook.name,
            url=webhook.url,
            method=(webhook.method or 'POST').upper(),
            retry_enabled=bool(webhook.retry_enabled),
            retry_count=max(int(webhook.retry_count or 0), 0),
            retry_delay_seconds=max(int(webhook.retry_delay_seconds or 0), 0),
            timeout_seconds=int(webhook.timeout_seconds or 30),
            headers={str(k): str(v) for k, v in (webhook.headers or {}).items()},
            payload=PayloadTemplate(webhook.payload_type or 'json', webhook.payload_template),
        )


@dataclass
class InvocationResult:
    success: bool
    status_code: Optional[int]
    response_body: Optional[str]
    error_message: Optional[str]
    response_time_ms: int
    attempts: int = 1
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class WebhookInvoker:
    """Calls webhook targets with requests, one attempt at a time."""

    def __init__(self, event_logger: EventLogger, http: Optional[requests.Session] = None,
                 metrics=None):
        self.event_logger = event_logger
        self.http = http or requests.Session()
        self.metrics = metrics

    def invoke(self, target: WebhookTarget, payload: Dict[str, Any], retry: bool = True,
               context: Optional[EventContext] = None,
               cancel_token: Optional[CancellationToken] = None,
               execution_id: Optional[int] = None,
               delivery_type: str = 'automation_step') -> InvocationResult:
        """Invoke ``target`` and return the outcome of the final attempt.

        Retries only when both ``retry`` and ``target.retry_enabled`` are set,
        issuing at most ``target.retry_count + 1`` HTTP calls. A cancelled
        token ends the backoff wait and stops retrying.
        """
        context = context or EventContext()
        token = cancel_token or CancellationToken()

        try:
            headers, data = self._build_request(target, payload, execution_id)
        except TemplateError as e:
            logger.warning(f"Webhook {target.id} payload could not be rendered: {e}",
                           webhook_id=target.id)
            self.event_logger.emit(
                'webhook_failed', WEBHOOK_ACTIVITY,
                f"Webhook {target.name} Error",
                f"Webhook {target.name} payload could not be rendered: {e}",
                {'webhook_id': target.id, 'webhook_name': target.name,
                 'error_message': str(e), 'success': False},
                context,
            )
            return InvocationResult(False, None, None, str(e), 0, attempts=0)

        self.event_logger.emit(
            'webhook_triggered', WEBHOOK_ACTIVITY,
            f"Webhook {target.name} Triggered",
            f"Webhook {target.name} ({target.method} {target.url}) was triggered",
            {
                'webhook_id': target.id,
                'webhook_name': target.name,
                'webhook_url': target.url,
                'webhook_method': target.method,
                'payload_size_bytes': len(data) if data else 0,
                'execution_id': execution_id,
            },
            context,
        )

        max_attempts = 1 + (target.retry_count if retry and target.retry_enabled else 0)
        attempt = 0
        while True:
            attempt += 1
            result = self._attempt(target, headers, data, attempt, max_attempts, context)
            if result.success or attempt >= max_attempts:
                break
            logger.info(f"Retrying webhook {target.id} in {target.retry_delay_seconds}s",
                        webhook_id=target.id, attempt=attempt, max_attempts=max_attempts)
            if token.wait(target.retry_delay_seconds):
                logger.info(f"Retries for webhook {target.id} cancelled", webhook_id=target.id)
                result.cancelled = True
                break

        result.attempts = attempt
        self.event_logger.record_delivery(
            webhook_id=target.id,
            event_type=delivery_type,
            payload=payload,
            success=result.success,
            attempt_count=attempt,
            response_status=result.status_code,
            response_body=result.response_body,
        )
        return result

    def _build_request(self, target: WebhookTarget, payload: Dict[str, Any],
                       execution_id: Optional[int]) -> Tuple[CaseInsensitiveDict, Optional[bytes]]:
        headers = CaseInsensitiveDict(DEFAULT_HEADERS)
        headers.update(target.headers)

        if target.method not in BODY_METHODS:
            return headers, None

        body = target.payload.render(payload or {}, execution_id=execution_id)
        if isinstance(body, str):
            return headers, body.encode('utf-8')
        return headers, json.dumps(body, default=str).encode('utf-8')

    def _attempt(self, target: WebhookTarget, headers: CaseInsensitiveDict, data: Optional[bytes],
                 attempt: int, max_attempts: int, context: EventContext) -> InvocationResult:
        started = time.monotonic()
        try:
            status_code, body = self._send(target, headers, data)
            elapsed_ms = int((time.monotonic() - started) * 1000)
            result = InvocationResult(True, status_code, body, None, elapsed_ms)
        except InvocationError as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            result = InvocationResult(False, e.status_code, e.response_body, str(e), elapsed_ms)

        if self.metrics is not None:
            self.metrics.record_webhook_attempt(result.success, elapsed_ms / 1000.0)
        logger.log_webhook_attempt(target.id, attempt, result.success,
                                   status_code=result.status_code, duration_ms=elapsed_ms)

        if result.success:
            description = f"Webhook {target.name} completed successfully in {elapsed_ms}ms"
        elif result.status_code is not None:
            description = f"Webhook {target.name} failed with status {result.status_code}"
        else:
            description = f"Webhook {target.name} failed with error: {result.error_message}"

        self.event_logger.emit(
            'webhook_succeeded' if result.success else 'webhook_failed',
            WEBHOOK_ACTIVITY,
            f"Webhook {target.name} {'Succeeded' if result.success else 'Failed'}",
            description,
            {
                'webhook_id': target.id,
                'webhook_name': target.name,
                'attempt': attempt,
                'max_attempts': max_attempts,
                'response_status': result.status_code,
                'response_time_ms': elapsed_ms,
                'error_message': result.error_message,
                'success': result.success,
            },
            context,
        )
        return result

    def _send(self, target: WebhookTarget, headers: CaseInsensitiveDict,
              data: Optional[bytes]) -> Tuple[int, str]:
        """Issue one HTTP call; raise InvocationError unless the status is 2xx."""
        try:
            response = self.http.request(
                target.method,
                target.url,
                headers=dict(headers),
                data=data,
                timeout=target.timeout_seconds,
            )
        except requests.Timeout as e:
            raise InvocationError(f"Request timed out after {target.timeout_seconds}s") from e
        except requests.RequestException as e:
            raise InvocationError(str(e) or e.__class__.__name__) from e

        if not 200 <= response.status_code <= 299:
            raise InvocationError(f"HTTP {response.status_code}",
                                  status_code=response.status_code,
                                  response_body=response.text)
        return response.status_code, response.text
