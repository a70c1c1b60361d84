# -*- coding: utf-8 -*-
"""
Service for managing Prometheus metrics.

Provides a centralized service for creating, registering, and collecting
metrics, plus middleware that records HTTP request metrics. Each app owns its
own registry so several apps (e.g. in tests) can coexist in one process.
"""

import time
from typing import Optional
from flask import Flask, request, g, current_app, has_app_context
from prometheus_client import CollectorRegistry, Counter, Histogram
from prometheus_client.exposition import generate_latest


def init_metrics(app: Flask) -> 'MetricsService':
    """Initialize metrics service and endpoints."""
    service = MetricsService(enabled=app.config.get("METRICS_ENABLED", True))
    app.extensions['metrics'] = service

    if service.enabled:
        @app.before_request
        def before_request():
            g.metrics_start_time = time.time()

        @app.after_request
        def after_request(response):
            start = getattr(g, 'metrics_start_time', None)
            if start is not None:
                service.record_http_request(
                    route=request.path,
                    method=request.method,
                    status_code=response.status_code,
                    duration_seconds=time.time() - start
                )
            return response

        @app.route("/metrics")
        def metrics():
            return generate_latest(service.registry), 200, {
                'Content-Type': 'text/plain; version=0.0.4; charset=utf-8'}

    return service


def get_metrics_service() -> Optional['MetricsService']:
    """Get the metrics service instance from the current app context."""
    if has_app_context():
        return current_app.extensions.get('metrics')
    return None


class MetricsService:
    """Service for managing Prometheus metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, enabled: bool = True):
        self.enabled = enabled
        self.registry = registry if registry is not None else CollectorRegistry()

        if self.enabled:
            self.http_requests_total = Counter(
                "sprkz_http_requests_total",
                "Total number of HTTP requests.",
                ["route", "method", "status"],
                registry=self.registry
            )
            self.http_request_duration_seconds = Histogram(
                "sprkz_http_request_duration_seconds",
                "Duration of HTTP requests in seconds.",
                ["route", "method"],
                registry=self.registry
            )
            self.automation_executions_total = Counter(
                "sprkz_automation_executions_total",
                "Total number of finished automation executions.",
                ["status"],
                registry=self.registry
            )
            self.webhook_attempts_total = Counter(
                "sprkz_webhook_attempts_total",
                "Total number of HTTP attempts against webhook targets.",
                ["outcome"],
                registry=self.registry
            )
            self.webhook_response_seconds = Histogram(
                "sprkz_webhook_response_seconds",
                "Webhook attempt duration in seconds.",
                registry=self.registry
            )

    def record_http_request(
            self,
            route: str,
            method: str,
            status_code: int,
            duration_seconds: float):
        """Record an HTTP request."""
        if self.enabled:
            normalized_route = self._normalize_route(route)
            self.http_requests_total.labels(
                route=normalized_route,
                method=method,
                status=status_code).inc()
            self.http_request_duration_seconds.labels(
                route=normalized_route, method=method).observe(duration_seconds)

    def record_execution(self, status: str):
        if self.enabled:
            self.automation_executions_total.labels(status=status).inc()

    def record_webhook_attempt(self, success: bool, duration_seconds: float):
        if self.enabled:
            self.webhook_attempts_total.labels(
                outcome="success" if success else "failure").inc()
            self.webhook_response_seconds.observe(duration_seconds)

    def get_metrics(self) -> str:
        """Get metrics data as text."""
        if self.enabled:
            return generate_latest(self.registry).decode('utf-8')
        return ""

    def _normalize_route(self, route: str) -> str:
        parts = route.split('/')
        for i, part in enumerate(parts):
            if part.isdigit():
                parts[i] = '{id}'
        return '/'.join(parts)
