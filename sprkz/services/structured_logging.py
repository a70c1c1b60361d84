"""
Structured JSON logging service for the Sprkz automation API.

Provides structured logging with:
- JSON format output when enabled
- Request context integration (request_id, session id)
- Consistent log structure across the engine, invoker and routes

Logs include: timestamp, level, message, request_id, method, path, status,
duration_ms, and whatever keyword fields the call site passes.
"""

import os
import json
import logging
import time
from datetime import datetime, timezone
from flask import Flask, has_request_context


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def __init__(self, json_enabled: bool = True):
        super().__init__()
        self.json_enabled = json_enabled

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON or plain text."""
        if not self.json_enabled:
            return super().format(record)

        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'thread': record.threadName,
        }

        if has_request_context():
            from sprkz.services.request_context import get_request_context
            log_entry.update(get_request_context())

        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class StructuredLogger:
    """Structured logger with request context integration."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _log_with_context(self, level: int, message: str, exc_info=None, **kwargs):
        """Log message with additional context."""
        extra_fields = kwargs.copy()

        if 'request_id' not in extra_fields and has_request_context():
            from sprkz.services.request_context import get_request_id
            extra_fields['request_id'] = get_request_id()

        self.logger.log(level, message, exc_info=exc_info, extra={'extra_fields': extra_fields})

    def debug(self, message: str, **kwargs):
        self._log_with_context(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log_with_context(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log_with_context(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log_with_context(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log an error with the active exception's traceback."""
        self._log_with_context(logging.ERROR, message, exc_info=True, **kwargs)

    def log_request(self, method: str, path: str, status_code: int, duration_ms: float, **kwargs):
        """One line per admin request; 5xx answers are logged as errors."""
        level = logging.ERROR if status_code >= 500 else logging.INFO
        self._log_with_context(
            level,
            f"{method} {path} -> {status_code} in {duration_ms}ms",
            event_type='request',
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=duration_ms,
            **kwargs
        )

    def log_webhook_attempt(self, webhook_id: int, attempt: int, success: bool,
                            status_code=None, duration_ms: float = 0, **kwargs):
        """Log the outcome of one HTTP attempt against a webhook target."""
        level = logging.INFO if success else logging.WARNING
        self._log_with_context(
            level,
            f"Webhook {webhook_id} attempt {attempt} {'succeeded' if success else 'failed'}",
            event_type='webhook_attempt',
            webhook_id=webhook_id,
            attempt=attempt,
            success=success,
            status_code=status_code,
            duration_ms=duration_ms,
            **kwargs
        )

    def log_execution_event(self, transition: str, execution_id, automation_id, **kwargs):
        """Log an execution lifecycle transition."""
        level = logging.WARNING if transition == 'failed' else logging.INFO
        self._log_with_context(
            level,
            f"Execution {execution_id} of automation {automation_id} {transition}",
            event_type='execution',
            transition=transition,
            execution_id=execution_id,
            automation_id=automation_id,
            **kwargs
        )


def get_logger(name: str) -> StructuredLogger:
    """Get structured logger instance."""
    return StructuredLogger(name)


def configure_logging(app: Flask):
    """Configure structured logging for Flask application."""
    json_enabled = app.config.get(
        'LOG_JSON', os.environ.get('SPRKZ_LOG_JSON', 'true').lower() == 'true')
    log_level = app.config.get('LOG_LEVEL', os.environ.get('LOG_LEVEL', 'INFO')).upper()
    level = getattr(logging, log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(StructuredFormatter(json_enabled=json_enabled))
    root_logger.addHandler(console_handler)

    app.logger.setLevel(level)

    loggers_to_configure = [
        'sprkz.engine',
        'sprkz.webhooks',
        'sprkz.automations',
        'sprkz.events',
        'sprkz.requests',
    ]

    for logger_name in loggers_to_configure:
        logging.getLogger(logger_name).setLevel(level)

    get_logger('sprkz.config').info(
        "Logging configured",
        json_enabled=json_enabled,
        log_level=log_level,
        loggers_configured=loggers_to_configure
    )


class LoggingMiddleware:
    """Logs each finished request; probes and scrapes stay out of the log."""

    QUIET_PATHS = ('/api/health', '/metrics')

    def __init__(self, app: Flask):
        self.logger = get_logger('sprkz.requests')
        app.after_request(self._after_request)

    def _after_request(self, response):
        from flask import request, g

        if request.path in self.QUIET_PATHS:
            return response

        started = getattr(g, 'request_start_time', None)
        duration_ms = round((time.time() - started) * 1000, 2) if started else 0

        self.logger.log_request(
            request.method,
            request.path,
            response.status_code,
            duration_ms,
            remote_addr=request.remote_addr,
            session_id=request.headers.get('X-Session-ID'),
        )
        return response


def init_logging(app: Flask):
    """Initialize structured logging for Flask application."""
    configure_logging(app)
    LoggingMiddleware(app)

    get_logger('sprkz.startup').info(
        "Application starting",
        debug=app.debug,
        testing=app.testing
    )
