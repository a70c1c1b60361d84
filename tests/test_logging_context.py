# -*- coding: utf-8 -*-
"""
Test suite for structured logging and request context propagation.

Tests request_id generation, the audit context captured from request headers,
structured logging format, and the health and metrics endpoints.
"""

import io
import json
import logging
import sys
import uuid

import pytest
from flask import Flask

from sprkz.services.event_logger import EventContext
from sprkz.services.request_context import (
    get_event_context, get_request_context, get_request_id, init_request_context
)
from sprkz.services.structured_logging import StructuredFormatter, StructuredLogger


@pytest.fixture
def bare_app():
    """Plain Flask app with only the request context middleware."""
    app = Flask(__name__)
    app.config['TESTING'] = True
    init_request_context(app)
    return app


class TestRequestContextMiddleware:

    def test_request_id_generated_and_returned(self, bare_app):
        @bare_app.route('/probe')
        def probe():
            return {'request_id': get_request_id()}

        response = bare_app.test_client().get('/probe')

        request_id = response.get_json()['request_id']
        uuid.UUID(request_id)
        assert response.headers['X-Request-ID'] == request_id
        assert response.headers['X-Response-Time'].endswith('ms')

    def test_valid_incoming_request_id_is_kept(self, bare_app):
        incoming = str(uuid.uuid4())

        @bare_app.route('/probe')
        def probe():
            return {'request_id': get_request_id()}

        response = bare_app.test_client().get('/probe', headers={'X-Request-ID': incoming})

        assert response.get_json()['request_id'] == incoming

    def test_invalid_incoming_request_id_is_replaced(self, bare_app):
        @bare_app.route('/probe')
        def probe():
            return {'request_id': get_request_id()}

        response = bare_app.test_client().get('/probe', headers={'X-Request-ID': 'not-a-uuid'})

        assert response.get_json()['request_id'] != 'not-a-uuid'

    def test_event_context_from_headers(self, bare_app):
        captured = {}

        @bare_app.route('/probe')
        def probe():
            captured['context'] = get_event_context()
            captured['explicit'] = get_event_context(session_id='from-body', user_id='u-1')
            captured['log'] = get_request_context()
            return {}

        bare_app.test_client().get('/probe', headers={
            'X-Session-ID': 'from-header', 'User-Agent': 'pytest-agent'})

        assert captured['context'].session_id == 'from-header'
        assert captured['context'].user_agent == 'pytest-agent'
        assert captured['explicit'].session_id == 'from-body'
        assert captured['explicit'].user_id == 'u-1'
        assert captured['log']['session_id'] == 'from-header'
        assert captured['log']['path'] == '/probe'

    def test_event_context_outside_request(self):
        assert get_event_context(session_id='s') == EventContext(session_id='s')


class TestStructuredFormatter:

    def _record(self, **kwargs):
        fields = dict(name='sprkz.engine', level=logging.INFO, pathname='engine.py', lineno=42,
                      msg='Execution 1 completed', args=(), exc_info=None)
        fields.update(kwargs)
        return logging.LogRecord(**fields)

    def test_json_formatting(self):
        data = json.loads(StructuredFormatter(json_enabled=True).format(self._record()))

        assert data['level'] == 'INFO'
        assert data['logger'] == 'sprkz.engine'
        assert data['message'] == 'Execution 1 completed'
        assert data['line'] == 42
        assert 'timestamp' in data

    def test_plain_formatting(self):
        formatted = StructuredFormatter(json_enabled=False).format(self._record())

        assert formatted == 'Execution 1 completed'

    def test_extra_fields_included(self):
        record = self._record()
        record.extra_fields = {'execution_id': 7, 'automation_id': 3}

        data = json.loads(StructuredFormatter(json_enabled=True).format(record))

        assert data['execution_id'] == 7
        assert data['automation_id'] == 3

    def test_exception_formatting(self):
        try:
            raise ValueError("Test exception")
        except ValueError:
            record = self._record(level=logging.ERROR, exc_info=sys.exc_info())

        data = json.loads(StructuredFormatter(json_enabled=True).format(record))

        assert 'ValueError' in data['exception']


class TestStructuredLogger:

    @pytest.fixture
    def captured(self):
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter(json_enabled=True))
        logger = StructuredLogger('sprkz.test')
        logger.logger.addHandler(handler)
        logger.logger.setLevel(logging.DEBUG)
        yield logger, stream
        logger.logger.removeHandler(handler)

    def _lines(self, stream):
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    def test_keyword_fields_become_json_fields(self, captured):
        logger, stream = captured

        logger.info('Created webhook 1', webhook_id=1)

        assert self._lines(stream)[0]['webhook_id'] == 1

    def test_webhook_attempt_levels(self, captured):
        logger, stream = captured

        logger.log_webhook_attempt(5, 1, False, status_code=500, duration_ms=12)
        logger.log_webhook_attempt(5, 2, True, status_code=200, duration_ms=8)

        failed, succeeded = self._lines(stream)
        assert failed['level'] == 'WARNING'
        assert failed['event_type'] == 'webhook_attempt'
        assert failed['status_code'] == 500
        assert succeeded['level'] == 'INFO'

    def test_request_line_level_follows_status(self, captured):
        logger, stream = captured

        logger.log_request('GET', '/api/admin/webhooks', 200, 3.1)
        logger.log_request('POST', '/api/admin/automations/1/execute', 503, 40.0)

        ok, broken = self._lines(stream)
        assert ok['level'] == 'INFO'
        assert ok['event_type'] == 'request'
        assert broken['level'] == 'ERROR'
        assert broken['status_code'] == 503

    def test_execution_events(self, captured):
        logger, stream = captured

        logger.log_execution_event('failed', 11, 2, error_message='HTTP 500')

        line = self._lines(stream)[0]
        assert line['level'] == 'WARNING'
        assert line['transition'] == 'failed'
        assert line['execution_id'] == 11


class TestServiceEndpoints:

    def test_health(self, client):
        response = client.get('/api/health')

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'healthy'
        assert body['database'] == 'ok'

    def test_metrics_exposes_engine_counters(self, client, engine, fake_http, make_webhook, make_automation):
        automation = make_automation([{"webhook_id": make_webhook().id}])
        engine.execute(automation.id, {})

        response = client.get('/metrics')

        assert response.status_code == 200
        text = response.get_data(as_text=True)
        assert 'sprkz_automation_executions_total{status="completed"} 1.0' in text
        assert 'sprkz_webhook_attempts_total{outcome="success"} 1.0' in text
        assert 'sprkz_http_requests_total' in text

    def test_unknown_route_is_json(self, client):
        response = client.get('/api/admin/nothing-here')

        assert response.status_code == 404
        assert response.get_json()['error'] == 'not_found'
