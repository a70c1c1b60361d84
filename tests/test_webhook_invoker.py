"""
Test suite for the webhook invoker.

Covers success, non-2xx and transport failures, timeouts, the retry bound,
cancellation of the backoff, request shaping and the events it reports.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import FakeHttp, FakeResponse
from sprkz.services.cancellation import CancellationToken
from sprkz.services.event_logger import EventContext
from sprkz.services.payload_template import PayloadTemplate
from sprkz.services.webhook_invoker import WebhookInvoker, WebhookTarget

URL = "https://hooks.example.com/orders"


def make_target(**overrides):
    fields = dict(id=7, name="Orders", url=URL, method="POST", retry_enabled=False,
                  retry_count=0, retry_delay_seconds=0, timeout_seconds=5)
    fields.update(overrides)
    return WebhookTarget(**fields)


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def event_logger():
    return MagicMock()


@pytest.fixture
def invoker(http, event_logger):
    return WebhookInvoker(event_logger, http=http)


def emitted_types(event_logger):
    return [call.args[0] for call in event_logger.emit.call_args_list]


class TestSingleAttempt:

    def test_success_returns_status_and_body(self, invoker, http):
        http.script(URL, FakeResponse(201, '{"id": 1}'))

        result = invoker.invoke(make_target(), {"order": 1})

        assert result.success is True
        assert result.status_code == 201
        assert result.response_body == '{"id": 1}'
        assert result.error_message is None
        assert result.attempts == 1
        assert len(http.calls) == 1

    def test_non_2xx_is_a_failure_with_response_captured(self, invoker, http):
        http.script(URL, FakeResponse(500, "boom"))

        result = invoker.invoke(make_target(), {})

        assert result.success is False
        assert result.status_code == 500
        assert result.response_body == "boom"
        assert result.error_message == "HTTP 500"

    def test_redirect_status_is_not_success(self, invoker, http):
        http.script(URL, FakeResponse(302, ""))

        assert invoker.invoke(make_target(), {}).success is False

    def test_timeout_reports_configured_timeout(self, invoker, http):
        http.script(URL, requests.Timeout("read timed out"))

        result = invoker.invoke(make_target(timeout_seconds=3), {})

        assert result.success is False
        assert result.status_code is None
        assert result.error_message == "Request timed out after 3s"
        assert http.calls[0].timeout == 3

    def test_connection_error_is_a_failure(self, invoker, http):
        http.script(URL, requests.ConnectionError("connection refused"))

        result = invoker.invoke(make_target(), {})

        assert result.success is False
        assert "connection refused" in result.error_message


class TestRetries:

    def test_retries_until_success(self, invoker, http):
        http.script(URL, 503, 503, 200)

        result = invoker.invoke(make_target(retry_enabled=True, retry_count=2), {})

        assert result.success is True
        assert result.attempts == 3
        assert len(http.calls) == 3

    @pytest.mark.parametrize("retry_count", [0, 1, 3])
    def test_never_exceeds_retry_count_plus_one(self, invoker, http, retry_count):
        http.script(URL, 500)

        result = invoker.invoke(make_target(retry_enabled=True, retry_count=retry_count), {})

        assert result.success is False
        assert len(http.calls) == retry_count + 1
        assert result.attempts == retry_count + 1

    def test_retry_disabled_on_webhook_means_single_call(self, invoker, http):
        http.script(URL, 500)

        invoker.invoke(make_target(retry_enabled=False, retry_count=5), {})

        assert len(http.calls) == 1

    def test_retry_false_overrides_webhook_policy(self, invoker, http):
        http.script(URL, 500)

        invoker.invoke(make_target(retry_enabled=True, retry_count=5), {}, retry=False)

        assert len(http.calls) == 1

    def test_backoff_waits_on_the_token(self, invoker, http):
        http.script(URL, 500, 200)
        token = CancellationToken()

        with patch.object(CancellationToken, "wait", return_value=False) as wait:
            invoker.invoke(make_target(retry_enabled=True, retry_count=1, retry_delay_seconds=30),
                           {}, cancel_token=token)

        wait.assert_called_once_with(30)

    def test_uncancelled_failure_is_not_flagged(self, invoker, http):
        http.script(URL, 500)

        result = invoker.invoke(make_target(retry_enabled=True, retry_count=1, retry_delay_seconds=0), {})

        assert result.success is False
        assert result.cancelled is False

    def test_cancelled_token_stops_retrying(self, invoker, http):
        http.script(URL, 500)
        token = CancellationToken()
        token.cancel()

        result = invoker.invoke(make_target(retry_enabled=True, retry_count=4, retry_delay_seconds=30),
                                {}, cancel_token=token)

        assert result.success is False
        assert len(http.calls) == 1
        assert result.cancelled is True
        assert result.status_code == 500


class TestRequestShape:

    def test_default_content_type_and_custom_headers(self, invoker, http):
        target = make_target(headers={"Authorization": "Bearer abc", "content-type": "text/plain"})

        invoker.invoke(target, {})

        headers = http.calls[0].headers
        assert headers["Authorization"] == "Bearer abc"
        content_types = [v for k, v in headers.items() if k.lower() == "content-type"]
        assert content_types == ["text/plain"]

    def test_trigger_data_is_sent_as_json_without_template(self, invoker, http):
        invoker.invoke(make_target(), {"email": "a@example.com"})

        assert json.loads(http.calls[0].data) == {"email": "a@example.com"}

    def test_json_template_is_rendered(self, invoker, http):
        target = make_target(payload=PayloadTemplate("json", '{"to": "{{ email }}", "n": "{{ count }}"}'))

        invoker.invoke(target, {"email": "a@example.com", "count": 3})

        assert json.loads(http.calls[0].data) == {"to": "a@example.com", "n": 3}

    def test_get_requests_carry_no_body(self, invoker, http):
        invoker.invoke(make_target(method="GET"), {"ignored": True})

        assert http.calls[0].method == "GET"
        assert http.calls[0].data is None

    def test_invalid_template_fails_without_calling_target(self, invoker, http, event_logger):
        target = make_target(payload=PayloadTemplate("json", "{not json"))

        result = invoker.invoke(target, {})

        assert result.success is False
        assert result.attempts == 0
        assert "not valid JSON" in result.error_message
        assert http.calls == []
        assert emitted_types(event_logger) == ["webhook_failed"]


class TestReporting:

    def test_emits_triggered_then_one_event_per_attempt(self, invoker, http, event_logger):
        http.script(URL, 500, 200)

        invoker.invoke(make_target(retry_enabled=True, retry_count=1), {})

        assert emitted_types(event_logger) == [
            "webhook_triggered", "webhook_failed", "webhook_succeeded"]

    def test_context_is_attached_to_events(self, invoker, event_logger):
        context = EventContext(session_id="sess-1", user_agent="pytest", ip_address="127.0.0.1")

        invoker.invoke(make_target(), {}, context=context)

        for call in event_logger.emit.call_args_list:
            assert call.args[5] == context

    def test_records_one_delivery_per_invocation(self, invoker, http, event_logger):
        http.script(URL, 500, 500, 200)

        invoker.invoke(make_target(retry_enabled=True, retry_count=2), {"a": 1}, delivery_type="test")

        event_logger.record_delivery.assert_called_once()
        kwargs = event_logger.record_delivery.call_args.kwargs
        assert kwargs["webhook_id"] == 7
        assert kwargs["event_type"] == "test"
        assert kwargs["success"] is True
        assert kwargs["attempt_count"] == 3

    def test_metrics_recorded_per_attempt(self, http, event_logger):
        metrics = MagicMock()
        invoker = WebhookInvoker(event_logger, http=http, metrics=metrics)
        http.script(URL, 500, 200)

        invoker.invoke(make_target(retry_enabled=True, retry_count=1), {})

        outcomes = [call.args[0] for call in metrics.record_webhook_attempt.call_args_list]
        assert outcomes == [False, True]
