"""
Tests for the webhook admin endpoints.
"""

import pytest

from sprkz.models import Automation, AutomationStep, SystemEvent, Webhook

VALID = {
    "name": "CRM sync",
    "url": "https://crm.example.com/hooks/lead",
    "method": "post",
    "headers": {"X-Api-Key": "secret"},
    "retry_count": 2,
    "retry_delay_seconds": 0,
    "timeout_seconds": 10,
}


def create(client, **overrides):
    body = dict(VALID, **overrides)
    return client.post("/api/admin/webhooks", json=body)


class TestWebhookCrud:

    def test_create_and_get(self, client):
        response = create(client)
        assert response.status_code == 201
        created = response.get_json()
        assert created["method"] == "POST"
        assert created["headers"] == {"X-Api-Key": "secret"}
        assert created["payload_type"] == "json"
        assert created["retry_enabled"] is True

        fetched = client.get(f"/api/admin/webhooks/{created['id']}").get_json()
        assert fetched == created

    def test_list_is_newest_first(self, client):
        first = create(client, name="first").get_json()
        second = create(client, name="second").get_json()

        listed = client.get("/api/admin/webhooks").get_json()

        assert [w["id"] for w in listed] == [second["id"], first["id"]]

    def test_update_changes_only_submitted_fields(self, client):
        webhook = create(client).get_json()

        response = client.put(f"/api/admin/webhooks/{webhook['id']}",
                              json={"is_active": False, "timeout_seconds": 3})

        assert response.status_code == 200
        updated = response.get_json()
        assert updated["is_active"] is False
        assert updated["timeout_seconds"] == 3
        assert updated["url"] == VALID["url"]

    def test_delete_removes_referencing_steps(self, client, app, fresh):
        webhook = create(client).get_json()
        other = create(client, name="other").get_json()
        automation = client.post("/api/admin/automations", json={
            "name": "Flow",
            "steps": [
                {"webhook_id": webhook["id"], "step_order": 1},
                {"webhook_id": other["id"], "step_order": 2},
            ],
        }).get_json()

        assert client.delete(f"/api/admin/webhooks/{webhook['id']}").status_code == 204

        assert fresh(Webhook).get(webhook["id"]) is None
        steps = fresh(AutomationStep).filter_by(automation_id=automation["id"]).all()
        assert [s.webhook_id for s in steps] == [other["id"]]
        assert fresh(Automation).get(automation["id"]) is not None

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/admin/webhooks/999"),
        ("put", "/api/admin/webhooks/999"),
        ("delete", "/api/admin/webhooks/999"),
        ("post", "/api/admin/webhooks/999/test"),
        ("get", "/api/admin/webhooks/999/events"),
    ])
    def test_unknown_webhook_is_404(self, client, method, path):
        response = getattr(client, method)(path, json={})
        assert response.status_code == 404
        assert response.get_json()["error"] == "not_found"


class TestWebhookValidation:

    @pytest.mark.parametrize("overrides", [
        {"url": "ftp://files.example.com/drop"},
        {"url": "not a url"},
        {"method": "TRACE"},
        {"retry_count": -1},
        {"retry_delay_seconds": -5},
        {"timeout_seconds": 0},
        {"headers": {"X-Count": 3}},
        {"payload_type": "xml"},
        {"payload_type": "json", "payload_template": "{broken"},
        {"name": ""},
    ])
    def test_rejects_invalid_definitions(self, client, overrides, fresh):
        response = create(client, **overrides)

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "validation_error"
        assert body["details"]
        assert fresh(Webhook).count() == 0

    def test_rejects_invalid_update(self, client):
        webhook = create(client).get_json()

        response = client.put(f"/api/admin/webhooks/{webhook['id']}", json={"url": "mailto:x@y.z"})

        assert response.status_code == 400

    def test_template_update_is_checked_against_stored_type(self, client, fresh):
        webhook = create(client, payload_template='{"email": "{{ email }}"}').get_json()

        response = client.put(f"/api/admin/webhooks/{webhook['id']}",
                              json={"payload_template": "{broken"})

        assert response.status_code == 400
        assert response.get_json()["details"][0]["field"] == "payload_template"
        assert fresh(Webhook).get(webhook["id"]).payload_template == '{"email": "{{ email }}"}'

    def test_type_update_is_checked_against_stored_template(self, client, fresh):
        webhook = create(client, payload_type="dynamic", payload_template="name={{ name }}").get_json()

        response = client.put(f"/api/admin/webhooks/{webhook['id']}", json={"payload_type": "json"})

        assert response.status_code == 400
        assert fresh(Webhook).get(webhook["id"]).payload_type == "dynamic"

    def test_valid_template_update(self, client):
        webhook = create(client).get_json()

        response = client.put(f"/api/admin/webhooks/{webhook['id']}",
                              json={"payload_template": '{"lead": "{{ email }}"}'})

        assert response.status_code == 200
        assert response.get_json()["payload_template"] == '{"lead": "{{ email }}"}'

    def test_rejects_non_object_body(self, client):
        response = client.post("/api/admin/webhooks", json=["not", "an", "object"])
        assert response.status_code == 400

    def test_dynamic_template_is_not_parsed_as_json(self, client):
        response = create(client, payload_type="dynamic", payload_template="name={{ name }}")
        assert response.status_code == 201


class TestWebhookProbeEndpoint:

    def test_probe_reports_result_and_history(self, client, fake_http):
        webhook = create(client).get_json()
        fake_http.script(VALID["url"], 503)

        response = client.post(f"/api/admin/webhooks/{webhook['id']}/test",
                               json={"testPayload": {"lead": "ada@example.com"}},
                               headers={"X-Session-ID": "admin-session"})

        assert response.status_code == 200
        result = response.get_json()
        assert result["success"] is False
        assert result["status_code"] == 503
        assert result["attempts"] == 1
        assert len(fake_http.calls) == 1

        events = client.get(f"/api/admin/webhooks/{webhook['id']}/events").get_json()
        assert len(events) == 1
        assert events[0]["event_type"] == "test"
        assert events[0]["payload"] == {"lead": "ada@example.com"}

    def test_probe_events_carry_request_context(self, client, fake_http, fresh):
        webhook = create(client).get_json()

        client.post(f"/api/admin/webhooks/{webhook['id']}/test", json={},
                    headers={"X-Session-ID": "admin-session", "User-Agent": "pytest-agent"})

        events = fresh(SystemEvent).all()
        assert {e.event_type for e in events} == {"webhook_triggered", "webhook_succeeded"}
        assert {e.session_id for e in events} == {"admin-session"}
        assert {e.user_agent for e in events} == {"pytest-agent"}
