"""
Tests for the event log endpoints.
"""

from sprkz.models import EventSession, SystemEvent

EVENT = {
    "event_type": "form_submitted",
    "event_category": "user_activity",
    "event_name": "Signup Form",
    "description": "Visitor submitted the signup form",
    "metadata": {"form": "signup"},
}


class TestLogEndpoint:

    def test_log_event_with_body_session(self, client, fresh):
        response = client.post("/api/events/log", json=dict(EVENT, session_id="visitor-1", user_id="u-9"),
                               headers={"User-Agent": "pytest-agent"})

        assert response.status_code == 201
        row = fresh(SystemEvent).get(response.get_json()["id"])
        assert row.session_id == "visitor-1"
        assert row.user_id == "u-9"
        assert row.user_agent == "pytest-agent"
        assert row.event_metadata == {"form": "signup"}
        assert fresh(EventSession).one().total_events == 1

    def test_header_session_is_used_when_body_has_none(self, client, fresh):
        client.post("/api/events/log", json=EVENT, headers={"X-Session-ID": "visitor-2"})
        client.post("/api/events/log", json=EVENT, headers={"X-Session-ID": "visitor-2"})

        assert fresh(EventSession).one().total_events == 2

    def test_missing_fields(self, client):
        response = client.post("/api/events/log", json={"event_type": "x"})

        assert response.status_code == 400
        assert "event_category" in response.get_json()["message"]

    def test_metadata_must_be_object(self, client):
        response = client.post("/api/events/log", json=dict(EVENT, metadata=[1, 2]))
        assert response.status_code == 400


class TestAdminEvents:

    def test_listing_filters(self, client):
        client.post("/api/events/log", json=EVENT)
        client.post("/api/events/log", json=dict(EVENT, event_type="page_view", event_name="Pricing"))

        everything = client.get("/api/admin/events").get_json()
        views = client.get("/api/admin/events?event_type=page_view").get_json()
        searched = client.get("/api/admin/events?search=signup").get_json()

        assert len(everything) == 2
        assert [e["event_name"] for e in views] == ["Pricing"]
        assert [e["event_type"] for e in searched] == ["page_view", "form_submitted"]

    def test_bad_date_filter(self, client):
        assert client.get("/api/admin/events?start_date=yesterday").status_code == 400

    def test_bad_limit(self, client):
        assert client.get("/api/admin/events?limit=lots").status_code == 400

    def test_summary(self, client):
        client.post("/api/events/log", json=dict(EVENT, session_id="s-1"))
        client.post("/api/events/log", json=dict(EVENT, event_type="javascript_error",
                                                 event_category="error_tracking", session_id="s-1"))

        summary = client.get("/api/admin/events/summary").get_json()

        assert summary["total_events"] == 2
        assert summary["events_today"] == 2
        assert summary["top_sessions"] == [{"session_id": "s-1", "event_count": 2}]
        assert [e["event_type"] for e in summary["recent_errors"]] == ["javascript_error"]
