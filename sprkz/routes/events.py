"""
Event Routes

Browse the audit log and accept client-side events.
"""

from datetime import datetime

from flask import Blueprint, jsonify, request

from sprkz.errors import DefinitionError
from sprkz.infra.db import db
from sprkz.routes import current_event_logger, json_body
from sprkz.services.event_service import EventService
from sprkz.services.request_context import get_event_context

events_bp = Blueprint("events", __name__, url_prefix="/api")

REQUIRED_FIELDS = ("event_type", "event_category", "event_name", "description")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise DefinitionError(f"{name} must be an ISO-8601 date")


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        raise DefinitionError(f"{name} must be an integer")


@events_bp.route("/admin/events", methods=["GET"])
def list_events():
    events = EventService(db.session).list_events(
        event_type=request.args.get("event_type"),
        event_category=request.args.get("event_category"),
        start_date=_date_arg("start_date"),
        end_date=_date_arg("end_date"),
        search=request.args.get("search"),
        user_id=request.args.get("user_id"),
        session_id=request.args.get("session_id"),
        limit=_int_arg("limit", 100),
        offset=_int_arg("offset", 0),
    )
    return jsonify([event.to_dict() for event in events]), 200


@events_bp.route("/admin/events/summary", methods=["GET"])
def events_summary():
    return jsonify(EventService(db.session).summary()), 200


@events_bp.route("/events/log", methods=["POST"])
def log_event():
    """Record an event reported by a client (page views, form submissions, errors)"""
    data = json_body()
    missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
    if missing:
        return jsonify({
            "error": "validation_error",
            "message": f"Missing required fields: {', '.join(missing)}",
        }), 400

    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        return jsonify({"error": "validation_error", "message": "metadata must be an object"}), 400

    context = get_event_context(session_id=data.get("session_id"), user_id=data.get("user_id"))
    event_logger = current_event_logger()
    event_id = event_logger.emit(
        str(data["event_type"]),
        str(data["event_category"]),
        str(data["event_name"]),
        str(data["description"]),
        metadata,
        context,
    )
    event_logger.touch_session(context.session_id, context.user_agent, context.ip_address)

    if event_id is None:
        return jsonify({"error": "database_error", "message": "Event could not be recorded"}), 503
    return jsonify({"id": event_id}), 201
