"""
Webhook Routes

Admin endpoints for managing webhook definitions, probing them and viewing
their delivery history.
"""

from flask import Blueprint, jsonify

from sprkz.infra.db import db
from sprkz.routes import current_engine, json_body, limit_arg
from sprkz.services.request_context import get_event_context
from sprkz.services.structured_logging import get_logger
from sprkz.services.webhook_service import WebhookService

logger = get_logger("sprkz.webhooks")

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/admin/webhooks")


def _not_found(webhook_id: int):
    return jsonify({"error": "not_found", "message": f"Webhook {webhook_id} not found"}), 404


@webhooks_bp.route("", methods=["GET"])
def list_webhooks():
    webhooks = WebhookService(db.session).list_webhooks()
    return jsonify([wh.to_dict() for wh in webhooks]), 200


@webhooks_bp.route("", methods=["POST"])
def create_webhook():
    webhook = WebhookService(db.session).create_webhook(json_body())
    return jsonify(webhook.to_dict()), 201


@webhooks_bp.route("/<int:webhook_id>", methods=["GET"])
def get_webhook(webhook_id: int):
    webhook = WebhookService(db.session).get_webhook(webhook_id)
    if not webhook:
        return _not_found(webhook_id)
    return jsonify(webhook.to_dict()), 200


@webhooks_bp.route("/<int:webhook_id>", methods=["PUT"])
def update_webhook(webhook_id: int):
    webhook = WebhookService(db.session).update_webhook(webhook_id, json_body())
    if not webhook:
        return _not_found(webhook_id)
    return jsonify(webhook.to_dict()), 200


@webhooks_bp.route("/<int:webhook_id>", methods=["DELETE"])
def delete_webhook(webhook_id: int):
    if not WebhookService(db.session).delete_webhook(webhook_id):
        return _not_found(webhook_id)
    return "", 204


@webhooks_bp.route("/<int:webhook_id>/test", methods=["POST"])
def test_webhook(webhook_id: int):
    """Send one unretried request to the webhook using the submitted test payload"""
    if not WebhookService(db.session).get_webhook(webhook_id):
        return _not_found(webhook_id)

    payload = json_body().get("testPayload") or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "validation_error", "message": "testPayload must be an object"}), 400

    result = current_engine().test_webhook(webhook_id, payload, context=get_event_context())
    logger.info(f"Test of webhook {webhook_id} finished", webhook_id=webhook_id, success=result.success)
    return jsonify(result.to_dict()), 200


@webhooks_bp.route("/<int:webhook_id>/events", methods=["GET"])
def list_webhook_events(webhook_id: int):
    service = WebhookService(db.session)
    if not service.get_webhook(webhook_id):
        return _not_found(webhook_id)
    deliveries = service.list_deliveries(webhook_id, limit=limit_arg())
    return jsonify([event.to_dict() for event in deliveries]), 200
