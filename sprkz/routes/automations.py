"""
Automation Routes

Admin endpoints for automation definitions, triggering runs and browsing
execution history.
"""

from flask import Blueprint, jsonify

from sprkz.infra.db import db
from sprkz.routes import current_engine, json_body, limit_arg
from sprkz.services.automation_service import AutomationService
from sprkz.services.request_context import get_event_context
from sprkz.services.structured_logging import get_logger

logger = get_logger("sprkz.automations")

automations_bp = Blueprint("automations", __name__, url_prefix="/api/admin")


def _not_found(kind: str, object_id: int):
    return jsonify({"error": "not_found", "message": f"{kind} {object_id} not found"}), 404


@automations_bp.route("/automations", methods=["GET"])
def list_automations():
    automations = AutomationService(db.session).list_automations()
    return jsonify([automation.to_dict() for automation in automations]), 200


@automations_bp.route("/automations", methods=["POST"])
def create_automation():
    automation = AutomationService(db.session).create_automation(json_body())
    return jsonify(automation.to_dict(include_steps=True)), 201


@automations_bp.route("/automations/<int:automation_id>", methods=["GET"])
def get_automation(automation_id: int):
    automation = AutomationService(db.session).get_automation(automation_id)
    if not automation:
        return _not_found("Automation", automation_id)
    return jsonify(automation.to_dict(include_steps=True)), 200


@automations_bp.route("/automations/<int:automation_id>", methods=["PUT"])
def update_automation(automation_id: int):
    automation = AutomationService(db.session).update_automation(automation_id, json_body())
    if not automation:
        return _not_found("Automation", automation_id)
    return jsonify(automation.to_dict(include_steps=True)), 200


@automations_bp.route("/automations/<int:automation_id>", methods=["DELETE"])
def delete_automation(automation_id: int):
    if not AutomationService(db.session).delete_automation(automation_id):
        return _not_found("Automation", automation_id)
    return "", 204


@automations_bp.route("/automations/<int:automation_id>/execute", methods=["POST"])
def execute_automation(automation_id: int):
    """Run an automation.

    Body: ``{"triggerData": {...}, "async": false}``. Synchronous runs answer
    with the run's result; asynchronous runs answer 202 with the execution id
    as soon as the execution row exists.
    """
    if not AutomationService(db.session).get_automation(automation_id):
        return _not_found("Automation", automation_id)
    body = json_body()
    trigger_data = body.get("triggerData") or {}
    if not isinstance(trigger_data, dict):
        return jsonify({"error": "validation_error", "message": "triggerData must be an object"}), 400

    engine = current_engine()
    context = get_event_context()

    if body.get("async"):
        handle = engine.start(automation_id, trigger_data, context=context)
        return jsonify({"execution_id": handle.execution_id, "status": "running"}), 202

    result = engine.execute(automation_id, trigger_data, context=context)
    if result.execution_id is None:
        return jsonify(result.to_dict()), 409
    return jsonify(result.to_dict()), 200


@automations_bp.route("/automations/<int:automation_id>/executions", methods=["GET"])
def list_executions(automation_id: int):
    executions = AutomationService(db.session).list_executions(automation_id, limit=limit_arg())
    return jsonify([execution.to_dict() for execution in executions]), 200


@automations_bp.route("/automations/<int:automation_id>/step-executions", methods=["GET"])
def list_step_executions(automation_id: int):
    rows = AutomationService(db.session).list_step_executions(automation_id, limit=limit_arg())
    return jsonify([row.to_dict() for row in rows]), 200


@automations_bp.route("/executions/<int:execution_id>", methods=["GET"])
def get_execution(execution_id: int):
    execution = AutomationService(db.session).get_execution(execution_id)
    if not execution:
        return _not_found("Execution", execution_id)
    data = execution.to_dict(include_steps=True)
    data["is_running"] = execution_id in current_engine().running_executions()
    return jsonify(data), 200


@automations_bp.route("/executions/<int:execution_id>/cancel", methods=["POST"])
def cancel_execution(execution_id: int):
    if current_engine().cancel(execution_id):
        return jsonify({"execution_id": execution_id, "cancelled": True}), 202

    execution = AutomationService(db.session).get_execution(execution_id)
    if not execution:
        return _not_found("Execution", execution_id)
    return jsonify({
        "error": "not_running",
        "message": f"Execution {execution_id} is not running",
        "status": execution.status,
    }), 409
