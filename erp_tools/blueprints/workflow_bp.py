"""
Workflow blueprint: one REST surface for every workflow module.

``<module>`` is ``requests`` (purchase requests), ``planner`` (production
orders) or ``dispatch`` (dispatch assignments).

Endpoint groups:
  Entities         GET/POST /api/v1/<module>/entities
                   GET/PUT  /api/v1/<module>/entities/<id>
  Status machine   POST     /api/v1/<module>/entities/<id>/status
  Pending actions  POST     /api/v1/<module>/entities/<id>/pending-action
                   POST     /api/v1/<module>/entities/<id>/pending-action/resolve
  Modifications    POST     /api/v1/<module>/entities/<id>/confirm-modification
  Notes            POST     /api/v1/<module>/entities/<id>/notes
  Planning         PATCH    /api/v1/<module>/entities/<id>/planning
  History          GET      /api/v1/<module>/entities/<id>/history
  Reports          GET      /api/v1/<module>/reports/completed?date_from=&date_to=
  Cost analysis    POST     /api/v1/requests/entities/<id>/cost-analysis

The acting user comes from the JSON ``actor`` field or the ``X-Actor``
header.  The service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from erp_tools.blueprints import bool_arg, pagination_args, register_error_handlers
from erp_tools.services import purchase_request_service
from erp_tools.services import workflow_service as wf
from erp_tools.utils.errors import E, api_error
from erp_tools.utils.helpers import request_actor

logger = logging.getLogger(__name__)

workflow_bp = register_error_handlers(Blueprint("workflow", __name__, url_prefix="/api/v1"))

# Request keys that are not entity fields
_CONTROL_KEYS = {"actor"}


def _actor_required():
    actor = request_actor()
    if not actor:
        return None, api_error(E.VALIDATION_REQUIRED, "actor is required")
    return actor, None


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ═════════════════════════════════════════════════════════════════════════
# Entities
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/<module>/entities", methods=["GET"])
def list_entities(module):
    """Active (default) or archived partition, newest first.

    Query params: archived, page, page_size, search, status (repeatable), requested_by
    """
    page, page_size = pagination_args()
    result = wf.list_entities(
        module,
        archived=bool_arg("archived"),
        page=page,
        page_size=page_size,
        search=request.args.get("search") or None,
        statuses=request.args.getlist("status") or None,
        requested_by=request.args.get("requested_by") or None,
    )
    return jsonify(result), 200


@workflow_bp.route("/<module>/entities", methods=["POST"])
def create_entity(module):
    actor, err = _actor_required()
    if err:
        return err
    payload = {k: v for k, v in _body().items() if k not in _CONTROL_KEYS}
    return jsonify(wf.create_entity(module, payload, actor)), 201


@workflow_bp.route("/<module>/entities/<int:entity_id>", methods=["GET"])
def get_entity(module, entity_id):
    return jsonify(wf.get_entity(module, entity_id)), 200


@workflow_bp.route("/<module>/entities/<int:entity_id>", methods=["PUT"])
def update_details(module, entity_id):
    """Edit entity fields.

    Body: {actor, expected_status?, <field>: <value>, ...}
    """
    actor, err = _actor_required()
    if err:
        return err
    data = _body()
    expected = data.pop("expected_status", None)
    changes = {k: v for k, v in data.items() if k not in _CONTROL_KEYS}
    return jsonify(wf.update_details(module, entity_id, changes, actor, expected_status=expected)), 200


@workflow_bp.route("/<module>/entities/<int:entity_id>/history", methods=["GET"])
def get_history(module, entity_id):
    history = wf.get_history(module, entity_id)
    return jsonify({"items": history, "total": len(history)}), 200


# ═════════════════════════════════════════════════════════════════════════
# Status machine
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/<module>/entities/<int:entity_id>/status", methods=["POST"])
def update_status(module, entity_id):
    """Move an entity to a new status.

    Body: {actor, status, notes?, reopen?, expected_status?, fields?}
    """
    actor, err = _actor_required()
    if err:
        return err
    data = _body()
    new_status = (data.get("status") or "").strip()
    if not new_status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    fields = data.get("fields")
    if fields is not None and not isinstance(fields, dict):
        return api_error(E.VALIDATION_INVALID, "fields must be an object")

    entity = wf.update_status(
        module, entity_id, new_status, actor, data.get("notes"),
        reopen=bool(data.get("reopen")),
        expected_status=data.get("expected_status"),
        extra_fields=fields,
    )
    return jsonify(entity), 200


@workflow_bp.route("/<module>/entities/<int:entity_id>/pending-action", methods=["POST"])
def request_action(module, entity_id):
    """Body: {actor, action: "unapproval-request"|"cancellation-request", notes?}"""
    actor, err = _actor_required()
    if err:
        return err
    data = _body()
    action = (data.get("action") or "").strip()
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required")
    entity = wf.request_action(
        module, entity_id, action, actor, data.get("notes"),
        expected_status=data.get("expected_status"),
    )
    return jsonify(entity), 200


@workflow_bp.route("/<module>/entities/<int:entity_id>/pending-action/resolve", methods=["POST"])
def resolve_action(module, entity_id):
    """Body: {actor, grant: bool, notes?, target_status?}"""
    actor, err = _actor_required()
    if err:
        return err
    data = _body()
    if not isinstance(data.get("grant"), bool):
        return api_error(E.VALIDATION_REQUIRED, "grant (boolean) is required")
    entity = wf.resolve_action(
        module, entity_id, data["grant"], actor, data.get("notes"),
        target_status=data.get("target_status"),
    )
    return jsonify(entity), 200


@workflow_bp.route("/<module>/entities/<int:entity_id>/confirm-modification", methods=["POST"])
def confirm_modification(module, entity_id):
    actor, err = _actor_required()
    if err:
        return err
    return jsonify(wf.confirm_modification(module, entity_id, actor)), 200


@workflow_bp.route("/<module>/entities/<int:entity_id>/notes", methods=["POST"])
def add_note(module, entity_id):
    actor, err = _actor_required()
    if err:
        return err
    notes = (_body().get("notes") or "").strip()
    if not notes:
        return api_error(E.VALIDATION_REQUIRED, "notes is required")
    return jsonify(wf.add_note(module, entity_id, notes, actor)), 201


@workflow_bp.route("/<module>/entities/<int:entity_id>/planning", methods=["PATCH"])
def update_planning(module, entity_id):
    actor, err = _actor_required()
    if err:
        return err
    changes = {k: v for k, v in _body().items() if k not in _CONTROL_KEYS}
    return jsonify(wf.update_planning_fields(module, entity_id, changes, actor)), 200


# ═════════════════════════════════════════════════════════════════════════
# Reports & module-specific
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/<module>/reports/completed", methods=["GET"])
def completed_report(module):
    """Entities that reached a completion status in [date_from, date_to], with history."""
    items = wf.get_completed_in_range(module, request.args.get("date_from"), request.args.get("date_to"))
    return jsonify({"items": items, "total": len(items)}), 200


@workflow_bp.route("/requests/entities/<int:entity_id>/cost-analysis", methods=["POST"])
def save_cost_analysis(entity_id):
    """Body: {actor, cost, sale_price}"""
    actor, err = _actor_required()
    if err:
        return err
    data = _body()
    if data.get("cost") is None or data.get("sale_price") is None:
        return api_error(E.VALIDATION_REQUIRED, "cost and sale_price are required")
    result = purchase_request_service.save_cost_analysis(entity_id, data["cost"], data["sale_price"], actor)
    return jsonify(result), 200
