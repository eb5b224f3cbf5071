"""
Warehouse blueprint: dispatch containers and inventory units.

Dispatch assignments themselves go through the workflow blueprint
(``/api/v1/dispatch/entities``).

Endpoints:
    GET  /api/v1/dispatch/containers
    POST /api/v1/dispatch/containers                 body: {actor, name}
    GET  /api/v1/dispatch/containers/<id>            ?assignments=true
    POST /api/v1/dispatch/containers/<id>/lock       body: {actor}
    POST /api/v1/dispatch/containers/<id>/unlock     body: {actor, force?}
    POST /api/v1/warehouse/units                     body: {actor, product_id, ...}
    GET  /api/v1/warehouse/units/<id or unit code>
"""

import logging

from flask import Blueprint, jsonify, request

from erp_tools.blueprints import bool_arg, register_error_handlers
from erp_tools.services import dispatch_service, inventory_service
from erp_tools.utils.errors import E, api_error
from erp_tools.utils.helpers import request_actor

logger = logging.getLogger(__name__)

warehouse_bp = register_error_handlers(Blueprint("warehouse", __name__, url_prefix="/api/v1"))


def _actor_required():
    actor = request_actor()
    if not actor:
        return None, api_error(E.VALIDATION_REQUIRED, "actor is required")
    return actor, None


# ── Containers ────────────────────────────────────────────────────────────────


@warehouse_bp.route("/dispatch/containers", methods=["GET"])
def list_containers():
    items = dispatch_service.list_containers()
    return jsonify({"items": items, "total": len(items)}), 200


@warehouse_bp.route("/dispatch/containers", methods=["POST"])
def create_container():
    actor, err = _actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    return jsonify(dispatch_service.create_container(data.get("name"), actor)), 201


@warehouse_bp.route("/dispatch/containers/<int:container_id>", methods=["GET"])
def get_container(container_id):
    container = dispatch_service.get_container(container_id, include_assignments=bool_arg("assignments"))
    return jsonify(container), 200


@warehouse_bp.route("/dispatch/containers/<int:container_id>/lock", methods=["POST"])
def lock_container(container_id):
    actor, err = _actor_required()
    if err:
        return err
    return jsonify(dispatch_service.lock_container(container_id, actor)), 200


@warehouse_bp.route("/dispatch/containers/<int:container_id>/unlock", methods=["POST"])
def unlock_container(container_id):
    actor, err = _actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    return jsonify(dispatch_service.unlock_container(container_id, actor, force=bool(data.get("force")))), 200


# ── Inventory units ───────────────────────────────────────────────────────────


@warehouse_bp.route("/warehouse/units", methods=["POST"])
def create_unit():
    actor, err = _actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    return jsonify(inventory_service.create_inventory_unit(data, actor)), 201


@warehouse_bp.route("/warehouse/units/<ref>", methods=["GET"])
def get_unit(ref):
    return jsonify(inventory_service.get_inventory_unit(ref)), 200
