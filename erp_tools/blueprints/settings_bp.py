"""
Module settings blueprint.

    GET /api/v1/<module>/settings   effective settings (defaults + stored + counters)
    PUT /api/v1/<module>/settings   body: {actor, settings: {...}}
"""

from flask import Blueprint, jsonify, request

from erp_tools.blueprints import register_error_handlers
from erp_tools.services.settings_service import get_settings, save_settings
from erp_tools.utils.errors import E, api_error
from erp_tools.utils.helpers import request_actor

settings_bp = register_error_handlers(Blueprint("settings", __name__, url_prefix="/api/v1"))


@settings_bp.route("/<module>/settings", methods=["GET"])
def read_settings(module):
    return jsonify(get_settings(module)), 200


@settings_bp.route("/<module>/settings", methods=["PUT"])
def write_settings(module):
    actor = request_actor()
    if not actor:
        return api_error(E.VALIDATION_REQUIRED, "actor is required")
    data = request.get_json(silent=True) or {}
    settings = data.get("settings")
    if not isinstance(settings, dict):
        return api_error(E.VALIDATION_REQUIRED, "settings object is required")
    return jsonify(save_settings(module, settings, actor)), 200
