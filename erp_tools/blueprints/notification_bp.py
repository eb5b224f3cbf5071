"""
ERP Workflow Tools
Notification Blueprint.

Provides read access to the in-app notifications written by the workflow
event sink:
    GET  /api/v1/notifications?recipient=&unread_only=&limit=&offset=
    GET  /api/v1/notifications/unread-count?recipient=
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all        body: {recipient}
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from erp_tools.blueprints import bool_arg, register_error_handlers
from erp_tools.services.notification import NotificationService
from erp_tools.utils.errors import E, api_error

logger = logging.getLogger(__name__)

notification_bp = register_error_handlers(Blueprint("notification_bp", __name__, url_prefix="/api/v1"))


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """Notifications for a recipient (plus broadcasts), newest first."""
    recipient = request.args.get("recipient")
    if not recipient:
        return api_error(E.VALIDATION_REQUIRED, "recipient query parameter is required")
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService.list_for_recipient(
        recipient, unread_only=bool_arg("unread_only"), limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread": NotificationService.unread_count(recipient),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    recipient = request.args.get("recipient")
    if not recipient:
        return api_error(E.VALIDATION_REQUIRED, "recipient query parameter is required")
    return jsonify({"recipient": recipient, "unread": NotificationService.unread_count(recipient)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["POST"])
def mark_read(nid):
    notif = NotificationService.mark_read(nid)
    if not notif:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    data = request.get_json(silent=True) or {}
    recipient = data.get("recipient")
    if not recipient:
        return api_error(E.VALIDATION_REQUIRED, "recipient is required")
    count = NotificationService.mark_all_read(recipient)
    return jsonify({"marked": count})
