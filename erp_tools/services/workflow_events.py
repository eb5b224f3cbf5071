"""
Workflow event sink.

Runs after a workflow operation has committed: writes the audit row and the
in-app notifications in a second, independent transaction.  A sink failure
is logged and rolled back; it never undoes or fails the operation that
triggered it.
"""

import logging

from flask import current_app

from erp_tools.models import db
from erp_tools.models.audit import write_audit
from erp_tools.services.actor_directory import users_with_permission
from erp_tools.services.notification import NotificationService

logger = logging.getLogger(__name__)


def publish(
    *,
    module_key: str,
    entity: dict,
    action: str,
    actor: str,
    diff: dict | None = None,
    title: str | None = None,
    message: str = "",
    recipients: list[str] | None = None,
    permission: str | None = None,
    category: str = "workflow",
    task_type: str | None = None,
    href: str | None = None,
) -> bool:
    """Record *action* on *entity* and notify interested users.

    Args:
        entity: serialised entity (needs ``id`` and ``consecutive``).
        recipients: explicit recipient names (e.g. the requester).
        permission: also notify every holder of this permission.

    Returns:
        True when the sink committed, False when it failed (already logged).
    """
    try:
        write_audit(
            entity_type=module_key,
            entity_id=entity["id"],
            consecutive=entity.get("consecutive"),
            action=action,
            actor=actor,
            diff=diff,
        )
        if title and current_app.config.get("WORKFLOW_NOTIFY", True):
            payload = dict(
                title=title,
                message=message,
                category=category,
                href=href,
                entity_type=module_key,
                entity_id=entity["id"],
                task_type=task_type,
                commit=False,
            )
            targets = list(recipients or [])
            if permission:
                targets += users_with_permission(permission)
            targets = sorted({r for r in targets if r and r != actor})
            if targets:
                NotificationService.broadcast(recipients=targets, **payload)
        db.session.commit()
        return True
    except Exception:
        db.session.rollback()
        logger.warning(
            "Workflow event sink failed for %s %s action=%s (main flow unaffected)",
            module_key, entity.get("consecutive"), action,
            exc_info=True,
            extra={"module_key": module_key, "entity_id": entity.get("id"), "actor": actor},
        )
        return False
