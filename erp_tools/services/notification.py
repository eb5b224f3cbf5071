"""
ERP Workflow Tools
Notification service: the in-app inbox behind workflow events.

``workflow_events.publish`` calls ``broadcast(..., commit=False)`` so the
rows commit together with the audit row; the blueprint uses the query and
read-tracking methods.
"""

from sqlalchemy import func, or_, select, update

from erp_tools.models import db
from erp_tools.models.base import utcnow
from erp_tools.models.notification import BROADCAST_RECIPIENT, Notification


def _visible_to(recipient):
    return or_(Notification.recipient == recipient, Notification.recipient == BROADCAST_RECIPIENT)


class NotificationService:
    """Stateless helpers over the ``notifications`` table."""

    @staticmethod
    def broadcast(*, title, message="", category="workflow", severity="info", href=None,
                  entity_type="", entity_id=None, task_type=None, recipients=None, commit=True):
        """Add one notification per recipient (a single ``all`` row when *recipients* is empty).

        Returns:
            The new Notification rows.  With ``commit=False`` they are only
            added to the session.
        """
        rows = [
            Notification(
                recipient=recipient,
                title=title,
                message=message,
                category=category,
                severity=severity,
                href=href,
                entity_type=entity_type,
                entity_id=entity_id,
                task_type=task_type,
            )
            for recipient in (recipients or [BROADCAST_RECIPIENT])
        ]
        db.session.add_all(rows)
        if commit:
            db.session.commit()
        return rows

    @staticmethod
    def list_for_recipient(recipient, unread_only=False, limit=50, offset=0):
        """Return ``(items, total)`` for *recipient*, newest first."""
        criteria = [_visible_to(recipient)]
        if unread_only:
            criteria.append(Notification.is_read.is_(False))
        total = db.session.execute(
            select(func.count(Notification.id)).where(*criteria)
        ).scalar_one()
        items = db.session.execute(
            select(Notification)
            .where(*criteria)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return items, total

    @staticmethod
    def unread_count(recipient):
        return db.session.execute(
            select(func.count(Notification.id)).where(_visible_to(recipient), Notification.is_read.is_(False))
        ).scalar_one()

    @staticmethod
    def mark_read(notification_id):
        """Mark one notification read; returns None when it does not exist."""
        notif = db.session.get(Notification, notification_id)
        if notif is not None:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient):
        """Mark every unread notification visible to *recipient*; returns the row count."""
        result = db.session.execute(
            update(Notification)
            .where(_visible_to(recipient), Notification.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return result.rowcount
