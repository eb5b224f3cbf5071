"""
ERP Workflow Tools
Append-only audit trail (main bind).

Every committed workflow event leaves one ``AuditLog`` row, written by the
post-commit sink in ``services.workflow_events``.  ``entity_type`` is the
module key (``requests``, ``planner``, ``dispatch``) and ``entity_id`` is
stored as text so settings rows (keyed by module) fit the same column.
"""

import json

from erp_tools.models import db
from erp_tools.models.base import utcnow


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_action_ts", "action", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False)
    consecutive = db.Column(db.String(20), nullable=True)
    action = db.Column(db.String(60), nullable=False, comment="create, status_change, note, settings.update, ...")
    actor = db.Column(db.String(150), nullable=False, default="system", index=True)
    payload = db.Column(db.Text, nullable=False, default="{}", comment="JSON {field: {old, new}}")
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def diff(self) -> dict:
        if not self.payload:
            return {}
        try:
            return json.loads(self.payload)
        except ValueError:
            return {}

    def to_dict(self) -> dict:
        stamp = self.timestamp.isoformat() if self.timestamp else None
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "consecutive": self.consecutive,
            "action": self.action,
            "actor": self.actor,
            "diff": self.diff,
            "timestamp": stamp,
        }

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"


def write_audit(*, entity_type, entity_id, action, actor="system", consecutive=None, diff=None):
    """Add one audit row and flush; the caller commits."""
    row = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        consecutive=consecutive,
        action=action,
        actor=actor or "system",
        payload=json.dumps(diff or {}, default=str, ensure_ascii=False),
    )
    db.session.add(row)
    db.session.flush()
    return row
