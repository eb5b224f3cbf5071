"""
ERP Workflow Tools
In-app notification model (main bind).

Rows are written by the workflow event sink, one per recipient.  A row
addressed to ``all`` is visible to every user.
"""

from erp_tools.models import db
from erp_tools.models.base import serialize_columns, utcnow

BROADCAST_RECIPIENT = "all"


class Notification(db.Model):
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notification_inbox", "recipient", "is_read"),
    )

    id = db.Column(db.Integer, primary_key=True)
    recipient = db.Column(db.String(150), nullable=False, default=BROADCAST_RECIPIENT)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    category = db.Column(db.String(30), nullable=False, default="workflow", comment="workflow, pending-action, modification or system")
    severity = db.Column(db.String(20), nullable=False, default="info")
    href = db.Column(db.String(300), nullable=True, comment="dashboard page of the source module")

    # Source workflow entity; entity_type is the module key
    entity_type = db.Column(db.String(30), default="")
    entity_id = db.Column(db.Integer, nullable=True)
    task_type = db.Column(db.String(60), nullable=True, comment="e.g. review, resolve-action, confirm-modification")

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = utcnow()

    def to_dict(self) -> dict:
        return serialize_columns(self)

    def __repr__(self):
        return f"<Notification {self.id} → {self.recipient}: {self.title[:40]}>"
