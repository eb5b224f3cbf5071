"""
ERP Workflow Tools
Shared column sets for workflow modules.

Mixins:
    - WorkflowEntityMixin: status / overlay / audit columns every workflow entity carries
    - HistoryEntryMixin: append-only history row columns
    - SettingMixin: per-module key/value settings row (JSON value)
    - SequenceMixin: per-module numbering counter row

Concrete models pick a bind (``__bind_key__``) and add their own payload,
the ``version`` column and the history foreign key.
"""

from datetime import date, datetime, timezone

from erp_tools.models import db

PENDING_ACTIONS = ("none", "unapproval-request", "cancellation-request")

PRIORITIES = ("low", "medium", "high", "urgent")


def utcnow():
    return datetime.now(timezone.utc)


def serialize_columns(obj) -> dict:
    """Column values of *obj* keyed by attribute name, dates as ISO strings."""
    data = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.key)
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        data[column.key] = value
    return data


class WorkflowEntityMixin:
    """Columns shared by purchase requests, production orders and dispatch assignments."""

    id = db.Column(db.Integer, primary_key=True)
    consecutive = db.Column(db.String(20), nullable=False, unique=True, comment="{prefix}{seq:05d}")
    status = db.Column(db.String(40), nullable=False, index=True)
    pending_action = db.Column(db.String(30), nullable=False, default="none")
    previous_status = db.Column(db.String(40), nullable=True)
    has_been_modified = db.Column(db.Boolean, nullable=False, default=False)
    reopened = db.Column(db.Boolean, nullable=False, default=False)

    # Actors are free-text display names resolved through the actor directory
    requested_by = db.Column(db.String(150), nullable=False)
    approved_by = db.Column(db.String(150), nullable=True)
    last_status_update_by = db.Column(db.String(150), nullable=True)
    last_status_update_notes = db.Column(db.Text, nullable=True)
    last_modified_by = db.Column(db.String(150), nullable=True)
    last_modified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    request_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return serialize_columns(self)

    def __repr__(self):
        return f"<{type(self).__name__} {self.consecutive}: {self.status}>"


class HistoryEntryMixin:
    """Immutable history row: one per transition, note or confirmed modification."""

    ENTITY_FK = "entity_id"

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    status = db.Column(db.String(40), nullable=False)
    notes = db.Column(db.Text, default="")
    updated_by = db.Column(db.String(150), nullable=False)

    def to_dict(self) -> dict:
        data = serialize_columns(self)
        data["entity_id"] = getattr(self, self.ENTITY_FK)
        return data


class SettingMixin:
    """Key/value setting; the value is any JSON document."""

    key = db.Column(db.String(60), primary_key=True)
    value = db.Column(db.JSON, nullable=True)


class SequenceMixin:
    """Numbering counter: ``next_value`` is the number the next allocation hands out."""

    name = db.Column(db.String(40), primary_key=True)
    next_value = db.Column(db.Integer, nullable=False, default=1)
