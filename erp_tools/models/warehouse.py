"""
ERP Workflow Tools
Warehouse domain model (``warehouse`` bind).

Models:
    - DispatchContainer: named group of dispatch documents, lockable by one user
    - DispatchAssignment: a document assigned to a container (DSP-00001 …)
    - DispatchAssignmentHistory: append-only status/notes ledger
    - InventoryUnit: physical unit label (U00001 …)
    - WarehouseSetting: module settings (key → JSON)
    - WarehouseSequence: numbering counters (assignments, units)
"""

from erp_tools.models import db
from erp_tools.models.base import (
    HistoryEntryMixin,
    SequenceMixin,
    SettingMixin,
    WorkflowEntityMixin,
    serialize_columns,
    utcnow,
)

ASSIGNMENT_STATUSES = (
    "pending",
    "in-progress",
    "partial",
    "discrepancy",
    "completed",
    "canceled",
)


class DispatchContainer(db.Model):
    """A dispatch route/truck grouping documents; one user may hold its lock."""

    __bind_key__ = "warehouse"
    __tablename__ = "dispatch_containers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    created_by = db.Column(db.String(150), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    locked_by = db.Column(db.String(150), nullable=True)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    assignments = db.relationship(
        "DispatchAssignment", back_populates="container",
        order_by="DispatchAssignment.sort_order", lazy="select",
    )

    def to_dict(self, include_assignments=False):
        data = serialize_columns(self)
        if include_assignments:
            data["assignments"] = [a.to_dict() for a in self.assignments]
        return data

    def __repr__(self):
        return f"<DispatchContainer {self.id}: {self.name}>"


class DispatchAssignment(WorkflowEntityMixin, db.Model):
    """An ERP document (invoice, delivery note) queued for dispatch in a container."""

    __bind_key__ = "warehouse"
    __tablename__ = "dispatch_assignments"
    __table_args__ = (
        db.UniqueConstraint("container_id", "document_id", name="uq_assignment_container_document"),
    )

    container_id = db.Column(
        db.Integer, db.ForeignKey("dispatch_containers.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    document_id = db.Column(db.String(60), nullable=False)
    document_type = db.Column(db.String(40), nullable=False)
    document_date = db.Column(db.Date, nullable=True)
    client_id = db.Column(db.String(60), nullable=True)
    client_name = db.Column(db.String(200), nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    version = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version}

    container = db.relationship("DispatchContainer", back_populates="assignments")


class DispatchAssignmentHistory(HistoryEntryMixin, db.Model):
    __bind_key__ = "warehouse"
    __tablename__ = "dispatch_assignment_history"
    __table_args__ = (
        db.Index("idx_da_history_assignment", "assignment_id", "timestamp"),
    )

    ENTITY_FK = "assignment_id"

    assignment_id = db.Column(
        db.Integer, db.ForeignKey("dispatch_assignments.id", ondelete="CASCADE"), nullable=False,
    )


class InventoryUnit(db.Model):
    """Labelled physical unit (pallet, roll, box) tracked in the warehouse."""

    __bind_key__ = "warehouse"
    __tablename__ = "inventory_units"

    id = db.Column(db.Integer, primary_key=True)
    unit_code = db.Column(db.String(20), nullable=False, unique=True)
    product_id = db.Column(db.String(60), nullable=False, index=True)
    human_readable_id = db.Column(db.String(100), nullable=True)
    document_id = db.Column(db.String(60), nullable=True)
    location_id = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(150), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return serialize_columns(self)

    def __repr__(self):
        return f"<InventoryUnit {self.unit_code}: {self.product_id}>"


class WarehouseSetting(SettingMixin, db.Model):
    __bind_key__ = "warehouse"
    __tablename__ = "warehouse_settings"


class WarehouseSequence(SequenceMixin, db.Model):
    __bind_key__ = "warehouse"
    __tablename__ = "warehouse_sequences"
