"""
ERP Workflow Tools
Production planning domain model (``planner`` bind).

Models:
    - ProductionOrder: production order entity (OP-00001 …)
    - ProductionOrderHistory: append-only status/notes ledger
    - PlannerSetting: module settings (key → JSON)
    - PlannerSequence: numbering counters
"""

from erp_tools.models import db
from erp_tools.models.base import (
    HistoryEntryMixin,
    SequenceMixin,
    SettingMixin,
    WorkflowEntityMixin,
)

ORDER_STATUSES = (
    "pending",
    "pending-review",
    "pending-approval",
    "approved",
    "in-queue",
    "in-progress",
    "on-hold",
    "in-maintenance",
    "completed",
    "received-in-warehouse",
    "canceled",
)

# Settings-driven extra statuses; only active ones are accepted
CUSTOM_STATUS_IDS = ("custom-1", "custom-2", "custom-3", "custom-4")


class ProductionOrder(WorkflowEntityMixin, db.Model):
    """Production order scheduled on a machine/shift."""

    __bind_key__ = "planner"
    __tablename__ = "production_orders"

    purchase_order = db.Column(db.String(60), nullable=True)
    delivery_date = db.Column(db.Date, nullable=False)
    scheduled_start_date = db.Column(db.Date, nullable=True)
    scheduled_end_date = db.Column(db.Date, nullable=True)

    customer_id = db.Column(db.String(60), nullable=True)
    customer_name = db.Column(db.String(200), nullable=False)
    customer_tax_id = db.Column(db.String(60), nullable=True)
    product_id = db.Column(db.String(60), nullable=True)
    product_description = db.Column(db.String(300), nullable=False)

    quantity = db.Column(db.Float, nullable=False)
    inventory = db.Column(db.Float, nullable=True)
    inventory_erp = db.Column(db.Float, nullable=True)
    delivered_quantity = db.Column(db.Float, nullable=True)
    defective_quantity = db.Column(db.Float, nullable=True)

    priority = db.Column(db.String(20), nullable=False, default="medium")
    notes = db.Column(db.Text, nullable=True)

    erp_package_number = db.Column(db.String(60), nullable=True)
    erp_ticket_number = db.Column(db.String(60), nullable=True)
    erp_order_number = db.Column(db.String(60), nullable=True)

    machine_id = db.Column(db.String(60), nullable=True, comment="assignment (machine/operator) id from settings")
    shift_id = db.Column(db.String(60), nullable=True, comment="shift id from settings")

    version = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version}


class ProductionOrderHistory(HistoryEntryMixin, db.Model):
    __bind_key__ = "planner"
    __tablename__ = "production_order_history"
    __table_args__ = (
        db.Index("idx_po_history_order", "order_id", "timestamp"),
    )

    ENTITY_FK = "order_id"

    order_id = db.Column(
        db.Integer, db.ForeignKey("production_orders.id", ondelete="CASCADE"), nullable=False,
    )


class PlannerSetting(SettingMixin, db.Model):
    __bind_key__ = "planner"
    __tablename__ = "planner_settings"


class PlannerSequence(SequenceMixin, db.Model):
    __bind_key__ = "planner"
    __tablename__ = "planner_sequences"
