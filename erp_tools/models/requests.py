"""
ERP Workflow Tools
Purchase request domain model (``requests`` bind).

Models:
    - PurchaseRequest: purchase request entity (SC-00001 …)
    - PurchaseRequestHistory: append-only status/notes ledger
    - RequestSetting: module settings (key → JSON)
    - RequestSequence: numbering counters
"""

from erp_tools.models import db
from erp_tools.models.base import (
    HistoryEntryMixin,
    SequenceMixin,
    SettingMixin,
    WorkflowEntityMixin,
)

REQUEST_STATUSES = (
    "pending",
    "purchasing-review",
    "pending-approval",
    "approved",
    "ordered",
    "received-in-warehouse",
    "entered-erp",
    "canceled",
)

PURCHASE_TYPES = ("single", "multiple")


class PurchaseRequest(WorkflowEntityMixin, db.Model):
    """
    Purchase request raised against a customer sale.

    ``source_orders``, ``involved_clients`` and ``analysis`` are native JSON
    columns; callers always see lists/dicts.
    """

    __bind_key__ = "requests"
    __tablename__ = "purchase_requests"

    purchase_order = db.Column(db.String(60), nullable=True)
    required_date = db.Column(db.Date, nullable=False)
    arrival_date = db.Column(db.Date, nullable=True)
    received_date = db.Column(db.DateTime(timezone=True), nullable=True)

    client_id = db.Column(db.String(60), nullable=True)
    client_name = db.Column(db.String(200), nullable=False)
    client_tax_id = db.Column(db.String(60), nullable=True)
    item_id = db.Column(db.String(60), nullable=True)
    item_description = db.Column(db.String(300), nullable=False)

    quantity = db.Column(db.Float, nullable=False)
    delivered_quantity = db.Column(db.Float, nullable=True)
    inventory = db.Column(db.Float, nullable=True)
    inventory_erp = db.Column(db.Float, nullable=True)

    priority = db.Column(db.String(20), nullable=False, default="medium")
    purchase_type = db.Column(db.String(20), nullable=False, default="single")
    unit_sale_price = db.Column(db.Float, nullable=True)
    sale_price_currency = db.Column(db.String(3), nullable=True, default="CRC")
    requires_currency = db.Column(db.Boolean, nullable=False, default=True)

    erp_order_number = db.Column(db.String(60), nullable=True)
    erp_order_line = db.Column(db.Integer, nullable=True)
    erp_entry_number = db.Column(db.String(60), nullable=True)
    manual_supplier = db.Column(db.String(200), nullable=True)
    route = db.Column(db.String(100), nullable=True)
    shipping_method = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    received_in_warehouse_by = db.Column(db.String(150), nullable=True)

    source_orders = db.Column(db.JSON, nullable=True, comment="list of customer order numbers")
    involved_clients = db.Column(db.JSON, nullable=True, comment="list of {id, name}")
    analysis = db.Column(db.JSON, nullable=True, comment="{cost, salePrice, margin}")

    version = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version}


class PurchaseRequestHistory(HistoryEntryMixin, db.Model):
    __bind_key__ = "requests"
    __tablename__ = "purchase_request_history"
    __table_args__ = (
        db.Index("idx_pr_history_request", "request_id", "timestamp"),
    )

    ENTITY_FK = "request_id"

    request_id = db.Column(
        db.Integer, db.ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False,
    )


class RequestSetting(SettingMixin, db.Model):
    __bind_key__ = "requests"
    __tablename__ = "request_settings"


class RequestSequence(SequenceMixin, db.Model):
    __bind_key__ = "requests"
    __tablename__ = "request_sequences"
