"""
Per-module workflow registry.

Each workflow module (``requests``, ``planner``, ``dispatch``) is described by:
  - a pure ``WorkflowDefinition`` (statuses, allowed transitions, fields)
  - the SQLAlchemy models that store it (entity, history, settings, counters)
  - default settings and the permission names guarding each operation

Transition tables are explicit; setting ``strictTransitions`` to false in a
module's settings reverts to "any known status from any status".

Usage:
    from erp_tools.services.workflow_definitions import get_module

    module = get_module("requests")
    module.definition.initial_status      # "pending"
    module.entity_model                   # PurchaseRequest
"""

from __future__ import annotations

from dataclasses import dataclass, field

from erp_tools.core.exceptions import NotFoundError
from erp_tools.models.planner import (
    CUSTOM_STATUS_IDS,
    ORDER_STATUSES,
    PlannerSequence,
    PlannerSetting,
    ProductionOrder,
    ProductionOrderHistory,
)
from erp_tools.models.requests import (
    REQUEST_STATUSES,
    PurchaseRequest,
    PurchaseRequestHistory,
    RequestSequence,
    RequestSetting,
)
from erp_tools.models.warehouse import (
    ASSIGNMENT_STATUSES,
    DispatchAssignment,
    DispatchAssignmentHistory,
    WarehouseSequence,
    WarehouseSetting,
)
from erp_tools.services.status_machine import WorkflowDefinition


@dataclass(frozen=True)
class CounterSpec:
    """A numbering counter: prefix setting key and the settings key exposing its next value."""

    prefix_key: str
    next_key: str
    default_prefix: str


@dataclass(frozen=True)
class WorkflowModule:
    key: str
    definition: WorkflowDefinition
    entity_model: type
    history_model: type
    setting_model: type
    sequence_model: type
    default_settings: dict
    counters: dict[str, CounterSpec]
    permissions: dict[str, str]
    status_permissions: dict[str, str]
    edge_permissions: dict[tuple[str, str], str] = field(default_factory=dict)
    planning_permissions: dict[str, str] = field(default_factory=dict)
    required_fields: tuple[str, ...] = ()
    search_fields: tuple[str, ...] = ()
    # History statuses that count as "completed" in the completion report
    completion_statuses: tuple[str, ...] = ()
    href: str = ""

    @property
    def history_fk(self) -> str:
        return self.history_model.ENTITY_FK


# ═════════════════════════════════════════════════════════════════════════════
# Purchase requests
# ═════════════════════════════════════════════════════════════════════════════


def _requests_final_status(settings: dict) -> str:
    if settings.get("useErpEntry"):
        return "entered-erp"
    if settings.get("useWarehouseReception"):
        return "received-in-warehouse"
    return "ordered"


REQUESTS_DEFINITION = WorkflowDefinition(
    key="requests",
    entity_label="Solicitud",
    initial_status="pending",
    statuses=REQUEST_STATUSES,
    status_labels={
        "pending": "Pendiente",
        "purchasing-review": "Revisión Compras",
        "pending-approval": "Pendiente Aprobación",
        "approved": "Aprobada",
        "ordered": "Ordenada",
        "received-in-warehouse": "Recibido en Bodega",
        "entered-erp": "Ingresado ERP",
        "canceled": "Cancelada",
    },
    transitions={
        "pending": ("purchasing-review", "pending-approval", "approved", "canceled"),
        "purchasing-review": ("pending", "pending-approval", "approved", "canceled"),
        "pending-approval": ("purchasing-review", "approved", "canceled"),
        "approved": ("ordered", "pending", "canceled"),
        "ordered": ("approved", "received-in-warehouse", "entered-erp", "pending", "canceled"),
        "received-in-warehouse": ("entered-erp", "canceled"),
        "entered-erp": (),
        "canceled": (),
    },
    final_status=_requests_final_status,
    creation_note="Solicitud creada",
    editable_fields=(
        "purchase_order", "required_date", "arrival_date",
        "client_id", "client_name", "client_tax_id",
        "item_id", "item_description", "quantity", "inventory", "inventory_erp",
        "priority", "purchase_type", "unit_sale_price", "sale_price_currency", "requires_currency",
        "erp_order_number", "erp_order_line", "manual_supplier",
        "route", "shipping_method", "notes", "source_orders", "involved_clients",
    ),
    status_fields=(
        "arrival_date", "delivered_quantity", "erp_order_number", "erp_order_line",
        "erp_entry_number", "manual_supplier",
    ),
    planning_fields=("priority",),
    default_locked_statuses=("approved", "ordered"),
    backward_edges=frozenset({("pending-approval", "purchasing-review"), ("ordered", "approved")}),
    backward_targets=frozenset({"pending"}),
    unapprovable_statuses=("approved", "ordered"),
    cancel_request_statuses=("approved", "ordered"),
    status_stamps={
        "received-in-warehouse": {"received_in_warehouse_by": "actor", "received_date": "now"},
    },
)

REQUESTS_MODULE = WorkflowModule(
    key="requests",
    definition=REQUESTS_DEFINITION,
    entity_model=PurchaseRequest,
    history_model=PurchaseRequestHistory,
    setting_model=RequestSetting,
    sequence_model=RequestSequence,
    default_settings={
        "requestPrefix": "SC-",
        "routes": ["Ruta GAM", "Fuera de GAM"],
        "shippingMethods": ["Mensajería", "Encomienda", "Transporte Propio"],
        "useWarehouseReception": False,
        "useErpEntry": False,
        "showCustomerTaxId": True,
        "strictTransitions": True,
        "lockedStatuses": ["approved", "ordered"],
        "fieldsToTrackChanges": [],
    },
    counters={"entity": CounterSpec("requestPrefix", "nextRequestNumber", "SC-")},
    permissions={
        "create": "requests:create",
        "edit": "requests:edit:pending",
        "edit_locked": "requests:edit:approved",
        "reopen": "requests:reopen",
        "notes": "requests:notes:add",
        "request_unapproval": "requests:status:unapproval-request",
        "request_cancellation": "requests:status:cancel",
        "resolve_action": "requests:status:unapproval-request:approve",
        "confirm_modification": "requests:status:approve",
        "cost_analysis": "requests:view:cost",
        "settings": "admin:settings:requests",
    },
    status_permissions={
        "pending": "requests:status:review",
        "purchasing-review": "requests:status:review",
        "pending-approval": "requests:status:pending-approval",
        "approved": "requests:status:approve",
        "ordered": "requests:status:ordered",
        "received-in-warehouse": "requests:status:received-in-warehouse",
        "entered-erp": "requests:status:entered-erp",
        "canceled": "requests:status:cancel",
    },
    edge_permissions={("ordered", "approved"): "requests:status:revert-to-approved"},
    planning_permissions={"priority": "requests:edit:pending"},
    required_fields=("client_name", "item_description", "quantity", "required_date"),
    search_fields=("client_name", "item_description", "purchase_order", "erp_order_number"),
    completion_statuses=("received-in-warehouse", "entered-erp"),
    href="/dashboard/requests",
)


# ═════════════════════════════════════════════════════════════════════════════
# Production orders
# ═════════════════════════════════════════════════════════════════════════════


def _planner_final_status(settings: dict) -> str:
    return "received-in-warehouse" if settings.get("useWarehouseReception") else "completed"


_PLANNER_OPERATIONAL = ("approved", "in-queue", "in-progress", "on-hold", "in-maintenance", "completed")

PLANNER_DEFINITION = WorkflowDefinition(
    key="planner",
    entity_label="Orden",
    initial_status="pending",
    statuses=ORDER_STATUSES,
    status_labels={
        "pending": "Pendiente",
        "pending-review": "Pendiente Revisión",
        "pending-approval": "Pendiente Aprobación",
        "approved": "Aprobada",
        "in-queue": "En Cola",
        "in-progress": "En Progreso",
        "on-hold": "En Espera",
        "in-maintenance": "En Mantenimiento",
        "completed": "Completada",
        "received-in-warehouse": "En Bodega",
        "canceled": "Cancelada",
    },
    transitions={
        "pending": ("pending-review", "pending-approval", "approved", "canceled"),
        "pending-review": ("pending", "pending-approval", "approved", "canceled"),
        "pending-approval": ("pending", "pending-review", "approved", "canceled"),
        "approved": ("in-queue", "in-progress", "pending", "canceled"),
        "in-queue": ("in-progress", "on-hold", "approved", "pending", "canceled"),
        "in-progress": ("on-hold", "in-maintenance", "in-queue", "completed", "pending", "canceled"),
        "on-hold": ("in-progress", "in-queue", "in-maintenance", "pending", "canceled"),
        "in-maintenance": ("in-progress", "on-hold", "in-queue", "pending", "canceled"),
        "completed": ("received-in-warehouse", "canceled"),
        "received-in-warehouse": (),
        "canceled": (),
    },
    final_status=_planner_final_status,
    creation_note="Orden creada",
    editable_fields=(
        "purchase_order", "delivery_date",
        "customer_id", "customer_name", "customer_tax_id",
        "product_id", "product_description",
        "quantity", "inventory", "inventory_erp", "notes",
    ),
    status_fields=(
        "delivered_quantity", "defective_quantity",
        "erp_package_number", "erp_ticket_number", "erp_order_number",
    ),
    planning_fields=("priority", "machine_id", "shift_id", "scheduled_start_date", "scheduled_end_date"),
    default_locked_statuses=("approved", "in-queue", "in-progress"),
    backward_targets=frozenset({"pending", "pending-review"}),
    unapprovable_statuses=("approved", "in-queue", "on-hold", "in-progress"),
    cancel_request_statuses=("approved", "in-queue"),
    custom_status_ids=CUSTOM_STATUS_IDS,
    custom_status_links=_PLANNER_OPERATIONAL,
    status_requirements={
        "in-progress": ("requireMachineForStart", "machine_id"),
        "completed": ("requireShiftForCompletion", "shift_id"),
    },
)

PLANNER_MODULE = WorkflowModule(
    key="planner",
    definition=PLANNER_DEFINITION,
    entity_model=ProductionOrder,
    history_model=ProductionOrderHistory,
    setting_model=PlannerSetting,
    sequence_model=PlannerSequence,
    default_settings={
        "orderPrefix": "OP-",
        "useWarehouseReception": False,
        "showCustomerTaxId": True,
        "machines": [],
        "shifts": [
            {"id": "turno-a", "name": "Turno A"},
            {"id": "turno-b", "name": "Turno B"},
        ],
        "requireMachineForStart": False,
        "requireShiftForCompletion": False,
        "assignmentLabel": "Máquina Asignada",
        "shiftLabel": "Turno",
        "customStatuses": [
            {"id": "custom-1", "label": "", "color": "#8884d8", "isActive": False},
            {"id": "custom-2", "label": "", "color": "#82ca9d", "isActive": False},
            {"id": "custom-3", "label": "", "color": "#ffc658", "isActive": False},
            {"id": "custom-4", "label": "", "color": "#ff8042", "isActive": False},
        ],
        "strictTransitions": True,
        "lockedStatuses": ["approved", "in-queue", "in-progress"],
        "fieldsToTrackChanges": ["quantity", "delivery_date", "customer_id", "product_id"],
    },
    counters={"entity": CounterSpec("orderPrefix", "nextOrderNumber", "OP-")},
    permissions={
        "create": "planner:create",
        "edit": "planner:edit:pending",
        "edit_locked": "planner:edit:approved",
        "reopen": "planner:reopen",
        "notes": "planner:edit:pending",
        "request_unapproval": "planner:status:unapprove-request",
        "request_cancellation": "planner:status:cancel-approved",
        "resolve_action": "planner:status:unapprove-request:approve",
        "confirm_modification": "planner:status:approve",
        "settings": "admin:settings:planner",
    },
    status_permissions={
        "pending": "planner:status:review",
        "pending-review": "planner:status:review",
        "pending-approval": "planner:status:review",
        "approved": "planner:status:approve",
        "in-queue": "planner:status:approve",
        "in-progress": "planner:status:in-progress",
        "on-hold": "planner:status:on-hold",
        "in-maintenance": "planner:status:on-hold",
        "completed": "planner:status:completed",
        "received-in-warehouse": "planner:receive",
        "canceled": "planner:status:cancel",
        **{cid: "planner:status:in-progress" for cid in CUSTOM_STATUS_IDS},
    },
    planning_permissions={
        "priority": "planner:priority:update",
        "machine_id": "planner:machine:assign",
        "shift_id": "planner:machine:assign",
        "scheduled_start_date": "planner:schedule",
        "scheduled_end_date": "planner:schedule",
    },
    required_fields=("customer_name", "product_description", "quantity", "delivery_date"),
    search_fields=("customer_name", "product_description", "purchase_order", "erp_order_number"),
    completion_statuses=("completed", "received-in-warehouse"),
    href="/dashboard/planner",
)


# ═════════════════════════════════════════════════════════════════════════════
# Dispatch assignments
# ═════════════════════════════════════════════════════════════════════════════


DISPATCH_DEFINITION = WorkflowDefinition(
    key="dispatch",
    entity_label="Asignación",
    initial_status="pending",
    statuses=ASSIGNMENT_STATUSES,
    status_labels={
        "pending": "Pendiente",
        "in-progress": "En Revisión",
        "partial": "Parcial",
        "discrepancy": "Con Diferencias",
        "completed": "Despachado",
        "canceled": "Cancelado",
    },
    transitions={
        "pending": ("in-progress", "canceled"),
        "in-progress": ("partial", "discrepancy", "completed", "pending", "canceled"),
        "partial": ("in-progress", "discrepancy", "completed", "canceled"),
        "discrepancy": ("in-progress", "completed", "canceled"),
        "completed": (),
        "canceled": (),
    },
    final_status=lambda settings: "completed",
    creation_note="Asignación creada",
    editable_fields=("document_type", "document_date", "client_id", "client_name", "notes"),
    planning_fields=("sort_order",),
    default_locked_statuses=("in-progress", "partial", "discrepancy"),
    backward_targets=frozenset({"pending"}),
    cancel_request_statuses=("pending", "in-progress", "partial", "discrepancy"),
)

DISPATCH_MODULE = WorkflowModule(
    key="dispatch",
    definition=DISPATCH_DEFINITION,
    entity_model=DispatchAssignment,
    history_model=DispatchAssignmentHistory,
    setting_model=WarehouseSetting,
    sequence_model=WarehouseSequence,
    default_settings={
        "assignmentPrefix": "DSP-",
        "unitPrefix": "U",
        "strictTransitions": True,
        "lockedStatuses": ["in-progress", "partial", "discrepancy"],
        "fieldsToTrackChanges": [],
    },
    counters={
        "entity": CounterSpec("assignmentPrefix", "nextAssignmentNumber", "DSP-"),
        "unit": CounterSpec("unitPrefix", "nextUnitNumber", "U"),
    },
    permissions={
        "create": "warehouse:dispatch-containers:manage",
        "edit": "warehouse:dispatch-check:use",
        "edit_locked": "warehouse:dispatch-check:manual-override",
        "reopen": "warehouse:dispatch-check:manual-override",
        "notes": "warehouse:dispatch-check:use",
        "request_unapproval": "warehouse:dispatch-check:use",
        "request_cancellation": "warehouse:dispatch-check:use",
        "resolve_action": "warehouse:dispatch-check:manual-override",
        "confirm_modification": "warehouse:dispatch-check:manual-override",
        "containers": "warehouse:dispatch-containers:manage",
        "locks": "warehouse:locks:manage",
        "units": "warehouse:units:create",
        "settings": "admin:settings:warehouse",
    },
    status_permissions={status: "warehouse:dispatch-check:use" for status in ASSIGNMENT_STATUSES},
    planning_permissions={"sort_order": "warehouse:dispatch-containers:manage"},
    required_fields=("container_id", "document_id", "document_type"),
    search_fields=("document_id", "client_name"),
    completion_statuses=("completed",),
    href="/dashboard/warehouse/dispatch-center",
)


MODULES: dict[str, WorkflowModule] = {
    m.key: m for m in (REQUESTS_MODULE, PLANNER_MODULE, DISPATCH_MODULE)
}


def get_module(key: str) -> WorkflowModule:
    """Return the registered module or raise NotFoundError."""
    module = MODULES.get(key)
    if module is None:
        raise NotFoundError(resource="Module", resource_id=key)
    return module
