"""
Inventory unit labels.

Units share the warehouse bind and its numbering table with dispatch
assignments but use their own counter (``unit`` → U00001, U00002 …).
"""

import logging

from sqlalchemy import select

from erp_tools.core.exceptions import NotFoundError, ValidationError
from erp_tools.models import db
from erp_tools.models.warehouse import InventoryUnit
from erp_tools.services.actor_directory import check_permission
from erp_tools.services.code_generator import allocate_number
from erp_tools.services.transaction import atomic
from erp_tools.services.workflow_definitions import get_module
from erp_tools.services.workflow_events import publish

logger = logging.getLogger(__name__)

_UNIT_FIELDS = ("product_id", "human_readable_id", "document_id", "location_id", "quantity", "notes")


def create_inventory_unit(payload: dict, actor: str, *, skip_permission: bool = False) -> dict:
    """Create a labelled unit; the unit code and the row commit together."""
    payload = payload or {}
    if not str(payload.get("product_id") or "").strip():
        raise ValidationError("product_id is required", details={"product_id": "required"})
    if not skip_permission:
        check_permission(actor, get_module("dispatch").permissions["units"])

    values = {k: payload.get(k) for k in _UNIT_FIELDS if payload.get(k) not in (None, "")}
    try:
        if "quantity" in values:
            values["quantity"] = float(values["quantity"])
        if "location_id" in values:
            values["location_id"] = int(values["location_id"])
    except (TypeError, ValueError):
        raise ValidationError("quantity and location_id must be numeric") from None

    with atomic("create_inventory_unit", resource="InventoryUnit"):
        code = allocate_number("dispatch", "unit")
        unit = InventoryUnit(unit_code=code, created_by=actor, **values)
        db.session.add(unit)
        db.session.flush()
    data = unit.to_dict()

    logger.info("Inventory unit %s created by %s", code, actor,
                extra={"module_key": "dispatch", "entity_id": data["id"], "consecutive": code, "actor": actor})
    publish(module_key="inventory_unit", entity={"id": data["id"], "consecutive": code},
            action="unit.create", actor=actor)
    return data


def get_inventory_unit(ref) -> dict:
    """Look a unit up by numeric id or by unit code."""
    unit = None
    if isinstance(ref, int) or (isinstance(ref, str) and ref.isdigit()):
        unit = db.session.get(InventoryUnit, int(ref))
    if unit is None:
        unit = db.session.execute(
            select(InventoryUnit).where(InventoryUnit.unit_code == str(ref))
        ).scalar_one_or_none()
    if unit is None:
        raise NotFoundError(resource="InventoryUnit", resource_id=ref)
    return unit.to_dict()
