"""
Purchase-request specific operations that sit outside the status machine.

    save_cost_analysis   store cost / sale price / margin for a request
"""

import logging

from erp_tools.core.exceptions import NotFoundError, ValidationError
from erp_tools.models import db
from erp_tools.models.requests import PurchaseRequest
from erp_tools.services.actor_directory import check_permission
from erp_tools.services.transaction import atomic
from erp_tools.services.workflow_definitions import get_module
from erp_tools.services.workflow_events import publish

logger = logging.getLogger(__name__)


def _as_amount(name, value) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number", details={name: "invalid"}) from None
    return amount


def save_cost_analysis(request_id: int, cost, sale_price, actor: str, *, skip_permission: bool = False) -> dict:
    """Record the cost analysis of a purchase request.

    The margin is ``(sale_price - cost) / cost``; the sale price also becomes
    the request's unit sale price.  The analysis is informational and never
    flags the request as modified.

    Raises:
        ValidationError: non-numeric amounts or a cost that is not positive.
    """
    cost = _as_amount("cost", cost)
    sale_price = _as_amount("sale_price", sale_price)
    if cost <= 0:
        raise ValidationError("cost must be greater than zero", details={"cost": "must be > 0"})
    if sale_price < 0:
        raise ValidationError("sale_price cannot be negative", details={"sale_price": "must be >= 0"})
    if not skip_permission:
        check_permission(actor, get_module("requests").permissions["cost_analysis"])

    analysis = {"cost": cost, "salePrice": sale_price, "margin": round((sale_price - cost) / cost, 4)}
    with atomic("save_cost_analysis", resource="PurchaseRequest", resource_id=request_id):
        req = db.session.get(PurchaseRequest, request_id, with_for_update=True, populate_existing=True)
        if req is None:
            raise NotFoundError(resource="PurchaseRequest", resource_id=request_id)
        previous = req.analysis
        req.analysis = analysis
        req.unit_sale_price = sale_price
    data = req.to_dict()

    logger.info("Cost analysis saved for %s by %s (margin %.2f%%)",
                data["consecutive"], actor, analysis["margin"] * 100,
                extra={"module_key": "requests", "entity_id": request_id,
                       "consecutive": data["consecutive"], "actor": actor})
    publish(module_key="requests", entity=data, action="cost_analysis", actor=actor,
            diff={"analysis": {"old": previous, "new": analysis}})
    return data
