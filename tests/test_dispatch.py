"""
Warehouse tests: dispatch containers with locking, dispatch assignments,
inventory units.
"""

import pytest
from sqlalchemy import update

from erp_tools.core.exceptions import ConflictError, NotFoundError, PermissionDenied, ValidationError
from erp_tools.models import db
from erp_tools.models.audit import AuditLog
from erp_tools.models.warehouse import DispatchContainer
from erp_tools.services import dispatch_service, inventory_service
from erp_tools.services import workflow_service as wf


def _assignment(container_id, document_id="FAC-100", actor="Ana"):
    return wf.create_entity(
        "dispatch",
        {"container_id": container_id, "document_id": document_id, "document_type": "invoice"},
        actor,
    )


@pytest.fixture()
def container():
    return dispatch_service.create_container("Ruta Norte", "Ana")


# ═════════════════════════════════════════════════════════════════════════════
# Containers
# ═════════════════════════════════════════════════════════════════════════════


class TestContainers:
    def test_create_and_list(self, container):
        assert container["name"] == "Ruta Norte"
        assert container["is_locked"] is False
        assert [c["name"] for c in dispatch_service.list_containers()] == ["Ruta Norte"]

    def test_duplicate_name(self, container):
        with pytest.raises(ConflictError):
            dispatch_service.create_container("Ruta Norte", "Luis")

    def test_empty_name(self):
        with pytest.raises(ValidationError):
            dispatch_service.create_container("  ", "Ana")

    def test_lock_conflict(self, container):
        locked = dispatch_service.lock_container(container["id"], "Bruno")
        assert locked["locked_by"] == "Bruno"
        assert dispatch_service.lock_container(container["id"], "Bruno")["is_locked"] is True
        with pytest.raises(ConflictError, match="locked by Bruno"):
            dispatch_service.lock_container(container["id"], "Ana")

    def test_unlock_by_other_needs_force(self, container):
        dispatch_service.lock_container(container["id"], "Bruno")
        with pytest.raises(ConflictError):
            dispatch_service.unlock_container(container["id"], "Ana")
        released = dispatch_service.unlock_container(container["id"], "Ana", force=True)
        assert released["is_locked"] is False
        assert released["locked_by"] is None

    def test_force_unlock_needs_lock_permission(self, container):
        dispatch_service.lock_container(container["id"], "Ana")
        with pytest.raises(PermissionDenied):
            dispatch_service.unlock_container(container["id"], "Bruno", force=True)

    def test_unlock_when_not_locked_is_noop(self, container):
        released = dispatch_service.unlock_container(container["id"], "Bruno")
        assert released["is_locked"] is False
        assert AuditLog.query.filter_by(action="container.unlock").count() == 0

    def test_unlock_needs_edit_permission(self, container):
        with pytest.raises(PermissionDenied):
            dispatch_service.unlock_container(container["id"], "Desconocido")
        with pytest.raises(PermissionDenied):
            dispatch_service.unlock_container(container["id"], "Sofia")

    def test_lock_missing_container(self):
        with pytest.raises(NotFoundError):
            dispatch_service.lock_container(404, "Ana")


# ═════════════════════════════════════════════════════════════════════════════
# Assignments
# ═════════════════════════════════════════════════════════════════════════════


class TestAssignments:
    def test_create_assignment(self, container):
        assignment = _assignment(container["id"])
        assert assignment["consecutive"] == "DSP-00001"
        assert assignment["status"] == "pending"
        detail = dispatch_service.get_container(container["id"], include_assignments=True)
        assert [a["document_id"] for a in detail["assignments"]] == ["FAC-100"]

    def test_locked_by_other_rejects_new_assignment(self, container):
        dispatch_service.lock_container(container["id"], "Bruno")
        with pytest.raises(ConflictError):
            _assignment(container["id"], actor="Ana")
        assert _assignment(container["id"], actor="Bruno")["container_id"] == container["id"]

    def test_missing_container(self):
        with pytest.raises(NotFoundError):
            _assignment(999)

    def test_lock_taken_after_load_is_seen(self, container):
        # the session already holds the container as unlocked
        assert db.session.get(DispatchContainer, container["id"]).is_locked is False
        db.session.execute(
            update(DispatchContainer)
            .where(DispatchContainer.id == container["id"])
            .values(is_locked=True, locked_by="Bruno")
            .execution_options(synchronize_session=False)
        )
        with pytest.raises(ConflictError, match="locked by Bruno"):
            _assignment(container["id"], actor="Ana")

    def test_assignment_lifecycle(self, container):
        assignment = _assignment(container["id"])
        for status in ("in-progress", "discrepancy", "completed"):
            result = wf.update_status("dispatch", assignment["id"], status, "Bruno")
        assert result["status"] == "completed"
        assert result["status_label"] == "Despachado"
        statuses = [h["status"] for h in wf.get_history("dispatch", assignment["id"])]
        assert statuses == ["pending", "in-progress", "discrepancy", "completed"]

    def test_sort_order_is_planning_field(self, container):
        assignment = _assignment(container["id"])
        result = wf.update_planning_fields("dispatch", assignment["id"], {"sort_order": 3}, "Bruno")
        assert result["sort_order"] == 3


# ═════════════════════════════════════════════════════════════════════════════
# Inventory units
# ═════════════════════════════════════════════════════════════════════════════


class TestInventoryUnits:
    def test_codes_are_sequential(self):
        first = inventory_service.create_inventory_unit({"product_id": "P-1", "quantity": "12"}, "Bruno")
        second = inventory_service.create_inventory_unit({"product_id": "P-1"}, "Bruno")
        assert (first["unit_code"], second["unit_code"]) == ("U00001", "U00002")
        assert first["quantity"] == 12.0

    def test_units_do_not_consume_assignment_numbers(self, container):
        inventory_service.create_inventory_unit({"product_id": "P-1"}, "Bruno")
        assert _assignment(container["id"])["consecutive"] == "DSP-00001"

    def test_lookup_by_id_or_code(self):
        unit = inventory_service.create_inventory_unit({"product_id": "P-2"}, "Bruno")
        assert inventory_service.get_inventory_unit(unit["id"])["unit_code"] == "U00001"
        assert inventory_service.get_inventory_unit("U00001")["id"] == unit["id"]
        with pytest.raises(NotFoundError):
            inventory_service.get_inventory_unit("U99999")

    def test_product_required(self):
        with pytest.raises(ValidationError):
            inventory_service.create_inventory_unit({}, "Bruno")

    def test_permission(self):
        with pytest.raises(PermissionDenied):
            inventory_service.create_inventory_unit({"product_id": "P-1"}, "Sofia")
