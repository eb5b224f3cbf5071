"""
Pending-action overlay tests.

A cancellation or unapproval request sets ``pending_action`` without
touching ``status``; a second approver grants or denies it.
"""

import pytest

from erp_tools.core.exceptions import InvalidTransitionError, PermissionDenied
from erp_tools.services import workflow_service as wf


@pytest.fixture()
def approved_request(make_request):
    req = make_request(actor="Sofia")
    return wf.update_status("requests", req["id"], "approved", "Ana")


class TestRequestAndDeny:
    def test_deny_restores_overlay_only(self, approved_request):
        rid = approved_request["id"]
        pending = wf.request_action("requests", rid, "cancellation-request", "Carla", "cliente canceló")
        assert pending["status"] == "approved"
        assert pending["pending_action"] == "cancellation-request"
        assert pending["previous_status"] == "approved"

        denied = wf.resolve_action("requests", rid, False, "Luis", "se mantiene")
        assert denied["status"] == "approved"
        assert denied["pending_action"] == "none"

        notes = [h["notes"] for h in wf.get_history("requests", rid)][-2:]
        assert notes == [
            "Solicitud de cancelación iniciada: cliente canceló",
            "Acción administrativa rechazada: se mantiene",
        ]

    def test_second_request_rejected(self, approved_request):
        rid = approved_request["id"]
        wf.request_action("requests", rid, "unapproval-request", "Sofia")
        with pytest.raises(InvalidTransitionError):
            wf.request_action("requests", rid, "cancellation-request", "Carla")

    def test_resolve_without_pending(self, approved_request):
        with pytest.raises(InvalidTransitionError):
            wf.resolve_action("requests", approved_request["id"], True, "Luis")

    def test_resolver_needs_permission(self, approved_request):
        rid = approved_request["id"]
        wf.request_action("requests", rid, "cancellation-request", "Carla")
        with pytest.raises(PermissionDenied):
            wf.resolve_action("requests", rid, True, "Sofia")
        assert wf.get_entity("requests", rid)["pending_action"] == "cancellation-request"


class TestGrant:
    def test_grant_cancellation(self, approved_request):
        rid = approved_request["id"]
        wf.request_action("requests", rid, "cancellation-request", "Carla")
        granted = wf.resolve_action("requests", rid, True, "Luis", "ok")
        assert granted["status"] == "canceled"
        assert granted["pending_action"] == "none"
        assert granted["is_archived"] is True
        assert wf.get_history("requests", rid)[-1]["notes"] == "Solicitud de cancelación aprobada: ok"

    def test_grant_unapproval_returns_to_pending(self, approved_request):
        rid = approved_request["id"]
        wf.request_action("requests", rid, "unapproval-request", "Sofia")
        granted = wf.resolve_action("requests", rid, True, "Luis")
        assert granted["status"] == "pending"
        assert granted["previous_status"] == "approved"

    def test_grant_with_explicit_target(self, make_order):
        order = make_order()
        for status in ("approved", "in-queue"):
            wf.update_status("planner", order["id"], status, "Ana")
        wf.request_action("planner", order["id"], "unapproval-request", "Pablo")
        granted = wf.resolve_action("planner", order["id"], True, "Ana", target_status="approved")
        assert granted["status"] == "approved"

    def test_pending_action_stays_active(self, approved_request):
        rid = approved_request["id"]
        wf.request_action("requests", rid, "cancellation-request", "Carla")
        listing = wf.list_entities("requests")
        assert [i["id"] for i in listing["items"]] == [rid]
        assert listing["total_archived"] == 0

    def test_archived_entity_cannot_request(self, approved_request):
        rid = approved_request["id"]
        wf.update_status("requests", rid, "canceled", "Ana")
        with pytest.raises(InvalidTransitionError):
            wf.request_action("requests", rid, "cancellation-request", "Carla")


class TestOrderedRequests:
    """``ordered`` is the final status with default settings; actions still apply."""

    @pytest.fixture()
    def ordered_request(self, approved_request):
        return wf.update_status("requests", approved_request["id"], "ordered", "Ana")

    def test_cancel_ordered(self, ordered_request):
        rid = ordered_request["id"]
        assert ordered_request["is_archived"] is True
        pending = wf.request_action("requests", rid, "cancellation-request", "Carla")
        assert pending["status"] == "ordered"
        granted = wf.resolve_action("requests", rid, True, "Luis")
        assert granted["status"] == "canceled"
        assert granted["pending_action"] == "none"

    def test_unapprove_ordered(self, ordered_request):
        rid = ordered_request["id"]
        wf.request_action("requests", rid, "unapproval-request", "Sofia")
        granted = wf.resolve_action("requests", rid, True, "Luis")
        assert granted["status"] == "pending"
        assert granted["previous_status"] == "ordered"
        assert granted["reopened"] is False
        assert granted["is_archived"] is False


class TestActionPermissions:
    def test_cancellation_needs_cancel_permission(self, approved_request):
        rid = approved_request["id"]
        with pytest.raises(PermissionDenied):
            wf.request_action("requests", rid, "cancellation-request", "Sofia")
        assert wf.get_entity("requests", rid)["pending_action"] == "none"

    def test_planner_actions_use_separate_permissions(self, make_order):
        order = make_order()
        for status in ("approved", "in-queue", "in-progress", "on-hold"):
            wf.update_status("planner", order["id"], status, "Ana")
        with pytest.raises(PermissionDenied):
            wf.request_action("planner", order["id"], "cancellation-request", "Pablo")
        pending = wf.request_action("planner", order["id"], "unapproval-request", "Pablo")
        assert pending["status"] == "on-hold"
        assert pending["pending_action"] == "unapproval-request"
