"""
HTTP tests for the workflow, settings, warehouse and notification blueprints.

Each test gets a fresh in-memory database seeded with the default settings,
roles and the users listed in conftest.
"""

from datetime import datetime, timezone

import pytest


def _create(client, request_data, actor="Ana", **overrides):
    res = client.post("/api/v1/requests/entities", json={"actor": actor, **request_data(**overrides)})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _status(client, rid, status, actor="Ana", **body):
    return client.post(f"/api/v1/requests/entities/{rid}/status", json={"actor": actor, "status": status, **body})


# ═════════════════════════════════════════════════════════════════════════════
# Health
# ═════════════════════════════════════════════════════════════════════════════


def test_health(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"


def test_unknown_route(client):
    res = client.get("/api/v1/nothing-here")
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════════
# Entities
# ═════════════════════════════════════════════════════════════════════════════


class TestEntities:
    def test_create_and_get(self, client, request_data):
        created = _create(client, request_data)
        assert created["consecutive"] == "SC-00001"
        assert created["status"] == "pending"
        assert created["requested_by"] == "Ana"

        res = client.get(f"/api/v1/requests/entities/{created['id']}")
        assert res.status_code == 200
        assert res.get_json()["status_label"] == "Pendiente"

    def test_actor_from_header(self, client, request_data):
        res = client.post("/api/v1/requests/entities", json=request_data(), headers={"X-Actor": "Sofia"})
        assert res.status_code == 201
        assert res.get_json()["requested_by"] == "Sofia"

    def test_missing_actor(self, client, request_data):
        res = client.post("/api/v1/requests/entities", json=request_data())
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_missing_required_field(self, client, request_data):
        payload = request_data()
        payload.pop("client_name")
        res = client.post("/api/v1/requests/entities", json={"actor": "Ana", **payload})
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert "client_name" in body["details"]

    def test_create_forbidden(self, client, order_data):
        res = client.post("/api/v1/planner/entities", json={"actor": "Sofia", **order_data()})
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_unknown_module(self, client):
        res = client.get("/api/v1/payroll/entities")
        assert res.status_code == 404

    def test_missing_entity(self, client):
        res = client.get("/api/v1/requests/entities/999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_list_partitions(self, client, request_data):
        first = _create(client, request_data)
        second = _create(client, request_data, client_name="Ferretería Norte")
        _status(client, first["id"], "canceled")

        active = client.get("/api/v1/requests/entities").get_json()
        assert [i["id"] for i in active["items"]] == [second["id"]]
        assert (active["total_active"], active["total_archived"]) == (1, 1)

        archived = client.get("/api/v1/requests/entities?archived=true").get_json()
        assert [i["id"] for i in archived["items"]] == [first["id"]]

        found = client.get("/api/v1/requests/entities?search=norte").get_json()
        assert [i["id"] for i in found["items"]] == [second["id"]]

    def test_update_details(self, client, request_data):
        created = _create(client, request_data)
        res = client.put(f"/api/v1/requests/entities/{created['id']}",
                         json={"actor": "Ana", "quantity": 25, "route": "Ruta GAM"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["quantity"] == 25
        assert body["last_modified_by"] == "Ana"

    def test_update_details_stale_status(self, client, request_data):
        created = _create(client, request_data)
        _status(client, created["id"], "approved")
        res = client.put(f"/api/v1/requests/entities/{created['id']}",
                         json={"actor": "Ana", "quantity": 3, "expected_status": "pending"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_CONCURRENT"

    def test_history(self, client, request_data):
        created = _create(client, request_data)
        _status(client, created["id"], "approved", notes="ok")
        body = client.get(f"/api/v1/requests/entities/{created['id']}/history").get_json()
        assert body["total"] == 2
        assert [h["status"] for h in body["items"]] == ["pending", "approved"]


# ═════════════════════════════════════════════════════════════════════════════
# Status machine
# ═════════════════════════════════════════════════════════════════════════════


class TestStatus:
    def test_transition(self, client, request_data):
        created = _create(client, request_data)
        res = _status(client, created["id"], "approved", notes="visto bueno")
        assert res.status_code == 200
        assert res.get_json()["status"] == "approved"

    def test_status_required(self, client, request_data):
        created = _create(client, request_data)
        res = client.post(f"/api/v1/requests/entities/{created['id']}/status", json={"actor": "Ana"})
        assert res.status_code == 400

    def test_unknown_status(self, client, request_data):
        created = _create(client, request_data)
        res = _status(client, created["id"], "shipped")
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_STATUS"

    def test_disallowed_transition(self, client, request_data):
        created = _create(client, request_data)
        res = _status(client, created["id"], "entered-erp")
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_STATE"
        assert body["details"]["current_status"] == "pending"

    def test_expected_status_mismatch(self, client, request_data):
        created = _create(client, request_data)
        res = _status(client, created["id"], "approved", expected_status="purchasing-review")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_CONCURRENT"

    def test_permission_denied(self, client, request_data):
        created = _create(client, request_data, actor="Sofia")
        res = _status(client, created["id"], "approved", actor="Sofia")
        assert res.status_code == 403
        assert res.get_json()["details"]["permission"] == "requests:status:approve"

    def test_reopen(self, client, request_data):
        created = _create(client, request_data)
        _status(client, created["id"], "canceled")
        assert _status(client, created["id"], "pending").status_code == 409
        res = _status(client, created["id"], "pending", reopen=True)
        assert res.status_code == 200
        assert res.get_json()["reopened"] is True

    def test_fields_must_be_object(self, client, request_data):
        created = _create(client, request_data)
        res = _status(client, created["id"], "approved", fields=["arrival_date"])
        assert res.status_code == 422


# ═════════════════════════════════════════════════════════════════════════════
# Pending actions, modifications, notes, planning
# ═════════════════════════════════════════════════════════════════════════════


class TestOverlayEndpoints:
    @pytest.fixture()
    def approved(self, client, request_data):
        created = _create(client, request_data, actor="Sofia")
        return _status(client, created["id"], "approved").get_json()

    def test_request_and_grant(self, client, approved):
        rid = approved["id"]
        res = client.post(f"/api/v1/requests/entities/{rid}/pending-action",
                          json={"actor": "Carla", "action": "cancellation-request", "notes": "duplicada"})
        assert res.status_code == 200
        assert res.get_json()["pending_action"] == "cancellation-request"

        res = client.post(f"/api/v1/requests/entities/{rid}/pending-action/resolve",
                          json={"actor": "Luis", "grant": True})
        assert res.status_code == 200
        assert res.get_json()["status"] == "canceled"

    def test_resolve_requires_grant_flag(self, client, approved):
        res = client.post(f"/api/v1/requests/entities/{approved['id']}/pending-action/resolve",
                          json={"actor": "Luis"})
        assert res.status_code == 400

    def test_resolve_without_pending(self, client, approved):
        res = client.post(f"/api/v1/requests/entities/{approved['id']}/pending-action/resolve",
                          json={"actor": "Luis", "grant": False})
        assert res.status_code == 409

    def test_action_required(self, client, approved):
        res = client.post(f"/api/v1/requests/entities/{approved['id']}/pending-action", json={"actor": "Sofia"})
        assert res.status_code == 400

    def test_modification_flag_and_confirm(self, client, approved):
        rid = approved["id"]
        res = client.put(f"/api/v1/requests/entities/{rid}", json={"actor": "Ana", "quantity": 40})
        assert res.get_json()["has_been_modified"] is True

        res = client.post(f"/api/v1/requests/entities/{rid}/confirm-modification", json={"actor": "Luis"})
        assert res.status_code == 200
        assert res.get_json()["has_been_modified"] is False

    def test_locked_edit_forbidden(self, client, approved):
        res = client.put(f"/api/v1/requests/entities/{approved['id']}", json={"actor": "Sofia", "quantity": 40})
        assert res.status_code == 403

    def test_add_note(self, client, approved):
        res = client.post(f"/api/v1/requests/entities/{approved['id']}/notes",
                          json={"actor": "Sofia", "notes": "cliente llamó"})
        assert res.status_code == 201
        body = res.get_json()
        assert body["status"] == "approved"
        assert body["notes"] == "Nota agregada: cliente llamó"

    def test_note_required(self, client, approved):
        res = client.post(f"/api/v1/requests/entities/{approved['id']}/notes", json={"actor": "Sofia"})
        assert res.status_code == 400

    def test_planning_priority(self, client, approved):
        res = client.patch(f"/api/v1/requests/entities/{approved['id']}/planning",
                           json={"actor": "Ana", "priority": "high"})
        assert res.status_code == 200
        assert res.get_json()["priority"] == "high"

    def test_planning_rejects_other_fields(self, client, approved):
        res = client.patch(f"/api/v1/requests/entities/{approved['id']}/planning",
                           json={"actor": "Ana", "quantity": 1})
        assert res.status_code == 422


# ═════════════════════════════════════════════════════════════════════════════
# Reports & cost analysis
# ═════════════════════════════════════════════════════════════════════════════


class TestReports:
    def test_completed_report(self, client, request_data):
        created = _create(client, request_data)
        client.put("/api/v1/requests/settings", json={"actor": "Ana", "settings": {"useWarehouseReception": True}})
        for status in ("approved", "ordered", "received-in-warehouse"):
            assert _status(client, created["id"], status).status_code == 200

        today = datetime.now(timezone.utc).date().isoformat()
        body = client.get(f"/api/v1/requests/reports/completed?date_from={today}&date_to={today}").get_json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == created["id"]
        assert len(body["items"][0]["history"]) == 4

    def test_completed_report_requires_range(self, client):
        assert client.get("/api/v1/requests/reports/completed").status_code == 422

    def test_completed_report_bad_range(self, client):
        res = client.get("/api/v1/requests/reports/completed?date_from=2026-05-10&date_to=2026-05-01")
        assert res.status_code == 422

    def test_cost_analysis(self, client, request_data):
        created = _create(client, request_data)
        res = client.post(f"/api/v1/requests/entities/{created['id']}/cost-analysis",
                          json={"actor": "Ana", "cost": 80, "sale_price": 100})
        assert res.status_code == 200
        body = res.get_json()
        assert body["analysis"] == {"cost": 80.0, "salePrice": 100.0, "margin": 0.25}
        assert body["unit_sale_price"] == 100.0

    def test_cost_analysis_validation(self, client, request_data):
        created = _create(client, request_data)
        res = client.post(f"/api/v1/requests/entities/{created['id']}/cost-analysis",
                          json={"actor": "Ana", "cost": 0, "sale_price": 100})
        assert res.status_code == 422
        res = client.post(f"/api/v1/requests/entities/{created['id']}/cost-analysis",
                          json={"actor": "Ana", "cost": 10})
        assert res.status_code == 400

    def test_cost_analysis_forbidden(self, client, request_data):
        created = _create(client, request_data)
        res = client.post(f"/api/v1/requests/entities/{created['id']}/cost-analysis",
                          json={"actor": "Sofia", "cost": 10, "sale_price": 12})
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# Settings
# ═════════════════════════════════════════════════════════════════════════════


class TestSettingsApi:
    def test_read(self, client):
        body = client.get("/api/v1/planner/settings").get_json()
        assert body["orderPrefix"] == "OP-"
        assert body["nextOrderNumber"] == 1

    def test_write(self, client):
        res = client.put("/api/v1/planner/settings", json={"actor": "Ana", "settings": {"orderPrefix": "PRD-"}})
        assert res.status_code == 200
        assert res.get_json()["orderPrefix"] == "PRD-"

    def test_settings_object_required(self, client):
        res = client.put("/api/v1/planner/settings", json={"actor": "Ana"})
        assert res.status_code == 400

    def test_invalid_setting(self, client):
        res = client.put("/api/v1/planner/settings", json={"actor": "Ana", "settings": {"nextOrderNumber": 0}})
        assert res.status_code == 422

    def test_forbidden(self, client):
        res = client.put("/api/v1/planner/settings", json={"actor": "Pablo", "settings": {"orderPrefix": "X"}})
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# Warehouse
# ═════════════════════════════════════════════════════════════════════════════


class TestWarehouseApi:
    def test_container_lifecycle(self, client):
        res = client.post("/api/v1/dispatch/containers", json={"actor": "Bruno", "name": "Camión 1"})
        assert res.status_code == 201
        cid = res.get_json()["id"]

        assert client.post("/api/v1/dispatch/containers", json={"actor": "Bruno", "name": "Camión 1"}).status_code == 409
        assert client.post(f"/api/v1/dispatch/containers/{cid}/lock", json={"actor": "Bruno"}).status_code == 200

        res = client.post(f"/api/v1/dispatch/containers/{cid}/lock", json={"actor": "Ana"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

        res = client.post("/api/v1/dispatch/entities", json={
            "actor": "Ana", "container_id": cid, "document_id": "FAC-9", "document_type": "invoice",
        })
        assert res.status_code == 409

        res = client.post(f"/api/v1/dispatch/containers/{cid}/unlock", json={"actor": "Ana", "force": True})
        assert res.status_code == 200
        assert res.get_json()["is_locked"] is False

        res = client.post("/api/v1/dispatch/entities", json={
            "actor": "Bruno", "container_id": cid, "document_id": "FAC-9", "document_type": "invoice",
        })
        assert res.status_code == 201

        body = client.get(f"/api/v1/dispatch/containers/{cid}?assignments=true").get_json()
        assert len(body["assignments"]) == 1

        listing = client.get("/api/v1/dispatch/containers").get_json()
        assert listing["total"] == 1

    def test_missing_container(self, client):
        assert client.get("/api/v1/dispatch/containers/77").status_code == 404

    def test_units(self, client):
        res = client.post("/api/v1/warehouse/units", json={"actor": "Bruno", "product_id": "P-10", "quantity": 4})
        assert res.status_code == 201
        code = res.get_json()["unit_code"]
        assert code == "U00001"
        assert client.get(f"/api/v1/warehouse/units/{code}").get_json()["product_id"] == "P-10"
        assert client.get("/api/v1/warehouse/units/U00404").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Notifications
# ═════════════════════════════════════════════════════════════════════════════


class TestNotificationsApi:
    def test_list_and_mark(self, client, request_data):
        _create(client, request_data, actor="Sofia")
        body = client.get("/api/v1/notifications?recipient=Luis").get_json()
        assert body["total"] == 1
        assert body["unread"] == 1
        nid = body["items"][0]["id"]

        res = client.post(f"/api/v1/notifications/{nid}/read")
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True
        assert client.get("/api/v1/notifications/unread-count?recipient=Luis").get_json()["unread"] == 0

    def test_read_all(self, client, request_data):
        _create(client, request_data, actor="Sofia")
        _create(client, request_data, actor="Sofia")
        res = client.post("/api/v1/notifications/read-all", json={"recipient": "Marta"})
        assert res.get_json()["marked"] == 2

    def test_recipient_required(self, client):
        assert client.get("/api/v1/notifications").status_code == 400
        assert client.post("/api/v1/notifications/read-all", json={}).status_code == 400

    def test_mark_missing(self, client):
        assert client.post("/api/v1/notifications/12345/read").status_code == 404
