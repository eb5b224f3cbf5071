"""
Workflow event sink: audit rows, in-app notifications, failure isolation.
"""

import logging

from erp_tools.models.audit import AuditLog
from erp_tools.models.notification import Notification
from erp_tools.services import workflow_events
from erp_tools.services import workflow_service as wf
from erp_tools.services.notification import NotificationService


def _recipients(**filters):
    return sorted(n.recipient for n in Notification.query.filter_by(**filters).all())


class TestRecipients:
    def test_create_notifies_approvers(self, make_request):
        req = make_request(actor="Sofia")
        assert _recipients(entity_id=req["id"], entity_type="requests") == ["Ana", "Luis", "Marta"]
        notif = Notification.query.filter_by(recipient="Ana").one()
        assert notif.task_type == "review"
        assert notif.title == f"Nueva solicitud {req['consecutive']}"

    def test_status_change_notifies_requester_not_actor(self, make_request):
        req = make_request(actor="Sofia")
        Notification.query.delete()
        wf.update_status("requests", req["id"], "approved", "Ana")
        assert _recipients() == ["Sofia"]

    def test_actor_is_not_notified_of_own_change(self, make_request):
        req = make_request(actor="Ana")
        Notification.query.delete()
        wf.update_status("requests", req["id"], "approved", "Ana")
        assert _recipients() == []

    def test_pending_action_notifies_resolvers(self, make_request):
        req = make_request(actor="Sofia")
        wf.update_status("requests", req["id"], "approved", "Ana")
        Notification.query.delete()
        wf.request_action("requests", req["id"], "cancellation-request", "Carla")
        assert _recipients(category="pending-action") == ["Ana", "Luis", "Marta"]

    def test_notify_toggle(self, app, make_request):
        app.config["WORKFLOW_NOTIFY"] = False
        try:
            req = make_request(actor="Sofia")
        finally:
            app.config["WORKFLOW_NOTIFY"] = True
        assert Notification.query.count() == 0
        assert AuditLog.query.filter_by(entity_id=str(req["id"]), action="create").count() == 1


class TestAudit:
    def test_every_committed_operation_is_audited(self, make_request):
        req = make_request()
        wf.update_status("requests", req["id"], "approved", "Ana")
        wf.add_note("requests", req["id"], "llamar al cliente", "Ana")
        actions = [a.action for a in AuditLog.query.filter_by(entity_type="requests").order_by(AuditLog.id)]
        assert actions == ["create", "status_change", "note"]

        change = AuditLog.query.filter_by(action="status_change").one()
        assert change.diff["status"] == {"old": "pending", "new": "approved"}
        assert change.consecutive == req["consecutive"]


class TestFailureIsolation:
    def test_sink_failure_keeps_transition(self, monkeypatch, make_request, caplog):
        req = make_request(actor="Sofia")

        def _boom(**kwargs):
            raise RuntimeError("notification store down")

        monkeypatch.setattr(workflow_events.NotificationService, "broadcast", _boom)
        with caplog.at_level(logging.WARNING, logger="erp_tools.services.workflow_events"):
            result = wf.update_status("requests", req["id"], "approved", "Ana")

        assert result["status"] == "approved"
        assert wf.get_entity("requests", req["id"])["status"] == "approved"
        assert AuditLog.query.filter_by(action="status_change").count() == 0
        assert "sink failed" in caplog.text

    def test_publish_reports_failure(self, monkeypatch):
        def _boom(**kwargs):
            raise RuntimeError("audit store down")

        monkeypatch.setattr(workflow_events, "write_audit", _boom)
        ok = workflow_events.publish(
            module_key="requests", entity={"id": 1, "consecutive": "SC-00001"}, action="create", actor="Ana",
        )
        assert ok is False


class TestNotificationService:
    def test_list_and_mark_read(self, make_request):
        make_request(actor="Sofia")
        make_request(actor="Sofia")
        items, total = NotificationService.list_for_recipient("Ana")
        assert total == 2
        assert items[0].id > items[1].id
        assert NotificationService.unread_count("Ana") == 2

        NotificationService.mark_read(items[0].id)
        assert NotificationService.unread_count("Ana") == 1
        assert NotificationService.mark_all_read("Ana") == 1
        assert NotificationService.unread_count("Ana") == 0
        assert NotificationService.unread_count("Luis") == 2

    def test_broadcast_to_all(self):
        NotificationService.broadcast(title="Mantenimiento programado", category="system")
        assert NotificationService.unread_count("Pablo") == 1
        assert NotificationService.unread_count("Bruno") == 1

    def test_mark_read_missing(self):
        assert NotificationService.mark_read(999) is None
