"""
Tests: audit logger.

Covers:
    - plain vs linked detail shapes
    - newest-first ordering and paging
    - entries written before the tagged detail form
"""

from vesta.models.audit import AuditAction, AuditLog, LinkedMessage, PlainMessage, details_from_dict
from vesta.services import audit_service
from vesta.services.store import get_store


class TestRecord:
    def test_plain_entry(self, workspace, admin):
        entry = audit_service.record(workspace["id"], admin.email, AuditAction.WORKSPACE_RENAMED, "Renamed.")
        assert entry.to_dict()["details"] == {"kind": "plain", "message": "Renamed."}
        assert entry.to_dict()["userEmail"] == admin.email

    def test_linked_entry(self, workspace, admin):
        entry = audit_service.record(workspace["id"], admin.email, AuditAction.ANALYSIS_RUN,
                                     "Analyzed.", report_id="rep-1")
        assert entry.to_dict()["details"] == {"kind": "linked", "message": "Analyzed.", "reportId": "rep-1"}

    def test_newest_first(self, workspace, admin):
        wid = workspace["id"]
        audit_service.record(wid, admin.email, AuditAction.WORKSPACE_RENAMED, "first")
        audit_service.record(wid, admin.email, AuditAction.WORKSPACE_RENAMED, "second")
        items = audit_service.list_logs(wid)["items"]
        assert [i["details"]["message"] for i in items[:2]] == ["second", "first"]
        # workspace creation was the first entry
        assert items[-1]["action"] == "Workspace Created"


class TestListLogs:
    def test_paging(self, workspace, admin):
        wid = workspace["id"]
        for n in range(5):
            audit_service.record(wid, admin.email, AuditAction.WORKSPACE_RENAMED, f"rename {n}")
        page = audit_service.list_logs(wid, offset=1, limit=2)
        assert page["total"] == 6
        assert [i["details"]["message"] for i in page["items"]] == ["rename 3", "rename 2"]

    def test_unknown_workspace_is_empty(self, app):
        assert audit_service.list_logs("ws-none") == {"items": [], "total": 0}

    def test_legacy_string_details(self, workspace, admin):
        wid = workspace["id"]
        get_store().mutate(audit_service.COLLECTION, wid, lambda logs: [{
            "id": "log-legacy",
            "timestamp": "2024-01-01T00:00:00+00:00",
            "userEmail": admin.email,
            "action": "Analysis Run",
            "details": "Ran an analysis.",
        }] + logs, [])
        item = audit_service.list_logs(wid, limit=1)["items"][0]
        assert item["details"] == {"kind": "plain", "message": "Ran an analysis."}


class TestDetails:
    def test_linked_without_report_is_plain(self):
        assert details_from_dict({"kind": "linked", "message": "m"}) == PlainMessage("m")

    def test_linked(self):
        assert details_from_dict({"kind": "linked", "message": "m", "reportId": "r"}) == LinkedMessage("m", "r")

    def test_from_dict(self):
        log = AuditLog.from_dict({"id": "log-1", "timestamp": "t", "userEmail": "a@b.c",
                                  "action": "Auto-Fix", "details": {"kind": "plain", "message": "x"}})
        assert log.action is AuditAction.AUTO_FIX
        assert log.details == PlainMessage("x")
