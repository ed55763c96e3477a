"""
Tests: report lifecycle.

Covers:
    - the phase transition table
    - enhancement: diff, accept (findings resolved, audited), discard
      (original restored), failures and stale results
    - manual edit sessions
    - finding resolve / dismiss and the learned dismissal rule
    - archive / unarchive
"""

import pytest

from vesta.core.exceptions import NotFoundError, TransitionError, ValidationError
from vesta.models.report import ReportPhase
from vesta.services import audit_service, dismissal_service, report_service
from vesta.services.drafts import DraftStore
from vesta.services.report_lifecycle import REPORT_TRANSITIONS, ReportLifecycle, can_transition, load_report

PLAN = "Users will agree to terms.\nBackups run nightly."
REVISED = "Users will agree to terms.\nBackups run nightly and are tested monthly."


@pytest.fixture()
def lifecycle():
    return ReportLifecycle()


@pytest.fixture()
def report(admin, workspace, fake_llm):
    fake_llm.queue_analysis(("Consent is assumed", "critical", "Users will agree to terms."),
                            ("No backup owner", "warning", "Backups run nightly."))
    return report_service.create_report_from_text(workspace["id"], "Plan", PLAN, admin)


def _logs(workspace_id):
    return audit_service.list_logs(workspace_id)["items"]


class TestTransitionTable:
    @pytest.mark.parametrize("current,target", [
        (ReportPhase.UPLOADING, ReportPhase.ANALYZING),
        (ReportPhase.ANALYZING, ReportPhase.ACTIVE),
        (ReportPhase.ACTIVE, ReportPhase.EDITING),
        (ReportPhase.ACTIVE, ReportPhase.ENHANCING),
        (ReportPhase.ENHANCING, ReportPhase.DIFFING),
        (ReportPhase.ENHANCING, ReportPhase.ACTIVE),
        (ReportPhase.DIFFING, ReportPhase.ACTIVE),
        (ReportPhase.ARCHIVED, ReportPhase.DELETED),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (ReportPhase.UPLOADING, ReportPhase.ACTIVE),
        (ReportPhase.EDITING, ReportPhase.ENHANCING),
        (ReportPhase.DIFFING, ReportPhase.EDITING),
        (ReportPhase.EDITING, ReportPhase.DELETED),
        (ReportPhase.DELETED, ReportPhase.ACTIVE),
    ])
    def test_refused(self, current, target):
        assert not can_transition(current, target)

    def test_every_phase_listed(self):
        assert set(REPORT_TRANSITIONS) == set(ReportPhase)


class TestEnhancement:
    def test_enhance_returns_diff(self, admin, workspace, report, fake_llm, lifecycle):
        fake_llm.queue_enhancement(REVISED)
        outcome = lifecycle.enhance(workspace["id"], report["id"], admin)

        assert outcome["error"] is None
        assert outcome["report"]["phase"] == "diffing"
        assert outcome["report"]["documentContent"] == PLAN
        assert outcome["report"]["diffContent"] == REVISED
        assert [line["kind"] for line in outcome["diff"]] == ["unchanged", "added", "removed"]
        assert outcome["edits"] == 2
        draft = DraftStore().get(report["id"])
        assert draft.original_content == PLAN
        assert draft.revised_content == REVISED

    def test_accept_commits_and_resolves(self, admin, workspace, report, fake_llm, lifecycle):
        wid = workspace["id"]
        fake_llm.queue_enhancement(REVISED)
        lifecycle.enhance(wid, report["id"], admin)

        accepted = lifecycle.accept_enhancement(wid, report["id"], admin)

        assert accepted.phase is ReportPhase.ACTIVE
        assert accepted.document_content == REVISED
        assert accepted.diff_content is None
        assert {f.status.value for f in accepted.findings} == {"resolved"}
        assert DraftStore().get(report["id"]) is None
        entry = _logs(wid)[0]
        assert entry["action"] == "Auto-Fix"
        assert entry["details"]["kind"] == "linked"
        assert entry["details"]["reportId"] == report["id"]

    def test_accept_keeps_dismissed_findings(self, admin, workspace, report, fake_llm, lifecycle):
        wid = workspace["id"]
        dismissed_id = report["findings"][0]["id"]
        lifecycle.dismiss_finding(wid, report["id"], dismissed_id, "This is a false positive", admin)
        fake_llm.queue_enhancement(REVISED)
        lifecycle.enhance(wid, report["id"], admin)

        accepted = lifecycle.accept_enhancement(wid, report["id"], admin)

        statuses = {f.id: f.status.value for f in accepted.findings}
        assert statuses[dismissed_id] == "dismissed"
        assert list(statuses.values()).count("resolved") == 1

    def test_discard_restores_original(self, admin, workspace, fake_llm, lifecycle):
        wid = workspace["id"]
        fake_llm.queue_analysis(("Too short", "warning", "X"))
        created = report_service.create_report_from_text(wid, "Tiny", "X", admin)
        fake_llm.queue_enhancement("X with a recovery section")
        lifecycle.enhance(wid, created["id"], admin)

        discarded = lifecycle.discard_enhancement(wid, created["id"], admin)

        assert discarded.phase is ReportPhase.ACTIVE
        assert discarded.document_content == "X"
        assert discarded.diff_content is None
        assert DraftStore().get(created["id"]) is None
        assert load_report(wid, created["id"]).findings[0].status.value == "active"

    def test_failure_returns_to_active(self, admin, workspace, report, fake_llm, lifecycle):
        fake_llm.queue("not json")
        outcome = lifecycle.enhance(workspace["id"], report["id"], admin)
        assert outcome["error"]
        assert outcome["report"]["phase"] == "active"
        assert outcome["report"]["documentContent"] == PLAN
        assert outcome["diff"] == []
        assert DraftStore().get(report["id"]) is None

    def test_stale_result_is_ignored(self, admin, workspace, report, lifecycle):
        wid = workspace["id"]
        _, ticket = lifecycle.begin_enhancement(wid, report["id"], admin)
        lifecycle.discard_enhancement(wid, report["id"], admin)

        late = lifecycle.complete_enhancement(wid, report["id"], ticket, REVISED)

        assert late.phase is ReportPhase.ACTIVE
        assert late.document_content == PLAN
        assert late.diff_content is None

    def test_second_enhance_is_refused(self, admin, workspace, report, lifecycle):
        lifecycle.begin_enhancement(workspace["id"], report["id"], admin)
        with pytest.raises(TransitionError):
            lifecycle.begin_enhancement(workspace["id"], report["id"], admin)

    def test_accept_without_revision(self, admin, workspace, report, lifecycle):
        with pytest.raises(TransitionError):
            lifecycle.accept_enhancement(workspace["id"], report["id"], admin)


class TestCurrentDiff:
    @pytest.fixture()
    def diffing(self, admin, workspace, report, fake_llm, lifecycle):
        fake_llm.queue_enhancement(REVISED)
        lifecycle.enhance(workspace["id"], report["id"], admin)
        return report

    def test_line_mode(self, admin, workspace, diffing, lifecycle):
        result = lifecycle.current_diff(workspace["id"], diffing["id"], admin)
        assert result["mode"] == "line"
        assert result["edits"] == 2

    def test_word_mode(self, admin, workspace, diffing, lifecycle):
        result = lifecycle.current_diff(workspace["id"], diffing["id"], admin, mode="word")
        assert result["mode"] == "word"
        assert "".join(t["text"] for t in result["diff"] if t["kind"] != "removed") == REVISED
        assert "<ins class=\"diff-added\">" in result["html"]

    def test_invalid_mode(self, admin, workspace, diffing, lifecycle):
        with pytest.raises(ValidationError):
            lifecycle.current_diff(workspace["id"], diffing["id"], admin, mode="char")

    def test_no_pending_revision(self, admin, workspace, report, lifecycle):
        with pytest.raises(TransitionError):
            lifecycle.current_diff(workspace["id"], report["id"], admin)


class TestManualEdit:
    def test_save(self, admin, workspace, report, lifecycle):
        wid = workspace["id"]
        assert lifecycle.begin_edit(wid, report["id"], admin).phase is ReportPhase.EDITING
        saved = lifecycle.save_edit(wid, report["id"], "Rewritten plan.", admin)
        assert saved.phase is ReportPhase.ACTIVE
        assert saved.document_content == "Rewritten plan."
        assert _logs(wid)[0]["action"] == "Document Edited"

    def test_cancel_keeps_content(self, admin, workspace, report, lifecycle):
        wid = workspace["id"]
        lifecycle.begin_edit(wid, report["id"], admin)
        cancelled = lifecycle.cancel_edit(wid, report["id"], admin)
        assert cancelled.phase is ReportPhase.ACTIVE
        assert cancelled.document_content == PLAN

    def test_empty_content_rejected(self, admin, workspace, report, lifecycle):
        lifecycle.begin_edit(workspace["id"], report["id"], admin)
        with pytest.raises(ValidationError):
            lifecycle.save_edit(workspace["id"], report["id"], "  ", admin)
        assert load_report(workspace["id"], report["id"]).phase is ReportPhase.EDITING

    def test_save_without_edit_session(self, admin, workspace, report, lifecycle):
        with pytest.raises(TransitionError):
            lifecycle.save_edit(workspace["id"], report["id"], "New text", admin)

    def test_no_enhance_while_editing(self, admin, workspace, report, lifecycle):
        lifecycle.begin_edit(workspace["id"], report["id"], admin)
        with pytest.raises(TransitionError):
            lifecycle.begin_enhancement(workspace["id"], report["id"], admin)


class TestFindings:
    def test_dismiss_learns_one_rule(self, admin, workspace, report, lifecycle):
        wid = workspace["id"]
        finding_id = report["findings"][0]["id"]
        before = len(_logs(wid))

        updated, rule = lifecycle.dismiss_finding(
            wid, report["id"], finding_id, "This is an accepted business risk", admin)

        assert updated.finding(finding_id).status.value == "dismissed"
        rules = dismissal_service.load_rules(wid)
        assert len(rules) == 1
        assert rules[0].finding_title == "Consent is assumed"
        assert rule["reason"] == "This is an accepted business risk"
        logs = _logs(wid)
        assert len(logs) == before + 1
        assert logs[0]["action"] == "Finding Dismissed"
        assert finding_id in logs[0]["details"]["message"]
        assert "This is an accepted business risk" in logs[0]["details"]["message"]

    def test_reason_by_enum_name(self, admin, workspace, report, lifecycle):
        _, rule = lifecycle.dismiss_finding(
            workspace["id"], report["id"], report["findings"][0]["id"], "FALSE_POSITIVE", admin)
        assert rule["reason"] == "This is a false positive"

    def test_invalid_reason(self, admin, workspace, report, lifecycle):
        with pytest.raises(ValidationError):
            lifecycle.dismiss_finding(workspace["id"], report["id"], report["findings"][0]["id"],
                                      "Because", admin)
        assert dismissal_service.load_rules(workspace["id"]) == []

    def test_resolve(self, admin, workspace, report, lifecycle):
        wid = workspace["id"]
        finding_id = report["findings"][1]["id"]
        updated = lifecycle.resolve_finding(wid, report["id"], finding_id, admin)
        assert updated.finding(finding_id).status.value == "resolved"
        assert _logs(wid)[0]["action"] == "Finding Resolved"

    def test_final_status_cannot_change(self, admin, workspace, report, lifecycle):
        finding_id = report["findings"][0]["id"]
        lifecycle.resolve_finding(workspace["id"], report["id"], finding_id, admin)
        with pytest.raises(TransitionError):
            lifecycle.dismiss_finding(workspace["id"], report["id"], finding_id,
                                      "This is a false positive", admin)
        assert dismissal_service.load_rules(workspace["id"]) == []

    def test_unknown_finding(self, admin, workspace, report, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.resolve_finding(workspace["id"], report["id"], "finding-missing", admin)

    def test_findings_frozen_while_editing(self, admin, workspace, report, lifecycle):
        lifecycle.begin_edit(workspace["id"], report["id"], admin)
        with pytest.raises(TransitionError):
            lifecycle.resolve_finding(workspace["id"], report["id"], report["findings"][0]["id"], admin)

    def test_member_may_dismiss(self, admin, member, join, workspace, report, lifecycle):
        join(workspace["id"], admin, member)
        updated, _ = lifecycle.dismiss_finding(workspace["id"], report["id"], report["findings"][0]["id"],
                                               "Not relevant to this project", member)
        assert updated.finding(report["findings"][0]["id"]).status.value == "dismissed"


class TestArchive:
    def test_archive_and_unarchive(self, admin, workspace, report, lifecycle):
        wid = workspace["id"]
        archived = lifecycle.set_status(wid, report["id"], "archived", admin)
        assert archived.phase is ReportPhase.ARCHIVED
        assert archived.status.value == "archived"
        assert _logs(wid)[0]["action"] == "Analysis Archived"

        restored = lifecycle.set_status(wid, report["id"], "active", admin)
        assert restored.phase is ReportPhase.ACTIVE
        assert _logs(wid)[0]["action"] == "Analysis Unarchived"

    def test_invalid_status(self, admin, workspace, report, lifecycle):
        with pytest.raises(ValidationError):
            lifecycle.set_status(workspace["id"], report["id"], "frozen", admin)

    def test_archived_report_cannot_be_edited(self, admin, workspace, report, lifecycle):
        lifecycle.set_status(workspace["id"], report["id"], "archived", admin)
        with pytest.raises(TransitionError):
            lifecycle.begin_edit(workspace["id"], report["id"], admin)
