"""
Tests: analysis report service.

Covers:
    - analysis of pasted text and uploads, including the error reports
      stored when extraction or the AI call fails
    - learned dismissal rules and custom regulations reaching the prompt
    - highlighting, listing, rename, delete and document chat
"""

import pypdf
import pytest

from vesta.ai.assistants.document_chat import FALLBACK_REPLY
from vesta.core.exceptions import NotFoundError, TransitionError, UnsupportedFormat, ValidationError
from vesta.models.knowledge import FeedbackReason
from vesta.services import audit_service, dismissal_service, knowledge_service, report_service
from vesta.services.report_lifecycle import ReportLifecycle

DOC = "Users will agree to terms."


def _prompt_text(call):
    return "\n".join(m["content"] for m in call["messages"])


def _latest_audit(workspace_id):
    return audit_service.list_logs(workspace_id, limit=1)["items"][0]


class TestAnalyze:
    def test_single_critical_finding_is_highlighted(self, admin, workspace, fake_llm):
        wid = workspace["id"]
        fake_llm.queue_analysis(("Consent is assumed", "critical", DOC))

        report = report_service.create_report_from_text(wid, "Terms plan", DOC, admin)

        assert report["summary"]["critical"] == 1
        assert report["summary"]["warning"] == 0
        assert report["phase"] == "active"
        assert report["resilienceScore"] == 72
        fid = report["findings"][0]["id"]
        highlighted = report_service.highlight_report(wid, report["id"], admin.email)
        assert highlighted["html"] == (
            f'<mark id="finding-{fid}" data-finding-id="{fid}" '
            f'class="finding-highlight finding-critical">{DOC}</mark>'
        )
        assert highlighted["located"] == [fid]
        assert highlighted["unlocated"] == []

    def test_checks_count_lines_against_context(self, admin, workspace, fake_llm):
        fake_llm.queue_analysis(("Consent is assumed", "critical", DOC))
        report = report_service.create_report_from_text(workspace["id"], "Plan", DOC, admin)
        # one line x (plan + three seeded sources) + one finding
        assert report["summary"]["checks"] == 5

    def test_run_is_audited_with_report_link(self, admin, workspace, fake_llm):
        fake_llm.queue_analysis()
        report = report_service.create_report_from_text(workspace["id"], "Plan", DOC, admin)
        entry = _latest_audit(workspace["id"])
        assert entry["action"] == "Analysis Run"
        assert entry["details"]["kind"] == "linked"
        assert entry["details"]["reportId"] == report["id"]

    def test_scores_are_clamped_and_severity_defaults(self, admin, workspace, fake_llm):
        fake_llm.queue_analysis(("Vague timeline", "major", "terms"), project=150)
        report = report_service.create_report_from_text(workspace["id"], "Plan", DOC, admin)
        assert report["resilienceScore"] == 100
        assert report["scores"]["project"] == 100
        assert report["findings"][0]["severity"] == "warning"

    def test_prompt_carries_context(self, admin, workspace, fake_llm):
        wid = workspace["id"]
        knowledge_service.add_regulation(wid, "All vendors must hold ISO 27001.", admin)
        dismissal_service.learn(wid, "Budget too small", FeedbackReason.ACCEPTED_RISK)
        fake_llm.queue_analysis()

        report_service.create_report_from_text(wid, "Plan", DOC, admin)

        prompt = _prompt_text(fake_llm.calls[-1])
        assert fake_llm.calls[-1]["purpose"] == "plan_analysis"
        assert DOC in prompt
        assert "CONTEXTUAL KNOWLEDGE BASE" in prompt
        assert '"Budget too small" (Reason: This is an accepted business risk)' in prompt
        assert "- All vendors must hold ISO 27001." in prompt

    def test_dismissed_titles_are_not_raised_again(self, admin, workspace, fake_llm):
        wid = workspace["id"]
        dismissal_service.learn(wid, "Consent is assumed", FeedbackReason.FALSE_POSITIVE)
        fake_llm.queue_analysis(("consent is assumed ", "critical", DOC), ("Other", "warning", DOC))
        report = report_service.create_report_from_text(wid, "Plan", DOC, admin)
        assert [f["title"] for f in report["findings"]] == ["Other"]


class TestAnalysisFailures:
    def test_ai_failure_stores_error_report(self, admin, workspace, fake_llm):
        fake_llm.error = RuntimeError("quota exceeded")
        report = report_service.create_report_from_text(workspace["id"], "Plan", DOC, admin)
        assert report["phase"] == "active"
        assert report["resilienceScore"] == 0
        assert len(report["findings"]) == 1
        finding = report["findings"][0]
        assert finding["title"] == "Failed to analyze the document."
        assert finding["severity"] == "critical"
        assert "quota exceeded" in finding["recommendation"]

    @pytest.mark.parametrize("reply", [
        "this is not json",
        '["not", "an", "object"]',
        '{"scores": [1, 2], "findings": []}',
        '{"scores": {"project": 50}, "findings": 5}',
    ])
    def test_malformed_reply_stores_error_report(self, admin, workspace, fake_llm, reply):
        fake_llm.queue(reply)
        report = report_service.create_report_from_text(workspace["id"], "Plan", DOC, admin)
        assert report["findings"][0]["title"] == "Failed to analyze the document."
        assert report["resilienceScore"] == 0
        stored = report_service.list_reports(workspace["id"], admin.email)
        assert [r["id"] for r in stored] == [report["id"]]

    def test_unexpected_analyst_error_stores_error_report(self, admin, workspace):
        class BrokenAnalyst:
            def analyze(self, *args, **kwargs):
                raise TypeError("unexpected reply shape")

        report = report_service.create_report_from_text(workspace["id"], "Plan", DOC, admin,
                                                        analyst=BrokenAnalyst())
        assert report["findings"][0]["severity"] == "critical"
        assert "unexpected reply shape" in report["findings"][0]["recommendation"]

    def test_empty_text(self, admin, workspace, fake_llm):
        report = report_service.create_report_from_text(workspace["id"], None, "   ", admin)
        assert report["title"] == report_service.DEFAULT_TITLE
        assert report["findings"][0]["title"] == "Empty Document"
        assert fake_llm.calls == []


class TestUpload:
    def test_text_upload(self, admin, workspace, fake_llm):
        fake_llm.queue_analysis()
        report = report_service.create_report_from_upload(workspace["id"], "plan.txt", DOC.encode(), admin)
        assert report["title"] == "plan.txt"
        assert report["documentContent"] == DOC

    def test_legacy_doc_creates_nothing(self, admin, workspace, fake_llm):
        with pytest.raises(UnsupportedFormat):
            report_service.create_report_from_upload(workspace["id"], "plan.doc", b"\xd0\xcf", admin)
        assert report_service.list_reports(workspace["id"], admin.email) == []

    def test_scanned_pdf_stores_error_report(self, admin, workspace, fake_llm, monkeypatch):
        class _Page:
            def extract_text(self):
                return ""

        class _Reader:
            def __init__(self, stream):
                self.pages = [_Page()]

        monkeypatch.setattr(pypdf, "PdfReader", _Reader)
        report = report_service.create_report_from_upload(workspace["id"], "scan.pdf", b"%PDF-", admin)
        finding = report["findings"][0]
        assert finding["title"] == "Failed to read the document."
        assert "scanned image" in finding["recommendation"]
        assert fake_llm.calls == []

    def test_non_member_cannot_upload(self, workspace, member, fake_llm):
        with pytest.raises(NotFoundError):
            report_service.create_report_from_upload(workspace["id"], "plan.txt", b"x", member)

    def test_upload_writes_one_audit_entry(self, admin, workspace, fake_llm):
        wid = workspace["id"]
        before = audit_service.list_logs(wid)["total"]
        fake_llm.queue_analysis()
        report = report_service.create_report_from_upload(wid, "plan.md", DOC.encode(), admin)
        logs = audit_service.list_logs(wid)
        assert logs["total"] == before + 1
        assert logs["items"][0]["action"] == "Analysis Run"
        assert logs["items"][0]["details"]["reportId"] == report["id"]

    def test_invalid_utf8_text_stores_error_report(self, admin, workspace, fake_llm):
        report = report_service.create_report_from_upload(workspace["id"], "plan.txt", b"Scope \xff\xfe", admin)
        assert report["findings"][0]["title"] == "Failed to read the document."
        assert "UTF-8" in report["findings"][0]["recommendation"]
        assert "\ufffd" not in report["documentContent"]
        assert fake_llm.calls == []


class TestQueries:
    def test_newest_first_and_archived_hidden(self, admin, workspace, fake_llm):
        wid = workspace["id"]
        fake_llm.queue_analysis()
        first = report_service.create_report_from_text(wid, "First", DOC, admin)
        second = report_service.create_report_from_text(wid, "Second", DOC, admin)
        assert [r["id"] for r in report_service.list_reports(wid, admin.email)] == [second["id"], first["id"]]

        ReportLifecycle().set_status(wid, first["id"], "archived", admin)
        assert [r["id"] for r in report_service.list_reports(wid, admin.email)] == [second["id"]]
        listed = report_service.list_reports(wid, admin.email, include_archived=True)
        assert {r["id"] for r in listed} == {first["id"], second["id"]}

    def test_get_missing_report(self, admin, workspace):
        with pytest.raises(NotFoundError):
            report_service.get_report(workspace["id"], "rep-missing", admin.email)


class TestMutations:
    @pytest.fixture()
    def report(self, admin, workspace, fake_llm):
        fake_llm.queue_analysis(("Consent is assumed", "critical", DOC))
        return report_service.create_report_from_text(workspace["id"], "Terms.docx", DOC, admin)

    def test_rename(self, admin, workspace, report):
        renamed = report_service.rename_report(workspace["id"], report["id"], "  Final plan ", admin)
        assert renamed["title"] == "Final plan"
        entry = _latest_audit(workspace["id"])
        assert entry["action"] == "Analysis Renamed"
        assert "'Terms.docx'" in entry["details"]["message"]

    def test_rename_requires_title(self, admin, workspace, report):
        with pytest.raises(ValidationError):
            report_service.rename_report(workspace["id"], report["id"], " ", admin)

    def test_delete(self, admin, workspace, report):
        report_service.delete_report(workspace["id"], report["id"], admin)
        assert report_service.list_reports(workspace["id"], admin.email, include_archived=True) == []
        entry = _latest_audit(workspace["id"])
        assert entry["action"] == "Analysis Deleted"
        assert entry["details"] == {"kind": "plain", "message": "Deleted report 'Terms.docx'."}

    def test_delete_during_edit_is_refused(self, admin, workspace, report):
        ReportLifecycle().begin_edit(workspace["id"], report["id"], admin)
        with pytest.raises(TransitionError):
            report_service.delete_report(workspace["id"], report["id"], admin)
        assert report_service.get_report(workspace["id"], report["id"], admin.email)["phase"] == "editing"


class TestChat:
    @pytest.fixture()
    def report(self, admin, workspace, fake_llm):
        fake_llm.queue_analysis()
        return report_service.create_report_from_text(workspace["id"], "Plan", DOC, admin)

    def test_reply_is_grounded_in_document(self, admin, workspace, report, fake_llm):
        fake_llm.queue("Users must agree to the terms.")
        history = [{"role": "user", "content": "Hi"}, {"role": "model", "content": "Hello"}]
        reply = report_service.chat(workspace["id"], report["id"], history, "What do users agree to?", admin)
        assert reply == {"role": "model", "content": "Users must agree to the terms."}
        messages = fake_llm.calls[-1]["messages"]
        assert DOC in messages[0]["content"] or DOC in messages[1]["content"]
        assert messages[-2] == {"role": "assistant", "content": "Hello"}
        assert messages[-1] == {"role": "user", "content": "What do users agree to?"}

    def test_failure_returns_fallback(self, admin, workspace, report, fake_llm):
        fake_llm.error = RuntimeError("offline")
        reply = report_service.chat(workspace["id"], report["id"], [], "Summarize", admin)
        assert reply["content"] == FALLBACK_REPLY

    def test_message_required(self, admin, workspace, report):
        with pytest.raises(ValidationError):
            report_service.chat(workspace["id"], report["id"], [], "  ", admin)
