"""
Analysis Report Lifecycle Service.

Manages report phase transitions with:
  - Transition validation (REPORT_TRANSITIONS)
  - Permission checks via ``permission.can``
  - The enhancement workflow (enhance → diff → accept | discard)
  - Manual edit sessions
  - Finding resolution / dismissal
  - Audit trail via ``audit_service.record``

Phase graph:

    UPLOADING  → ANALYZING
    ANALYZING  → ACTIVE
    ACTIVE     → EDITING | ENHANCING | ARCHIVED | DELETED
    EDITING    → ACTIVE
    ENHANCING  → DIFFING | ACTIVE
    DIFFING    → ACTIVE
    ARCHIVED   → ACTIVE | DELETED

Each report is stored inside its workspace's ``reports`` list and every
change replaces the whole report object (last write wins).

Usage:
    from vesta.services.report_lifecycle import ReportLifecycle

    lifecycle = ReportLifecycle()
    outcome = lifecycle.enhance(workspace_id, report_id, user)
    lifecycle.accept_enhancement(workspace_id, report_id, user)
"""

import logging
from typing import Callable

from vesta.ai.assistants import PlanEnhancer
from vesta.core.exceptions import NotFoundError, TransitionError, ValidationError
from vesta.models.audit import AuditAction
from vesta.models.report import AnalysisReport, FindingStatus, ReportPhase, ReportStatus
from vesta.models.workspace import User
from vesta.services import audit_service, dismissal_service
from vesta.services.diff_engine import diff_lines, diff_words, edit_count, render_diff_html, render_word_diff_html
from vesta.services.drafts import DraftStore, EnhancementDraft
from vesta.services.permission import A
from vesta.services.store import get_store
from vesta.services.workspace_service import authorize
from vesta.utils.helpers import new_id, utcnow_iso

logger = logging.getLogger(__name__)

REPORT_TRANSITIONS: dict[ReportPhase, frozenset[ReportPhase]] = {
    ReportPhase.UPLOADING: frozenset({ReportPhase.ANALYZING}),
    ReportPhase.ANALYZING: frozenset({ReportPhase.ACTIVE}),
    ReportPhase.ACTIVE: frozenset({
        ReportPhase.EDITING, ReportPhase.ENHANCING, ReportPhase.ARCHIVED, ReportPhase.DELETED,
    }),
    ReportPhase.EDITING: frozenset({ReportPhase.ACTIVE}),
    ReportPhase.ENHANCING: frozenset({ReportPhase.DIFFING, ReportPhase.ACTIVE}),
    ReportPhase.DIFFING: frozenset({ReportPhase.ACTIVE}),
    ReportPhase.ARCHIVED: frozenset({ReportPhase.ACTIVE, ReportPhase.DELETED}),
    ReportPhase.DELETED: frozenset(),
}


def can_transition(current: ReportPhase, target: ReportPhase) -> bool:
    return target in REPORT_TRANSITIONS.get(current, frozenset())


def validate_transition(report: AnalysisReport, target: ReportPhase, action: str) -> None:
    """
    Raises:
        TransitionError: ``target`` is not reachable from the report's phase.
    """
    if not can_transition(report.phase, target):
        raise TransitionError(action, report.phase.value,
                              f"'{target.value}' is not reachable from '{report.phase.value}'")


def transition(report: AnalysisReport, target: ReportPhase, action: str) -> AnalysisReport:
    """Move ``report`` to ``target`` in place, keeping ``status`` in step with archiving."""
    validate_transition(report, target, action)
    report.phase = target
    if target is ReportPhase.ARCHIVED:
        report.status = ReportStatus.ARCHIVED
    elif target is ReportPhase.ACTIVE:
        report.status = ReportStatus.ACTIVE
    return report


# ── Persistence ──────────────────────────────────────────────────────────────


def load_reports(workspace_id: str) -> list[AnalysisReport]:
    return [AnalysisReport.from_dict(d) for d in get_store().get("reports", workspace_id, []) or []]


def load_report(workspace_id: str, report_id: str) -> AnalysisReport:
    data = next((d for d in get_store().get("reports", workspace_id, []) or [] if d["id"] == report_id), None)
    if data is None:
        raise NotFoundError(resource="Report", resource_id=report_id, workspace_id=workspace_id)
    return AnalysisReport.from_dict(data)


def insert_report(report: AnalysisReport) -> AnalysisReport:
    get_store().mutate("reports", report.workspace_id, lambda rs: rs + [report.to_dict()], [])
    return report


def update_report(
    workspace_id: str,
    report_id: str,
    fn: Callable[[AnalysisReport], AnalysisReport],
) -> AnalysisReport:
    """
    Apply ``fn`` to the stored report and write the whole report back.

    ``fn`` runs under the workspace's reports lock; if it raises, nothing
    is written.
    """
    updated: dict = {}

    def _apply(reports):
        idx = next((i for i, d in enumerate(reports) if d["id"] == report_id), None)
        if idx is None:
            raise NotFoundError(resource="Report", resource_id=report_id, workspace_id=workspace_id)
        report = fn(AnalysisReport.from_dict(reports[idx]))
        updated["report"] = report
        reports[idx] = report.to_dict()
        return reports

    get_store().mutate("reports", workspace_id, _apply, [])
    return updated["report"]


def remove_report(workspace_id: str, report_id: str) -> AnalysisReport:
    """Drop the report from its workspace; only ACTIVE or ARCHIVED reports may go."""
    removed: dict = {}

    def _remove(reports):
        idx = next((i for i, d in enumerate(reports) if d["id"] == report_id), None)
        if idx is None:
            raise NotFoundError(resource="Report", resource_id=report_id, workspace_id=workspace_id)
        report = AnalysisReport.from_dict(reports[idx])
        transition(report, ReportPhase.DELETED, "delete")
        removed["report"] = report
        return reports[:idx] + reports[idx + 1:]

    get_store().mutate("reports", workspace_id, _remove, [])
    return removed["report"]


# ── Lifecycle ────────────────────────────────────────────────────────────────


class ReportLifecycle:
    """
    Stateful report operations.

    Args:
        drafts: Where pre-enhance snapshots are kept (defaults to the
                workspace store).
        enhancer: ImprovePlan implementation.
    """

    def __init__(self, drafts: DraftStore | None = None, enhancer: PlanEnhancer | None = None):
        self.drafts = drafts or DraftStore()
        self.enhancer = enhancer or PlanEnhancer()

    # ── Manual edit ──────────────────────────────────────────────────────

    def begin_edit(self, workspace_id: str, report_id: str, user: User) -> AnalysisReport:
        authorize(workspace_id, user.email, A.REPORT_EDIT)
        return update_report(workspace_id, report_id,
                             lambda r: transition(r, ReportPhase.EDITING, "edit"))

    def save_edit(self, workspace_id: str, report_id: str, content: str, user: User) -> AnalysisReport:
        authorize(workspace_id, user.email, A.REPORT_EDIT)
        if content is None or not str(content).strip():
            raise ValidationError("documentContent is required", details={"documentContent": "required"})

        def _save(report):
            if report.phase is not ReportPhase.EDITING:
                raise TransitionError("save edit", report.phase.value, "no edit in progress")
            report.document_content = str(content)
            return transition(report, ReportPhase.ACTIVE, "save edit")

        report = update_report(workspace_id, report_id, _save)
        audit_service.record(workspace_id, user.email, AuditAction.DOCUMENT_EDITED,
                             f"Edited the document content of '{report.title}'.", report_id=report_id)
        return report

    def cancel_edit(self, workspace_id: str, report_id: str, user: User) -> AnalysisReport:
        authorize(workspace_id, user.email, A.REPORT_EDIT)

        def _cancel(report):
            if report.phase is not ReportPhase.EDITING:
                raise TransitionError("cancel edit", report.phase.value, "no edit in progress")
            return transition(report, ReportPhase.ACTIVE, "cancel edit")

        return update_report(workspace_id, report_id, _cancel)

    # ── Enhancement ──────────────────────────────────────────────────────

    def begin_enhancement(self, workspace_id: str, report_id: str, user: User) -> tuple[AnalysisReport, str]:
        """ACTIVE → ENHANCING; snapshots the current text and issues a ticket."""
        authorize(workspace_id, user.email, A.REPORT_ENHANCE)
        ticket = new_id("enh")

        def _begin(report):
            transition(report, ReportPhase.ENHANCING, "enhance")
            report.enhancement_ticket = ticket
            report.diff_content = None
            return report

        report = update_report(workspace_id, report_id, _begin)
        self.drafts.set(report_id, EnhancementDraft(
            report_id=report_id,
            original_content=report.document_content,
            ticket=ticket,
            created_at=utcnow_iso(),
        ))
        return report, ticket

    def complete_enhancement(
        self,
        workspace_id: str,
        report_id: str,
        ticket: str,
        revised_text: str | None,
    ) -> AnalysisReport:
        """
        Apply an ImprovePlan result.

        ``revised_text=None`` means the call failed: the report returns to
        ACTIVE untouched. Results for a ticket that is no longer current
        (report discarded or re-enhanced meanwhile) are ignored.
        """
        applied: dict = {"stale": False}

        def _complete(report):
            if report.phase is not ReportPhase.ENHANCING or report.enhancement_ticket != ticket:
                applied["stale"] = True
                return report
            if revised_text is None:
                report.enhancement_ticket = None
                return transition(report, ReportPhase.ACTIVE, "complete enhancement")
            report.diff_content = revised_text
            return transition(report, ReportPhase.DIFFING, "complete enhancement")

        report = update_report(workspace_id, report_id, _complete)
        if applied["stale"]:
            logger.info("Ignoring stale enhancement result",
                        extra={"workspace_id": workspace_id, "report_id": report_id})
            return report

        draft = self.drafts.get(report_id)
        if revised_text is None:
            self.drafts.delete(report_id)
        elif draft is not None:
            draft.revised_content = revised_text
            self.drafts.set(report_id, draft)
        return report

    def enhance(self, workspace_id: str, report_id: str, user: User, knowledge_sources=()) -> dict:
        """
        Run the whole enhance step and return the proposed revision.

        Returns:
            {"report": ..., "diff": [...], "html": str, "edits": int, "error": str|None}
        """
        report, ticket = self.begin_enhancement(workspace_id, report_id, user)
        original = report.document_content
        result = self.enhancer.improve(original, report.active_findings(), knowledge_sources, user=user.email)
        report = self.complete_enhancement(
            workspace_id, report_id, ticket, result.revised_text if result.ok else None,
        )
        lines = diff_lines(original, report.diff_content) if report.diff_content is not None else []
        return {
            "report": report.to_dict(),
            "diff": [line.to_dict() for line in lines],
            "html": str(render_diff_html(lines)),
            "edits": edit_count(lines),
            "error": result.error,
        }

    def current_diff(self, workspace_id: str, report_id: str, user: User, mode: str = "line") -> dict:
        """The pending revision against the pre-enhance text."""
        authorize(workspace_id, user.email, A.WORKSPACE_VIEW)
        report = load_report(workspace_id, report_id)
        if report.phase is not ReportPhase.DIFFING or report.diff_content is None:
            raise TransitionError("view diff", report.phase.value, "no revision pending")
        draft = self.drafts.get(report_id)
        original = draft.original_content if draft else report.document_content
        if mode == "word":
            tokens = diff_words(original, report.diff_content)
            return {"mode": "word", "diff": [t.to_dict() for t in tokens],
                    "html": str(render_word_diff_html(tokens)), "edits": edit_count(tokens)}
        if mode != "line":
            raise ValidationError(f"Invalid diff mode '{mode}'", details={"mode": ["line", "word"]})
        lines = diff_lines(original, report.diff_content)
        return {"mode": "line", "diff": [line.to_dict() for line in lines],
                "html": str(render_diff_html(lines)), "edits": edit_count(lines)}

    def accept_enhancement(self, workspace_id: str, report_id: str, user: User) -> AnalysisReport:
        """DIFFING → ACTIVE: commit the revision and resolve every active finding."""
        authorize(workspace_id, user.email, A.REPORT_ENHANCE)
        resolved: dict = {"count": 0}

        def _accept(report):
            if report.phase is not ReportPhase.DIFFING or report.diff_content is None:
                raise TransitionError("accept enhancement", report.phase.value, "no revision pending")
            report.document_content = report.diff_content
            report.diff_content = None
            report.enhancement_ticket = None
            for finding in report.active_findings():
                finding.status = FindingStatus.RESOLVED
                resolved["count"] += 1
            return transition(report, ReportPhase.ACTIVE, "accept enhancement")

        report = update_report(workspace_id, report_id, _accept)
        self.drafts.delete(report_id)
        audit_service.record(workspace_id, user.email, AuditAction.AUTO_FIX,
                             f"Applied AI enhancement to '{report.title}'; "
                             f"{resolved['count']} finding(s) resolved.",
                             report_id=report_id)
        return report

    def discard_enhancement(self, workspace_id: str, report_id: str, user: User) -> AnalysisReport:
        """DIFFING/ENHANCING → ACTIVE with the pre-enhance text restored."""
        authorize(workspace_id, user.email, A.REPORT_ENHANCE)
        draft = self.drafts.get(report_id)

        def _discard(report):
            if report.phase not in (ReportPhase.DIFFING, ReportPhase.ENHANCING):
                raise TransitionError("discard enhancement", report.phase.value, "no revision pending")
            if draft is not None:
                report.document_content = draft.original_content
            report.diff_content = None
            report.enhancement_ticket = None
            return transition(report, ReportPhase.ACTIVE, "discard enhancement")

        report = update_report(workspace_id, report_id, _discard)
        self.drafts.delete(report_id)
        return report

    # ── Findings ─────────────────────────────────────────────────────────

    @staticmethod
    def _set_finding_status(report, finding_id: str, status: FindingStatus, action: str):
        if report.phase is not ReportPhase.ACTIVE:
            raise TransitionError(action, report.phase.value)
        finding = report.finding(finding_id)
        if finding is None:
            raise NotFoundError(resource="Finding", resource_id=finding_id)
        if finding.is_terminal:
            raise TransitionError(action, f"finding {finding.status.value}", "finding status is final")
        finding.status = status
        return finding

    def resolve_finding(self, workspace_id: str, report_id: str, finding_id: str, user: User) -> AnalysisReport:
        authorize(workspace_id, user.email, A.FINDING_RESOLVE)
        touched: dict = {}

        def _resolve(report):
            touched["finding"] = self._set_finding_status(
                report, finding_id, FindingStatus.RESOLVED, "resolve finding")
            return report

        report = update_report(workspace_id, report_id, _resolve)
        audit_service.record(workspace_id, user.email, AuditAction.FINDING_RESOLVED,
                             f'Resolved finding "{touched["finding"].title}" ({finding_id}).',
                             report_id=report_id)
        return report

    def dismiss_finding(
        self,
        workspace_id: str,
        report_id: str,
        finding_id: str,
        reason,
        user: User,
    ) -> tuple[AnalysisReport, dict]:
        """
        Dismiss a finding and learn a DismissalRule from it.

        Returns:
            (report, rule dict)

        Raises:
            ValidationError: Unknown reason.
            TransitionError: Finding already resolved or dismissed.
        """
        authorize(workspace_id, user.email, A.FINDING_DISMISS)
        feedback = dismissal_service.parse_reason(reason)
        touched: dict = {}

        def _dismiss(report):
            touched["finding"] = self._set_finding_status(
                report, finding_id, FindingStatus.DISMISSED, "dismiss finding")
            return report

        report = update_report(workspace_id, report_id, _dismiss)
        finding = touched["finding"]
        rule = dismissal_service.learn(workspace_id, finding.title, feedback)
        audit_service.record(workspace_id, user.email, AuditAction.FINDING_DISMISSED,
                             f'Dismissed finding "{finding.title}" ({finding_id}). '
                             f"Reason: {feedback.value}",
                             report_id=report_id)
        return report, rule.to_dict()

    # ── Archive ──────────────────────────────────────────────────────────

    def set_status(self, workspace_id: str, report_id: str, status: str, user: User) -> AnalysisReport:
        """Archive (ACTIVE → ARCHIVED) or unarchive (ARCHIVED → ACTIVE)."""
        try:
            target = ReportStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Invalid report status '{status}'",
                                  details={"status": "must be active or archived"}) from exc
        authorize(workspace_id, user.email, A.REPORT_ARCHIVE)
        phase = ReportPhase.ARCHIVED if target is ReportStatus.ARCHIVED else ReportPhase.ACTIVE
        verb = "archive" if target is ReportStatus.ARCHIVED else "unarchive"
        report = update_report(workspace_id, report_id, lambda r: transition(r, phase, verb))
        action = (AuditAction.ANALYSIS_ARCHIVED if target is ReportStatus.ARCHIVED
                  else AuditAction.ANALYSIS_UNARCHIVED)
        audit_service.record(workspace_id, user.email, action,
                             f"Report '{report.title}' {verb}d.", report_id=report_id)
        return report
