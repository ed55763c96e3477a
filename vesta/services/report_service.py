"""
Analysis Report service.

Entry points for creating and querying reports:
    - create_report_from_upload / create_report_from_text: extract, analyse, persist
    - list_reports / get_report / rename_report
    - delete_report / bulk_delete_reports
    - highlight_report: findings mapped back onto the document
    - chat: document Q&A

Stateful transitions (edit, enhance, findings, archive) live in
``report_lifecycle``.

An analysis never fails the upload: when extraction or the AI call fails,
a report carrying a single critical finding that explains the failure is
stored instead.
"""

import logging

from flask import current_app

from vesta.ai.assistants import DocumentChat, PlanAnalyst
from vesta.core.exceptions import ExtractionError, StoreUnavailable, UnsupportedFormat, ValidationError
from vesta.models import db
from vesta.models.audit import AuditAction
from vesta.models.report import AnalysisReport, Finding, FindingStatus, ReportPhase, ReportStatus, Severity, summarize
from vesta.models.workspace import User
from vesta.services import audit_service, dismissal_service, knowledge_service
from vesta.services.drafts import DraftStore
from vesta.services.extraction import DEFAULT_PRINTABLE_RATIO, SUPPORTED_EXTENSIONS, extension_of, extract_text
from vesta.services.highlighter import highlight, located_finding_ids
from vesta.services.optimistic import optimistic_apply
from vesta.services.permission import A
from vesta.services.report_lifecycle import (
    insert_report,
    load_report,
    load_reports,
    remove_report,
    transition,
    update_report,
)
from vesta.services.store import SQLWorkspaceStore, get_store
from vesta.services.workspace_service import authorize
from vesta.utils.helpers import new_id

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Project Plan Analysis"
_MAX_TITLE_LENGTH = 200


def _error_report(report: AnalysisReport, title: str, recommendation: str) -> AnalysisReport:
    report.resilience_score = 0
    report.scores = {"project": 0, "strategicGoals": 0, "regulations": 0, "risk": 0}
    report.findings = [Finding(
        id=new_id("error"),
        title=title,
        severity=Severity.CRITICAL,
        source_snippet="",
        recommendation=recommendation,
        status=FindingStatus.ACTIVE,
    )]
    report.summary = summarize(report.findings, 0)
    return report


def _analyze(report: AnalysisReport, user: User, analyst: PlanAnalyst | None) -> AnalysisReport:
    """ANALYZING → ACTIVE, filling scores and findings (or an error finding)."""
    workspace_id = report.workspace_id
    rules = dismissal_service.load_rules(workspace_id)
    try:
        result = (analyst or PlanAnalyst()).analyze(
            report.document_content,
            knowledge_service.load_sources(workspace_id),
            rules,
            knowledge_service.load_regulations(workspace_id),
            user=user.email,
        )
    except StoreUnavailable:
        raise
    except Exception as exc:
        logger.warning("Analysis failed: %s", exc,
                       extra={"workspace_id": workspace_id, "report_id": report.id})
        if not report.document_content.strip():
            _error_report(report, "Empty Document",
                          "The submitted document is empty. Please provide a project plan to analyze.")
        else:
            _error_report(report, "Failed to analyze the document.",
                          "The AI model could not process the document. This might be due to a "
                          "connection issue or an internal error. Please try again. If the problem "
                          f"persists, the content might be unsuitable for analysis. Error: {exc}")
    else:
        findings = dismissal_service.suppress(result.findings, rules)
        report.scores = result.scores
        report.resilience_score = result.scores["project"]
        report.findings = findings
        report.summary = summarize(findings, result.checks)
    return transition(report, ReportPhase.ACTIVE, "analyze")


def _clean_title(title) -> str:
    title = (title or "").strip() or DEFAULT_TITLE
    return title[:_MAX_TITLE_LENGTH]


def _finish(report: AnalysisReport, user: User) -> dict:
    insert_report(report)
    audit_service.record(report.workspace_id, user.email, AuditAction.ANALYSIS_RUN,
                         f"Analyzed '{report.title}': {report.summary['critical']} critical, "
                         f"{report.summary['warning']} warning finding(s).",
                         report_id=report.id)
    logger.info("Report created", extra={"workspace_id": report.workspace_id, "report_id": report.id})
    return report.to_dict()


def create_report_from_upload(
    workspace_id: str,
    filename: str,
    data: bytes,
    user: User,
    *,
    analyst: PlanAnalyst | None = None,
) -> dict:
    """
    Extract text from an uploaded file, analyse it and store the report.

    Args:
        workspace_id: Target workspace.
        filename: Original file name; the extension selects the extractor.
        data: Raw file bytes.
        user: Uploader.
        analyst: Optional PlanAnalyst (tests inject one with a fake gateway).

    Returns:
        Serialized AnalysisReport.

    Raises:
        UnsupportedFormat: The file type is rejected outright; no report is made.
    """
    authorize(workspace_id, user.email, A.REPORT_UPLOAD)
    if extension_of(filename) not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormat(extension_of(filename))
    report = AnalysisReport.new(workspace_id, _clean_title(filename), "", phase=ReportPhase.UPLOADING)
    ratio = current_app.config.get("PDF_PRINTABLE_RATIO", DEFAULT_PRINTABLE_RATIO)
    try:
        report.document_content = extract_text(filename, data, min_printable_ratio=ratio)
    except ExtractionError as exc:
        logger.warning("Extraction failed for %s: %s", filename, exc,
                       extra={"workspace_id": workspace_id, "report_id": report.id})
        transition(report, ReportPhase.ANALYZING, "upload")
        _error_report(report, "Failed to read the document.", str(exc))
        transition(report, ReportPhase.ACTIVE, "analyze")
        return _finish(report, user)

    transition(report, ReportPhase.ANALYZING, "upload")
    _analyze(report, user, analyst)
    return _finish(report, user)


def create_report_from_text(
    workspace_id: str,
    title: str,
    text: str,
    user: User,
    *,
    analyst: PlanAnalyst | None = None,
) -> dict:
    """Analyse pasted plan text."""
    authorize(workspace_id, user.email, A.REPORT_UPLOAD)
    report = AnalysisReport.new(workspace_id, _clean_title(title), text or "", phase=ReportPhase.UPLOADING)
    transition(report, ReportPhase.ANALYZING, "upload")
    _analyze(report, user, analyst)
    return _finish(report, user)


# ── Queries ──────────────────────────────────────────────────────────────────


def list_reports(workspace_id: str, user_email: str, *, include_archived: bool = False) -> list[dict]:
    """Newest first; archived reports only when asked for."""
    authorize(workspace_id, user_email, A.WORKSPACE_VIEW)
    reports = load_reports(workspace_id)
    if not include_archived:
        reports = [r for r in reports if r.status is not ReportStatus.ARCHIVED]
    reports.sort(key=lambda r: r.created_at, reverse=True)
    return [r.to_dict() for r in reports]


def get_report(workspace_id: str, report_id: str, user_email: str) -> dict:
    authorize(workspace_id, user_email, A.WORKSPACE_VIEW)
    return load_report(workspace_id, report_id).to_dict()


def highlight_report(
    workspace_id: str,
    report_id: str,
    user_email: str,
    *,
    hovered_id: str | None = None,
    selected_id: str | None = None,
) -> dict:
    """Document HTML with every active finding's snippet marked."""
    authorize(workspace_id, user_email, A.WORKSPACE_VIEW)
    report = load_report(workspace_id, report_id)
    active = report.active_findings()
    markup = highlight(report.document_content, active, hovered_id=hovered_id, selected_id=selected_id)
    located = located_finding_ids(markup)
    return {
        "html": str(markup),
        "located": sorted(located),
        "unlocated": [f.id for f in active if f.id not in located],
    }


# ── Mutations ────────────────────────────────────────────────────────────────


def rename_report(workspace_id: str, report_id: str, title: str, user: User) -> dict:
    authorize(workspace_id, user.email, A.REPORT_RENAME)
    if not title or not str(title).strip():
        raise ValidationError("title is required", details={"title": "required"})
    new_title = str(title).strip()[:_MAX_TITLE_LENGTH]
    old: dict = {}

    def _rename(report):
        old["title"] = report.title
        report.title = new_title
        return report

    report = update_report(workspace_id, report_id, _rename)
    audit_service.record(workspace_id, user.email, AuditAction.ANALYSIS_RENAMED,
                         f"Renamed report '{old['title']}' to '{new_title}'.", report_id=report_id)
    return report.to_dict()


def delete_report(workspace_id: str, report_id: str, user: User) -> None:
    """
    Delete one report (ACTIVE or ARCHIVED), its enhancement draft and log it.

    The three writes form one store unit: either all of them are kept or the
    report is still there afterwards.
    """
    authorize(workspace_id, user.email, A.REPORT_DELETE)
    store = get_store()
    with store.atomic():
        report = remove_report(workspace_id, report_id)
        DraftStore(store).delete(report_id)
        audit_service.record(workspace_id, user.email, AuditAction.ANALYSIS_DELETED,
                             f"Deleted report '{report.title}'.")


def _serial_deletes(store) -> bool:
    """SQLite allows one writer at a time; its deletes run in the request thread."""
    return isinstance(store, SQLWorkspaceStore) and db.engine.dialect.name == "sqlite"


def bulk_delete_reports(workspace_id: str, report_ids: list[str], user: User) -> dict:
    """
    Delete several reports; failures are isolated per report.

    Returns:
        {"reports": [...visible after reconcile], "deleted": [...ids],
         "failed": {id: message}, "failureCount": n}
    """
    authorize(workspace_id, user.email, A.REPORT_DELETE)
    if not isinstance(report_ids, list) or not report_ids:
        raise ValidationError("reportIds must be a non-empty list", details={"reportIds": "required"})

    app = current_app._get_current_object()

    def _in_app_context(call):
        with app.app_context():
            return call()

    serial = _serial_deletes(get_store())
    visible = [r.to_dict() for r in load_reports(workspace_id)]
    result = optimistic_apply(
        visible,
        report_ids,
        lambda rid: delete_report(workspace_id, rid, user),
        key=lambda r: r["id"],
        max_workers=1 if serial else app.config.get("BULK_DELETE_MAX_WORKERS", 8),
        run=None if serial else _in_app_context,
    )
    logger.info("Bulk delete: %d deleted, %d failed", len(result.succeeded), result.failure_count,
                extra={"workspace_id": workspace_id})
    return {
        "reports": result.visible,
        "deleted": result.succeeded,
        "failed": result.failed,
        "failureCount": result.failure_count,
    }


def chat(workspace_id: str, report_id: str, history: list, message: str, user: User,
         *, assistant: DocumentChat | None = None) -> dict:
    authorize(workspace_id, user.email, A.REPORT_CHAT)
    if not message or not str(message).strip():
        raise ValidationError("message is required", details={"message": "required"})
    report = load_report(workspace_id, report_id)
    reply = (assistant or DocumentChat()).reply(report.document_content, history or [], str(message),
                                                user=user.email)
    return {"role": "model", "content": reply}


