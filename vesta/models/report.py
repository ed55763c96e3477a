"""
Vesta Plan Resilience Review
Analysis report domain model.

Models:
    - Finding: one compliance/resilience issue tied to a verbatim snippet.
    - AnalysisReport: a document plus its findings, scores and lifecycle phase.

Wire format is camelCase to match the persisted store documents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from vesta.utils.helpers import new_id, utcnow_iso


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"


class FindingStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ReportStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class ReportPhase(str, Enum):
    """Lifecycle phase; see ``vesta.services.report_lifecycle.REPORT_TRANSITIONS``."""
    UPLOADING = "uploading"
    ANALYZING = "analyzing"
    ACTIVE = "active"
    EDITING = "editing"
    ENHANCING = "enhancing"
    DIFFING = "diffing"
    ARCHIVED = "archived"
    DELETED = "deleted"


@dataclass
class Finding:
    id: str
    title: str
    severity: Severity
    source_snippet: str
    recommendation: str
    status: FindingStatus = FindingStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status is not FindingStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "severity": self.severity.value,
            "sourceSnippet": self.source_snippet,
            "recommendation": self.recommendation,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Finding:
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            severity=Severity(data.get("severity", "warning")),
            source_snippet=data.get("sourceSnippet", "") or "",
            recommendation=data.get("recommendation", ""),
            status=FindingStatus(data.get("status", "active")),
        )


@dataclass
class AnalysisReport:
    """
    A plan document under review.

    ``document_content`` is the single source of truth for the document body.
    ``diff_content`` holds an unreviewed AI revision while the report is in
    the DIFFING phase and is cleared on accept or discard.
    """
    id: str
    workspace_id: str
    title: str
    document_content: str
    resilience_score: int = 0
    scores: dict | None = None
    findings: list[Finding] = field(default_factory=list)
    summary: dict = field(default_factory=lambda: {"critical": 0, "warning": 0, "checks": 0})
    created_at: str = field(default_factory=utcnow_iso)
    status: ReportStatus = ReportStatus.ACTIVE
    phase: ReportPhase = ReportPhase.ACTIVE
    diff_content: str | None = None
    enhancement_ticket: str | None = None

    @classmethod
    def new(cls, workspace_id: str, title: str, document_content: str, **kwargs) -> AnalysisReport:
        return cls(
            id=new_id("rep"),
            workspace_id=workspace_id,
            title=title,
            document_content=document_content,
            **kwargs,
        )

    def finding(self, finding_id: str) -> Finding | None:
        return next((f for f in self.findings if f.id == finding_id), None)

    def active_findings(self) -> list[Finding]:
        return [f for f in self.findings if f.status is FindingStatus.ACTIVE]

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "workspaceId": self.workspace_id,
            "title": self.title,
            "resilienceScore": self.resilience_score,
            "findings": [f.to_dict() for f in self.findings],
            "summary": dict(self.summary),
            "documentContent": self.document_content,
            "createdAt": self.created_at,
            "status": self.status.value,
            "phase": self.phase.value,
        }
        if self.scores is not None:
            data["scores"] = dict(self.scores)
        if self.diff_content is not None:
            data["diffContent"] = self.diff_content
        if self.enhancement_ticket is not None:
            data["enhancementTicket"] = self.enhancement_ticket
        return data

    @classmethod
    def from_dict(cls, data: dict) -> AnalysisReport:
        status = ReportStatus(data.get("status", "active"))
        default_phase = "archived" if status is ReportStatus.ARCHIVED else "active"
        return cls(
            id=data["id"],
            workspace_id=data.get("workspaceId", ""),
            title=data.get("title", ""),
            document_content=data.get("documentContent", ""),
            resilience_score=int(data.get("resilienceScore") or 0),
            scores=data.get("scores"),
            findings=[Finding.from_dict(f) for f in data.get("findings", [])],
            summary=data.get("summary") or {"critical": 0, "warning": 0, "checks": 0},
            created_at=data.get("createdAt") or utcnow_iso(),
            status=status,
            phase=ReportPhase(data.get("phase", default_phase)),
            diff_content=data.get("diffContent"),
            enhancement_ticket=data.get("enhancementTicket"),
        )


def summarize(findings: list[Finding], checks: int) -> dict:
    """Severity counts for the dashboard summary."""
    return {
        "critical": sum(1 for f in findings if f.severity is Severity.CRITICAL),
        "warning": sum(1 for f in findings if f.severity is Severity.WARNING),
        "checks": checks,
    }
