"""
Vesta Plan Resilience Review
Knowledge domain model.

Models:
    - KnowledgeSource: reference text passed to the analysis as context.
    - DismissalRule: a learned "do not flag this again" rule.
    - CustomRegulation: a workspace-specific rule the analysis must check.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from vesta.utils.helpers import new_id, utcnow_iso


class KnowledgeCategory(str, Enum):
    GOVERNMENT = "Government Regulations & Compliance"
    RISK = "In-House Risk Management Plan"
    STRATEGY = "Long-Term Strategic Direction"


class FeedbackReason(str, Enum):
    NOT_RELEVANT = "Not relevant to this project"
    FALSE_POSITIVE = "This is a false positive"
    ACCEPTED_RISK = "This is an accepted business risk"


@dataclass
class KnowledgeSource:
    id: str
    workspace_id: str
    title: str
    content: str
    category: KnowledgeCategory
    is_editable: bool = True

    @classmethod
    def new(cls, workspace_id: str, title: str, content: str,
            category: KnowledgeCategory, is_editable: bool = True) -> KnowledgeSource:
        return cls(id=new_id("ks"), workspace_id=workspace_id, title=title,
                   content=content, category=category, is_editable=is_editable)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspaceId": self.workspace_id,
            "title": self.title,
            "content": self.content,
            "category": self.category.value,
            "isEditable": self.is_editable,
        }

    @classmethod
    def from_dict(cls, data: dict) -> KnowledgeSource:
        return cls(
            id=data["id"],
            workspace_id=data.get("workspaceId", ""),
            title=data.get("title", ""),
            content=data.get("content", ""),
            category=KnowledgeCategory(data["category"]),
            is_editable=bool(data.get("isEditable", True)),
        )


@dataclass(frozen=True)
class DismissalRule:
    id: str
    workspace_id: str
    finding_title: str
    reason: FeedbackReason
    timestamp: str

    @classmethod
    def new(cls, workspace_id: str, finding_title: str, reason: FeedbackReason) -> DismissalRule:
        return cls(id=new_id("dr"), workspace_id=workspace_id, finding_title=finding_title,
                   reason=reason, timestamp=utcnow_iso())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspaceId": self.workspace_id,
            "findingTitle": self.finding_title,
            "reason": self.reason.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DismissalRule:
        return cls(
            id=data["id"],
            workspace_id=data.get("workspaceId", ""),
            finding_title=data.get("findingTitle", ""),
            reason=FeedbackReason(data["reason"]),
            timestamp=data.get("timestamp", ""),
        )


@dataclass(frozen=True)
class CustomRegulation:
    id: str
    workspace_id: str
    rule_text: str
    created_at: str
    created_by: str

    @classmethod
    def new(cls, workspace_id: str, rule_text: str, created_by: str) -> CustomRegulation:
        return cls(id=new_id("reg"), workspace_id=workspace_id, rule_text=rule_text,
                   created_at=utcnow_iso(), created_by=created_by)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspaceId": self.workspace_id,
            "ruleText": self.rule_text,
            "createdAt": self.created_at,
            "createdBy": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CustomRegulation:
        return cls(
            id=data["id"],
            workspace_id=data.get("workspaceId", ""),
            rule_text=data.get("ruleText", ""),
            created_at=data.get("createdAt", ""),
            created_by=data.get("createdBy", ""),
        )
