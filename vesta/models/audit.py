"""
Vesta Plan Resilience Review
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail entry for a workspace.
    - PlainMessage / LinkedMessage: the two shapes an entry's details take.

Entries are stored newest-first in the ``audit-logs`` collection and are
only ever removed wholesale, when their workspace is deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from vesta.utils.helpers import new_id, utcnow_iso


class AuditAction(str, Enum):
    ANALYSIS_RUN = "Analysis Run"
    DOCUMENT_EDITED = "Document Edited"
    AUTO_FIX = "Auto-Fix"
    FINDING_RESOLVED = "Finding Resolved"
    FINDING_DISMISSED = "Finding Dismissed"
    WORKSPACE_CREATED = "Workspace Created"
    WORKSPACE_RENAMED = "Workspace Renamed"
    WORKSPACE_ARCHIVED = "Workspace Archived"
    WORKSPACE_UNARCHIVED = "Workspace Unarchived"
    USER_INVITED = "User Invited"
    USER_REMOVED = "User Removed"
    ROLE_CHANGED = "Role Changed"
    INVITATION_ACCEPTED = "Invitation Accepted"
    INVITATION_DECLINED = "Invitation Declined"
    ANALYSIS_RENAMED = "Analysis Renamed"
    ANALYSIS_ARCHIVED = "Analysis Archived"
    ANALYSIS_UNARCHIVED = "Analysis Unarchived"
    ANALYSIS_DELETED = "Analysis Deleted"
    KNOWLEDGE_SOURCE_ADDED = "Knowledge Source Added"
    KNOWLEDGE_SOURCE_DELETED = "Knowledge Source Deleted"
    DISMISSAL_RULE_DELETED = "Dismissal Rule Deleted"
    REGULATION_ADDED = "Custom Regulation Added"
    REGULATION_DELETED = "Custom Regulation Deleted"


@dataclass(frozen=True)
class PlainMessage:
    text: str

    def to_dict(self) -> dict:
        return {"kind": "plain", "message": self.text}


@dataclass(frozen=True)
class LinkedMessage:
    """A detail string that also points at the report it concerns."""
    text: str
    report_id: str

    def to_dict(self) -> dict:
        return {"kind": "linked", "message": self.text, "reportId": self.report_id}


AuditDetails = Union[PlainMessage, LinkedMessage]


def details_from_dict(data) -> AuditDetails:
    # Entries written before the tagged form stored a bare string.
    if isinstance(data, str):
        return PlainMessage(data)
    if data.get("kind") == "linked" and data.get("reportId"):
        return LinkedMessage(data.get("message", ""), data["reportId"])
    return PlainMessage(data.get("message", ""))


@dataclass(frozen=True)
class AuditLog:
    id: str
    timestamp: str
    user_email: str
    action: AuditAction
    details: AuditDetails

    @classmethod
    def new(cls, user_email: str, action: AuditAction, details: AuditDetails) -> AuditLog:
        return cls(
            id=new_id("log"),
            timestamp=utcnow_iso(),
            user_email=user_email,
            action=action,
            details=details,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "userEmail": self.user_email,
            "action": self.action.value,
            "details": self.details.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> AuditLog:
        return cls(
            id=data["id"],
            timestamp=data.get("timestamp", ""),
            user_email=data.get("userEmail", ""),
            action=AuditAction(data["action"]),
            details=details_from_dict(data.get("details", "")),
        )
