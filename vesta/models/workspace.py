"""
Vesta Plan Resilience Review
Workspace & membership domain model.

Models:
    - User: caller identity resolved from the bearer token.
    - Workspace: tenant container for reports, knowledge and audit trail.
    - WorkspaceMember: (email, role, status) row of a workspace's member list.
    - WorkspaceInvitation: pending invitation addressed to a user's email.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from vesta.utils.helpers import new_id, utcnow_iso


class Role(str, Enum):
    ADMINISTRATOR = "Administrator"
    RISK_MANAGEMENT_OFFICER = "Risk Management Officer"
    STRATEGY_OFFICER = "Strategy Officer"
    MEMBER = "Member"

    @classmethod
    def parse(cls, value: str) -> Role:
        """Accept wire labels; the legacy "Compliance Officer" label maps to Member."""
        if isinstance(value, Role):
            return value
        if value == "Compliance Officer":
            return cls.MEMBER
        return cls(value)


class MemberStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"


class WorkspaceStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


@dataclass
class User:
    email: str
    name: str = ""
    avatar: str | None = None

    def to_dict(self) -> dict:
        data = {"name": self.name, "email": self.email}
        if self.avatar:
            data["avatar"] = self.avatar
        return data

    @classmethod
    def from_dict(cls, data: dict) -> User:
        return cls(
            email=data["email"],
            name=data.get("name", ""),
            avatar=data.get("avatar") or data.get("picture"),
        )


@dataclass
class Workspace:
    id: str
    name: str
    creator_id: str
    created_at: str
    status: WorkspaceStatus = WorkspaceStatus.ACTIVE

    @classmethod
    def new(cls, name: str, creator_email: str) -> Workspace:
        return cls(id=new_id("ws"), name=name, creator_id=creator_email, created_at=utcnow_iso())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "creatorId": self.creator_id,
            "createdAt": self.created_at,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Workspace:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            creator_id=data.get("creatorId", ""),
            created_at=data.get("createdAt") or utcnow_iso(),
            status=WorkspaceStatus(data.get("status", "active")),
        )


@dataclass
class WorkspaceMember:
    email: str
    role: Role
    status: MemberStatus = MemberStatus.ACTIVE

    @property
    def is_active_admin(self) -> bool:
        return self.role is Role.ADMINISTRATOR and self.status is MemberStatus.ACTIVE

    def to_dict(self) -> dict:
        return {"email": self.email, "role": self.role.value, "status": self.status.value}

    @classmethod
    def from_dict(cls, data: dict) -> WorkspaceMember:
        return cls(
            email=data["email"],
            role=Role.parse(data.get("role", "Member")),
            status=MemberStatus(data.get("status", "active")),
        )


@dataclass
class WorkspaceInvitation:
    workspace_id: str
    workspace_name: str
    inviter_email: str
    role: Role
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "workspaceId": self.workspace_id,
            "workspaceName": self.workspace_name,
            "inviterEmail": self.inviter_email,
            "role": self.role.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> WorkspaceInvitation:
        return cls(
            workspace_id=data["workspaceId"],
            workspace_name=data.get("workspaceName", ""),
            inviter_email=data.get("inviterEmail", ""),
            role=Role.parse(data.get("role", "Member")),
            timestamp=data.get("timestamp") or utcnow_iso(),
        )
