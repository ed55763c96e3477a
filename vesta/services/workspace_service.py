"""
Workspace & Membership service.

Tenancy is organised around workspaces. Each workspace keeps its own member
list; each user keeps an index of the workspaces they belong to
(``user-workspaces``) and of the invitations waiting for them
(``user-invitations``). All writes are whole-collection read-modify-write
through the workspace store.

Authorization is evaluated here, server-side, with ``permission.can``:
    - Only Administrators invite, remove, change roles, rename, archive or
      delete the workspace.
    - Nobody changes their own role.
    - The last active Administrator can neither be removed nor demoted.
"""

import logging

from email_validator import EmailNotValidError, validate_email

from vesta.core.exceptions import (
    DuplicateMembership,
    LastAdminViolation,
    NotFoundError,
    SelfRoleChange,
    UnregisteredUser,
    ValidationError,
)
from vesta.models.audit import AuditAction
from vesta.models.knowledge import KnowledgeCategory, KnowledgeSource
from vesta.models.workspace import (
    MemberStatus,
    Role,
    User,
    Workspace,
    WorkspaceInvitation,
    WorkspaceMember,
    WorkspaceStatus,
)
from vesta.services import audit_service
from vesta.services.permission import A, check_permission
from vesta.services.store import WORKSPACE_COLLECTIONS, get_store
from vesta.utils.helpers import utcnow_iso

logger = logging.getLogger(__name__)

_MAX_NAME_LENGTH = 120

# Seeded into every new workspace so the first analysis has context to cite.
DEFAULT_KNOWLEDGE_SOURCES = (
    {
        "title": "BSP Circular No. 1108: Guidelines on Virtual Asset Service Providers",
        "content": "This circular covers the rules and regulations for Virtual Asset "
                   "Service Providers (VASPs) operating in the Philippines...",
        "category": KnowledgeCategory.GOVERNMENT,
        "is_editable": False,
    },
    {
        "title": "Q1 2024 Internal Risk Assessment",
        "content": "Our primary risk focus for this quarter is supply chain integrity "
                   "and third-party vendor management...",
        "category": KnowledgeCategory.RISK,
        "is_editable": True,
    },
    {
        "title": "5-Year Plan: Digital Transformation",
        "content": "Our strategic goal is to become the leading digital-first bank in "
                   "the SEA region by 2029...",
        "category": KnowledgeCategory.STRATEGY,
        "is_editable": True,
    },
)


# ── Users ────────────────────────────────────────────────────────────────────


def normalize_email(email: str) -> str:
    """Validate syntax and return the lower-cased address used as a store key."""
    if not email or not isinstance(email, str):
        raise ValidationError("email is required", details={"email": "required"})
    try:
        return validate_email(email.strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValidationError(str(exc), details={"email": "invalid"}) from exc


def register_user(user: User) -> User:
    """Record a signed-in identity so it can later be invited to workspaces."""
    user.email = user.email.lower()
    get_store().set("users", user.email, user.to_dict())
    return user


def is_registered(email: str) -> bool:
    return get_store().get("users", email.lower()) is not None


# ── Lookups ──────────────────────────────────────────────────────────────────


def get_workspace(workspace_id: str) -> Workspace:
    data = get_store().get("workspaces", workspace_id)
    if not data:
        raise NotFoundError(resource="Workspace", resource_id=workspace_id)
    return Workspace.from_dict(data)


def get_members(workspace_id: str) -> list[WorkspaceMember]:
    return [WorkspaceMember.from_dict(m) for m in get_store().get("workspace-members", workspace_id, []) or []]


def get_member(workspace_id: str, email: str) -> WorkspaceMember | None:
    email = email.lower()
    return next((m for m in get_members(workspace_id) if m.email == email), None)


def authorize(workspace_id: str, user_email: str, action: str) -> WorkspaceMember:
    """
    Resolve the caller's membership and check ``action`` against their role.

    Non-members get NotFoundError so foreign workspaces are not disclosed.

    Raises:
        NotFoundError: Workspace missing or caller not a member.
        PermissionDenied: Membership pending or role lacks the action.
    """
    member = get_member(workspace_id, user_email)
    if member is None:
        raise NotFoundError(resource="Workspace", resource_id=workspace_id)
    check_permission(member, action)
    return member


def list_workspaces(user_email: str) -> list[dict]:
    """Workspaces the user is an active member of, each with the caller's role."""
    store = get_store()
    result = []
    for workspace_id in store.get("user-workspaces", user_email.lower(), []) or []:
        data = store.get("workspaces", workspace_id)
        if not data:
            continue
        member = get_member(workspace_id, user_email)
        entry = Workspace.from_dict(data).to_dict()
        entry["role"] = member.role.value if member else None
        result.append(entry)
    return result


def list_pending_invitations(user_email: str) -> list[dict]:
    invitations = get_store().get("user-invitations", user_email.lower(), []) or []
    return [WorkspaceInvitation.from_dict(i).to_dict() for i in invitations]


def get_workspace_data(workspace_id: str, user_email: str) -> dict:
    """Everything the workspace dashboard needs in one read."""
    authorize(workspace_id, user_email, A.WORKSPACE_VIEW)
    store = get_store()
    reports = store.get("reports", workspace_id, []) or []
    reports.sort(key=lambda r: r.get("createdAt", ""), reverse=True)
    return {
        "workspace": get_workspace(workspace_id).to_dict(),
        "reports": reports,
        "auditLogs": audit_service.list_logs(workspace_id)["items"],
        "knowledgeBaseSources": store.get("knowledge-sources", workspace_id, []) or [],
        "dismissalRules": store.get("dismissal-rules", workspace_id, []) or [],
        "customRegulations": store.get("custom-regulations", workspace_id, []) or [],
    }


# ── Workspace lifecycle ──────────────────────────────────────────────────────


def _clean_name(name) -> str:
    if not name or not isinstance(name, str) or not name.strip():
        raise ValidationError("Workspace name is required", details={"name": "required"})
    name = name.strip()
    if len(name) > _MAX_NAME_LENGTH:
        raise ValidationError(f"Workspace name must be at most {_MAX_NAME_LENGTH} characters",
                              details={"name": "too_long"})
    return name


def _add_user_workspace(email: str, workspace_id: str) -> None:
    get_store().mutate(
        "user-workspaces", email,
        lambda ids: ids if workspace_id in ids else ids + [workspace_id],
        [],
    )


def _remove_user_workspace(email: str, workspace_id: str) -> None:
    get_store().mutate(
        "user-workspaces", email,
        lambda ids: [i for i in ids if i != workspace_id],
        [],
    )


def _remove_invitation(email: str, workspace_id: str) -> None:
    get_store().mutate(
        "user-invitations", email,
        lambda invs: [i for i in invs if i.get("workspaceId") != workspace_id],
        [],
    )


def create_workspace(name: str, user: User) -> dict:
    """
    Create a workspace with the caller as its sole active Administrator.

    The workspace is seeded with DEFAULT_KNOWLEDGE_SOURCES.

    Returns:
        Serialized Workspace dict.
    """
    workspace = Workspace.new(_clean_name(name), user.email)
    store = get_store()
    store.set("workspaces", workspace.id, workspace.to_dict())
    store.set(
        "workspace-members", workspace.id,
        [WorkspaceMember(user.email, Role.ADMINISTRATOR, MemberStatus.ACTIVE).to_dict()],
    )
    store.set(
        "knowledge-sources", workspace.id,
        [KnowledgeSource.new(workspace.id, **src).to_dict() for src in DEFAULT_KNOWLEDGE_SOURCES],
    )
    _add_user_workspace(user.email, workspace.id)
    audit_service.record(workspace.id, user.email, AuditAction.WORKSPACE_CREATED,
                         f"Workspace '{workspace.name}' created.")
    logger.info("Workspace created", extra={"workspace_id": workspace.id, "user_email": user.email})
    return workspace.to_dict()


def rename_workspace(workspace_id: str, name: str, user: User) -> dict:
    authorize(workspace_id, user.email, A.WORKSPACE_RENAME)
    new_name = _clean_name(name)
    old = get_workspace(workspace_id)
    updated = get_store().mutate(
        "workspaces", workspace_id, lambda ws: {**ws, "name": new_name},
    )
    audit_service.record(workspace_id, user.email, AuditAction.WORKSPACE_RENAMED,
                         f"Workspace renamed from '{old.name}' to '{new_name}'.")
    return Workspace.from_dict(updated).to_dict()


def set_workspace_status(workspace_id: str, status: str, user: User) -> dict:
    """Archive or unarchive a workspace (Administrator only)."""
    try:
        target = WorkspaceStatus(status)
    except ValueError as exc:
        raise ValidationError(f"Invalid workspace status '{status}'",
                              details={"status": "must be active or archived"}) from exc
    authorize(workspace_id, user.email, A.WORKSPACE_ARCHIVE)
    workspace = get_workspace(workspace_id)
    if workspace.status is target:
        return workspace.to_dict()
    updated = get_store().mutate(
        "workspaces", workspace_id, lambda ws: {**ws, "status": target.value},
    )
    action = (AuditAction.WORKSPACE_ARCHIVED if target is WorkspaceStatus.ARCHIVED
              else AuditAction.WORKSPACE_UNARCHIVED)
    verb = "archived" if target is WorkspaceStatus.ARCHIVED else "restored"
    audit_service.record(workspace_id, user.email, action, f"Workspace '{workspace.name}' {verb}.")
    return Workspace.from_dict(updated).to_dict()


def delete_workspace(workspace_id: str, user: User) -> None:
    """
    Delete a workspace and every collection it owns, audit trail included.

    Each member's workspace index and pending invitation are cleaned up.
    Enhancement drafts of the workspace's reports are dropped too.
    """
    authorize(workspace_id, user.email, A.WORKSPACE_DELETE)
    store = get_store()
    for member in get_members(workspace_id):
        _remove_user_workspace(member.email, workspace_id)
        if member.status is MemberStatus.PENDING:
            _remove_invitation(member.email, workspace_id)
    for report in store.get("reports", workspace_id, []) or []:
        store.delete("enhanced-drafts", report["id"])
    for collection in WORKSPACE_COLLECTIONS:
        store.delete(collection, workspace_id)
    logger.info("Workspace deleted", extra={"workspace_id": workspace_id, "user_email": user.email})


# ── Membership ───────────────────────────────────────────────────────────────


def _parse_role(role) -> Role:
    try:
        return Role.parse(role)
    except ValueError as exc:
        raise ValidationError(f"Invalid role '{role}'", details={"role": "invalid"}) from exc


def _active_admin_count(members: list[WorkspaceMember]) -> int:
    return sum(1 for m in members if m.is_active_admin)


def invite_member(workspace_id: str, email: str, role, user: User) -> dict:
    """
    Invite a registered user; they join as ``pending`` until they accept.

    Raises:
        UnregisteredUser: No account exists for ``email``.
        DuplicateMembership: ``email`` is already an active or pending member.
    """
    authorize(workspace_id, user.email, A.MEMBER_INVITE)
    email = normalize_email(email)
    new_role = _parse_role(role)
    workspace = get_workspace(workspace_id)
    if not is_registered(email):
        raise UnregisteredUser(email)

    def _add(members):
        if any(m["email"] == email for m in members):
            raise DuplicateMembership(email)
        return members + [WorkspaceMember(email, new_role, MemberStatus.PENDING).to_dict()]

    get_store().mutate("workspace-members", workspace_id, _add, [])

    invitation = WorkspaceInvitation(
        workspace_id=workspace_id,
        workspace_name=workspace.name,
        inviter_email=user.email,
        role=new_role,
        timestamp=utcnow_iso(),
    )
    get_store().mutate("user-invitations", email, lambda invs: invs + [invitation.to_dict()], [])
    audit_service.record(workspace_id, user.email, AuditAction.USER_INVITED,
                         f"Invited {email} as {new_role.value}.")
    return invitation.to_dict()


def remove_member(workspace_id: str, email: str, user: User) -> None:
    """
    Remove a member (active or pending) from the workspace.

    Raises:
        LastAdminViolation: ``email`` is the only active Administrator.
    """
    authorize(workspace_id, user.email, A.MEMBER_REMOVE)
    email = email.lower()
    removed: dict = {}

    def _remove(members):
        parsed = [WorkspaceMember.from_dict(m) for m in members]
        target = next((m for m in parsed if m.email == email), None)
        if target is None:
            raise NotFoundError(resource="WorkspaceMember", resource_id=email, workspace_id=workspace_id)
        if target.is_active_admin and _active_admin_count(parsed) <= 1:
            raise LastAdminViolation(workspace_id)
        removed["member"] = target
        return [m for m in members if m["email"] != email]

    get_store().mutate("workspace-members", workspace_id, _remove, [])
    _remove_user_workspace(email, workspace_id)
    if removed["member"].status is MemberStatus.PENDING:
        _remove_invitation(email, workspace_id)
    audit_service.record(workspace_id, user.email, AuditAction.USER_REMOVED,
                         f"Removed {email} from the workspace.")


def change_member_role(workspace_id: str, email: str, role, user: User) -> dict:
    """
    Change another member's role.

    Raises:
        SelfRoleChange: Caller targeted themselves.
        LastAdminViolation: Demoting the only active Administrator.
    """
    authorize(workspace_id, user.email, A.MEMBER_CHANGE_ROLE)
    email = email.lower()
    new_role = _parse_role(role)
    if email == user.email.lower():
        raise SelfRoleChange(user.email)
    changed: dict = {}

    def _change(members):
        parsed = [WorkspaceMember.from_dict(m) for m in members]
        target = next((m for m in parsed if m.email == email), None)
        if target is None:
            raise NotFoundError(resource="WorkspaceMember", resource_id=email, workspace_id=workspace_id)
        if (target.is_active_admin and new_role is not Role.ADMINISTRATOR
                and _active_admin_count(parsed) <= 1):
            raise LastAdminViolation(workspace_id)
        changed["old"] = target.role
        target.role = new_role
        changed["member"] = target
        return [m.to_dict() for m in parsed]

    get_store().mutate("workspace-members", workspace_id, _change, [])
    audit_service.record(workspace_id, user.email, AuditAction.ROLE_CHANGED,
                         f"Changed role of {email} from {changed['old'].value} to {new_role.value}.")
    return changed["member"].to_dict()


def respond_to_invitation(workspace_id: str, accept: bool, user: User) -> dict:
    """
    Accept or decline a pending invitation.

    The invitation record is removed either way. Accepting activates the
    membership; declining deletes the pending member row.
    """
    email = user.email.lower()
    _remove_invitation(email, workspace_id)
    outcome: dict = {}

    def _respond(members):
        idx = next((i for i, m in enumerate(members)
                    if m["email"] == email and m.get("status") == MemberStatus.PENDING.value), None)
        if idx is None:
            raise NotFoundError(resource="Invitation", resource_id=workspace_id)
        if accept:
            members[idx] = {**members[idx], "status": MemberStatus.ACTIVE.value}
            outcome["member"] = members[idx]
            return members
        return members[:idx] + members[idx + 1:]

    get_store().mutate("workspace-members", workspace_id, _respond, [])
    if accept:
        _add_user_workspace(email, workspace_id)
        audit_service.record(workspace_id, email, AuditAction.INVITATION_ACCEPTED,
                             f"User {email} accepted the invitation.")
    else:
        audit_service.record(workspace_id, email, AuditAction.INVITATION_DECLINED,
                             f"User {email} declined the invitation.")
    return {"workspaceId": workspace_id, "accepted": accept, "member": outcome.get("member")}
