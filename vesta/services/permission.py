"""
Workspace Role Gate

Single source of truth for what each workspace role may do. ``can`` is a
pure function over PERMISSION_MATRIX, shared by every mutating service
entry point and exposed to the client through ``GET .../permissions``.

Usage:
    from vesta.services.permission import can, check_permission, A

    if can(Role.MEMBER, A.REPORT_UPLOAD):
        ...

    # Raises PermissionDenied if not allowed
    check_permission(member, A.MEMBER_INVITE)
"""

from vesta.core.exceptions import PermissionDenied
from vesta.models.knowledge import KnowledgeCategory
from vesta.models.workspace import MemberStatus, Role, WorkspaceMember


class A:
    """Action names."""

    WORKSPACE_VIEW = "workspace.view"
    WORKSPACE_RENAME = "workspace.rename"
    WORKSPACE_ARCHIVE = "workspace.archive"
    WORKSPACE_DELETE = "workspace.delete"

    MEMBER_INVITE = "member.invite"
    MEMBER_REMOVE = "member.remove"
    MEMBER_CHANGE_ROLE = "member.change_role"

    REPORT_UPLOAD = "report.upload"
    REPORT_EDIT = "report.edit"
    REPORT_ENHANCE = "report.enhance"
    REPORT_RENAME = "report.rename"
    REPORT_ARCHIVE = "report.archive"
    REPORT_DELETE = "report.delete"
    REPORT_CHAT = "report.chat"
    FINDING_RESOLVE = "finding.resolve"
    FINDING_DISMISS = "finding.dismiss"

    KNOWLEDGE_GOVERNMENT = "knowledge.government.manage"
    KNOWLEDGE_RISK = "knowledge.risk.manage"
    KNOWLEDGE_STRATEGY = "knowledge.strategy.manage"

    DISMISSAL_RULE_DELETE = "dismissal_rule.delete"
    REGULATION_MANAGE = "regulation.manage"
    AUDIT_VIEW = "audit.view"


_MEMBER_ACTIONS = frozenset({
    A.WORKSPACE_VIEW,
    A.REPORT_UPLOAD,
    A.REPORT_EDIT,
    A.REPORT_ENHANCE,
    A.REPORT_RENAME,
    A.REPORT_ARCHIVE,
    A.REPORT_DELETE,
    A.REPORT_CHAT,
    A.FINDING_RESOLVE,
    A.FINDING_DISMISS,
    A.AUDIT_VIEW,
})

PERMISSION_MATRIX: dict[Role, frozenset[str]] = {
    Role.ADMINISTRATOR: _MEMBER_ACTIONS | {
        A.WORKSPACE_RENAME,
        A.WORKSPACE_ARCHIVE,
        A.WORKSPACE_DELETE,
        A.MEMBER_INVITE,
        A.MEMBER_REMOVE,
        A.MEMBER_CHANGE_ROLE,
        A.KNOWLEDGE_GOVERNMENT,
        A.KNOWLEDGE_RISK,
        A.KNOWLEDGE_STRATEGY,
        A.DISMISSAL_RULE_DELETE,
        A.REGULATION_MANAGE,
    },
    Role.RISK_MANAGEMENT_OFFICER: _MEMBER_ACTIONS | {A.KNOWLEDGE_RISK},
    Role.STRATEGY_OFFICER: _MEMBER_ACTIONS | {A.KNOWLEDGE_STRATEGY},
    Role.MEMBER: _MEMBER_ACTIONS,
}

KNOWLEDGE_ACTIONS = {
    KnowledgeCategory.GOVERNMENT: A.KNOWLEDGE_GOVERNMENT,
    KnowledgeCategory.RISK: A.KNOWLEDGE_RISK,
    KnowledgeCategory.STRATEGY: A.KNOWLEDGE_STRATEGY,
}


def can(role: Role | str | None, action: str) -> bool:
    """True if ``role`` grants ``action``. Unknown roles grant nothing."""
    if role is None:
        return False
    try:
        role = Role.parse(role)
    except ValueError:
        return False
    return action in PERMISSION_MATRIX.get(role, frozenset())


def knowledge_action(category: KnowledgeCategory) -> str:
    """Action governing add/delete of knowledge sources in ``category``."""
    return KNOWLEDGE_ACTIONS[category]


def allowed_actions(role: Role | str) -> list[str]:
    return sorted(PERMISSION_MATRIX.get(Role.parse(role), frozenset()))


def check_permission(member: WorkspaceMember | None, action: str, user_email: str | None = None) -> None:
    """
    Assert an active member may perform ``action``.

    Args:
        member: The caller's membership row (None when not a member).
        action: Action string from ``A``.
        user_email: Used in the error message when ``member`` is None.

    Raises:
        PermissionDenied: Caller is not an active member or the role lacks the action.
    """
    if member is None or member.status is not MemberStatus.ACTIVE:
        raise PermissionDenied(user_email or (member.email if member else None), action)
    if not can(member.role, action):
        raise PermissionDenied(member.email, action, member.role.value)
