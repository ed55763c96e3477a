"""
Audit Logger

Append-only, newest-first activity trail per workspace. Every successful
mutating service call writes exactly one entry through ``record``; entries
are never edited and are only removed wholesale with their workspace.
"""

import logging

from vesta.models.audit import AuditAction, AuditLog, LinkedMessage, PlainMessage
from vesta.services.store import get_store

logger = logging.getLogger(__name__)

COLLECTION = "audit-logs"


def record(
    workspace_id: str,
    user_email: str,
    action: AuditAction,
    message: str,
    *,
    report_id: str | None = None,
) -> AuditLog:
    """
    Prepend one audit entry to the workspace trail.

    Args:
        workspace_id: Workspace the event belongs to.
        user_email: Actor.
        action: AuditAction value.
        message: Human-readable detail string.
        report_id: When given, the entry links to that report.

    Returns:
        The stored AuditLog.
    """
    details = LinkedMessage(message, report_id) if report_id else PlainMessage(message)
    entry = AuditLog.new(user_email, action, details)
    get_store().mutate(
        COLLECTION, workspace_id,
        lambda logs: [entry.to_dict()] + (logs or []),
        [],
    )
    logger.info(
        "Audit: %s", action.value,
        extra={"workspace_id": workspace_id, "user_email": user_email,
               "action": action.value, "report_id": report_id},
    )
    return entry


def list_logs(workspace_id: str, *, offset: int = 0, limit: int | None = None) -> dict:
    """Return ``{"items": [...], "total": n}`` newest-first."""
    logs = get_store().get(COLLECTION, workspace_id, []) or []
    total = len(logs)
    window = logs[offset:offset + limit] if limit is not None else logs[offset:]
    return {"items": [AuditLog.from_dict(d).to_dict() for d in window], "total": total}
