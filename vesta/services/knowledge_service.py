"""
Knowledge Base & Custom Regulation service.

Knowledge sources are reference documents handed to every analysis as
context. Who may add or delete one depends on its category:

    Government Regulations & Compliance  Administrator
    In-House Risk Management Plan        Administrator, Risk Management Officer
    Long-Term Strategic Direction        Administrator, Strategy Officer

Seeded sources marked ``isEditable: false`` can never be deleted.

Custom regulations are workspace-specific rules the analysis must check;
only Administrators manage them.
"""

import logging

from vesta.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from vesta.models.audit import AuditAction
from vesta.models.knowledge import CustomRegulation, KnowledgeCategory, KnowledgeSource
from vesta.models.workspace import User
from vesta.services import audit_service
from vesta.services.permission import A, knowledge_action
from vesta.services.store import get_store
from vesta.services.workspace_service import authorize

logger = logging.getLogger(__name__)

_MAX_TITLE_LENGTH = 200
_MAX_RULE_LENGTH = 2000


def _parse_category(value) -> KnowledgeCategory:
    if isinstance(value, KnowledgeCategory):
        return value
    for category in KnowledgeCategory:
        if value in (category.value, category.name, category.name.lower()):
            return category
    raise ValidationError(f"Invalid knowledge category '{value}'",
                          details={"category": [c.value for c in KnowledgeCategory]})


# ── Knowledge sources ────────────────────────────────────────────────────────


def load_sources(workspace_id: str) -> list[KnowledgeSource]:
    """Unchecked read used by the analysis pipeline."""
    return [KnowledgeSource.from_dict(d) for d in get_store().get("knowledge-sources", workspace_id, []) or []]


def list_sources(workspace_id: str, user_email: str) -> list[dict]:
    authorize(workspace_id, user_email, A.WORKSPACE_VIEW)
    return [s.to_dict() for s in load_sources(workspace_id)]


def add_source(workspace_id: str, title: str, content: str, category, user: User) -> dict:
    """
    Add a knowledge source.

    Raises:
        ValidationError: Missing title/content or unknown category.
        PermissionDenied: Caller's role does not govern ``category``.
    """
    category = _parse_category(category)
    authorize(workspace_id, user.email, knowledge_action(category))
    title = (title or "").strip()
    content = (content or "").strip()
    if not title or not content:
        raise ValidationError("title and content are required",
                              details={"title": "required", "content": "required"})
    if len(title) > _MAX_TITLE_LENGTH:
        raise ValidationError(f"title must be at most {_MAX_TITLE_LENGTH} characters")

    source = KnowledgeSource.new(workspace_id, title, content, category)
    get_store().mutate("knowledge-sources", workspace_id, lambda ss: ss + [source.to_dict()], [])
    audit_service.record(workspace_id, user.email, AuditAction.KNOWLEDGE_SOURCE_ADDED,
                         f"Added knowledge source '{title}' to {category.value}.")
    return source.to_dict()


def delete_source(workspace_id: str, source_id: str, user: User) -> None:
    """
    Delete an editable knowledge source.

    Raises:
        NotFoundError: No such source in the workspace.
        PermissionDenied: Source is read-only, or the role does not govern its category.
    """
    authorize(workspace_id, user.email, A.WORKSPACE_VIEW)
    source = next((s for s in load_sources(workspace_id) if s.id == source_id), None)
    if source is None:
        raise NotFoundError(resource="KnowledgeSource", resource_id=source_id, workspace_id=workspace_id)
    if not source.is_editable:
        raise PermissionDenied(user.email, "knowledge_source.delete (read-only source)")
    authorize(workspace_id, user.email, knowledge_action(source.category))

    get_store().mutate(
        "knowledge-sources", workspace_id,
        lambda ss: [s for s in ss if s["id"] != source_id],
        [],
    )
    audit_service.record(workspace_id, user.email, AuditAction.KNOWLEDGE_SOURCE_DELETED,
                         f"Deleted knowledge source '{source.title}'.")


# ── Custom regulations ───────────────────────────────────────────────────────


def load_regulations(workspace_id: str) -> list[CustomRegulation]:
    return [CustomRegulation.from_dict(d) for d in get_store().get("custom-regulations", workspace_id, []) or []]


def list_regulations(workspace_id: str, user_email: str) -> list[dict]:
    authorize(workspace_id, user_email, A.WORKSPACE_VIEW)
    return [r.to_dict() for r in load_regulations(workspace_id)]


def add_regulation(workspace_id: str, rule_text: str, user: User) -> dict:
    authorize(workspace_id, user.email, A.REGULATION_MANAGE)
    rule_text = (rule_text or "").strip()
    if not rule_text:
        raise ValidationError("ruleText is required", details={"ruleText": "required"})
    if len(rule_text) > _MAX_RULE_LENGTH:
        raise ValidationError(f"ruleText must be at most {_MAX_RULE_LENGTH} characters")

    regulation = CustomRegulation.new(workspace_id, rule_text, user.email)
    get_store().mutate("custom-regulations", workspace_id, lambda rs: rs + [regulation.to_dict()], [])
    audit_service.record(workspace_id, user.email, AuditAction.REGULATION_ADDED,
                         f'Added custom regulation: "{rule_text}".')
    return regulation.to_dict()


def delete_regulation(workspace_id: str, regulation_id: str, user: User) -> None:
    authorize(workspace_id, user.email, A.REGULATION_MANAGE)
    regulation = next((r for r in load_regulations(workspace_id) if r.id == regulation_id), None)
    if regulation is None:
        raise NotFoundError(resource="CustomRegulation", resource_id=regulation_id, workspace_id=workspace_id)
    get_store().mutate(
        "custom-regulations", workspace_id,
        lambda rs: [r for r in rs if r["id"] != regulation_id],
        [],
    )
    audit_service.record(workspace_id, user.email, AuditAction.REGULATION_DELETED,
                         f'Deleted custom regulation: "{regulation.rule_text}".')
