"""
Dismissal-Rule Learner.

Dismissing a finding with a reason teaches the workspace not to raise the
same issue again: a DismissalRule is stored per dismissal and every later
analysis receives the rules as context. Findings whose title matches a
learned rule are also dropped from fresh analysis results.
"""

import logging

from vesta.core.exceptions import NotFoundError, ValidationError
from vesta.models.audit import AuditAction
from vesta.models.knowledge import DismissalRule, FeedbackReason
from vesta.models.report import Finding
from vesta.models.workspace import User
from vesta.services import audit_service
from vesta.services.permission import A
from vesta.services.store import get_store
from vesta.services.workspace_service import authorize

logger = logging.getLogger(__name__)

COLLECTION = "dismissal-rules"


def parse_reason(value) -> FeedbackReason:
    """Accept the reason label or its enum name."""
    if isinstance(value, FeedbackReason):
        return value
    for reason in FeedbackReason:
        if value in (reason.value, reason.name):
            return reason
    raise ValidationError(f"Invalid dismissal reason '{value}'",
                          details={"reason": [r.value for r in FeedbackReason]})


def load_rules(workspace_id: str) -> list[DismissalRule]:
    return [DismissalRule.from_dict(d) for d in get_store().get(COLLECTION, workspace_id, []) or []]


def list_rules(workspace_id: str, user_email: str) -> list[dict]:
    authorize(workspace_id, user_email, A.WORKSPACE_VIEW)
    return [r.to_dict() for r in load_rules(workspace_id)]


def learn(workspace_id: str, finding_title: str, reason: FeedbackReason) -> DismissalRule:
    """Persist a rule for a dismissed finding. Audit is written by the caller."""
    rule = DismissalRule.new(workspace_id, finding_title, reason)
    get_store().mutate(COLLECTION, workspace_id, lambda rs: rs + [rule.to_dict()], [])
    logger.info("Dismissal rule learned", extra={"workspace_id": workspace_id})
    return rule


def suppress(findings: list[Finding], rules: list[DismissalRule]) -> list[Finding]:
    """Drop findings whose title was already dismissed in this workspace."""
    dismissed = {r.finding_title.strip().casefold() for r in rules}
    return [f for f in findings if f.title.strip().casefold() not in dismissed]


def delete_rule(workspace_id: str, rule_id: str, user: User) -> None:
    """Forget a learned rule (Administrator only)."""
    authorize(workspace_id, user.email, A.DISMISSAL_RULE_DELETE)
    rule = next((r for r in load_rules(workspace_id) if r.id == rule_id), None)
    if rule is None:
        raise NotFoundError(resource="DismissalRule", resource_id=rule_id, workspace_id=workspace_id)
    get_store().mutate(COLLECTION, workspace_id, lambda rs: [r for r in rs if r["id"] != rule_id], [])
    audit_service.record(workspace_id, user.email, AuditAction.DISMISSAL_RULE_DELETED,
                         f'Deleted dismissal rule for "{rule.finding_title}".')
