"""
Tests: knowledge sources, custom regulations and learned dismissal rules.

Covers:
    - the three sources seeded into every workspace
    - category-by-role management and read-only sources
    - regulations and dismissal-rule deletion restricted to Administrators
"""

import pytest

from vesta.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from vesta.models.knowledge import FeedbackReason, KnowledgeCategory
from vesta.services import dismissal_service, knowledge_service


def _seeded(workspace_id, category):
    return next(s for s in knowledge_service.load_sources(workspace_id) if s.category is category)


class TestSources:
    def test_seeded_sources(self, admin, workspace):
        sources = knowledge_service.list_sources(workspace["id"], admin.email)
        assert [s["category"] for s in sources] == [c.value for c in KnowledgeCategory]
        assert [s["isEditable"] for s in sources] == [False, True, True]

    def test_admin_adds_any_category(self, admin, workspace):
        added = knowledge_service.add_source(workspace["id"], "BSP Circular 1140", "IT risk rules.",
                                             "Government Regulations & Compliance", admin)
        assert added["isEditable"] is True
        assert len(knowledge_service.load_sources(workspace["id"])) == 4

    def test_category_by_enum_name(self, admin, workspace):
        added = knowledge_service.add_source(workspace["id"], "Risk appetite", "Low.", "RISK", admin)
        assert added["category"] == KnowledgeCategory.RISK.value

    def test_invalid_category(self, admin, workspace):
        with pytest.raises(ValidationError):
            knowledge_service.add_source(workspace["id"], "T", "C", "Folklore", admin)

    def test_title_and_content_required(self, admin, workspace):
        with pytest.raises(ValidationError):
            knowledge_service.add_source(workspace["id"], " ", "C", KnowledgeCategory.RISK, admin)

    def test_officer_limited_to_own_category(self, admin, workspace, make_user, join):
        officer = join(workspace["id"], admin, make_user("rita@example.com"), "Risk Management Officer")
        knowledge_service.add_source(workspace["id"], "Register", "Risks.", KnowledgeCategory.RISK, officer)
        with pytest.raises(PermissionDenied):
            knowledge_service.add_source(workspace["id"], "Vision", "Grow.", KnowledgeCategory.STRATEGY, officer)

    def test_member_cannot_add(self, admin, member, join, workspace):
        join(workspace["id"], admin, member)
        with pytest.raises(PermissionDenied):
            knowledge_service.add_source(workspace["id"], "Register", "Risks.", KnowledgeCategory.RISK, member)

    def test_delete_editable(self, admin, workspace):
        source = _seeded(workspace["id"], KnowledgeCategory.STRATEGY)
        knowledge_service.delete_source(workspace["id"], source.id, admin)
        assert source.id not in {s.id for s in knowledge_service.load_sources(workspace["id"])}

    def test_read_only_source_cannot_be_deleted(self, admin, workspace):
        source = _seeded(workspace["id"], KnowledgeCategory.GOVERNMENT)
        with pytest.raises(PermissionDenied):
            knowledge_service.delete_source(workspace["id"], source.id, admin)

    def test_strategy_officer_deletes_strategy_source(self, admin, workspace, make_user, join):
        officer = join(workspace["id"], admin, make_user("sol@example.com"), "Strategy Officer")
        source = _seeded(workspace["id"], KnowledgeCategory.STRATEGY)
        knowledge_service.delete_source(workspace["id"], source.id, officer)
        with pytest.raises(PermissionDenied):
            knowledge_service.delete_source(workspace["id"], _seeded(workspace["id"], KnowledgeCategory.RISK).id,
                                            officer)

    def test_delete_unknown(self, admin, workspace):
        with pytest.raises(NotFoundError):
            knowledge_service.delete_source(workspace["id"], "ks-missing", admin)


class TestRegulations:
    def test_add_and_delete(self, admin, workspace):
        wid = workspace["id"]
        regulation = knowledge_service.add_regulation(wid, "  Encrypt backups at rest. ", admin)
        assert regulation["ruleText"] == "Encrypt backups at rest."
        assert [r["id"] for r in knowledge_service.list_regulations(wid, admin.email)] == [regulation["id"]]
        knowledge_service.delete_regulation(wid, regulation["id"], admin)
        assert knowledge_service.load_regulations(wid) == []

    def test_rule_text_required(self, admin, workspace):
        with pytest.raises(ValidationError):
            knowledge_service.add_regulation(workspace["id"], "", admin)

    def test_member_cannot_manage(self, admin, member, join, workspace):
        join(workspace["id"], admin, member)
        with pytest.raises(PermissionDenied):
            knowledge_service.add_regulation(workspace["id"], "Rule", member)


class TestDismissalRules:
    def test_parse_reason(self):
        assert dismissal_service.parse_reason("NOT_RELEVANT") is FeedbackReason.NOT_RELEVANT
        assert dismissal_service.parse_reason("This is a false positive") is FeedbackReason.FALSE_POSITIVE
        with pytest.raises(ValidationError):
            dismissal_service.parse_reason("nope")

    def test_admin_deletes_rule(self, admin, workspace):
        rule = dismissal_service.learn(workspace["id"], "Vague scope", FeedbackReason.NOT_RELEVANT)
        dismissal_service.delete_rule(workspace["id"], rule.id, admin)
        assert dismissal_service.list_rules(workspace["id"], admin.email) == []

    def test_member_cannot_delete_rule(self, admin, member, join, workspace):
        join(workspace["id"], admin, member)
        rule = dismissal_service.learn(workspace["id"], "Vague scope", FeedbackReason.NOT_RELEVANT)
        with pytest.raises(PermissionDenied):
            dismissal_service.delete_rule(workspace["id"], rule.id, member)
        assert len(dismissal_service.load_rules(workspace["id"])) == 1

    def test_delete_unknown_rule(self, admin, workspace):
        with pytest.raises(NotFoundError):
            dismissal_service.delete_rule(workspace["id"], "dr-missing", admin)
