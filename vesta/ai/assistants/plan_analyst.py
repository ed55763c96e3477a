"""
Vesta Plan Resilience Review
Plan Analyst Assistant.

Analysis pipeline:
    1. Build the context block (knowledge sources, learned dismissal rules,
       workspace custom regulations)
    2. Render the plan_analysis prompt
    3. Call the LLM in JSON mode
    4. Normalise the reply into scores and Finding objects

Errors propagate; the report service turns them into an error report.
"""

import logging
from dataclasses import dataclass, field

from vesta.ai.gateway import get_gateway, parse_json_response
from vesta.ai.prompt_registry import PromptRegistry
from vesta.models.knowledge import CustomRegulation, DismissalRule, KnowledgeSource
from vesta.models.report import Finding, FindingStatus, Severity
from vesta.utils.helpers import new_id

logger = logging.getLogger(__name__)

_SCORE_KEYS = ("project", "strategicGoals", "regulations", "risk")


@dataclass
class AnalysisResult:
    scores: dict
    findings: list[Finding] = field(default_factory=list)
    checks: int = 0


def build_context(
    knowledge_sources: list[KnowledgeSource],
    dismissal_rules: list[DismissalRule],
    custom_regulations: list[CustomRegulation],
) -> str:
    parts = []
    if knowledge_sources:
        sources = "\n\n".join(f"--- KNOWLEDGE SOURCE: {s.title} ---\n{s.content}" for s in knowledge_sources)
        parts.append(f"\n\nCONTEXTUAL KNOWLEDGE BASE:\n{sources}")
    if dismissal_rules:
        rules = "\n".join(f'- "{r.finding_title}" (Reason: {r.reason.value})' for r in dismissal_rules)
        parts.append(f"\n\nLEARNED DISMISSAL RULES:\n{rules}")
    if custom_regulations:
        regs = "\n".join(f"- {r.rule_text}" for r in custom_regulations)
        parts.append(f"\n\nWORKSPACE-SPECIFIC CUSTOM REGULATIONS:\n{regs}")
    return "".join(parts)


def _score(value) -> int:
    try:
        return max(0, min(100, int(value)))
    except (TypeError, ValueError):
        return 0


def _severity(value) -> Severity:
    try:
        return Severity(str(value).strip().lower())
    except ValueError:
        return Severity.WARNING


class PlanAnalyst:
    """Scores a plan and lists findings that quote it verbatim."""

    def __init__(self, gateway=None, prompt_registry=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry or PromptRegistry()

    def analyze(
        self,
        document_text: str,
        knowledge_sources: list[KnowledgeSource] = (),
        dismissal_rules: list[DismissalRule] = (),
        custom_regulations: list[CustomRegulation] = (),
        *,
        user: str = "system",
    ) -> AnalysisResult:
        """
        Run the analysis.

        Raises:
            ValueError: Empty document or malformed model reply.
            RuntimeError: The LLM call failed after retries.
        """
        if not document_text or not document_text.strip():
            raise ValueError("The document content is empty. Please provide a plan to analyze.")

        tpl = self.prompt_registry.get("plan_analysis")
        messages = self.prompt_registry.render(
            "plan_analysis",
            plan_content=document_text,
            context=build_context(list(knowledge_sources), list(dismissal_rules), list(custom_regulations)),
        )
        gateway = self.gateway or get_gateway()
        response = gateway.chat(
            messages,
            purpose="plan_analysis",
            user=user,
            temperature=tpl.metadata.get("temperature", 0.2),
            json_mode=True,
        )
        try:
            payload = parse_json_response(response["content"])
        except ValueError as exc:
            raise ValueError("The AI model returned an invalid response.") from exc
        if not isinstance(payload, dict):
            raise ValueError("The AI model returned an invalid response.")

        raw_scores = payload.get("scores") or {}
        raw_findings = payload.get("findings") or []
        if not isinstance(raw_scores, dict) or not isinstance(raw_findings, list):
            raise ValueError("The AI model returned an invalid response.")
        scores = {k: _score(raw_scores.get(k)) for k in _SCORE_KEYS}
        findings = []
        for item in raw_findings:
            if not isinstance(item, dict) or not item.get("title"):
                continue
            findings.append(Finding(
                id=new_id("finding"),
                title=str(item["title"]).strip(),
                severity=_severity(item.get("severity")),
                source_snippet=str(item.get("sourceSnippet") or ""),
                recommendation=str(item.get("recommendation") or ""),
                status=FindingStatus.ACTIVE,
            ))

        paragraphs = [p for p in document_text.split("\n") if p.strip()]
        context_items = 1 + len(knowledge_sources) + len(custom_regulations)
        checks = len(paragraphs) * context_items + len(findings)
        logger.info("Plan analysed: %d findings, project score %d", len(findings), scores["project"])
        return AnalysisResult(scores=scores, findings=findings, checks=checks)
