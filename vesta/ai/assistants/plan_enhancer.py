"""
Vesta Plan Resilience Review
Plan Enhancer Assistant.

Asks the model for the whole revised document (never a patch); the caller
diffs it against the pre-enhance text. On any failure the original text is
returned unchanged together with the error, so the document is never lost.
"""

import logging
from dataclasses import dataclass

from vesta.ai.gateway import get_gateway, parse_json_response
from vesta.ai.prompt_registry import PromptRegistry
from vesta.models.knowledge import KnowledgeSource
from vesta.models.report import Finding

logger = logging.getLogger(__name__)


@dataclass
class EnhancementResult:
    revised_text: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def summarize_findings(findings: list[Finding]) -> str:
    return "\n\n".join(
        f'- Finding: "{f.title}"...\n  - Recommendation: {f.recommendation}' for f in findings
    )


class PlanEnhancer:
    def __init__(self, gateway=None, prompt_registry=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry or PromptRegistry()

    def improve(
        self,
        document_text: str,
        findings: list[Finding],
        knowledge_sources: list[KnowledgeSource] = (),
        *,
        user: str = "system",
    ) -> EnhancementResult:
        if not document_text.strip() or not findings:
            return EnhancementResult(revised_text=document_text)

        context = ""
        if knowledge_sources:
            sources = "\n\n".join(f"--- KNOWLEDGE SOURCE: {s.title} ---\n{s.content}" for s in knowledge_sources)
            context = f"\n\nCONTEXTUAL KNOWLEDGE BASE:\n---\n{sources}\n---"

        messages = self.prompt_registry.render(
            "plan_enhancement",
            plan_content=document_text,
            findings_summary=summarize_findings(findings),
            context=context,
        )
        try:
            response = (self.gateway or get_gateway()).chat(
                messages, purpose="plan_enhancement", user=user, temperature=0.2, json_mode=True,
            )
            payload = parse_json_response(response["content"])
            revised = payload.get("improvedDocumentContent") if isinstance(payload, dict) else None
            if not isinstance(revised, str) or not revised.strip():
                raise ValueError("The AI model returned an empty response during enhancement.")
        except (RuntimeError, ValueError, KeyError) as exc:
            logger.warning("Enhancement failed, keeping original text: %s", exc)
            return EnhancementResult(revised_text=document_text, error=str(exc))
        return EnhancementResult(revised_text=revised)
