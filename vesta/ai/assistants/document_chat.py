"""
Vesta Plan Resilience Review
Document Chat Assistant.

Question answering grounded in a single plan.
"""

import logging

from vesta.ai.gateway import get_gateway
from vesta.ai.prompt_registry import PromptRegistry

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, I encountered an error while processing your request. Please try again."
_ROLES = {"user": "user", "model": "assistant", "assistant": "assistant"}


class DocumentChat:
    def __init__(self, gateway=None, prompt_registry=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry or PromptRegistry()

    def reply(self, document_text: str, history: list[dict], message: str, *, user: str = "system") -> str:
        """Answer ``message`` given prior ``history`` turns ({role, content})."""
        messages = self.prompt_registry.render("document_chat", document_content=document_text)
        for turn in history or []:
            role = _ROLES.get(turn.get("role"))
            if role and turn.get("content"):
                messages.append({"role": role, "content": str(turn["content"])})
        messages.append({"role": "user", "content": message})
        try:
            response = (self.gateway or get_gateway()).chat(
                messages, purpose="document_chat", user=user, temperature=0.2,
            )
        except RuntimeError as exc:
            logger.warning("Document chat failed: %s", exc)
            return FALLBACK_REPLY
        return (response.get("content") or "").strip() or FALLBACK_REPLY
