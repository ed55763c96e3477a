"""
Vesta Plan Resilience Review
AI Assistants package.

Assistants:
    - plan_analyst: scores a plan and lists findings tied to verbatim snippets
    - plan_enhancer: rewrites a plan so it addresses its open findings
    - document_chat: question answering over a single plan
"""

from vesta.ai.assistants.document_chat import DocumentChat
from vesta.ai.assistants.plan_analyst import PlanAnalyst
from vesta.ai.assistants.plan_enhancer import PlanEnhancer
