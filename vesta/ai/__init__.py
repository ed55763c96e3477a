"""
Vesta Plan Resilience Review
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, usage logging)
    - prompt_registry: YAML prompt template loading
    - assistants: plan analysis, plan enhancement, document chat
"""
