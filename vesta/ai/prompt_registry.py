"""
Vesta Plan Resilience Review
Prompt Registry.

Prompts live as YAML files in vesta/ai/prompts/, one per assistant:

    name: plan_analysis
    version: v1
    metadata: {temperature: 0.2}
    system: |
      ...
    user: |
      ... {{plan_content}} ...

``{{variable}}`` placeholders are filled at render time; unknown
placeholders are left in place.

Usage:
    from vesta.ai.prompt_registry import PromptRegistry
    messages = PromptRegistry().render("plan_analysis", plan_content="...", context="")
"""

import functools
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"
_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    version: str
    system: str = ""
    user: str = ""
    description: str = ""
    metadata: dict = field(default_factory=dict)

    def render(self, **variables) -> list[dict]:
        """Chat messages for this template; empty parts are left out."""
        messages = []
        for role, text in (("system", self.system), ("user", self.user)):
            rendered = _PLACEHOLDER.sub(lambda m: str(variables.get(m.group(1), m.group(0))), text)
            if rendered.strip():
                messages.append({"role": role, "content": rendered})
        return messages


@functools.lru_cache(maxsize=None)
def load_templates(prompts_dir: str) -> dict[tuple[str, str], PromptTemplate]:
    """Parse every YAML prompt under ``prompts_dir`` once per process."""
    templates = {}
    for path in sorted(Path(prompts_dir).glob("*.yaml")):
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            logger.error("Skipping prompt %s: %s", path.name, exc)
            continue
        if not isinstance(data, dict):
            continue
        template = PromptTemplate(
            name=data.get("name", path.stem),
            version=str(data.get("version", "v1")),
            system=data.get("system") or "",
            user=data.get("user") or "",
            description=data.get("description", ""),
            metadata=data.get("metadata") or {},
        )
        templates[(template.name, template.version)] = template
    logger.debug("Loaded %d prompt templates from %s", len(templates), prompts_dir)
    return templates


class PromptRegistry:
    def __init__(self, prompts_dir: str | Path | None = None):
        self._templates = load_templates(str(prompts_dir or PROMPTS_DIR))

    def get(self, name: str, version: str = "v1") -> PromptTemplate | None:
        return self._templates.get((name, version))

    def render(self, name: str, version: str = "v1", **variables) -> list[dict]:
        """
        Raises:
            KeyError: No template ``name``/``version``.
        """
        template = self.get(name, version)
        if template is None:
            raise KeyError(f"Prompt template not found: {name} {version}")
        return template.render(**variables)
