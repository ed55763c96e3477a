"""
Snippet Highlighter

Maps findings back onto the document as ``<mark>`` spans.

Findings are applied longest snippet first. Matching happens on raw text
nodes only, so a shorter snippet lying inside an already-marked longer one
is nested within that span and never splits it, and a snippet straddling a
span boundary is skipped. Snippets that are empty or not verbatim in the
document are skipped silently. Text is escaped with markupsafe at render
time, so stripping the tags and unescaping gives back the document exactly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from markupsafe import Markup, escape

from vesta.models.report import Finding

_TAG_RE = re.compile(r"<[^>]+>")


@dataclass
class _Mark:
    finding: Finding
    first: bool
    children: list = field(default_factory=list)


def _wrap_occurrences(nodes: list, finding: Finding, seen: list[bool]) -> list:
    snippet = finding.source_snippet
    out: list = []
    for node in nodes:
        if isinstance(node, _Mark):
            node.children = _wrap_occurrences(node.children, finding, seen)
            out.append(node)
            continue
        parts = node.split(snippet)
        if len(parts) == 1:
            out.append(node)
            continue
        for i, part in enumerate(parts):
            if part:
                out.append(part)
            if i < len(parts) - 1:
                out.append(_Mark(finding, first=not seen[0], children=[snippet]))
                seen[0] = True
    return out


def _render(nodes: list, emphasized: set[str]) -> str:
    chunks = []
    for node in nodes:
        if not isinstance(node, _Mark):
            chunks.append(str(escape(node)))
            continue
        f = node.finding
        classes = ["finding-highlight", f"finding-{f.severity.value}"]
        if f.id in emphasized:
            classes.append("finding-emphasis")
        id_attr = f' id="finding-{escape(f.id)}"' if node.first else ""
        chunks.append(
            f'<mark{id_attr} data-finding-id="{escape(f.id)}" class="{" ".join(classes)}">'
            f"{_render(node.children, emphasized)}</mark>"
        )
    return "".join(chunks)


def highlight(
    document_text: str,
    findings: list[Finding],
    hovered_id: str | None = None,
    selected_id: str | None = None,
) -> Markup:
    """
    Return the escaped document with each finding's snippet wrapped in a mark.

    The first occurrence of a snippet carries ``id="finding-<id>"`` for
    scrolling; every occurrence carries ``data-finding-id``. The hovered and
    selected findings get the extra ``finding-emphasis`` class.
    """
    nodes: list = [document_text or ""]
    ordered = sorted(findings, key=lambda f: len(f.source_snippet or ""), reverse=True)
    for finding in ordered:
        if not finding.source_snippet:
            continue
        nodes = _wrap_occurrences(nodes, finding, [False])
    emphasized = {i for i in (hovered_id, selected_id) if i}
    return Markup(_render(nodes, emphasized))


def strip_highlights(markup: str) -> str:
    """Inverse of ``highlight``: drop tags and unescape back to plain text."""
    return Markup(_TAG_RE.sub("", str(markup))).unescape()


def located_finding_ids(markup: str) -> set[str]:
    """Ids of findings that received at least one span."""
    return set(re.findall(r'data-finding-id="([^"]+)"', str(markup)))
