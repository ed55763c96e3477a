"""
Line Diff Engine

LCS-based edit script between the pre-enhance and the AI-revised document.

    diff_lines(old, new)    line granularity, drives accept/discard
    diff_words(old, new)    word granularity, for inline previews of AI edits

The walk prefers an addition when both directions keep the LCS length, so
of several minimal scripts the same one is always produced.

Usage:
    lines = diff_lines(report.document_content, revised)
    html = render_diff_html(lines)
    accepted = accept_lines(lines)     # == revised
    discarded = discard_lines(lines)   # == report.document_content
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from markupsafe import Markup, escape

_WORD_RE = re.compile(r"\s+|\S+\s*")


class DiffKind(str, Enum):
    UNCHANGED = "unchanged"
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True)
class DiffLine:
    kind: DiffKind
    text: str

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "text": self.text}


# ── Core LCS walk ────────────────────────────────────────────────────────────


def _lcs_table(old: list[str], new: list[str]) -> list[list[int]]:
    m, n = len(old), len(new)
    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(m - 1, -1, -1):
        row, below = dp[i], dp[i + 1]
        for j in range(n - 1, -1, -1):
            if old[i] == new[j]:
                row[j] = below[j + 1] + 1
            else:
                row[j] = max(below[j], row[j + 1])
    return dp


def diff_sequences(old: list[str], new: list[str]) -> list[DiffLine]:
    """Edit script turning ``old`` into ``new``, one entry per token."""
    dp = _lcs_table(old, new)
    m, n = len(old), len(new)
    i = j = 0
    script: list[DiffLine] = []
    while i < m and j < n:
        if old[i] == new[j]:
            script.append(DiffLine(DiffKind.UNCHANGED, old[i]))
            i += 1
            j += 1
        elif dp[i][j + 1] >= dp[i + 1][j]:
            script.append(DiffLine(DiffKind.ADDED, new[j]))
            j += 1
        else:
            script.append(DiffLine(DiffKind.REMOVED, old[i]))
            i += 1
    script.extend(DiffLine(DiffKind.ADDED, t) for t in new[j:])
    script.extend(DiffLine(DiffKind.REMOVED, t) for t in old[i:])
    return script


# ── Line mode ────────────────────────────────────────────────────────────────


def diff_lines(old_text: str, new_text: str) -> list[DiffLine]:
    return diff_sequences(old_text.split("\n"), new_text.split("\n"))


def accept_lines(lines: list[DiffLine]) -> str:
    """Text after accepting the revision: unchanged + added lines."""
    return "\n".join(l.text for l in lines if l.kind is not DiffKind.REMOVED)


def discard_lines(lines: list[DiffLine]) -> str:
    """Text after discarding the revision: unchanged + removed lines."""
    return "\n".join(l.text for l in lines if l.kind is not DiffKind.ADDED)


def edit_count(lines: list[DiffLine]) -> int:
    return sum(1 for l in lines if l.kind is not DiffKind.UNCHANGED)


def render_diff_html(lines: list[DiffLine]) -> Markup:
    """Read-only preview: one output line per diff line, changes wrapped."""
    out = []
    for line in lines:
        text = escape(line.text)
        if line.kind is DiffKind.ADDED:
            out.append(f'<ins class="diff-added">{text}</ins>')
        elif line.kind is DiffKind.REMOVED:
            out.append(f'<del class="diff-removed">{text}</del>')
        else:
            out.append(str(text))
    return Markup("\n".join(out))


# ── Word mode ────────────────────────────────────────────────────────────────


def tokenize_words(text: str) -> list[str]:
    """Words with their trailing whitespace; leading whitespace is its own token."""
    return _WORD_RE.findall(text)


def diff_words(old_text: str, new_text: str) -> list[DiffLine]:
    return diff_sequences(tokenize_words(old_text), tokenize_words(new_text))


def render_word_diff_html(tokens: list[DiffLine]) -> Markup:
    """Inline preview; consecutive tokens of one kind share a single wrapper."""
    out = []
    run_kind = None
    run: list[str] = []

    def flush():
        if not run:
            return
        text = escape("".join(run))
        if run_kind is DiffKind.ADDED:
            out.append(f'<ins class="diff-added">{text}</ins>')
        elif run_kind is DiffKind.REMOVED:
            out.append(f'<del class="diff-removed">{text}</del>')
        else:
            out.append(str(text))

    for token in tokens:
        if token.kind is not run_kind:
            flush()
            run_kind, run = token.kind, []
        run.append(token.text)
    flush()
    return Markup("".join(out))
