"""
Tests: line and word diff engine.

Covers:
    - accept / discard reconstruct the revised / original text
    - identical inputs produce no edits
    - deterministic ordering (additions before removals)
    - HTML previews are escaped
"""

import pytest

from vesta.services.diff_engine import (
    DiffKind,
    accept_lines,
    diff_lines,
    diff_words,
    discard_lines,
    edit_count,
    render_diff_html,
    render_word_diff_html,
    tokenize_words,
)

PAIRS = [
    ("", ""),
    ("", "Scope"),
    ("Scope", ""),
    ("Objectives\nScope\nBudget", "Objectives\nScope\nTimeline\nBudget"),
    ("a\nb\nc\nd", "d\nc\nb\na"),
    ("Risk: none\n\nBudget: 1M", "Risk: vendor lock-in\n\nBudget: 1M\n"),
]


class TestLineDiff:
    @pytest.mark.parametrize("old,new", PAIRS)
    def test_accept_and_discard_reconstruct(self, old, new):
        lines = diff_lines(old, new)
        assert accept_lines(lines) == new
        assert discard_lines(lines) == old

    @pytest.mark.parametrize("old,new", PAIRS)
    def test_edit_count_bounds(self, old, new):
        lines = diff_lines(old, new)
        assert edit_count(lines) <= len(old.split("\n")) + len(new.split("\n"))
        assert (edit_count(lines) == 0) == (old == new)

    def test_identical_text_is_all_unchanged(self):
        text = "Objectives\nScope\n\nRisks"
        lines = diff_lines(text, text)
        assert all(line.kind is DiffKind.UNCHANGED for line in lines)
        assert [line.text for line in lines] == text.split("\n")

    def test_replacement_lists_addition_first(self):
        lines = diff_lines("a\nb", "a\nc")
        assert [(l.kind, l.text) for l in lines] == [
            (DiffKind.UNCHANGED, "a"),
            (DiffKind.ADDED, "c"),
            (DiffKind.REMOVED, "b"),
        ]

    def test_insertion_keeps_common_lines(self):
        lines = diff_lines("Objectives\nBudget", "Objectives\nTimeline\nBudget")
        assert edit_count(lines) == 1
        assert [l.kind for l in lines] == [DiffKind.UNCHANGED, DiffKind.ADDED, DiffKind.UNCHANGED]

    def test_to_dict(self):
        assert diff_lines("x", "x")[0].to_dict() == {"kind": "unchanged", "text": "x"}

    def test_html_preview_escapes_content(self):
        html = str(render_diff_html(diff_lines("<b>old</b>", "<i>new</i>")))
        assert '<ins class="diff-added">&lt;i&gt;new&lt;/i&gt;</ins>' in html
        assert '<del class="diff-removed">&lt;b&gt;old&lt;/b&gt;</del>' in html
        assert "<i>" not in html


class TestWordDiff:
    def test_tokens_cover_the_text(self):
        text = "  The plan\tcovers  backups.\n"
        assert "".join(tokenize_words(text)) == text

    def test_single_word_replacement(self):
        tokens = diff_words("the quick fox", "the slow fox")
        assert [(t.kind, t.text) for t in tokens] == [
            (DiffKind.UNCHANGED, "the "),
            (DiffKind.ADDED, "slow "),
            (DiffKind.REMOVED, "quick "),
            (DiffKind.UNCHANGED, "fox"),
        ]

    def test_inline_html_groups_runs(self):
        html = str(render_word_diff_html(diff_words("the quick fox", "the slow fox")))
        assert html == ('the <ins class="diff-added">slow </ins>'
                        '<del class="diff-removed">quick </del>fox')

    def test_word_diff_of_identical_text(self):
        assert edit_count(diff_words("same words here", "same words here")) == 0
