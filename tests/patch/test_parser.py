"""Tests for hunk header and body parsing."""
import pytest

from patchwise.patch.errors import InvalidAnchorError, InvalidEnvelopeError
from patchwise.patch.models import EditKind, LineHint
from patchwise.patch.parser import parse_header, parse_hunks


# ---------------------------------------------------------------------------
# Headers
# ---------------------------------------------------------------------------
class TestParseHeader:
    def test_unified_range(self) -> None:
        anchors, hint = parse_header("@@ -3,2 +3,3 @@")
        assert anchors == []
        assert hint == LineHint(old_start=3, old_len=2, new_start=3, new_len=3)

    def test_unified_range_with_anchor(self) -> None:
        anchors, hint = parse_header("@@ -3,2 +3,3 @@ def foo():")
        assert anchors == ["def foo():"]
        assert hint is not None and hint.old_index == 2

    def test_range_without_lengths(self) -> None:
        _, hint = parse_header("@@ -7 +8 @@")
        assert hint == LineHint(old_start=7, old_len=None, new_start=8, new_len=None)
        assert hint.insert_index == 7

    def test_anchor_only(self) -> None:
        assert parse_header("@@ def foo") == (["def foo"], None)

    def test_trailing_at_signs_removed(self) -> None:
        assert parse_header("@@ class Config @@") == (["class Config"], None)

    def test_line_hint(self) -> None:
        assert parse_header("@@ line 12") == ([], LineHint(old_start=12))

    def test_lines_range_hint(self) -> None:
        assert parse_header("@@ lines 4-6") == ([], LineHint(old_start=4, old_len=3))

    def test_top_of_file(self) -> None:
        _, hint = parse_header("@@ top of file")
        assert hint == LineHint(old_start=1, old_len=None, new_start=1)

    def test_empty_header(self) -> None:
        assert parse_header("@@") == ([], None)
        assert parse_header("@@ @@") == ([], None)

    def test_pure_insertion_range_allows_zero(self) -> None:
        _, hint = parse_header("@@ -0,0 +1,2 @@")
        assert hint is not None
        assert hint.insert_index == 0

    def test_zero_start_with_length_rejected(self) -> None:
        with pytest.raises(InvalidAnchorError):
            parse_header("@@ -0,3 +1,2 @@")

    def test_malformed_range_rejected(self) -> None:
        with pytest.raises(InvalidAnchorError):
            parse_header("@@ -1,a +2 @@")

    def test_backwards_line_range_rejected(self) -> None:
        with pytest.raises(InvalidAnchorError):
            parse_header("@@ lines 5-3")

    def test_control_characters_rejected(self) -> None:
        with pytest.raises(InvalidEnvelopeError):
            parse_header("@@ bad\x01anchor")


# ---------------------------------------------------------------------------
# Hunk bodies
# ---------------------------------------------------------------------------
class TestParseHunks:
    def test_headerless_diff_is_one_hunk(self) -> None:
        hunks = parse_hunks("-x\n+y")
        assert len(hunks) == 1
        assert hunks[0].anchors == []
        assert [e.kind for e in hunks[0].edits] == [EditKind.REMOVE, EditKind.ADD]

    def test_nested_anchors(self) -> None:
        hunks = parse_hunks("@@ class A\n@@ def run\n-x\n+y")
        assert len(hunks) == 1
        assert hunks[0].anchors == ["class A", "def run"]
        assert hunks[0].header == "@@ class A"

    def test_blank_line_between_hunks(self) -> None:
        hunks = parse_hunks("@@ a\n-x\n+y\n\n@@ b\n-p\n+q")
        assert len(hunks) == 2
        assert hunks[0].old_lines == ["x"]
        assert hunks[1].anchors == ["b"]
        assert hunks[1].new_lines == ["q"]

    def test_blank_line_inside_hunk_is_context(self) -> None:
        hunks = parse_hunks("@@ f\n a\n\n b\n-c")
        assert [(e.kind, e.text) for e in hunks[0].edits] == [
            (EditKind.KEEP, "a"),
            (EditKind.KEEP, ""),
            (EditKind.KEEP, "b"),
            (EditKind.REMOVE, "c"),
        ]

    def test_unprefixed_line_is_context(self) -> None:
        hunks = parse_hunks("@@\nreturn x\n-y\n+z")
        assert hunks[0].edits[0].kind == EditKind.KEEP
        assert hunks[0].edits[0].text == "return x"

    def test_end_of_file_marker(self) -> None:
        hunks = parse_hunks("@@\n-x\n+y\n*** End of File")
        assert hunks[0].is_eof is True
        assert len(hunks[0].edits) == 2

    def test_ellipsis(self) -> None:
        hunks = parse_hunks("@@ f\n a\n...\n-b\n+c")
        assert [e.kind for e in hunks[0].edits] == [
            EditKind.KEEP,
            EditKind.ELLIPSIS,
            EditKind.REMOVE,
            EditKind.ADD,
        ]
        assert hunks[0].has_ellipsis

    def test_removed_dots_are_not_ellipsis(self) -> None:
        hunks = parse_hunks("-...\n+pass")
        assert hunks[0].edits[0].kind == EditKind.REMOVE

    def test_line_number_prefixes_stripped(self) -> None:
        hunks = parse_hunks("@@\n 1: a\n-2: b\n+2: c")
        assert [e.text for e in hunks[0].edits] == ["a", "b", "c"]

    def test_counts(self) -> None:
        hunk = parse_hunks(" a\n-b\n-c\n+d")[0]
        assert hunk.lines_added == 1
        assert hunk.lines_removed == 2
        assert hunk.has_context
        assert not hunk.is_insertion

    def test_insertion(self) -> None:
        hunk = parse_hunks("@@ def f():\n+    pass")[0]
        assert hunk.is_insertion

    def test_header_without_body_rejected(self) -> None:
        with pytest.raises(InvalidEnvelopeError):
            parse_hunks("@@ foo")

    def test_header_followed_by_header_only_rejected(self) -> None:
        with pytest.raises(InvalidEnvelopeError):
            parse_hunks("@@ a\n@@ b")

    def test_empty_text(self) -> None:
        assert parse_hunks("") == []

    def test_trailing_bare_header_ignored(self) -> None:
        hunks = parse_hunks("@@ def f\n-a\n+b\n@@\n")
        assert len(hunks) == 1
        assert hunks[0].anchors == ["def f"]
        assert [e.kind for e in hunks[0].edits] == [EditKind.REMOVE, EditKind.ADD]

    def test_trailing_double_at_header_ignored(self) -> None:
        assert len(parse_hunks("-a\n+b\n\n@@ @@")) == 1
