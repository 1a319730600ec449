"""Tests for the patch engine entry points.

Tests cover:
- Update hunks located by context, anchors, hints and EOF markers
- Whitespace and indentation drift
- Ambiguity, stale content and missing content errors
- Create, delete and rename requests
- Byte-exact preservation of BOM, CRLF and trailing newline state
"""
import pytest

from patchwise.patch import (
    AmbiguousMatchError,
    FileStateError,
    InvalidAnchorError,
    InvalidEnvelopeError,
    InvalidRenameError,
    NoMatchError,
    NoOpChangeError,
    Operation,
    PatchConfig,
    PatchError,
    PatchRequest,
    StaleContentError,
    apply,
    patch_text,
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def update(path: str, diff: str, current: bytes, config: PatchConfig | None = None):
    """Run an update request against ``current``."""
    return apply(PatchRequest(path=path, operation=Operation.UPDATE, diff_text=diff), current, config)


# ---------------------------------------------------------------------------
# Basic updates
# ---------------------------------------------------------------------------
class TestBasicUpdate:
    def test_anchor_and_remove_add(self) -> None:
        content = "def main():\n    return 1\n"
        diff = "@@ def main\n-    return 1\n+    return 2\n"
        assert patch_text(content, diff) == "def main():\n    return 2\n"

    def test_context_disambiguates(self) -> None:
        assert patch_text("a\nb\na\nc\n", " b\n-a\n+A") == "a\nb\nA\nc\n"

    def test_hunks_out_of_order(self) -> None:
        content = "one\ntwo\nthree\nfour\nfive\n"
        diff = "@@\n-four\n+FOUR\n@@\n-two\n+TWO"
        assert patch_text(content, diff) == "one\nTWO\nthree\nFOUR\nfive\n"

    def test_ellipsis_skips_unchanged_lines(self) -> None:
        content = "def f():\n    a = 1\n    b = 2\n    c = 3\n    return a\n"
        diff = "@@ def f\n     a = 1\n...\n-    return a\n+    return c"
        assert patch_text(content, diff) == "def f():\n    a = 1\n    b = 2\n    c = 3\n    return c\n"

    def test_envelope_with_matching_marker(self) -> None:
        content = "def main():\n    return 1\n"
        diff = "*** Begin Patch\n*** Update File: app.py\n@@ def main\n-    return 1\n+    return 2\n*** End Patch"
        assert patch_text(content, diff) == "def main():\n    return 2\n"

    def test_line_numbered_diff(self) -> None:
        assert patch_text("a\nb\nc\n", "@@\n 1: a\n-2: b\n+2: B") == "a\nB\nc\n"

    def test_counts(self) -> None:
        result = update("a.txt", " a\n-b\n-c\n+d", b"a\nb\nc\n")
        assert result.ok
        assert result.hunks_applied == 1
        assert result.lines_added == 1
        assert result.lines_removed == 2
        assert result.fuzzy is False
        assert result.new_bytes == b"a\nd\n"


# ---------------------------------------------------------------------------
# Locating with hints, anchors and EOF markers
# ---------------------------------------------------------------------------
TWO_CLASSES = (
    "class A:\n"
    "    def run(self):\n"
    "        return 1\n"
    "class B:\n"
    "    def run(self):\n"
    "        return 1\n"
)


class TestDisambiguation:
    def test_duplicate_block_is_ambiguous(self) -> None:
        result = update("a.txt", "-a\n+A", b"a\nb\na\nc\n")
        assert not result.ok
        assert isinstance(result.error, AmbiguousMatchError)
        assert result.error.count == 2
        assert result.error.candidate_lines == [1, 3]
        assert result.new_bytes is None

    def test_nested_anchors(self) -> None:
        diff = "@@ class B\n@@ def run\n-        return 1\n+        return 2"
        expected = TWO_CLASSES.rsplit("        return 1\n", 1)[0] + "        return 2\n"
        assert patch_text(TWO_CLASSES, diff) == expected

    def test_unanchored_duplicate_is_ambiguous(self) -> None:
        with pytest.raises(AmbiguousMatchError):
            patch_text(TWO_CLASSES, "-        return 1\n+        return 2")

    def test_line_hint_breaks_tie(self) -> None:
        assert patch_text("a\nb\na\nc\n", "@@ -3,1 +3,1 @@\n-a\n+A") == "a\nb\nA\nc\n"

    def test_end_of_file_marker_prefers_last(self) -> None:
        diff = "-end\n+END\n*** End of File"
        assert patch_text("x\nend\nx\nend\n", diff) == "x\nend\nx\nEND\n"

    def test_hunks_changing_same_line_conflict(self) -> None:
        result = update("a.txt", "@@\n-two\n+2\n@@\n-two\n+II", b"one\ntwo\nthree\n")
        assert isinstance(result.error, StaleContentError)
        assert result.error.changed_lines == [2]
        assert "Hunks 1 and 2" in result.error.error
        assert result.new_bytes is None

    def test_hunks_sharing_context_line(self) -> None:
        diff = "@@\n-a\n+A\n b\n@@\n b\n-c\n+C"
        assert patch_text("a\nb\nc\n", diff) == "A\nb\nC\n"

    def test_hunk_inserting_inside_shared_context_conflicts(self) -> None:
        diff = "@@\n-a\n+A\n b\n c\n@@\n b\n+new\n c\n-d\n+D"
        with pytest.raises(StaleContentError):
            patch_text("a\nb\nc\nd\n", diff)

    def test_three_way_ambiguity_counts_every_match(self) -> None:
        result = update("a.txt", "-a\n+A", b"a\nx\na\nx\na\n")
        assert isinstance(result.error, AmbiguousMatchError)
        assert result.error.count == 3
        assert result.error.candidate_lines == [1, 3, 5]


# ---------------------------------------------------------------------------
# Insertions
# ---------------------------------------------------------------------------
class TestInsertion:
    def test_after_anchor(self) -> None:
        content = "def f():\n    pass\n"
        diff = '@@ def f():\n+    """Doc."""'
        assert patch_text(content, diff) == 'def f():\n    """Doc."""\n    pass\n'

    def test_at_line_hint(self) -> None:
        assert patch_text("a\nb\n", "@@ -1,0 +2,1 @@\n+x") == "a\nx\nb\n"

    def test_append_at_end_of_file(self) -> None:
        assert patch_text("a\n", "@@\n+b\n*** End of File") == "a\nb\n"

    def test_hint_outside_file(self) -> None:
        with pytest.raises(InvalidAnchorError) as exc:
            patch_text("a\nb\n", "@@ -10,0 +10,2 @@\n+x\n+y")
        assert "outside the file" in exc.value.error

    def test_nothing_locates_insertion(self) -> None:
        with pytest.raises(InvalidAnchorError):
            patch_text("a\n", "+b")

    def test_missing_anchor(self) -> None:
        with pytest.raises(NoMatchError) as exc:
            patch_text("a\n", "@@ def missing\n+x")
        assert "anchor not found" in exc.value.error


# ---------------------------------------------------------------------------
# Whitespace and indentation drift
# ---------------------------------------------------------------------------
class TestDrift:
    def test_tab_diff_into_space_file(self) -> None:
        content = "def f(x):\n    if x:\n        return 1\n    return 0\n"
        diff = "@@ def f\n \tif x:\n-\t\treturn 1\n+\t\treturn 2\n"
        assert patch_text(content, diff) == "def f(x):\n    if x:\n        return 2\n    return 0\n"

    def test_under_indented_hunk_is_shifted(self) -> None:
        content = "class A:\n    def f(self):\n        return 1\n"
        diff = "@@\n def f(self):\n-    return 1\n+    return 2"
        result = update("a.py", diff, content.encode())
        assert result.ok
        assert result.new_bytes == b"class A:\n    def f(self):\n        return 2\n"
        assert result.fuzzy is True
        assert result.warnings

    def test_unicode_punctuation_in_diff(self) -> None:
        content = 'msg = "hello \u2014 world"\n'
        diff = '-msg = "hello - world"\n+msg = "bye"'
        assert patch_text(content, diff) == 'msg = "bye"\n'

    def test_changed_lines_fallback(self) -> None:
        content = "def f():\n    x = 1\n    y = 2\n"
        diff = "@@\n def g():\n-    x = 1\n+    x = 10"
        result = update("a.py", diff, content.encode())
        assert result.ok
        assert result.new_bytes == b"def f():\n    x = 10\n    y = 2\n"
        assert any("changed lines" in w for w in result.warnings)

    def test_changed_lines_use_dropped_context_to_choose(self) -> None:
        content = (
            "const handleEnd = () => {\n"
            "  if (--streamEndedCount === 2) {\n"
            "    cleanup();\n"
            "  }\n"
            "  if (--streamEndedCount === 2) {\n"
            "    finalize();\n"
            "  }\n"
            "};\n"
        )
        diff = (
            "@@     const handleEnd = () => {\n"
            "       if (--streamEndedCount === 2) {\n"
            "-      if (--streamEndedCount === 2) {\n"
            "+      if (++streamEndedCount === 2) {"
        )
        result = update("stream.js", diff, content.encode())
        assert result.ok
        lines = result.new_bytes.decode().split("\n")
        assert lines[1] == "  if (--streamEndedCount === 2) {"
        assert "++streamEndedCount" in lines[4]
        assert len(lines) == len(content.split("\n"))
        assert any("changed lines" in w for w in result.warnings)

    def test_collapsed_duplicate_context(self) -> None:
        result = update("a.txt", " x\n x\n+new\n y", b"x\ny\n")
        assert result.ok
        assert result.new_bytes == b"x\nnew\ny\n"
        assert any("collapsed context" in w for w in result.warnings)

    def test_trimmed_stale_edge_context(self) -> None:
        result = update("a.txt", " zzz-stale-line\n b\n+B2\n c", b"a\nb\nc\n")
        assert result.ok
        assert result.new_bytes == b"a\nb\nB2\nc\n"
        assert any("trimmed context" in w for w in result.warnings)

    def test_character_level_match_is_not_exact(self) -> None:
        result = update("a.py", "-x = foo(a, b) + bar(c)\n+x = 0", b"x = foo(a,b)+bar(c)\n")
        assert result.ok
        assert result.new_bytes == b"x = 0\n"
        assert result.fuzzy is True
        assert any("character" in w for w in result.warnings)

    def test_fuzzy_disabled(self) -> None:
        content = "class A:\n    def f(self):\n        return 1\n"
        diff = "@@\n def f(self):\n-    return 1\n+    return 2"
        result = update("a.py", diff, content.encode(), PatchConfig(allow_fuzzy=False))
        assert not result.ok
        assert isinstance(result.error, PatchError)


# ---------------------------------------------------------------------------
# Failure diagnosis
# ---------------------------------------------------------------------------
class TestDiagnosis:
    def test_stale_content(self) -> None:
        result = update("a.txt", "-one\n-two\n-THREE-CHANGED\n+x", b"one\ntwo\nthree\nfour\n")
        assert isinstance(result.error, StaleContentError)
        assert result.error.changed_lines == [3]
        assert result.error.expected == ["one", "two", "THREE-CHANGED"]
        assert result.error.actual == ["one", "two", "three"]
        payload = result.error.to_dict()
        assert payload["kind"] == "stale_content"
        assert payload["path"] == "a.txt"

    def test_no_match(self) -> None:
        result = update("a.txt", "-zzzzzz qqqq\n+x", b"alpha\nbeta\n")
        assert isinstance(result.error, NoMatchError)
        assert result.error.to_dict()["status"] == "error"

    def test_no_op(self) -> None:
        with pytest.raises(NoOpChangeError):
            patch_text("a\nb\n", " a\n b")

    def test_remove_and_add_same_line_is_no_op(self) -> None:
        with pytest.raises(NoOpChangeError):
            patch_text("a\nb\n", "-a\n+a")

    def test_empty_diff(self) -> None:
        result = update("a.txt", "", b"a\n")
        assert isinstance(result.error, InvalidEnvelopeError)

    def test_null_bytes_in_diff(self) -> None:
        result = update("a.txt", "-a\x00\n+b", b"a\n")
        assert isinstance(result.error, InvalidEnvelopeError)

    def test_binary_file(self) -> None:
        result = update("a.bin", "-a\n+b", b"a\x00\n")
        assert isinstance(result.error, InvalidEnvelopeError)

    def test_invalid_utf8_file(self) -> None:
        result = update("a.txt", "-a\n+b", b"\xff\xfe a\n")
        assert isinstance(result.error, InvalidEnvelopeError)

    def test_multi_file_diff(self) -> None:
        diff = "*** Update File: a.txt\n-a\n+b\n*** Update File: b.txt\n-c\n+d"
        result = update("a.txt", diff, b"a\n")
        assert isinstance(result.error, InvalidEnvelopeError)

    def test_diff_for_other_file(self) -> None:
        result = update("a.txt", "*** Update File: other.txt\n-a\n+b", b"a\n")
        assert isinstance(result.error, InvalidEnvelopeError)

    def test_missing_file(self) -> None:
        result = update("a.txt", "-a\n+b", None)
        assert isinstance(result.error, FileStateError)

    def test_unwrap_raises_stored_error(self) -> None:
        result = update("a.txt", "-zzzzzz qqqq\n+x", b"alpha\n")
        with pytest.raises(NoMatchError):
            result.unwrap()


# ---------------------------------------------------------------------------
# Byte preservation
# ---------------------------------------------------------------------------
class TestPreservation:
    def test_crlf_and_bom(self) -> None:
        result = update("a.txt", "-b\n+B", b"\xef\xbb\xbfa\r\nb\r\nc\r\n")
        assert result.new_bytes == b"\xef\xbb\xbfa\r\nB\r\nc\r\n"

    def test_missing_trailing_newline(self) -> None:
        assert update("a.txt", "-b\n+B", b"a\nb").new_bytes == b"a\nB"

    def test_crlf_diff_on_lf_file(self) -> None:
        assert update("a.txt", "-b\r\n+B\r\n", b"a\nb\n").new_bytes == b"a\nB\n"


# ---------------------------------------------------------------------------
# Create, delete and rename
# ---------------------------------------------------------------------------
class TestOperations:
    def test_create(self) -> None:
        result = apply(PatchRequest("n.txt", Operation.CREATE, "+hello\n+world\n"))
        assert result.ok
        assert result.new_bytes == b"hello\nworld\n"
        assert result.lines_added == 2

    def test_create_empty(self) -> None:
        result = apply(PatchRequest("n.txt", Operation.CREATE, None))
        assert result.new_bytes == b""

    def test_delete(self) -> None:
        result = apply(PatchRequest("a.txt", Operation.DELETE), b"x\ny\n")
        assert result.ok
        assert result.deleted is True
        assert result.new_bytes is None
        assert result.lines_removed == 2

    def test_operation_aliases(self) -> None:
        assert Operation.coerce("add") == Operation.CREATE
        assert Operation.coerce("remove") == Operation.DELETE
        assert Operation.coerce("modify") == Operation.UPDATE
        assert Operation.coerce(None) == Operation.UPDATE

    def test_rename_with_edit(self) -> None:
        request = PatchRequest("a.py", Operation.UPDATE, "-x = 1\n+x = 2", rename_to="pkg/b.py")
        result = apply(request, b"x = 1\n")
        assert result.ok
        assert result.target_path == "pkg/b.py"
        assert result.new_bytes == b"x = 2\n"

    def test_pure_rename(self) -> None:
        result = apply(PatchRequest("a.py", Operation.UPDATE, None, rename_to="b.py"), b"x = 1\n")
        assert result.ok
        assert result.new_bytes == b"x = 1\n"
        assert result.hunks_applied == 0

    def test_rename_to_same_path(self) -> None:
        result = apply(PatchRequest("a.py", Operation.UPDATE, "-x\n+y", rename_to="./a.py"), b"x\n")
        assert isinstance(result.error, InvalidRenameError)

    def test_rename_on_delete(self) -> None:
        result = apply(PatchRequest("a.py", Operation.DELETE, rename_to="b.py"), b"x\n")
        assert isinstance(result.error, InvalidRenameError)

    def test_rename_on_create(self) -> None:
        result = apply(PatchRequest("a.py", Operation.CREATE, "+x", rename_to="b.py"))
        assert isinstance(result.error, InvalidRenameError)


# ---------------------------------------------------------------------------
# Worked scenarios
# ---------------------------------------------------------------------------
class TestWorkedScenarios:
    def test_last_line_without_newline(self) -> None:
        assert patch_text("foo\nbar", "-bar\n+baz") == "foo\nbaz"

    def test_create_strips_uniform_prefix(self) -> None:
        result = apply(PatchRequest("n.txt", Operation.CREATE, "+x\n+y"))
        assert result.new_bytes == b"x\ny\n"

    def test_create_mixed_prefix_is_literal(self) -> None:
        result = apply(PatchRequest("n.txt", Operation.CREATE, "+x\nbare\n+y"))
        assert result.new_bytes == b"+x\nbare\n+y\n"

    def test_missing_anchor_falls_back_to_content(self) -> None:
        result = update("a.txt", "@@ def missing\n-b\n+B", b"a\nb\n")
        assert result.ok
        assert result.new_bytes == b"a\nB\n"
        assert any("not found" in w for w in result.warnings)
