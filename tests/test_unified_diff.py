"""Tests for unified diff parsing and application."""

import pytest

from vibe.core.errors import DiffApplyError
from vibe.models.change import DiffHunk, DiffLine, FileDiff, LineKind
from vibe.tools.unified_diff import (
    apply_file_diff,
    apply_hunk,
    apply_hunks,
    locate_block,
    parse_unified_diff,
    render_preview,
    split_lines,
)


FOO_DIFF = """diff --git a/foo.js b/foo.js
--- a/foo.js
+++ b/foo.js
@@ -1,4 +1,3 @@
 line1
-line2
-line3
+merged
 line4
"""

FOO_ORIGINAL = "line1\nline2\nline3\nline4\nline5\n"


class TestParse:
    """Parsing model output."""

    def test_basic_file_and_hunk(self):
        diffs = parse_unified_diff(FOO_DIFF)

        assert len(diffs) == 1
        diff = diffs[0]
        assert diff.old_path == "foo.js"
        assert diff.new_path == "foo.js"
        assert len(diff.hunks) == 1

        hunk = diff.hunks[0]
        assert (hunk.old_start, hunk.old_length, hunk.new_start, hunk.new_length) == (1, 4, 1, 3)
        assert hunk.context == ["line1", "line4"]
        assert hunk.removals == ["line2", "line3"]
        assert hunk.additions == ["merged"]

    def test_lengths_default_to_one(self):
        text = "diff --git a/x b/x\n@@ -3 +3 @@\n-old\n+new\n"
        hunk = parse_unified_diff(text)[0].hunks[0]

        assert hunk.old_length == 1
        assert hunk.new_length == 1

    def test_multiple_files_and_hunks(self):
        text = (
            "diff --git a/a.py b/a.py\n"
            "@@ -1,1 +1,1 @@\n-a\n+A\n"
            "@@ -10,1 +10,1 @@\n-b\n+B\n"
            "diff --git a/b.py b/b.py\n"
            "@@ -2,1 +2,2 @@\n c\n+d\n"
        )
        diffs = parse_unified_diff(text)

        assert [d.new_path for d in diffs] == ["a.py", "b.py"]
        assert [len(d.hunks) for d in diffs] == [2, 1]

    def test_prose_and_fences_ignored(self):
        text = "Here is the change:\n```diff\n" + FOO_DIFF + "```\nLet me know!\n"
        diffs = parse_unified_diff(text)

        assert len(diffs) == 1
        assert diffs[0].hunks[0].additions == ["merged"]

    def test_header_pair_without_diff_git(self):
        text = "--- a/src/app.py\n+++ b/src/app.py\n@@ -1,1 +1,1 @@\n-x = 1\n+x = 2\n"
        diffs = parse_unified_diff(text)

        assert len(diffs) == 1
        assert diffs[0].old_path == "src/app.py"
        assert diffs[0].new_path == "src/app.py"

    def test_dev_null_marks_new_and_deleted_files(self):
        text = (
            "--- /dev/null\n+++ b/new.txt\n@@ -0,0 +1,1 @@\n+hello\n"
            "--- a/old.txt\n+++ /dev/null\n@@ -1,1 +0,0 @@\n-bye\n"
        )
        new, deleted = parse_unified_diff(text)

        assert new.is_new_file and new.target_path == "new.txt"
        assert deleted.is_deleted_file and deleted.target_path == "old.txt"

    def test_removal_that_looks_like_header_inside_hunk(self):
        text = "diff --git a/n.md b/n.md\n@@ -1,2 +1,1 @@\n--- a rule\n+++ b rule\n"
        hunk = parse_unified_diff(text)[0].hunks[0]

        assert hunk.removals == ["-- a rule"]
        assert hunk.additions == ["++ b rule"]

    def test_blank_line_in_open_hunk_is_context(self):
        text = "diff --git a/x b/x\n@@ -1,3 +1,3 @@\n a\n\n-b\n+c\n"
        hunk = parse_unified_diff(text)[0].hunks[0]

        assert hunk.old_side == ["a", "", "b"]
        assert hunk.new_side == ["a", "", "c"]

    def test_no_newline_marker_ignored(self):
        text = "diff --git a/x b/x\n@@ -1 +1 @@\n-a\n\\ No newline at end of file\n+b\n"
        hunk = parse_unified_diff(text)[0].hunks[0]

        assert [l.kind for l in hunk.lines] == [LineKind.REMOVAL, LineKind.ADDITION]

    def test_fence_lines_inside_hunk_are_body(self):
        text = "diff --git a/README.md b/README.md\n@@ -3,3 +3,3 @@\n ```\n ```python\n-a\n+b\n"
        hunk = parse_unified_diff(text)[0].hunks[0]

        assert hunk.context == ["```", "```python"]
        assert hunk.removals == ["a"]
        assert hunk.additions == ["b"]

    def test_trailing_prose_after_complete_hunk_ignored(self):
        text = FOO_DIFF + "\n- Merged lines 2 and 3\n+ Kept the rest\n"
        hunk = parse_unified_diff(text)[0].hunks[0]

        assert hunk.removals == ["line2", "line3"]
        assert hunk.additions == ["merged"]
        assert hunk.context == ["line1", "line4"]

    def test_unprefixed_line_ends_short_hunk(self):
        text = "diff --git a/x b/x\n@@ -1,3 +1,3 @@\n a\n-b\n+c\nThat is all.\n-not part of the diff\n"
        hunk = parse_unified_diff(text)[0].hunks[0]

        assert hunk.old_side == ["a", "b"]
        assert hunk.new_side == ["a", "c"]

    def test_file_without_hunks_dropped(self):
        assert parse_unified_diff("diff --git a/x b/x\nindex 123..456\n") == []

    def test_garbage_yields_nothing(self):
        assert parse_unified_diff("I could not produce a diff, sorry.") == []
        assert parse_unified_diff("") == []

    def test_hunk_before_any_file_ignored(self):
        assert parse_unified_diff("@@ -1 +1 @@\n-a\n+b\n") == []


class TestApply:
    """Verified, immutable application."""

    def test_round_trip_replaces_two_lines_with_one(self):
        text = "diff --git a/foo.js b/foo.js\n@@ -2,2 +2,1 @@\n-line2\n-line3\n+merged\n"
        diff = parse_unified_diff(text)[0]

        result, applied, skipped = apply_file_diff(diff, FOO_ORIGINAL)

        assert result == "line1\nmerged\nline4\nline5\n"
        assert (applied, skipped) == (1, 0)

    def test_context_and_removals_verified(self):
        diff = parse_unified_diff(FOO_DIFF)[0]
        result, applied, _ = apply_file_diff(diff, FOO_ORIGINAL)

        assert result == "line1\nmerged\nline4\nline5\n"
        assert applied == 1

    def test_interleaved_lines_keep_source_order(self):
        text = "diff --git a/x b/x\n@@ -1,3 +1,4 @@\n a\n+a2\n b\n-c\n+C\n"
        diff = parse_unified_diff(text)[0]

        result, _, _ = apply_file_diff(diff, "a\nb\nc\nd\n")

        assert result == "a\na2\nb\nC\nd\n"

    def test_multiple_hunks_applied_bottom_up(self):
        text = (
            "diff --git a/x b/x\n"
            "@@ -1,1 +1,2 @@\n l1\n+inserted\n"
            "@@ -4,1 +5,1 @@\n-l4\n+L4\n"
        )
        diff = parse_unified_diff(text)[0]

        result, applied, _ = apply_file_diff(diff, "l1\nl2\nl3\nl4\nl5\n")

        assert result == "l1\ninserted\nl2\nl3\nL4\nl5\n"
        assert applied == 2

    def test_markdown_fences_keep_hunk_anchored(self):
        original = "```\na\n```\n```\na\n```\n"
        text = "diff --git a/doc.md b/doc.md\n@@ -3,3 +3,3 @@\n ```\n ```\n-a\n+b\n"
        diff = parse_unified_diff(text)[0]

        result, applied, _ = apply_file_diff(diff, original)

        assert result == "```\na\n```\n```\nb\n```\n"
        assert applied == 1

    def test_offset_hunk_relocated(self):
        # Header says line 2 but the block actually starts at line 4
        text = "diff --git a/x b/x\n@@ -2,2 +2,2 @@\n keep\n-old\n+new\n"
        diff = parse_unified_diff(text)[0]

        result, applied, _ = apply_file_diff(diff, "a\nb\nc\nkeep\nold\nz\n")

        assert result == "a\nb\nc\nkeep\nnew\nz\n"
        assert applied == 1

    def test_conflict_rejected(self):
        text = "diff --git a/x b/x\n@@ -2,1 +2,1 @@\n-expected\n+new\n"
        diff = parse_unified_diff(text)[0]

        with pytest.raises(DiffApplyError) as exc_info:
            apply_file_diff(diff, "a\nsomething else\nc\n")

        assert exc_info.value.path == "x"
        assert exc_info.value.hunk_index == 0
        assert "does not apply" in str(exc_info.value)

    def test_one_bad_hunk_fails_whole_file(self):
        text = (
            "diff --git a/x b/x\n"
            "@@ -1,1 +1,1 @@\n-a\n+A\n"
            "@@ -3,1 +3,1 @@\n-missing\n+M\n"
        )
        diff = parse_unified_diff(text)[0]

        with pytest.raises(DiffApplyError) as exc_info:
            apply_file_diff(diff, "a\nb\nc\n")
        assert exc_info.value.hunk_index == 1

    def test_reapply_is_detected_and_skipped(self):
        diff = parse_unified_diff(FOO_DIFF)[0]
        patched, _, _ = apply_file_diff(diff, FOO_ORIGINAL)

        again, applied, skipped = apply_file_diff(diff, patched)

        assert again == patched
        assert (applied, skipped) == (0, 1)

    def test_reapply_trailing_insertion_not_duplicated(self):
        text = "diff --git a/x b/x\n@@ -2,1 +2,2 @@\n b\n+c\n"
        diff = parse_unified_diff(text)[0]
        patched, applied, _ = apply_file_diff(diff, "a\nb\n")

        assert patched == "a\nb\nc\n"
        assert applied == 1

        again, applied, skipped = apply_file_diff(diff, patched)
        assert again == "a\nb\nc\n"
        assert (applied, skipped) == (0, 1)

    def test_trailing_removal_applies(self):
        text = "diff --git a/x b/x\n@@ -1,2 +1,1 @@\n a\n-b\n"
        diff = parse_unified_diff(text)[0]

        result, applied, _ = apply_file_diff(diff, "a\nb\n")

        assert result == "a\n"
        assert applied == 1

    def test_new_file_from_empty(self):
        text = "--- /dev/null\n+++ b/new.txt\n@@ -0,0 +1,2 @@\n+one\n+two\n"
        diff = parse_unified_diff(text)[0]

        result, applied, _ = apply_file_diff(diff, "")

        assert result == "one\ntwo\n"
        assert applied == 1

    def test_delete_everything(self):
        text = "--- a/old.txt\n+++ /dev/null\n@@ -1,2 +0,0 @@\n-one\n-two\n"
        diff = parse_unified_diff(text)[0]

        result, _, _ = apply_file_diff(diff, "one\ntwo\n")

        assert result == ""

    def test_missing_trailing_newline_preserved(self):
        text = "diff --git a/x b/x\n@@ -2,1 +2,1 @@\n-b\n+B\n"
        diff = parse_unified_diff(text)[0]

        result, _, _ = apply_file_diff(diff, "a\nb")

        assert result == "a\nB"

    def test_crlf_preserved(self):
        text = "diff --git a/x b/x\n@@ -1,1 +1,1 @@\n-a\n+A\n"
        diff = parse_unified_diff(text)[0]

        result, _, _ = apply_file_diff(diff, "a\r\nb\r\n")

        assert result == "A\r\nb\r\n"

    def test_input_tuple_not_mutated(self):
        lines = ("a", "b", "c")
        hunk = DiffHunk(old_start=2, old_length=1, new_start=2, new_length=1, lines=[
            DiffLine(kind=LineKind.REMOVAL, text="b"),
            DiffLine(kind=LineKind.ADDITION, text="B"),
        ])

        result, changed = apply_hunk(lines, hunk)

        assert lines == ("a", "b", "c")
        assert result == ("a", "B", "c")
        assert changed

    def test_apply_hunks_counts(self):
        hunks = [
            DiffHunk(old_start=1, new_start=1, lines=[
                DiffLine(kind=LineKind.REMOVAL, text="a"),
                DiffLine(kind=LineKind.ADDITION, text="A"),
            ]),
            DiffHunk(old_start=3, new_start=3, lines=[
                DiffLine(kind=LineKind.REMOVAL, text="c"),
                DiffLine(kind=LineKind.ADDITION, text="C"),
            ]),
        ]

        lines, applied, skipped = apply_hunks(("A", "b", "c"), hunks)

        assert lines == ("A", "b", "C")
        assert (applied, skipped) == (1, 1)


class TestHelpers:
    """Line splitting and block search."""

    def test_split_lines(self):
        assert split_lines("a\nb\n") == (("a", "b"), "\n", True)
        assert split_lines("a\nb") == (("a", "b"), "\n", False)
        assert split_lines("") == ((), "\n", True)

    def test_locate_prefers_nearest_unique(self):
        lines = ("x", "}", "y", "}", "z", "z", "}")
        assert locate_block(lines, ["}"], 3) == 3
        assert locate_block(lines, ["}"], 2) is None  # equidistant from 1 and 3
        assert locate_block(lines, ["}"], 5) == 6

    def test_locate_missing(self):
        assert locate_block(("a",), ["b"], 0) is None
        assert locate_block(("a",), [], 0) is None


def test_render_preview():
    diff = FileDiff(old_path="a.js", new_path="a.js", hunks=[
        DiffHunk(old_start=1, old_length=2, new_start=1, new_length=2, lines=[
            DiffLine(kind=LineKind.CONTEXT, text="keep"),
            DiffLine(kind=LineKind.REMOVAL, text="old"),
            DiffLine(kind=LineKind.ADDITION, text="new"),
        ]),
    ])

    preview = render_preview([diff])

    assert "File: a.js" in preview
    assert "@@ -1,2 +1,2 @@" in preview
    assert "\n keep\n-old\n+new\n" in preview
