"""Unified diff parsing, preview rendering and verified application.

Application is a fold over hunks sorted by descending ``old_start``; each
step returns a new line tuple. A hunk's old side must be found in the file
(at its declared position, else at the nearest unique exact occurrence) or
its new side must already be there, in which case the hunk is skipped.
"""

import re
from typing import List, Optional, Sequence, Tuple
import logging

from ..core.errors import DiffApplyError
from ..models.change import DiffHunk, DiffLine, FileDiff, LineKind

logger = logging.getLogger(__name__)

DEV_NULL = "/dev/null"

DIFF_GIT_RE = re.compile(r"^diff --git a/(.+?) b/(.+)$")
HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
FENCE_RE = re.compile(r"^\s*```")

BODY_KINDS = {
    " ": LineKind.CONTEXT,
    "-": LineKind.REMOVAL,
    "+": LineKind.ADDITION,
}


def _header_path(raw: str) -> str:
    """Path from a ``---``/``+++`` line: drop timestamps and the a/ b/ prefix."""
    path = raw.split("\t", 1)[0].strip()
    if path == DEV_NULL:
        return path
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path


def _finish(files: List[FileDiff], current: Optional[FileDiff]) -> None:
    if current is None:
        return
    if current.hunks:
        files.append(current)
    else:
        logger.debug(f"Dropping diff without hunks for {current.new_path}", extra={"path": current.new_path})


def parse_unified_diff(text: str) -> List[FileDiff]:
    """Parse model output into per-file diffs.

    Anything that is not part of a file header or a hunk is ignored, so
    surrounding prose or markdown fences do no harm. A hunk takes body lines
    (routed by their first character) only until it holds the counts its
    header announced; anything after that is ignored until the next header.

    Args:
        text: Raw unified diff text

    Returns:
        File diffs with at least one hunk, in the order they appear
    """
    files: List[FileDiff] = []
    current: Optional[FileDiff] = None
    hunk: Optional[DiffHunk] = None

    lines = (text or "").splitlines()
    i = 0
    while i < len(lines):
        line = lines[i].rstrip("\r")
        nxt = lines[i + 1].rstrip("\r") if i + 1 < len(lines) else ""
        i += 1

        if hunk is not None and not hunk.is_complete():
            if line.startswith("\\"):
                continue  # "\ No newline at end of file"
            if line == "":
                hunk.lines.append(DiffLine(kind=LineKind.CONTEXT, text=""))
                continue
            kind = BODY_KINDS.get(line[0])
            if kind is not None:
                hunk.lines.append(DiffLine(kind=kind, text=line[1:]))
                continue
            # An unprefixed line ends the hunk early
            hunk = None

        if FENCE_RE.match(line):
            continue

        if line.startswith("diff --git"):
            _finish(files, current)
            match = DIFF_GIT_RE.match(line)
            current = FileDiff(old_path=match.group(1), new_path=match.group(2)) if match else None
            hunk = None
            continue

        if line.startswith("--- ") and nxt.startswith("+++ "):
            old_path = _header_path(line[4:])
            new_path = _header_path(nxt[4:])
            i += 1
            if current is None or current.hunks:
                _finish(files, current)
                current = FileDiff(old_path=old_path, new_path=new_path)
            else:
                # Refines the paths announced by the preceding diff --git line
                current.old_path, current.new_path = old_path, new_path
            if old_path == DEV_NULL:
                current.is_new_file = True
                current.old_path = new_path
            if new_path == DEV_NULL:
                current.is_deleted_file = True
                current.new_path = current.old_path
            hunk = None
            continue

        if line.startswith("@@"):
            match = HUNK_RE.match(line)
            if current is None or match is None:
                hunk = None
                continue
            old_start, old_len, new_start, new_len = match.groups()
            hunk = DiffHunk(
                old_start=int(old_start),
                old_length=int(old_len) if old_len is not None else 1,
                new_start=int(new_start),
                new_length=int(new_len) if new_len is not None else 1,
            )
            current.hunks.append(hunk)
            continue

        if hunk is None and current is not None and not current.hunks:
            if line.startswith("new file mode"):
                current.is_new_file = True
            elif line.startswith("deleted file mode"):
                current.is_deleted_file = True

    _finish(files, current)
    return files


def render_preview(diffs: Sequence[FileDiff]) -> str:
    """Human-readable preview shown before confirmation."""
    out: List[str] = ["=== Preview of Changes ===", ""]
    for diff in diffs:
        label = " (new)" if diff.is_new_file else " (deleted)" if diff.is_deleted_file else ""
        out.append(f"File: {diff.target_path}{label}")
        for hunk in diff.hunks:
            out.append(hunk.header)
            for line in hunk.lines:
                if line.kind == LineKind.CONTEXT:
                    out.append(f" {line.text}")
                elif line.kind == LineKind.REMOVAL:
                    out.append(f"-{line.text}")
                else:
                    out.append(f"+{line.text}")
            out.append("")
        out.append("")
    return "\n".join(out).rstrip("\n") + "\n"


def split_lines(content: str) -> Tuple[Tuple[str, ...], str, bool]:
    """Split file content into lines.

    Returns:
        (lines, newline sequence, whether content ended with a newline)
    """
    newline = "\r\n" if "\r\n" in content else "\n"
    if not content:
        return (), newline, True
    trailing = content.endswith(newline)
    body = content[: -len(newline)] if trailing else content
    return tuple(body.split(newline)), newline, trailing


def join_lines(lines: Sequence[str], newline: str = "\n", trailing: bool = True) -> str:
    if not lines:
        return ""
    return newline.join(lines) + (newline if trailing else "")


def _matches_at(lines: Sequence[str], block: Sequence[str], pos: int) -> bool:
    return 0 <= pos and pos + len(block) <= len(lines) and tuple(lines[pos:pos + len(block)]) == tuple(block)


def locate_block(lines: Sequence[str], block: Sequence[str], expected: int) -> Optional[int]:
    """Find block at expected, else at the unique nearest exact occurrence.

    Args:
        lines: File lines
        block: Non-empty run of lines to find
        expected: 0-based index where the block should start

    Returns:
        Start index, or None when absent or ambiguous
    """
    if not block:
        return None
    if _matches_at(lines, block, expected):
        return expected

    hits = [p for p in range(len(lines) - len(block) + 1) if _matches_at(lines, block, p)]
    if not hits:
        return None
    hits.sort(key=lambda p: abs(p - expected))
    if len(hits) > 1 and abs(hits[0] - expected) == abs(hits[1] - expected):
        return None
    if hits[0] != expected:
        logger.debug(f"Hunk relocated by {hits[0] - expected} lines")
    return hits[0]


def apply_hunk(
    lines: Tuple[str, ...],
    hunk: DiffHunk,
    path: str = "<memory>",
    index: int = 0,
) -> Tuple[Tuple[str, ...], bool]:
    """Apply one hunk to a line tuple.

    Args:
        lines: Current file lines (not modified)
        hunk: Hunk to apply
        path: File path, for error messages
        index: Hunk index within the file, for error messages

    Returns:
        (new lines, True) when applied, or (lines, False) when the hunk's
        result is already present

    Raises:
        DiffApplyError: If neither side of the hunk can be found
    """
    old, new = hunk.old_side, hunk.new_side

    if old:
        old_pos = locate_block(lines, old, hunk.old_start - 1)
    else:
        # Pure insertion after line old_start
        old_pos = min(hunk.old_start, len(lines))

    new_pos = None
    if new:
        new_at = hunk.new_start - 1 if hunk.new_start > 0 else 0
        new_pos = locate_block(lines, new, new_at)
        if not old and new_pos != old_pos:
            new_pos = None

    if new_pos is not None and (old_pos is None or (new_pos == old_pos and len(new) > len(old))):
        return lines, False

    if old_pos is None:
        if old and hunk.old_start - 1 + len(old) > len(lines):
            reason = "past end of file"
        else:
            reason = "context mismatch"
        raise DiffApplyError(path, index, reason)

    return lines[:old_pos] + tuple(new) + lines[old_pos + len(old):], True


def apply_hunks(
    lines: Tuple[str, ...],
    hunks: Sequence[DiffHunk],
    path: str = "<memory>",
) -> Tuple[Tuple[str, ...], int, int]:
    """Fold hunks over the file, last hunk first.

    Returns:
        (new lines, hunks applied, hunks already present)
    """
    ordered = sorted(enumerate(hunks), key=lambda item: item[1].old_start, reverse=True)
    applied = skipped = 0
    for index, hunk in ordered:
        lines, changed = apply_hunk(lines, hunk, path, index)
        if changed:
            applied += 1
        else:
            skipped += 1
    return lines, applied, skipped


def apply_file_diff(diff: FileDiff, original: str) -> Tuple[str, int, int]:
    """Apply a file's hunks to its current content.

    Args:
        diff: Parsed file diff
        original: Current content ("" when the file does not exist yet)

    Returns:
        (new content, hunks applied, hunks already present)

    Raises:
        DiffApplyError: If any hunk does not apply; nothing is returned then
    """
    lines, newline, trailing = split_lines(original)
    new_lines, applied, skipped = apply_hunks(lines, diff.hunks, diff.target_path)
    return join_lines(new_lines, newline, trailing), applied, skipped
