"""Models package for vibe."""

from .change import (
    DiffHunk,
    DiffLine,
    EditOptions,
    EditOutcome,
    FileDiff,
    FileEditResult,
    LineKind,
    ScannedFile,
)

__all__ = [
    "DiffHunk",
    "DiffLine",
    "EditOptions",
    "EditOutcome",
    "FileDiff",
    "FileEditResult",
    "LineKind",
    "ScannedFile",
]
