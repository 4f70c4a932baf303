"""Data models for parsed unified diffs and multi-file edit results."""

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_EXCLUDE_DIRS: Tuple[str, ...] = ("node_modules", ".git", "dist", "build")


class LineKind(str, Enum):
    CONTEXT = "context"
    REMOVAL = "removal"
    ADDITION = "addition"


class DiffLine(BaseModel):
    """One body line of a hunk, without its prefix character."""
    kind: LineKind
    text: str


class DiffHunk(BaseModel):
    """A single @@ block; line numbers are 1-based as in the unified format."""
    old_start: int = Field(..., ge=0)
    old_length: int = Field(default=1, ge=0)
    new_start: int = Field(..., ge=0)
    new_length: int = Field(default=1, ge=0)
    lines: List[DiffLine] = Field(default_factory=list, description="Body lines in source order")

    @property
    def context(self) -> List[str]:
        return [l.text for l in self.lines if l.kind == LineKind.CONTEXT]

    @property
    def removals(self) -> List[str]:
        return [l.text for l in self.lines if l.kind == LineKind.REMOVAL]

    @property
    def additions(self) -> List[str]:
        return [l.text for l in self.lines if l.kind == LineKind.ADDITION]

    @property
    def old_side(self) -> List[str]:
        """Lines the hunk expects to find (context and removals, in order)."""
        return [l.text for l in self.lines if l.kind != LineKind.ADDITION]

    @property
    def new_side(self) -> List[str]:
        """Lines the hunk leaves behind (context and additions, in order)."""
        return [l.text for l in self.lines if l.kind != LineKind.REMOVAL]

    @property
    def header(self) -> str:
        return f"@@ -{self.old_start},{self.old_length} +{self.new_start},{self.new_length} @@"

    def is_complete(self) -> bool:
        """True once the body holds as many lines as the header announced."""
        return len(self.old_side) >= self.old_length and len(self.new_side) >= self.new_length


class FileDiff(BaseModel):
    """Parsed diff for a single file."""
    old_path: str = Field(..., description="Path on the a/ side")
    new_path: str = Field(..., description="Path on the b/ side (the write target)")
    hunks: List[DiffHunk] = Field(default_factory=list, description="Hunks in parse order")
    is_new_file: bool = False
    is_deleted_file: bool = False

    @property
    def target_path(self) -> str:
        return self.old_path if self.is_deleted_file else self.new_path


class ScannedFile(BaseModel):
    """A file read during the scanning stage."""
    path: str = Field(..., description="Path relative to the scan root (posix style)")
    content: str
    size: int
    last_modified: datetime


class EditOptions(BaseModel):
    """Options for one multi-file edit; defaults live here and nowhere else."""
    model_config = ConfigDict(frozen=True)

    interactive: bool = True
    dry_run: bool = False
    backup: bool = True
    max_files: int = Field(default=20, ge=1)
    max_file_size: int = Field(default=500_000, ge=1, description="Bytes")
    backup_suffix: str = Field(default="vibe-backup", min_length=1)
    exclude_dirs: Tuple[str, ...] = DEFAULT_EXCLUDE_DIRS
    root: str = Field(default=".", description="Directory globs and diff paths are relative to")
    model: Optional[str] = Field(None, description="Preferred model id")

    @field_validator("backup_suffix")
    @classmethod
    def _no_separators(cls, value: str) -> str:
        if "/" in value or "\\" in value:
            raise ValueError("backup_suffix must not contain path separators")
        return value.lstrip(".")


class FileEditResult(BaseModel):
    """Outcome of applying one FileDiff."""
    path: str
    success: bool
    hunks_applied: int = 0
    hunks_skipped: int = Field(default=0, description="Hunks found already applied")
    created: bool = False
    deleted: bool = False
    backup_path: Optional[str] = None
    dry_run: bool = False
    error: Optional[str] = None


class EditOutcome(BaseModel):
    """Batch result of edit_files."""
    success: bool
    message: str
    successful_count: int = 0
    failed_count: int = 0
    results: List[FileEditResult] = Field(default_factory=list)
    diffs: List[FileDiff] = Field(default_factory=list)
    model: Optional[str] = None
