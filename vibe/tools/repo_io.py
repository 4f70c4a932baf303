"""Repository I/O operations with safety and filtering."""

import glob
import os
import pathlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence
import logging

from ..models.change import DEFAULT_EXCLUDE_DIRS, ScannedFile

logger = logging.getLogger(__name__)


def safe_join(root: str, rel: str) -> str:
    """Join paths safely, preventing path traversal attacks.

    Args:
        root: Root directory path
        rel: Relative path to join

    Returns:
        Absolute path inside root

    Raises:
        ValueError: If the resulting path is outside root
    """
    root_path = Path(root).resolve()
    try:
        # Handle both absolute and relative paths in rel
        if os.path.isabs(rel):
            rel = os.path.relpath(rel, root_path)

        full_path = (root_path / rel).resolve()

        # Ensure the resolved path is within root
        full_path.relative_to(root_path)
        return str(full_path)
    except ValueError:
        raise ValueError(f"Path traversal detected: {rel} outside {root}")


def is_binary_path(path: str) -> bool:
    """Check if a file path likely contains binary content.

    Args:
        path: File path to check

    Returns:
        True if likely binary, False otherwise
    """
    # Binary extensions
    binary_exts = {
        '.exe', '.dll', '.so', '.dylib', '.bin', '.o', '.obj',
        '.png', '.jpg', '.jpeg', '.gif', '.bmp', '.tiff', '.ico',
        '.mp3', '.mp4', '.avi', '.mov', '.wav', '.ogg',
        '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
        '.zip', '.tar', '.gz', '.bz2', '.7z', '.rar',
        '.ttf', '.otf', '.woff', '.woff2',
        '.class', '.jar', '.war',
        '.pyc', '.pyo', '.pyd'
    }

    ext = pathlib.Path(path).suffix.lower()
    if ext in binary_exts:
        return True

    # Quick byte sniff for files without clear extensions
    if os.path.isfile(path):
        try:
            with open(path, 'rb') as f:
                chunk = f.read(512)
            if b'\x00' in chunk:  # Null bytes typically indicate binary
                return True
        except OSError:
            pass

    return False


def _is_excluded(rel_parts: Sequence[str], exclude_dirs: Iterable[str]) -> bool:
    excluded = set(exclude_dirs)
    for part in rel_parts[:-1]:
        if part in excluded or part.startswith("."):
            return True
    return rel_parts[-1].startswith(".")


def match_files(
    root: str,
    pattern: str,
    exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
) -> List[str]:
    """List files matching a glob relative to root.

    Hidden entries and excluded directories are skipped. ``**`` matches
    across directories.

    Args:
        root: Directory the pattern is relative to
        pattern: Glob pattern such as ``src/**/*.py``
        exclude_dirs: Directory names never descended into

    Returns:
        Sorted relative paths (posix style)
    """
    root_path = Path(root).resolve()
    full_pattern = pattern if os.path.isabs(pattern) else str(root_path / pattern)

    files = []
    for match in glob.glob(full_pattern, recursive=True):
        path = Path(match).resolve()
        if not path.is_file():
            continue
        try:
            rel = path.relative_to(root_path)
        except ValueError:
            continue  # Skip files outside root
        if _is_excluded(rel.parts, exclude_dirs):
            continue
        files.append(rel.as_posix())

    return sorted(set(files))


def read_text_file(root: str, rel: str, max_bytes: int = 500_000) -> str:
    """Read a text file safely with size and binary checks.

    Args:
        root: Root directory
        rel: Relative path to file
        max_bytes: Maximum file size to read

    Returns:
        File content as string

    Raises:
        ValueError: If file is too large, binary, or path unsafe
        OSError: If file cannot be read
    """
    abs_path = safe_join(root, rel)

    if not os.path.isfile(abs_path):
        raise ValueError(f"Not a file: {rel}")

    # Check file size
    file_size = os.path.getsize(abs_path)
    if file_size > max_bytes:
        raise ValueError(f"File too large: {rel} ({file_size} bytes > {max_bytes})")

    # Check if binary
    if is_binary_path(abs_path):
        raise ValueError(f"Binary file detected: {rel}")

    # Read file with encoding detection
    encodings = ['utf-8', 'utf-8-sig', 'latin-1']
    for encoding in encodings:
        try:
            with open(abs_path, 'r', encoding=encoding, newline='') as f:
                return f.read()
        except UnicodeDecodeError:
            continue

    raise ValueError(f"Cannot decode text file: {rel}")


def scan_files(
    root: str,
    pattern: str,
    max_files: int = 20,
    max_size: int = 500_000,
    exclude_dirs: Optional[Iterable[str]] = None,
) -> List[ScannedFile]:
    """Read the files a glob selects, for embedding in an edit prompt.

    Oversized, binary and unreadable files are skipped with a warning.

    Args:
        root: Scan root
        pattern: Glob pattern relative to root
        max_files: Cap on matched files (applied before size filtering)
        max_size: Per-file byte limit
        exclude_dirs: Directory names to skip (default: node_modules, .git, dist, build)

    Returns:
        Scanned files in path order
    """
    if exclude_dirs is None:
        exclude_dirs = DEFAULT_EXCLUDE_DIRS

    matched = match_files(root, pattern, exclude_dirs)[:max_files]

    scanned: List[ScannedFile] = []
    for rel in matched:
        abs_path = Path(safe_join(root, rel))
        try:
            stats = abs_path.stat()
            if stats.st_size > max_size:
                logger.warning(f"Skipping large file: {rel} ({stats.st_size} bytes)", extra={"path": rel})
                continue
            content = read_text_file(root, rel, max_bytes=max_size)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read file: {rel} - {e}", extra={"path": rel})
            continue

        scanned.append(ScannedFile(
            path=rel,
            content=content,
            size=stats.st_size,
            last_modified=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
        ))

    return scanned
