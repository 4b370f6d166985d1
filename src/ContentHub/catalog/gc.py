"""Filesystem walk and removal helpers for reconciliation.

Provides tools for:
  - Listing the immediate children of the served-content root
  - Listing files in the raw-upload holding area
  - Grace-period filtering of entries that may still be mid-ingest
  - Removing a directory tree or single file, treating "already gone" as done
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadEntry:
    """A file found in the raw-upload holding area."""

    name: str
    path: str
    size_bytes: int
    modified_at: datetime
    kind: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "path": self.path,
            "size": self.size_bytes,
            "modified": self.modified_at.isoformat(),
            "type": self.kind,
        }


def is_hidden(path: Path) -> bool:
    return path.name.startswith(".")


def latest_mtime(path: Path) -> float:
    """Newest mtime of ``path`` and, for a directory, everything below it.

    Writing a file deep inside a tree does not touch the top-level directory's
    mtime, so an extraction still in progress is only visible this way.
    Symlinks are not followed; entries vanishing mid-walk are skipped.

    Raises:
        FileNotFoundError: If ``path`` itself does not exist.
    """
    newest = path.lstat().st_mtime
    if not path.is_dir() or path.is_symlink():
        return newest
    for dirpath, dirnames, filenames in os.walk(path):
        for name in dirnames + filenames:
            try:
                newest = max(newest, os.lstat(os.path.join(dirpath, name)).st_mtime)
            except FileNotFoundError:
                continue
    return newest


def is_recent(path: Path, *, now: float, grace_period_seconds: float) -> bool:
    """True when anything under ``path`` changed within ``grace_period_seconds``."""
    if grace_period_seconds <= 0:
        return False
    try:
        mtime = latest_mtime(path)
    except FileNotFoundError:
        return False
    return now - mtime < grace_period_seconds


def list_child_directories(root: Path, *, include_hidden: bool = False) -> List[Path]:
    """Return the immediate subdirectories of ``root`` sorted by name."""
    if not root.is_dir():
        logger.debug("Served root does not exist yet: %s", root)
        return []
    children = [
        child
        for child in root.iterdir()
        if child.is_dir() and not child.is_symlink() and (include_hidden or not is_hidden(child))
    ]
    return sorted(children, key=lambda p: p.name)


def list_files(root: Path, *, include_hidden: bool = False) -> List[Path]:
    """Return every regular file below ``root`` sorted by path."""
    if not root.is_dir():
        return []
    files: List[Path] = []
    for path in root.rglob("*"):
        if not path.is_file() or path.is_symlink():
            continue
        relative_parts = path.relative_to(root).parts
        if not include_hidden and any(part.startswith(".") for part in relative_parts):
            continue
        files.append(path)
    return sorted(files)


def relative_posix(path: Path, base: Path) -> str:
    """Express ``path`` relative to ``base`` with forward slashes."""
    return path.relative_to(base).as_posix()


def partition_by_age(
    candidates: List[Path], *, now: float, grace_period_seconds: float
) -> Tuple[List[Path], List[Path]]:
    """Split ``candidates`` into (old enough to act on, too recent)."""
    settled: List[Path] = []
    recent: List[Path] = []
    for path in candidates:
        if is_recent(path, now=now, grace_period_seconds=grace_period_seconds):
            recent.append(path)
        else:
            settled.append(path)
    return settled, recent


def describe_upload(path: Path, *, public_root: Path, package_extension: str) -> UploadEntry:
    stat_result = path.stat()
    return UploadEntry(
        name=path.name,
        path=relative_posix(path, public_root),
        size_bytes=stat_result.st_size,
        modified_at=datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc),
        kind="package" if path.suffix.lower() == package_extension else "other",
    )


def remove_path(path: Path) -> bool:
    """Remove a directory tree or file.

    Returns:
        True if something was removed, False if ``path`` was already absent.

    Raises:
        OSError: If removal fails for any other reason.
    """
    if path.is_symlink() or path.is_file():
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
    if path.is_dir():
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return False
        return True
    return False


__all__ = [
    "UploadEntry",
    "describe_upload",
    "is_hidden",
    "is_recent",
    "latest_mtime",
    "list_child_directories",
    "list_files",
    "partition_by_age",
    "relative_posix",
    "remove_path",
]
