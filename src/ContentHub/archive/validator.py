"""Structural validation of uploaded packages.

A package is a ZIP container.  It is well formed when its entry table lists a
root ``manifest.json`` and a content descriptor (``content/content.json`` or
``content.json``).  Only the central directory is read; nothing is written to
disk, and a corrupt or non-ZIP file yields an invalid verdict rather than an
exception.
"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ContentHub.archive.manifest import CONTENT_DESCRIPTORS, MANIFEST_FILENAME

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageInspection:
    """Outcome of inspecting a candidate package."""

    valid: bool
    entry_count: int = 0
    has_manifest: bool = False
    has_content_descriptor: bool = False
    problems: List[str] = field(default_factory=list)


def inspect_package(archive_path: Path) -> PackageInspection:
    """Inspect ``archive_path`` and explain why it is or is not a valid package."""
    archive_path = Path(archive_path)
    if not archive_path.is_file():
        return PackageInspection(valid=False, problems=[f"not a file: {archive_path.name}"])

    try:
        with zipfile.ZipFile(archive_path) as archive:
            names = archive.namelist()
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as exc:
        return PackageInspection(valid=False, problems=[f"unreadable archive: {exc}"])

    entries = set(names)
    has_manifest = MANIFEST_FILENAME in entries
    has_content = any(descriptor in entries for descriptor in CONTENT_DESCRIPTORS)

    problems: List[str] = []
    if not has_manifest:
        problems.append(f"missing {MANIFEST_FILENAME}")
    if not has_content:
        problems.append("missing " + " or ".join(CONTENT_DESCRIPTORS))

    return PackageInspection(
        valid=has_manifest and has_content,
        entry_count=len(names),
        has_manifest=has_manifest,
        has_content_descriptor=has_content,
        problems=problems,
    )


def validate_package(archive_path: Path, *, correlation_id: Optional[str] = None) -> bool:
    """Return ``True`` when ``archive_path`` is a well-formed package."""
    inspection = inspect_package(archive_path)
    if not inspection.valid:
        logger.info(
            "package rejected",
            extra={
                "stage": "validate",
                "path": str(archive_path),
                "reason": "; ".join(inspection.problems),
                "correlation_id": correlation_id,
            },
        )
    return inspection.valid
