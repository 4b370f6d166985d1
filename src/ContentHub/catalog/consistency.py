"""Catalog/filesystem reconciliation.

Provides:
  - Orphan directory detection (served directories without a catalog row)
  - Orphan upload detection (raw-upload files no record references)
  - Dangling record detection (rows whose storage path is gone), report only
  - Batch cleanup that handles every orphan independently
  - Lookup and removal of a single raw upload by file name

Entries modified within ``grace_period_seconds`` are never classified as
orphans: an ingest extracts before it writes the catalog row, and a scan
running in between must not delete in-flight content.  Such entries are
reported as ``skipped_recent`` instead.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ContentHub.catalog.gc import (
    UploadEntry,
    describe_upload,
    list_child_directories,
    list_files,
    partition_by_age,
    relative_posix,
    remove_path,
)
from ContentHub.catalog.store import CatalogStore
from ContentHub.config.models import ReconciliationConfig, StorageConfig
from ContentHub.errors import (
    REASON_INVALID_FILENAME,
    FilesystemError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanReport:
    """Served-root scan result."""

    orphaned_directories: List[str]
    valid_slugs: List[str]
    skipped_recent: List[str] = field(default_factory=list)

    @property
    def total_orphaned(self) -> int:
        return len(self.orphaned_directories)

    def to_dict(self) -> Dict[str, object]:
        return {
            "orphanedFolders": list(self.orphaned_directories),
            "totalOrphaned": self.total_orphaned,
            "validSlugs": list(self.valid_slugs),
            "skippedRecent": list(self.skipped_recent),
        }


@dataclass(frozen=True)
class UploadScanReport:
    """Raw-upload area scan result; paths are relative to the public root."""

    orphaned_files: List[str]
    skipped_recent: List[str] = field(default_factory=list)

    @property
    def total_orphaned(self) -> int:
        return len(self.orphaned_files)

    def to_dict(self) -> Dict[str, object]:
        return {
            "orphanedFiles": list(self.orphaned_files),
            "totalOrphaned": self.total_orphaned,
            "skippedRecent": list(self.skipped_recent),
        }


@dataclass(frozen=True)
class CleanupReport:
    """Outcome of a cleanup pass; ``errors`` entries read ``"<name>: <reason>"``."""

    deleted: List[str]
    errors: List[str]
    dry_run: bool = False

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)

    def to_dict(self, *, key: str = "deletedFolders") -> Dict[str, object]:
        return {
            key: list(self.deleted),
            "deletedCount": self.deleted_count,
            "errors": list(self.errors),
            "dryRun": self.dry_run,
        }


@dataclass(frozen=True)
class DanglingRecord:
    """A catalog record whose storage path is missing from disk."""

    record_id: int
    slug: str
    storage_path: str
    reason: str = "Storage path not found"

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.record_id,
            "slug": self.slug,
            "storagePath": self.storage_path,
            "reason": self.reason,
        }


class Reconciler:
    """Compare catalog state with the served tree and raw-upload area."""

    def __init__(
        self,
        catalog: CatalogStore,
        storage: StorageConfig,
        settings: Optional[ReconciliationConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the reconciler.

        Args:
            catalog: Catalog store
            storage: Storage layout
            settings: Grace period and hidden-entry handling
            clock: Wall-clock source compared against entry mtimes
        """
        self.catalog = catalog
        self.storage = storage
        self.settings = settings or ReconciliationConfig()
        self._clock = clock

    # ------------------------------------------------------------------ served

    def scan(self) -> ScanReport:
        """List served directories that no catalog slug accounts for."""
        known_slugs = self.catalog.all_slugs()
        candidates = [
            child
            for child in list_child_directories(
                self.storage.served_root, include_hidden=self.settings.include_hidden
            )
            if child.name not in known_slugs
        ]
        orphans, recent = partition_by_age(
            candidates,
            now=self._clock(),
            grace_period_seconds=self.settings.grace_period_seconds,
        )
        report = ScanReport(
            orphaned_directories=[path.name for path in orphans],
            valid_slugs=sorted(known_slugs),
            skipped_recent=[path.name for path in recent],
        )
        logger.info(
            "scanned served root: %d orphaned, %d skipped as recent",
            report.total_orphaned,
            len(report.skipped_recent),
            extra={"stage": "reconcile", "path": str(self.storage.served_root)},
        )
        return report

    def cleanup(self, *, dry_run: bool = False) -> CleanupReport:
        """Remove every orphaned served directory found by :meth:`scan`."""
        report = self.scan()
        targets = [
            (name, self.storage.served_root / name) for name in report.orphaned_directories
        ]
        return self._remove_all(targets, dry_run=dry_run)

    # ----------------------------------------------------------------- uploads

    def list_uploads(self) -> List[UploadEntry]:
        """Describe every file in the raw-upload area."""
        entries: List[UploadEntry] = []
        for path in list_files(self.storage.uploads_root, include_hidden=self.settings.include_hidden):
            try:
                entries.append(
                    describe_upload(
                        path,
                        public_root=self.storage.public_root,
                        package_extension=self.storage.archive_extension,
                    )
                )
            except OSError as exc:
                logger.warning(
                    "could not stat upload",
                    extra={"stage": "reconcile", "path": str(path), "reason": str(exc)},
                )
        return entries

    def scan_uploads(self) -> UploadScanReport:
        """List raw-upload files that no record's storage or source path references."""
        referenced = self.catalog.referenced_paths()
        public_root = self.storage.public_root
        candidates = [
            path
            for path in list_files(
                self.storage.uploads_root, include_hidden=self.settings.include_hidden
            )
            if relative_posix(path, public_root) not in referenced
        ]
        orphans, recent = partition_by_age(
            candidates,
            now=self._clock(),
            grace_period_seconds=self.settings.grace_period_seconds,
        )
        report = UploadScanReport(
            orphaned_files=[relative_posix(path, public_root) for path in orphans],
            skipped_recent=[relative_posix(path, public_root) for path in recent],
        )
        logger.info(
            "scanned upload area: %d orphaned, %d skipped as recent",
            report.total_orphaned,
            len(report.skipped_recent),
            extra={"stage": "reconcile", "path": str(self.storage.uploads_root)},
        )
        return report

    def cleanup_uploads(self, *, dry_run: bool = False) -> CleanupReport:
        """Remove every orphaned raw-upload file found by :meth:`scan_uploads`."""
        report = self.scan_uploads()
        targets = [
            (relative, self.storage.public_root / relative) for relative in report.orphaned_files
        ]
        return self._remove_all(targets, dry_run=dry_run)

    def find_upload(self, filename: Optional[str]) -> Path:
        """Locate a raw upload by bare file name.

        The upload root is searched first, then each of its immediate
        subdirectories in name order.

        Raises:
            ValidationError: If ``filename`` is empty or carries a path separator
                or ``..``.
            NotFoundError: If no regular file of that name exists.
        """
        if not filename or ".." in filename or "/" in filename or "\\" in filename:
            raise ValidationError("Invalid filename", reason=REASON_INVALID_FILENAME)
        root = self.storage.uploads_root
        candidates = [root / filename] + [
            child / filename for child in list_child_directories(root, include_hidden=True)
        ]
        for candidate in candidates:
            if candidate.is_file() and not candidate.is_symlink():
                return candidate
        raise NotFoundError("File not found")

    def delete_upload(self, filename: Optional[str]) -> str:
        """Remove one raw upload and return its path relative to the public root."""
        path = self.find_upload(filename)
        relative = relative_posix(path, self.storage.public_root)
        try:
            removed = remove_path(path)
        except OSError as exc:
            raise FilesystemError(f"could not remove {relative}: {exc}", path=relative) from exc
        if not removed:
            raise NotFoundError("File not found")
        logger.info("removed upload", extra={"stage": "reconcile", "path": relative})
        return relative

    # ---------------------------------------------------------------- dangling

    def find_dangling_records(self) -> List[DanglingRecord]:
        """Find records whose storage path no longer exists; nothing is repaired."""
        dangling: List[DanglingRecord] = []
        for record in self.catalog.get_all_records():
            if not (self.storage.public_root / record.storage_path).exists():
                dangling.append(
                    DanglingRecord(
                        record_id=record.id,
                        slug=record.slug,
                        storage_path=record.storage_path,
                    )
                )
        if dangling:
            logger.warning(
                "found %d dangling catalog records",
                len(dangling),
                extra={"stage": "reconcile"},
            )
        return dangling

    # ----------------------------------------------------------------- helpers

    def _remove_all(self, targets: List[tuple], *, dry_run: bool) -> CleanupReport:
        deleted: List[str] = []
        errors: List[str] = []
        for name, path in targets:
            if dry_run:
                deleted.append(name)
                continue
            try:
                remove_path(path)
            except OSError as exc:
                errors.append(f"{name}: {exc}")
                logger.error(
                    "failed to remove orphan",
                    extra={"stage": "reconcile", "path": str(path), "reason": str(exc)},
                )
                continue
            deleted.append(name)
            logger.info("removed orphan", extra={"stage": "reconcile", "path": str(path)})
        return CleanupReport(deleted=deleted, errors=errors, dry_run=dry_run)


__all__ = [
    "CleanupReport",
    "DanglingRecord",
    "Reconciler",
    "ScanReport",
    "UploadScanReport",
]
