# === NAVMAP v1 ===
# {
#   "module": "ContentHub.lifecycle",
#   "purpose": "Ingest and deletion of packages across the served tree and the catalog",
#   "sections": [
#     {"id": "ingeststate", "name": "IngestState", "anchor": "class-ingeststate", "kind": "class"},
#     {"id": "ingestresult", "name": "IngestResult", "anchor": "class-ingestresult", "kind": "class"},
#     {"id": "contentlifecycle", "name": "ContentLifecycle", "anchor": "class-contentlifecycle", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""
Content Lifecycle Orchestration

Ingest runs strictly in order::

    Received -> Validated -> Extracted -> Cataloged

with the terminal failures ``Rejected`` (bad input, nothing written),
``ExtractionFailed`` (partial directory removed) and ``CatalogFailed``
(extracted directory and retained upload removed).  Each failure performs one
compensating action and then surfaces; nothing is retried.

Deletion removes the on-disk artifact first and the catalog row second.  If
the filesystem step fails the row stays, so every directory keeps a row that
points at it and the failure is visible to the caller.
"""

from __future__ import annotations

import logging
import secrets
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from ContentHub.archive.extractor import ExtractionLimits, extract_package
from ContentHub.archive.validator import validate_package
from ContentHub.catalog.gc import remove_path
from ContentHub.catalog.models import ContentRecord
from ContentHub.catalog.slugs import mint_unique_slug
from ContentHub.catalog.store import CatalogStore
from ContentHub.catalog.taxonomy import SubjectAreaLookup
from ContentHub.config.models import ExtractionConfig, SlugConfig, StorageConfig
from ContentHub.errors import (
    REASON_CATALOG_FAILED,
    REASON_EXTRACTION_FAILED,
    REASON_INVALID_ARCHIVE,
    REASON_MISSING_FIELDS,
    CatalogError,
    ExtractionError,
    FilesystemError,
    NotFoundError,
    ValidationError,
)
from ContentHub.logging_config import generate_correlation_id

logger = logging.getLogger(__name__)

COVER_IMAGE_RELATIVE = Path("content") / "images" / "cover.jpg"

_UNSET: Any = object()


class IngestState(str, Enum):
    RECEIVED = "Received"
    VALIDATED = "Validated"
    EXTRACTED = "Extracted"
    CATALOGED = "Cataloged"
    REJECTED = "Rejected"
    EXTRACTION_FAILED = "ExtractionFailed"
    CATALOG_FAILED = "CatalogFailed"


@dataclass(frozen=True)
class IngestResult:
    """What a successful ingest hands back to the caller."""

    content_id: int
    slug: str
    storage_path: str
    content_type: str
    record: ContentRecord

    def to_dict(self) -> dict:
        return {
            "contentId": self.content_id,
            "storagePath": self.storage_path,
            "slug": self.slug,
            "contentType": self.content_type,
        }


def coerce_subject_area_id(value: object) -> Optional[int]:
    """Turn a form or CLI value into a subject-area id; anything non-integer is None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


class ContentLifecycle:
    """Coordinate validation, extraction, slug minting and catalog writes.

    Every collaborator is passed in; nothing here reads global state, so tests
    can point an instance at a temporary public root and an in-memory catalog.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        storage: StorageConfig,
        *,
        extraction: Optional[ExtractionConfig] = None,
        slugs: Optional[SlugConfig] = None,
        subject_areas: Optional[SubjectAreaLookup] = None,
    ) -> None:
        self.catalog = catalog
        self.storage = storage
        self.limits = ExtractionLimits.from_config(extraction or ExtractionConfig())
        self.slugs = slugs or SlugConfig()
        self.subject_areas = subject_areas

    # ------------------------------------------------------------------ paths

    def storage_path_for(self, slug: str) -> str:
        return f"{self.storage.served_dirname}/{slug}"

    def resolve(self, relative: str) -> Path:
        """Resolve a catalog path against the public root, refusing escapes."""
        root = self.storage.public_root.resolve()
        candidate = (root / relative).resolve()
        if candidate == root or root not in candidate.parents:
            raise FilesystemError(
                f"storage path escapes the public root: {relative}", path=relative
            )
        return candidate

    # ----------------------------------------------------------------- ingest

    def ingest(
        self,
        title: Optional[str],
        archive_path: Optional[Path],
        *,
        subject_area_id: object = None,
        password: Optional[str] = None,
        cover_image: Optional[bytes] = None,
        correlation_id: Optional[str] = None,
    ) -> IngestResult:
        """Ingest one uploaded package.

        Raises:
            ValidationError: Missing title/file or a malformed package; no disk writes.
            ExtractionError: The package could not be written out; partial output removed.
            CatalogError: The catalog rejected the record; extracted output removed.
        """
        cid = correlation_id or generate_correlation_id()
        clean_title = (title or "").strip()
        self._transition(IngestState.RECEIVED, cid)

        if not clean_title or archive_path is None:
            self._transition(IngestState.REJECTED, cid, reason=REASON_MISSING_FIELDS)
            raise ValidationError("title and file are required", reason=REASON_MISSING_FIELDS)

        archive_path = Path(archive_path)
        if not validate_package(archive_path, correlation_id=cid):
            self._transition(IngestState.REJECTED, cid, reason=REASON_INVALID_ARCHIVE)
            raise ValidationError(
                "upload is not a valid package (needs manifest.json and content.json)",
                reason=REASON_INVALID_ARCHIVE,
            )
        self._transition(IngestState.VALIDATED, cid)

        resolved_subject = self._resolve_subject_area(subject_area_id, cid)

        slug = mint_unique_slug(
            clean_title,
            lambda candidate: self.catalog.slug_exists(candidate)
            or not self._claim_directory(candidate),
            suffix_bytes=self.slugs.suffix_bytes,
            max_attempts=self.slugs.max_attempts,
            correlation_id=cid,
        )
        target_dir = self.storage.served_root / slug

        try:
            result = extract_package(
                archive_path, target_dir, limits=self.limits, correlation_id=cid
            )
        except Exception as exc:
            self._discard(target_dir, cid, slug)
            self._transition(IngestState.EXTRACTION_FAILED, cid, slug=slug, reason=str(exc))
            raise ExtractionError(
                f"could not extract package: {exc}", reason=REASON_EXTRACTION_FAILED
            ) from exc
        if not result.ok:
            self._discard(target_dir, cid, slug)
            self._transition(
                IngestState.EXTRACTION_FAILED, cid, slug=slug, reason=result.error
            )
            raise ExtractionError(
                f"could not extract package: {result.error}", reason=REASON_EXTRACTION_FAILED
            )

        cover_path: Optional[str] = None
        source_path: Optional[str] = None
        try:
            if cover_image:
                cover_path = self._write_cover(slug, cover_image)
            if self.storage.retain_uploads:
                source_path = self._retain_upload(slug, archive_path)
        except OSError as exc:
            self._discard(target_dir, cid, slug)
            self._transition(IngestState.EXTRACTION_FAILED, cid, slug=slug, reason=str(exc))
            raise ExtractionError(
                f"could not store package assets: {exc}", reason=REASON_EXTRACTION_FAILED
            ) from exc
        self._transition(IngestState.EXTRACTED, cid, slug=slug)

        storage_path = self.storage_path_for(slug)
        try:
            record = self.catalog.create(
                title=clean_title,
                slug=slug,
                storage_path=storage_path,
                content_type=result.content_type,
                subject_area_id=resolved_subject,
                password=password or None,
                cover_image_path=cover_path,
                source_path=source_path,
            )
        except CatalogError as exc:
            self._discard(target_dir, cid, slug)
            if source_path:
                self._discard(self.storage.public_root / source_path, cid, slug)
            self._transition(IngestState.CATALOG_FAILED, cid, slug=slug, reason=str(exc))
            raise CatalogError(str(exc), reason=REASON_CATALOG_FAILED) from exc

        self._transition(IngestState.CATALOGED, cid, slug=slug, content_id=record.id)
        return IngestResult(
            content_id=record.id,
            slug=slug,
            storage_path=storage_path,
            content_type=record.content_type,
            record=record,
        )

    # ----------------------------------------------------------------- delete

    def delete(self, content_id: int) -> ContentRecord:
        """Remove a record's on-disk artifacts, then its row.

        Raises:
            NotFoundError: No record has ``content_id``.
            FilesystemError: Removal failed; the row is left in place.
        """
        record = self.catalog.get(content_id)
        if record is None:
            raise NotFoundError(f"content {content_id} not found")

        for relative in (record.storage_path, record.source_path):
            if not relative:
                continue
            target = self.resolve(relative)
            try:
                removed = remove_path(target)
            except OSError as exc:
                logger.error(
                    "failed to remove content from disk; keeping catalog row",
                    extra={
                        "stage": "delete",
                        "slug": record.slug,
                        "content_id": record.id,
                        "path": relative,
                        "reason": str(exc),
                    },
                )
                raise FilesystemError(
                    f"could not remove {relative}: {exc}", path=relative
                ) from exc
            if not removed:
                logger.info(
                    "content already absent from disk",
                    extra={"stage": "delete", "slug": record.slug, "path": relative},
                )

        self.catalog.delete(record.id)
        logger.info(
            "deleted content",
            extra={"stage": "delete", "slug": record.slug, "content_id": record.id},
        )
        return record

    # ------------------------------------------------------------------- edit

    def get(self, content_id: int) -> ContentRecord:
        record = self.catalog.get(content_id)
        if record is None:
            raise NotFoundError(f"content {content_id} not found")
        return record

    def update_metadata(
        self,
        content_id: int,
        *,
        title: Optional[str] = _UNSET,
        subject_area_id: object = _UNSET,
        password: Optional[str] = _UNSET,
    ) -> ContentRecord:
        """Edit title, subject area or password; slug and storage path never change."""
        self.get(content_id)
        changes = {}
        if title is not _UNSET:
            clean_title = (title or "").strip()
            if not clean_title:
                raise ValidationError("title must not be empty", reason=REASON_MISSING_FIELDS)
            changes["title"] = clean_title
        if subject_area_id is not _UNSET:
            changes["subject_area_id"] = self._resolve_subject_area(subject_area_id, None)
        if password is not _UNSET:
            changes["password"] = password or None

        record = self.catalog.update(content_id, **changes)
        if record is None:
            raise NotFoundError(f"content {content_id} not found")
        logger.info(
            "updated content metadata",
            extra={"stage": "catalog", "slug": record.slug, "content_id": record.id},
        )
        return record

    def replace_cover(self, content_id: int, image: bytes) -> ContentRecord:
        """Write a new cover image for existing content."""
        record = self.get(content_id)
        if not image:
            raise ValidationError("cover image is empty", reason=REASON_MISSING_FIELDS)
        try:
            cover_path = self._write_cover(record.slug, image)
        except OSError as exc:
            raise FilesystemError(f"could not write cover image: {exc}") from exc
        updated = self.catalog.update(content_id, cover_image_path=cover_path)
        if updated is None:
            raise NotFoundError(f"content {content_id} not found")
        return updated

    def verify_password(self, content_id: int, password: str) -> bool:
        """Check ``password`` against the record's gate in constant time."""
        record = self.get(content_id)
        if not record.is_password_protected:
            return True
        return secrets.compare_digest(
            (password or "").encode("utf-8"), (record.password or "").encode("utf-8")
        )

    # ---------------------------------------------------------------- helpers

    def _claim_directory(self, slug: str) -> bool:
        """Atomically create the slug directory; False if it already exists."""
        target = self.storage.served_root / slug
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            target.mkdir()
        except FileExistsError:
            return False
        return True

    def _resolve_subject_area(self, value: object, cid: Optional[str]) -> Optional[int]:
        subject_area_id = coerce_subject_area_id(value)
        if subject_area_id is None or self.subject_areas is None:
            return subject_area_id
        if self.subject_areas.get(subject_area_id) is None:
            logger.warning(
                "unknown subject area %s ignored",
                subject_area_id,
                extra={"stage": "ingest", "correlation_id": cid},
            )
            return None
        return subject_area_id

    def _write_cover(self, slug: str, image: bytes) -> str:
        cover_file = self.storage.served_root / slug / COVER_IMAGE_RELATIVE
        cover_file.parent.mkdir(parents=True, exist_ok=True)
        cover_file.write_bytes(image)
        return f"{self.storage_path_for(slug)}/{COVER_IMAGE_RELATIVE.as_posix()}"

    def _retain_upload(self, slug: str, archive_path: Path) -> str:
        uploads_root = self.storage.uploads_root
        uploads_root.mkdir(parents=True, exist_ok=True)
        name = f"{slug}{self.storage.archive_extension}"
        shutil.copyfile(archive_path, uploads_root / name)
        return f"{self.storage.uploads_dirname}/{name}"

    def _discard(self, path: Path, cid: str, slug: str) -> None:
        try:
            remove_path(path)
        except OSError as exc:
            # Left for the reconciliation scan to pick up.
            logger.error(
                "compensating removal failed",
                extra={
                    "stage": "ingest",
                    "slug": slug,
                    "path": str(path),
                    "correlation_id": cid,
                    "reason": str(exc),
                },
            )

    def _transition(self, state: IngestState, cid: str, **context: Any) -> None:
        failed = state in (
            IngestState.REJECTED,
            IngestState.EXTRACTION_FAILED,
            IngestState.CATALOG_FAILED,
        )
        extra = {"stage": "ingest", "correlation_id": cid}
        extra.update({k: v for k, v in context.items() if k in ("slug", "content_id", "reason")})
        logger.log(
            logging.WARNING if failed else logging.INFO,
            "ingest %s",
            state.value,
            extra=extra,
        )


__all__ = ["ContentLifecycle", "IngestResult", "IngestState", "coerce_subject_area_id"]
