"""Typed view of a package's root ``manifest.json``.

Only the fields ContentHub acts on are modelled; anything else in the file is
ignored.  A missing or unreadable manifest never fails an ingest, it only
degrades the content-type hint to :data:`UNKNOWN_CONTENT_TYPE`.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
CONTENT_DESCRIPTORS = ("content/content.json", "content.json")
UNKNOWN_CONTENT_TYPE = "Unknown"


class LibraryDependency(BaseModel):
    """A library the package declares it needs preloaded."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore", populate_by_name=True)

    machine_name: Optional[str] = Field(default=None, alias="machineName")
    major_version: Optional[int] = Field(default=None, alias="majorVersion")
    minor_version: Optional[int] = Field(default=None, alias="minorVersion")


class PackageManifest(BaseModel):
    """Manifest fields recovered from an extracted package."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore", populate_by_name=True)

    title: Optional[str] = None
    language: Optional[str] = None
    main_library: Optional[str] = Field(default=None, alias="mainLibrary")
    license: Optional[str] = None
    embed_types: List[str] = Field(default_factory=list, alias="embedTypes")
    preloaded_dependencies: List[LibraryDependency] = Field(
        default_factory=list, alias="preloadedDependencies"
    )

    @property
    def content_type(self) -> str:
        """The declared main library, or ``"Unknown"`` when none is declared."""
        if self.main_library and self.main_library.strip():
            return self.main_library.strip()
        return UNKNOWN_CONTENT_TYPE


def read_manifest(package_dir: Path) -> Optional[PackageManifest]:
    """Parse ``manifest.json`` under ``package_dir``; ``None`` when absent or invalid."""
    manifest_path = package_dir / MANIFEST_FILENAME
    if not manifest_path.is_file():
        return None
    try:
        raw = json.loads(manifest_path.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning(
            "unreadable package manifest",
            extra={"stage": "extract", "path": str(manifest_path), "reason": str(exc)},
        )
        return None
    if not isinstance(raw, dict):
        logger.warning(
            "package manifest is not an object",
            extra={"stage": "extract", "path": str(manifest_path)},
        )
        return None
    try:
        return PackageManifest.model_validate(raw)
    except PydanticValidationError as exc:
        logger.warning(
            "package manifest failed validation",
            extra={"stage": "extract", "path": str(manifest_path), "reason": str(exc)},
        )
        return None


def content_type_hint(package_dir: Path) -> str:
    """Return the manifest's content type for ``package_dir`` or the sentinel."""
    manifest = read_manifest(package_dir)
    if manifest is None:
        return UNKNOWN_CONTENT_TYPE
    return manifest.content_type
