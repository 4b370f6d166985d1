"""Package inspection, manifest parsing and safe extraction."""

from ContentHub.archive.extractor import ExtractionLimits, ExtractionResult, extract_package
from ContentHub.archive.manifest import (
    UNKNOWN_CONTENT_TYPE,
    PackageManifest,
    content_type_hint,
    read_manifest,
)
from ContentHub.archive.validator import PackageInspection, inspect_package, validate_package

__all__ = [
    "ExtractionLimits",
    "ExtractionResult",
    "PackageInspection",
    "PackageManifest",
    "UNKNOWN_CONTENT_TYPE",
    "content_type_hint",
    "extract_package",
    "inspect_package",
    "read_manifest",
    "validate_package",
]
