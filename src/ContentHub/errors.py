"""Exception hierarchy shared across package ingest, deletion, and reconciliation.

The content lifecycle spans archive validation, extraction onto the served
tree, catalog writes, and filesystem reconciliation.  This module groups the
failure modes into a small hierarchy so callers (the HTTP layer, the CLI) can
react to high-level categories while still seeing a machine-readable
``reason`` for ingest failures.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ContentHubError",
    "ValidationError",
    "ExtractionError",
    "CatalogError",
    "NotFoundError",
    "FilesystemError",
    "ConfigError",
    "REASON_MISSING_FIELDS",
    "REASON_INVALID_ARCHIVE",
    "REASON_EXTRACTION_FAILED",
    "REASON_CATALOG_FAILED",
    "REASON_INVALID_FILENAME",
]

REASON_MISSING_FIELDS = "missing-fields"
REASON_INVALID_ARCHIVE = "invalid-archive"
REASON_EXTRACTION_FAILED = "extraction-failed"
REASON_CATALOG_FAILED = "catalog-failed"
REASON_INVALID_FILENAME = "invalid-filename"


class ContentHubError(RuntimeError):
    """Base exception for content lifecycle failures."""

    reason: Optional[str] = None

    def __init__(self, message: str, *, reason: Optional[str] = None) -> None:
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class ValidationError(ContentHubError):
    """Raised for bad input; no side effects have happened."""

    reason = REASON_INVALID_ARCHIVE


class ExtractionError(ContentHubError):
    """Raised when an archive cannot be read or written out."""

    reason = REASON_EXTRACTION_FAILED


class CatalogError(ContentHubError):
    """Raised when the catalog store rejects a read or write."""

    reason = REASON_CATALOG_FAILED


class NotFoundError(ContentHubError):
    """Raised when operating on an unknown content identifier."""

    reason = "not-found"


class FilesystemError(ContentHubError):
    """Raised when removing or scanning on-disk artifacts fails."""

    reason = "filesystem-error"

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message, reason=reason)
        self.path = path


class ConfigError(ContentHubError):
    """Raised when configuration files or overrides are invalid."""

    reason = "config-error"
