"""Read path for extracted package files.

Files are located by ``{served_root}/{slug}/{relative}``; anything resolving
outside the slug directory, any directory, and any missing file is a 404.
Content type comes from a fixed extension table and the cache directive from
:class:`ServingConfig`: long-lived and immutable for assets, short for
mutable manifests.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

from ContentHub.config.models import ServingConfig
from ContentHub.errors import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "application/octet-stream"

MEDIA_TYPES: Dict[str, str] = {
    ".json": "application/json",
    ".js": "application/javascript",
    ".css": "text/css",
    ".html": "text/html",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".mp4": "video/mp4",
    ".mp3": "audio/mpeg",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".webp": "image/webp",
}


def media_type_for(path: Path) -> str:
    return MEDIA_TYPES.get(path.suffix.lower(), DEFAULT_MEDIA_TYPE)


DOWNLOAD_MEDIA_TYPES: Dict[str, str] = {
    ".h5p": "application/zip",
    ".zip": "application/zip",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
}


def download_media_type_for(path: Path) -> str:
    """Media type for an attachment download from the raw-upload area."""
    return DOWNLOAD_MEDIA_TYPES.get(path.suffix.lower()) or media_type_for(path)


def cache_control_for(path: Path, config: ServingConfig) -> str:
    if path.suffix.lower() in config.mutable_extensions:
        return f"public, max-age={config.manifest_max_age}"
    return f"public, max-age={config.immutable_max_age}, immutable"


def resolve_served_file(served_root: Path, slug: str, relative: str) -> Path:
    """Return the file to serve, or raise :class:`NotFoundError`."""
    base = (served_root / slug).resolve()
    root = served_root.resolve()
    if base.parent != root:
        raise NotFoundError(f"unknown content: {slug}")
    candidate = (base / relative).resolve()
    if base not in candidate.parents:
        logger.warning(
            "refused path outside content directory",
            extra={"stage": "serve", "slug": slug, "path": relative},
        )
        raise NotFoundError("file not found")
    if not candidate.is_file():
        raise NotFoundError("file not found")
    return candidate


__all__ = [
    "DEFAULT_MEDIA_TYPE",
    "DOWNLOAD_MEDIA_TYPES",
    "MEDIA_TYPES",
    "cache_control_for",
    "download_media_type_for",
    "media_type_for",
    "resolve_served_file",
]
