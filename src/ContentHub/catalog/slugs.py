"""URL-safe, collision-resistant slugs for ingested packages.

A slug is the lower-cased, transliterated title with every run of other
characters collapsed to one hyphen, followed by ``-`` and a random hex
suffix.  The suffix alone is a valid slug, so titles that reduce to nothing
(``"!!!"``, ``"日本語"``) still mint one.

Examples:
    >>> slugify("Grammar Quiz")
    'grammar-quiz'
    >>> slugify("Übungen für Größen")
    'uebungen-fuer-groessen'
"""

from __future__ import annotations

import logging
import re
import secrets
from typing import Callable, Dict, Optional

from ContentHub.errors import REASON_CATALOG_FAILED, CatalogError

logger = logging.getLogger(__name__)

MIN_SUFFIX_BYTES = 4

TRANSLITERATIONS: Dict[str, str] = {
    "ä": "ae",
    "ö": "oe",
    "ü": "ue",
    "ß": "ss",
}

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """Return the deterministic stem of a slug; may be empty."""
    lowered = title.lower()
    for source, target in TRANSLITERATIONS.items():
        lowered = lowered.replace(source, target)
    return _NON_ALNUM.sub("-", lowered).strip("-")


def random_suffix(num_bytes: int = MIN_SUFFIX_BYTES) -> str:
    """Return ``2 * num_bytes`` lowercase hex characters."""
    if num_bytes < MIN_SUFFIX_BYTES:
        raise ValueError(f"suffix must carry at least {MIN_SUFFIX_BYTES} bytes of entropy")
    return secrets.token_hex(num_bytes)


def generate_slug(title: str, *, suffix_bytes: int = MIN_SUFFIX_BYTES) -> str:
    """Return ``slugify(title)`` plus a random hex suffix."""
    stem = slugify(title)
    suffix = random_suffix(suffix_bytes)
    return f"{stem}-{suffix}" if stem else suffix


def mint_unique_slug(
    title: str,
    is_taken: Callable[[str], bool],
    *,
    suffix_bytes: int = MIN_SUFFIX_BYTES,
    max_attempts: int = 5,
    correlation_id: Optional[str] = None,
) -> str:
    """Generate slugs until ``is_taken`` rejects none of them.

    Raises:
        CatalogError: When every attempt collided.
    """
    for attempt in range(1, max_attempts + 1):
        slug = generate_slug(title, suffix_bytes=suffix_bytes)
        if not is_taken(slug):
            return slug
        logger.warning(
            "slug collision, re-minting",
            extra={
                "stage": "ingest",
                "slug": slug,
                "correlation_id": correlation_id,
                "reason": f"attempt {attempt}/{max_attempts}",
            },
        )
    raise CatalogError(
        f"could not mint a unique slug after {max_attempts} attempts",
        reason=REASON_CATALOG_FAILED,
    )


__all__ = [
    "TRANSLITERATIONS",
    "generate_slug",
    "mint_unique_slug",
    "random_suffix",
    "slugify",
]
