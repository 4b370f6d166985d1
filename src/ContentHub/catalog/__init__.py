"""
Content Catalog for ContentHub.

Durable records of every ingested package plus the tools that keep them in
line with the served tree:
  - SQLite catalog with a UNIQUE slug per record
  - Slug minting with a random hex suffix
  - Subject-area lookup behind a clock-injected TTL cache
  - Orphan and dangling-record reconciliation

``ContentHub.catalog.bootstrap`` is imported directly; it depends on
``ContentHub.lifecycle``, which in turn depends on this package.
"""

from __future__ import annotations

from ContentHub.catalog.models import ContentRecord, SubjectArea
from ContentHub.catalog.store import CatalogStore, SQLiteCatalog

__all__ = [
    "CatalogStore",
    "ContentRecord",
    "SQLiteCatalog",
    "SubjectArea",
]
