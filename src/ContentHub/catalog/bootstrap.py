# === NAVMAP v1 ===
# {
#   "module": "ContentHub.catalog.bootstrap",
#   "purpose": "Wire configuration into the catalog, lifecycle and reconciler.",
#   "sections": [
#     {
#       "id": "build-catalog-store",
#       "name": "build_catalog_store",
#       "anchor": "function-build-catalog-store",
#       "kind": "function"
#     },
#     {
#       "id": "ensure-storage-layout",
#       "name": "ensure_storage_layout",
#       "anchor": "function-ensure-storage-layout",
#       "kind": "function"
#     },
#     {
#       "id": "contenthubbootstrap",
#       "name": "ContentHubBootstrap",
#       "anchor": "class-contenthubbootstrap",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Bootstrap and initialization for the content hub.

Builds every component from one :class:`ContentHubConfig` and hands them out
as properties.  The HTTP app and the CLI both go through here, so neither
holds process-wide singletons.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ContentHub.catalog.consistency import Reconciler
from ContentHub.catalog.store import CatalogStore, SQLiteCatalog
from ContentHub.catalog.taxonomy import CachedSubjectAreaLookup, StoreSubjectAreaLookup
from ContentHub.config.models import CatalogConfig, ContentHubConfig, StorageConfig
from ContentHub.errors import CatalogError, ConfigError
from ContentHub.lifecycle import ContentLifecycle

logger = logging.getLogger(__name__)


def build_catalog_store(config: CatalogConfig) -> CatalogStore:
    """Build a catalog store from config.

    Raises:
        CatalogError: If store initialization fails
        ConfigError: If the backend is unknown
    """
    if config.backend == "sqlite":
        logger.info("Initializing SQLite catalog at %s", config.path, extra={"stage": "catalog"})
        try:
            return SQLiteCatalog(path=config.path, wal_mode=config.wal_mode)
        except CatalogError:
            logger.error("Failed to initialize SQLite catalog", extra={"stage": "catalog"})
            raise
    raise ConfigError(f"Unknown catalog backend: {config.backend}")


def ensure_storage_layout(config: StorageConfig) -> None:
    """Create the served-content root and raw-upload area if missing."""
    config.served_root.mkdir(parents=True, exist_ok=True)
    config.uploads_root.mkdir(parents=True, exist_ok=True)


class ContentHubBootstrap:
    """Orchestrates component initialization and cleanup."""

    def __init__(
        self,
        config: ContentHubConfig,
        *,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize bootstrap with config.

        Args:
            config: ContentHubConfig instance
            clock: Wall clock handed to the reconciler's grace-period check
        """
        self.config = config
        self._clock = clock
        self._catalog: Optional[CatalogStore] = None
        self._lifecycle: Optional[ContentLifecycle] = None
        self._reconciler: Optional[Reconciler] = None
        self._subject_areas: Optional[CachedSubjectAreaLookup] = None

    def initialize(self) -> ContentHubBootstrap:
        """Initialize all components.

        Returns:
            Self for method chaining
        """
        ensure_storage_layout(self.config.storage)
        self._catalog = build_catalog_store(self.config.catalog)
        self._subject_areas = CachedSubjectAreaLookup(
            StoreSubjectAreaLookup(self._catalog),
            ttl_seconds=self.config.taxonomy.cache_ttl_seconds,
        )
        self._lifecycle = ContentLifecycle(
            self._catalog,
            self.config.storage,
            extraction=self.config.extraction,
            slugs=self.config.slugs,
            subject_areas=self._subject_areas,
        )
        self._reconciler = Reconciler(
            self._catalog,
            self.config.storage,
            self.config.reconciliation,
            clock=self._clock,
        )
        logger.info(
            "bootstrap complete: public_root=%s",
            self.config.storage.public_root,
            extra={"stage": "catalog"},
        )
        return self

    @property
    def catalog(self) -> CatalogStore:
        """Get initialized catalog store.

        Raises:
            RuntimeError: If not initialized
        """
        if self._catalog is None:
            raise RuntimeError("Catalog not initialized. Call initialize() first.")
        return self._catalog

    @property
    def lifecycle(self) -> ContentLifecycle:
        if self._lifecycle is None:
            raise RuntimeError("Lifecycle not initialized. Call initialize() first.")
        return self._lifecycle

    @property
    def reconciler(self) -> Reconciler:
        if self._reconciler is None:
            raise RuntimeError("Reconciler not initialized. Call initialize() first.")
        return self._reconciler

    @property
    def subject_areas(self) -> CachedSubjectAreaLookup:
        if self._subject_areas is None:
            raise RuntimeError("Taxonomy lookup not initialized. Call initialize() first.")
        return self._subject_areas

    def close(self) -> None:
        """Cleanup and close catalog connection."""
        if self._catalog:
            self._catalog.close()
            self._catalog = None
            logger.debug("Catalog connection closed")

    def __enter__(self) -> ContentHubBootstrap:
        """Context manager entry."""
        return self.initialize()

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
