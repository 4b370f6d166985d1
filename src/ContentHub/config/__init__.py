"""Typed configuration for ContentHub (file < env < CLI precedence)."""

from ContentHub.config.loader import export_config_schema, load_config, validate_config_file
from ContentHub.config.models import (
    ApiConfig,
    CatalogConfig,
    ContentHubConfig,
    ExtractionConfig,
    LoggingConfig,
    ReconciliationConfig,
    ServingConfig,
    SlugConfig,
    StorageConfig,
    TaxonomyConfig,
)

__all__ = [
    "ApiConfig",
    "CatalogConfig",
    "ContentHubConfig",
    "ExtractionConfig",
    "LoggingConfig",
    "ReconciliationConfig",
    "ServingConfig",
    "SlugConfig",
    "StorageConfig",
    "TaxonomyConfig",
    "export_config_schema",
    "load_config",
    "validate_config_file",
]
