"""
Pydantic v2 Configuration Models for ContentHub

Provides strict, typed configuration for every ContentHub subsystem:
- Storage layout (served-content root, raw-upload holding area)
- Catalog database
- Extraction limits (archive-bomb hardening)
- Slug minting
- Reconciliation grace period
- Served-content cache directives
- HTTP API role claims
- Taxonomy cache
- Logging
- Top-level ContentHubConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and CLI overrides follow: file < env < CLI precedence (see ``loader``).
"""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ============================================================================
# Storage & Catalog
# ============================================================================


class StorageConfig(BaseModel):
    """Filesystem layout for served packages and raw uploads."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    public_root: Path = Field(
        default=Path("public"),
        description="Directory every catalog storage path is relative to",
    )
    served_dirname: str = Field(
        default="packages",
        description="Served-content root (one directory per slug) under public_root",
    )
    uploads_dirname: str = Field(
        default="uploads",
        description="Raw-upload holding area under public_root",
    )
    retain_uploads: bool = Field(
        default=False,
        description="Keep the raw archive as {uploads}/{slug}{ext} after extraction",
    )
    archive_extension: str = Field(
        default=".h5p",
        description="Extension used when retaining a raw upload",
    )

    @field_validator("served_dirname", "uploads_dirname")
    @classmethod
    def validate_dirname(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v or v in {".", ".."}:
            raise ValueError("directory names must be a single path component")
        return v

    @field_validator("archive_extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        v = v.lower()
        if not v.startswith("."):
            v = f".{v}"
        return v

    @property
    def served_root(self) -> Path:
        return self.public_root / self.served_dirname

    @property
    def uploads_root(self) -> Path:
        return self.public_root / self.uploads_dirname


class CatalogConfig(BaseModel):
    """Catalog database configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    backend: Literal["sqlite"] = Field(default="sqlite", description="Database backend")
    path: str = Field(
        default="state/catalog.sqlite",
        description="SQLite database file path",
    )
    wal_mode: bool = Field(default=True, description="Enable WAL mode for SQLite")


# ============================================================================
# Extraction & Identifiers
# ============================================================================


class ExtractionConfig(BaseModel):
    """Upper bounds enforced on an archive before any entry is written."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    max_entries: int = Field(default=10_000, ge=1, description="Maximum archive entries")
    max_total_uncompressed_bytes: int = Field(
        default=2 * 1024**3,
        ge=1,
        description="Maximum declared uncompressed size of all entries",
    )
    max_file_size_bytes: int = Field(
        default=512 * 1024**2,
        ge=1,
        description="Maximum declared size of a single entry",
    )
    max_compression_ratio: float = Field(
        default=100.0,
        ge=1.0,
        description="Zip-bomb guard (uncompressed / compressed)",
    )


class SlugConfig(BaseModel):
    """Slug minting parameters."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    suffix_bytes: int = Field(
        default=4,
        description="Random suffix entropy in bytes (hex length is twice this)",
    )
    max_attempts: int = Field(default=5, description="Re-mint attempts on slug collision")

    @field_validator("suffix_bytes")
    @classmethod
    def validate_suffix_bytes(cls, v: int) -> int:
        if v < 4:
            raise ValueError("suffix_bytes must be >= 4 (32 bits of entropy)")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v


class ReconciliationConfig(BaseModel):
    """Orphan scanning behaviour."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    grace_period_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description="Entries modified more recently than this are never treated as orphans",
    )
    include_hidden: bool = Field(
        default=False,
        description="Consider dot-prefixed entries during scans",
    )


# ============================================================================
# Serving & API
# ============================================================================


class ServingConfig(BaseModel):
    """Cache directives for the served-content read path."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    immutable_max_age: int = Field(
        default=31_536_000, ge=0, description="max-age for immutable assets (one year)"
    )
    manifest_max_age: int = Field(
        default=300, ge=0, description="max-age for mutable manifests"
    )
    mutable_extensions: List[str] = Field(
        default_factory=lambda: [".json"],
        description="Extensions served with the short cache directive",
    )

    @field_validator("mutable_extensions")
    @classmethod
    def normalise_extensions(cls, v: List[str]) -> List[str]:
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v]


class ApiConfig(BaseModel):
    """HTTP API role claims and upload limits."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    tokens: Dict[str, str] = Field(
        default_factory=dict,
        description="Bearer token -> role claim",
    )
    admin_role: str = Field(default="admin", description="Role allowed to mutate content")
    max_upload_bytes: Optional[int] = Field(
        default=None, description="Maximum accepted upload size (None = unlimited)"
    )

    @field_validator("max_upload_bytes")
    @classmethod
    def validate_max_upload_bytes(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("max_upload_bytes must be > 0 or None")
        return v


class TaxonomyConfig(BaseModel):
    """Subject-area lookup cache."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    cache_ttl_seconds: float = Field(default=300.0, ge=0.0, description="Lookup cache TTL")


class LoggingConfig(BaseModel):
    """Logging-related configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    json_file: Optional[Path] = Field(
        default=None, description="Optional JSON-lines log file"
    )
    max_log_size_mb: int = Field(default=100, gt=0, description="Rotation threshold")
    retention_days: int = Field(default=30, ge=1, description="Retention for rotated logs")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper


# ============================================================================
# Top-Level Configuration
# ============================================================================


class ContentHubConfig(BaseModel):
    """
    Single source of truth for ContentHub configuration.

    Loaded from file (YAML/JSON), overlaid with environment variables,
    and finally overridden by CLI arguments. Precedence: file < env < CLI.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    storage: StorageConfig = Field(default_factory=StorageConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    slugs: SlugConfig = Field(default_factory=SlugConfig)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
    serving: ServingConfig = Field(default_factory=ServingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    taxonomy: TaxonomyConfig = Field(default_factory=TaxonomyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def config_hash(self) -> str:
        """Return a deterministic SHA256 of the normalised config (secrets included)."""
        import hashlib
        import json

        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()
