"""SQLite-based implementation of the content catalog store."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from ContentHub.catalog.models import ContentRecord, SubjectArea
from ContentHub.errors import REASON_CATALOG_FAILED, CatalogError

logger = logging.getLogger(__name__)

_UNSET: Any = object()

_SCHEMA = """
CREATE TABLE IF NOT EXISTS subject_areas (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    slug TEXT UNIQUE
);

CREATE TABLE IF NOT EXISTS content (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE,
    storage_path TEXT NOT NULL UNIQUE,
    content_type TEXT NOT NULL,
    subject_area_id INTEGER REFERENCES subject_areas(id) ON DELETE SET NULL,
    password TEXT,
    cover_image_path TEXT,
    source_path TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_content_created_at ON content(created_at);
CREATE INDEX IF NOT EXISTS idx_content_subject_area ON content(subject_area_id);

CREATE TABLE IF NOT EXISTS retired_slugs (
    slug TEXT PRIMARY KEY,
    retired_at TEXT NOT NULL
);
"""

_CONTENT_COLUMNS = """
    id, title, slug, storage_path, content_type, subject_area_id, password,
    cover_image_path, source_path, created_at, updated_at
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class CatalogStore:
    """Protocol-like base class for content catalog stores.

    Implementations must be safe to share between request threads.  The
    uniqueness of ``slug`` is enforced by the store itself and is the only
    hard concurrency guarantee the ingest path relies on.
    """

    def create(
        self,
        *,
        title: str,
        slug: str,
        storage_path: str,
        content_type: str,
        subject_area_id: Optional[int] = None,
        password: Optional[str] = None,
        cover_image_path: Optional[str] = None,
        source_path: Optional[str] = None,
    ) -> ContentRecord:
        """Insert a new record.

        Raises:
            CatalogError: If the write fails, including a duplicate slug.
        """
        raise NotImplementedError

    def get(self, content_id: int) -> Optional[ContentRecord]:
        """Get a record by id."""
        raise NotImplementedError

    def get_by_slug(self, slug: str) -> Optional[ContentRecord]:
        """Get a record by slug."""
        raise NotImplementedError

    def slug_exists(self, slug: str) -> bool:
        """Return True when a record owns ``slug`` or a deleted record once did."""
        raise NotImplementedError

    def get_all_records(self) -> List[ContentRecord]:
        """Get all records, newest first."""
        raise NotImplementedError

    def all_slugs(self) -> Set[str]:
        """Return the slug of every record."""
        raise NotImplementedError

    def referenced_paths(self) -> Set[str]:
        """Return every storage and retained-source path the catalog references."""
        raise NotImplementedError

    def update(
        self,
        content_id: int,
        *,
        title: Optional[str] = _UNSET,
        subject_area_id: Optional[int] = _UNSET,
        password: Optional[str] = _UNSET,
        cover_image_path: Optional[str] = _UNSET,
    ) -> Optional[ContentRecord]:
        """Update mutable fields; omitted fields are left untouched."""
        raise NotImplementedError

    def delete(self, content_id: int) -> bool:
        """Delete a record and retire its slug; return False if it did not exist."""
        raise NotImplementedError

    def get_subject_area(self, subject_area_id: int) -> Optional[SubjectArea]:
        """Look up one subject area."""
        raise NotImplementedError

    def list_subject_areas(self) -> List[SubjectArea]:
        """Return all subject areas ordered by name."""
        raise NotImplementedError

    def stats(self) -> Dict[str, int]:
        """Return catalog statistics."""
        raise NotImplementedError

    def close(self) -> None:
        """Close the store connection."""
        raise NotImplementedError


class SQLiteCatalog(CatalogStore):
    """SQLite-based implementation of the content catalog.

    One connection is shared between threads and serialised with an RLock;
    WAL mode lets external readers (the CLI while a server runs) proceed.
    """

    def __init__(self, path: str, wal_mode: bool = True):
        """Initialize SQLite catalog store.

        Args:
            path: Path to SQLite database file (``":memory:"`` is accepted)
            wal_mode: If True, enable WAL mode for better concurrency

        Raises:
            CatalogError: If database initialization fails
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self._lock = threading.RLock()

        in_memory = str(path) == ":memory:"
        if not in_memory:
            self.path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = sqlite3.connect(str(path), check_same_thread=False, timeout=30.0)
            self.conn.row_factory = sqlite3.Row
            if wal_mode and not in_memory:
                self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("PRAGMA foreign_keys=ON")
            self._init_schema()
        except sqlite3.Error as e:
            raise CatalogError(f"Failed to open catalog at {path}: {e}") from e
        logger.info(
            "initialized sqlite catalog", extra={"stage": "catalog", "path": str(path)}
        )

    def _init_schema(self) -> None:
        self.conn.executescript(_SCHEMA)
        self.conn.commit()
        logger.debug("Schema initialized successfully")

    def create(
        self,
        *,
        title: str,
        slug: str,
        storage_path: str,
        content_type: str,
        subject_area_id: Optional[int] = None,
        password: Optional[str] = None,
        cover_image_path: Optional[str] = None,
        source_path: Optional[str] = None,
    ) -> ContentRecord:
        """Insert a record; a duplicate slug is rejected by the UNIQUE constraint."""
        with self._lock:
            now = _now()
            try:
                cursor = self.conn.execute(
                    """
                    INSERT INTO content
                    (title, slug, storage_path, content_type, subject_area_id, password,
                     cover_image_path, source_path, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        title,
                        slug,
                        storage_path,
                        content_type,
                        subject_area_id,
                        password or None,
                        cover_image_path,
                        source_path,
                        now,
                        now,
                    ),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                logger.error(
                    "failed to insert content record",
                    extra={"stage": "catalog", "slug": slug, "reason": str(e)},
                )
                raise CatalogError(
                    f"Failed to record content {slug}: {e}", reason=REASON_CATALOG_FAILED
                ) from e

            record = self.get(int(cursor.lastrowid))
            if record is None:
                raise CatalogError("Failed to retrieve inserted content", reason=REASON_CATALOG_FAILED)
            return record

    def get(self, content_id: int) -> Optional[ContentRecord]:
        with self._lock:
            row = self._fetchone(
                f"SELECT {_CONTENT_COLUMNS} FROM content WHERE id = ?", (content_id,)
            )
            return self._row_to_record(row) if row else None

    def get_by_slug(self, slug: str) -> Optional[ContentRecord]:
        with self._lock:
            row = self._fetchone(
                f"SELECT {_CONTENT_COLUMNS} FROM content WHERE slug = ?", (slug,)
            )
            return self._row_to_record(row) if row else None

    def slug_exists(self, slug: str) -> bool:
        with self._lock:
            row = self._fetchone(
                "SELECT 1 FROM content WHERE slug = ? "
                "UNION ALL SELECT 1 FROM retired_slugs WHERE slug = ?",
                (slug, slug),
            )
            return row is not None

    def get_all_records(self) -> List[ContentRecord]:
        with self._lock:
            rows = self._fetchall(
                f"SELECT {_CONTENT_COLUMNS} FROM content ORDER BY created_at DESC, id DESC"
            )
            return [self._row_to_record(row) for row in rows]

    def all_slugs(self) -> Set[str]:
        with self._lock:
            return {row[0] for row in self._fetchall("SELECT slug FROM content")}

    def referenced_paths(self) -> Set[str]:
        with self._lock:
            rows = self._fetchall("SELECT storage_path, source_path FROM content")
        paths: Set[str] = set()
        for row in rows:
            paths.add(row["storage_path"])
            if row["source_path"]:
                paths.add(row["source_path"])
        return paths

    def update(
        self,
        content_id: int,
        *,
        title: Optional[str] = _UNSET,
        subject_area_id: Optional[int] = _UNSET,
        password: Optional[str] = _UNSET,
        cover_image_path: Optional[str] = _UNSET,
    ) -> Optional[ContentRecord]:
        changes: Dict[str, Any] = {}
        if title is not _UNSET:
            changes["title"] = title
        if subject_area_id is not _UNSET:
            changes["subject_area_id"] = subject_area_id
        if password is not _UNSET:
            changes["password"] = password or None
        if cover_image_path is not _UNSET:
            changes["cover_image_path"] = cover_image_path

        with self._lock:
            if not changes:
                return self.get(content_id)
            changes["updated_at"] = _now()
            assignments = ", ".join(f"{column} = ?" for column in changes)
            try:
                cursor = self.conn.execute(
                    f"UPDATE content SET {assignments} WHERE id = ?",
                    (*changes.values(), content_id),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise CatalogError(f"Failed to update content {content_id}: {e}") from e
            if cursor.rowcount == 0:
                return None
            return self.get(content_id)

    def delete(self, content_id: int) -> bool:
        with self._lock:
            try:
                self.conn.execute(
                    "INSERT OR IGNORE INTO retired_slugs (slug, retired_at) "
                    "SELECT slug, ? FROM content WHERE id = ?",
                    (_now(), content_id),
                )
                cursor = self.conn.execute("DELETE FROM content WHERE id = ?", (content_id,))
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise CatalogError(f"Failed to delete content {content_id}: {e}") from e
            return cursor.rowcount > 0

    def add_subject_area(self, name: str, slug: Optional[str] = None) -> SubjectArea:
        """Insert a subject area (seeding helper; taxonomy editing lives elsewhere)."""
        with self._lock:
            try:
                cursor = self.conn.execute(
                    "INSERT INTO subject_areas (name, slug) VALUES (?, ?)", (name, slug)
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise CatalogError(f"Failed to add subject area {name}: {e}") from e
            return SubjectArea(id=int(cursor.lastrowid), name=name, slug=slug)

    def get_subject_area(self, subject_area_id: int) -> Optional[SubjectArea]:
        with self._lock:
            row = self._fetchone(
                "SELECT id, name, slug FROM subject_areas WHERE id = ?", (subject_area_id,)
            )
            if row is None:
                return None
            return SubjectArea(id=row["id"], name=row["name"], slug=row["slug"])

    def list_subject_areas(self) -> List[SubjectArea]:
        with self._lock:
            rows = self._fetchall("SELECT id, name, slug FROM subject_areas ORDER BY name")
            return [SubjectArea(id=row["id"], name=row["name"], slug=row["slug"]) for row in rows]

    def stats(self) -> Dict[str, int]:
        """Return catalog statistics."""
        with self._lock:
            total = self._fetchone("SELECT COUNT(*) FROM content")[0]
            protected = self._fetchone(
                "SELECT COUNT(*) FROM content WHERE password IS NOT NULL AND password != ''"
            )[0]
            content_types = self._fetchone("SELECT COUNT(DISTINCT content_type) FROM content")[0]
            retained = self._fetchone(
                "SELECT COUNT(*) FROM content WHERE source_path IS NOT NULL"
            )[0]
            return {
                "total_content": total,
                "password_protected": protected,
                "content_types": content_types,
                "retained_uploads": retained,
            }

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                logger.debug("Database connection closed")

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise CatalogError(f"Catalog query failed: {e}") from e

    def _fetchall(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise CatalogError(f"Catalog query failed: {e}") from e

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ContentRecord:
        """Convert a database row to a ContentRecord."""
        return ContentRecord(
            id=row["id"],
            title=row["title"],
            slug=row["slug"],
            storage_path=row["storage_path"],
            content_type=row["content_type"],
            subject_area_id=row["subject_area_id"],
            password=row["password"],
            cover_image_path=row["cover_image_path"],
            source_path=row["source_path"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
