"""Catalog record types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ContentRecord:
    """A catalog row describing one ingested package.

    ``storage_path`` is relative to the configured public root and, for an
    extracted package, always equals ``{served_dirname}/{slug}``.
    """

    id: int
    title: str
    slug: str
    storage_path: str
    content_type: str
    subject_area_id: Optional[int]
    password: Optional[str]
    cover_image_path: Optional[str]
    source_path: Optional[str]
    created_at: datetime
    updated_at: datetime

    @property
    def is_password_protected(self) -> bool:
        return bool(self.password)

    def to_dict(self, *, include_password: bool = False) -> Dict[str, Any]:
        """Return the camelCase wire representation."""
        payload: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "storagePath": self.storage_path,
            "contentType": self.content_type,
            "subjectAreaId": self.subject_area_id,
            "coverImagePath": self.cover_image_path,
            "sourcePath": self.source_path,
            "isPasswordProtected": self.is_password_protected,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if include_password:
            payload["password"] = self.password
        return payload


@dataclass(frozen=True)
class SubjectArea:
    """A taxonomy entry content can be filed under."""

    id: int
    name: str
    slug: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "slug": self.slug}
